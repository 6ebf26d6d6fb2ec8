"""
SATA Webhook Service
====================
Flask surface for the messaging platform: one inbound message per request,
processed by the conversation engine under a per-identity lock, with the
resulting actions executed against Supabase.
"""

import os
import time
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from dotenv import load_dotenv
from pathlib import Path
from werkzeug.middleware.proxy_fix import ProxyFix

# --- Local Imports ---
from config.auth_middleware import require_service_token
from config.supabase_client import test_connection
from core.engine import ConversationEngine
from core.errors import PersistenceError
from database.dispatcher import execute_actions
from database.repository import SupabaseSessionStore, find_resources
from nlp.translator import Translator

# Only load .env automatically in development to avoid leaking dev values in prod
_dev_guess = os.getenv("FLASK_ENV", "production") != "production"
if _dev_guess:
    load_dotenv(dotenv_path=str(Path(__file__).with_name(".env")), override=True)

# --- Configuration ---
FLASK_ENV = os.getenv("FLASK_ENV", "production")
IS_PROD = (FLASK_ENV == "production")
SECRET_KEY = os.getenv("SECRET_KEY")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
RATE_LIMIT_STORAGE = os.getenv("RATE_LIMIT_STORAGE", "memory://")
RATE_LIMIT_DAY = int(os.getenv("RATE_LIMIT_DAY", "2000"))
RATE_LIMIT_HOUR = int(os.getenv("RATE_LIMIT_HOUR", "500"))
MAX_MESSAGE_LENGTH = 1000
origins_env = os.getenv("CORS_ORIGINS", "").strip()

# --- Logging Configuration ---
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] [%(name)s] - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("app")

# --- Flask App Initialization ---
app = Flask(__name__)
app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1)

if IS_PROD and not SECRET_KEY:
    raise SystemExit("SECRET_KEY must be set in production")
app.secret_key = SECRET_KEY or os.urandom(24).hex()

# --- CORS Configuration ---
if IS_PROD:
    ORIGINS = [o.strip() for o in origins_env.split(",") if o.strip()]
    if not ORIGINS:
        raise SystemExit("CORS_ORIGINS must be set in production")
else:
    ORIGINS = [r"http://localhost:\d+", r"http://127\.0\.0\.1:\d+"]

cors_config = {
    "origins": ORIGINS,
    "allow_headers": ["Content-Type", "Authorization"],
    "methods": ["GET", "POST", "DELETE"],
    "max_age": 86400,
}

CORS(app, resources={
    r"/api/.*": cors_config,
    r"/health": cors_config,
}, vary_header=True)

# --- Rate Limiting ---
limiter = Limiter(
    app=app,
    key_func=get_remote_address,
    default_limits=[f"{RATE_LIMIT_DAY} per day", f"{RATE_LIMIT_HOUR} per hour"],
    storage_uri=RATE_LIMIT_STORAGE
)


def _identity_key() -> str:
    """Rate-limit inbound messages per sender rather than per platform IP"""
    data = request.get_json(silent=True) or {}
    identity = data.get('identity')
    return f"identity:{identity}" if isinstance(identity, str) and identity else get_remote_address()


# --- Engine ---
engine = ConversationEngine(SupabaseSessionStore(), Translator.load(), find_resources)

# Turns for one identity must not interleave. Entries are [lock, holders] and
# are dropped once the last holder releases.
_identity_locks = {}
_registry_lock = threading.Lock()


@contextmanager
def identity_lock(identity: str):
    with _registry_lock:
        entry = _identity_locks.setdefault(identity, [threading.Lock(), 0])
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _registry_lock:
            entry[1] -= 1
            if entry[1] == 0:
                del _identity_locks[identity]


# --- Database Connection Test ---
if not test_connection() and IS_PROD:
    raise SystemExit("Startup aborted: Database connection failed.")

logger.info("Webhook service initialized with Supabase backend")


def parse_received_at(value):
    """ISO-8601 timestamp from the platform, or None to use the server clock"""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError("received_at must be an ISO-8601 string")
    return datetime.fromisoformat(value.replace('Z', '+00:00'))


# ==================== MESSAGE ENDPOINTS ====================

@app.route('/api/messages', methods=['POST'])
@require_service_token
@limiter.limit("30 per minute", key_func=_identity_key)
def inbound_message():
    """Process one inbound message and return the bot reply"""
    data = request.get_json(silent=True)
    if not data:
        return jsonify({'error': 'JSON body required'}), 400

    identity = data.get('identity')
    text = data.get('text')
    if not isinstance(identity, str) or not identity.strip():
        return jsonify({'error': 'identity required'}), 400
    if not isinstance(text, str):
        return jsonify({'error': 'Message text required'}), 400
    if len(text) > MAX_MESSAGE_LENGTH:
        return jsonify({'error': f'Message too long (max {MAX_MESSAGE_LENGTH} characters)'}), 400

    try:
        received_at = parse_received_at(data.get('received_at'))
    except ValueError as e:
        return jsonify({'error': f'Invalid received_at: {e}'}), 400

    with identity_lock(identity):
        result = engine.handle_inbound_message(identity, text, received_at)
        dispatch = execute_actions(result.actions)

    errors = list(result.errors) + [f"{f['type']}: {f['error']}" for f in dispatch.failed]
    if errors:
        logger.warning(f"Turn completed with {len(errors)} error(s)")

    return jsonify({
        'response': result.response.model_dump(
            mode='json', include={'message', 'message_key', 'quick_replies', 'buttons', 'priority'}
        ),
        'actions': [action.model_dump(mode='json') for action in result.actions],
        'errors': errors,
        'session_expired': result.session_expired,
    }), 200


@app.route('/api/sessions/<identity>', methods=['DELETE'])
@require_service_token
def erase_session(identity: str):
    """Erase a sender's session on a data-erasure request"""
    with identity_lock(identity):
        try:
            removed = engine.session_store.erase(identity)
        except PersistenceError as e:
            logger.error(f"Session erase failed: {e}")
            return jsonify({'error': 'Session store unavailable'}), 503
    if removed:
        return ('', 204)
    return jsonify({'error': 'Session not found'}), 404


# ==================== HEALTH ENDPOINTS ====================

HEALTH_TTL_SECONDS = int(os.getenv("HEALTH_TTL_SECONDS", "60"))
_HEALTH_LAST_TS = 0.0
_HEALTH_LAST_PAYLOAD = None
_HEALTH_LAST_STATUS = 503


@app.route("/healthz")
@limiter.exempt
def healthz():
    """Shallow health: does not hit Supabase; safe for frequent platform checks."""
    return jsonify({"status": "ok"}), 200


@app.route("/health")
@limiter.exempt
def health_check():
    """Deep health: includes Supabase connectivity with simple caching to limit calls."""
    global _HEALTH_LAST_TS, _HEALTH_LAST_PAYLOAD, _HEALTH_LAST_STATUS
    now = time.time()
    if _HEALTH_LAST_PAYLOAD and (now - _HEALTH_LAST_TS) < HEALTH_TTL_SECONDS:
        return jsonify(_HEALTH_LAST_PAYLOAD), _HEALTH_LAST_STATUS

    db_connected = test_connection()
    payload = {
        "status": "ok" if db_connected else "degraded",
        "database": "connected" if db_connected else "disconnected",
    }
    status_code = 200 if db_connected else 503
    _HEALTH_LAST_TS = now
    _HEALTH_LAST_PAYLOAD = payload
    _HEALTH_LAST_STATUS = status_code
    return jsonify(payload), status_code


# ==================== ERROR HANDLERS ====================

@app.errorhandler(404)
def not_found(_):
    return jsonify({"error": "Not Found"}), 404


@app.errorhandler(405)
def method_not_allowed(_):
    return jsonify({"error": "Method Not Allowed"}), 405


@app.errorhandler(429)
def ratelimit_handler(e):
    return jsonify(error=f"Rate limit exceeded: {e.description}"), 429


@app.errorhandler(500)
def internal_server_error(e):
    logger.error("Unhandled 500: %s", e, exc_info=True)
    return jsonify({"error": "Internal Server Error"}), 500


# ==================== SECURITY HEADERS ====================

@app.after_request
def add_security_headers(response):
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
    if IS_PROD:
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


# ==================== DEVELOPMENT SERVER ====================

if __name__ == "__main__":
    port = int(os.getenv("PORT", 5000))
    debug_mode = (not IS_PROD)
    logger.info("Starting Flask server on http://0.0.0.0:%d (Debug: %s)", port, debug_mode)
    app.run(host="0.0.0.0", port=port, debug=debug_mode)
