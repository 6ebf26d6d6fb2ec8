"""
Webhook Authentication Middleware
=================================
The messaging platform signs each webhook call with an HS256 JWT shared
secret (WEBHOOK_JWT_SECRET). The decorated route sees the calling service
in request.service.
"""

import jwt
import logging
import os
from functools import wraps
from flask import request, jsonify, g
from typing import Optional
from dotenv import load_dotenv

load_dotenv()
logger = logging.getLogger(__name__)

WEBHOOK_JWT_SECRET = os.getenv('WEBHOOK_JWT_SECRET')
WEBHOOK_AUDIENCE = os.getenv('WEBHOOK_AUDIENCE', 'sata-webhook')


class AuthError(Exception):
    """Missing, malformed or unverifiable service token"""


def extract_service_from_token() -> Optional[str]:
    """
    Extract the calling service name from the Bearer token.
    Returns None if no header is present, raises on a bad token.
    """
    auth_header = request.headers.get('Authorization')
    if not auth_header:
        return None

    if not auth_header.startswith('Bearer '):
        raise AuthError("Invalid authorization header format. Use 'Bearer <token>'")

    token = auth_header.split(' ', 1)[1]

    dev_mode = os.getenv('FLASK_ENV', 'production') != 'production'
    if WEBHOOK_JWT_SECRET:
        decoded = jwt.decode(
            token,
            WEBHOOK_JWT_SECRET,
            algorithms=['HS256'],
            audience=WEBHOOK_AUDIENCE,
        )
    elif dev_mode:
        logger.warning("WEBHOOK_JWT_SECRET not set; accepting unverified token in development")
        decoded = jwt.decode(token, options={'verify_signature': False, 'verify_aud': False})
    else:
        raise AuthError("Webhook secret not configured")

    service = decoded.get('sub')
    if not service:
        raise AuthError("No service name in token")

    g.service = service
    return service


def require_service_token(f):
    """
    Decorator that requires a valid webhook JWT.
    Adds the calling service to the request context.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        try:
            service = extract_service_from_token()
        except jwt.ExpiredSignatureError:
            return jsonify({
                'error': 'Authentication failed',
                'message': 'Token has expired'
            }), 401
        except jwt.InvalidTokenError:
            return jsonify({
                'error': 'Authentication failed',
                'message': 'Invalid token'
            }), 401
        except AuthError as e:
            logger.warning(f"Auth error: {e}")
            return jsonify({
                'error': 'Authentication failed',
                'message': str(e)
            }), 401

        if not service:
            return jsonify({
                'error': 'Authentication required',
                'message': 'Please provide a valid Authorization header with Bearer token'
            }), 401

        request.service = service
        return f(*args, **kwargs)

    return decorated
