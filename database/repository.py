"""
Supabase Repository Module
==========================
Collaborators the engine's actions are executed against, plus the
Supabase-backed session store. Every client failure surfaces as
PersistenceError.
"""

from typing import Any, Dict, List, Optional
import logging

from config import supabase_client
from core.errors import PersistenceError
from core.models import Session
from database.models import AccountRecord, Resource

logger = logging.getLogger(__name__)

SESSIONS_TABLE = 'bot_sessions'
ACCOUNTS_TABLE = 'bot_users'
RESOURCES_TABLE = 'mental_health_resources'
ASSESSMENTS_TABLE = 'phq4_assessments'
MOODS_TABLE = 'mood_logs'
INTERACTIONS_TABLE = 'user_interactions'
REFERRALS_TABLE = 'service_referrals'
CRISIS_ALERTS_TABLE = 'crisis_alerts'


def _table(name: str):
    client = supabase_client.supabase_service
    if client is None:
        raise PersistenceError(name, "Supabase service client not initialized")
    return client.table(name)


def _execute(operation: str, build_query) -> List[Dict[str, Any]]:
    """Run a query builder and wrap any client failure."""
    try:
        result = build_query().execute()
    except PersistenceError:
        raise
    except Exception as e:
        logger.error(f"{operation} failed: {e}")
        raise PersistenceError(operation, str(e)) from e
    return result.data or []


# ---------- Session Store ----------

class SupabaseSessionStore:
    """Session store keyed by anonymous id, one row per identity."""

    def load(self, identity: str) -> Optional[Session]:
        rows = _execute('load_session', lambda: _table(SESSIONS_TABLE).select('*').eq(
            'anonymous_id', identity
        ).limit(1))
        if not rows:
            return None
        try:
            return Session.model_validate(rows[0])
        except ValueError as e:
            raise PersistenceError('load_session', f"corrupt session row: {e}") from e

    def save(self, session: Session) -> None:
        _execute('save_session', lambda: _table(SESSIONS_TABLE).upsert(
            session.model_dump(mode='json'), on_conflict='anonymous_id'
        ))
        logger.debug(f"Saved session for user {session.user_id}")

    def erase(self, identity: str) -> bool:
        rows = _execute('erase_session', lambda: _table(SESSIONS_TABLE).delete().eq('anonymous_id', identity))
        return len(rows) > 0


# ---------- Resource Lookup ----------

def find_resources(category: str, language: str, limit: int = 5) -> List[Resource]:
    """Active resources in a category that support the language, highest priority first"""
    rows = _execute('find_resources', lambda: _table(RESOURCES_TABLE).select(
        'id, title, description, contact_info, category'
    ).eq('category', category).eq('is_active', True).contains(
        'languages', [language]
    ).order('priority', desc=True).limit(limit))
    return [Resource.model_validate(row) for row in rows]


# ---------- Collaborators ----------

def create_account(identity: str, user_id: str, onboarding: Dict[str, Any]) -> str:
    """Create the durable account record after consent"""
    account = AccountRecord(identity=identity, user_id=user_id, **onboarding)
    rows = _execute('create_account', lambda: _table(ACCOUNTS_TABLE).upsert(
        account.model_dump(mode='json'), on_conflict='user_id'
    ))
    logger.info(f"Created account for user {user_id}")
    return str(rows[0]['user_id']) if rows else user_id


def save_assessment(record: Dict[str, Any]) -> Optional[int]:
    rows = _execute('save_assessment', lambda: _table(ASSESSMENTS_TABLE).insert(record))
    return rows[0]['id'] if rows else None


def save_mood(record: Dict[str, Any]) -> Optional[int]:
    rows = _execute('save_mood', lambda: _table(MOODS_TABLE).insert(record))
    return rows[0]['id'] if rows else None


def log_interaction(user_id: str, interaction_type: str, metadata: Dict[str, Any]) -> None:
    _execute('log_interaction', lambda: _table(INTERACTIONS_TABLE).insert({
        'user_id': user_id,
        'interaction_type': interaction_type,
        'metadata': metadata,
    }))


def create_referral(user_id: str, urgency: str, resource_id: Optional[str],
                    referral_type: str = 'counseling', notes: str = '',
                    language: str = 'en') -> Optional[int]:
    """Create a pending service referral"""
    rows = _execute('create_referral', lambda: _table(REFERRALS_TABLE).insert({
        'user_id': user_id,
        'resource_id': resource_id,
        'referral_type': referral_type,
        'urgency_level': urgency,
        'status': 'pending',
        'notes': notes,
        'language': language,
    }))
    return rows[0]['id'] if rows else None


def record_crisis_alert(user_id: str, priority: str, details: Dict[str, Any]) -> Optional[int]:
    """Record an escalation for the on-call team"""
    rows = _execute('record_crisis_alert', lambda: _table(CRISIS_ALERTS_TABLE).insert({
        'user_id': user_id,
        'priority': priority,
        'details': details,
    }))
    logger.warning(f"Crisis alert recorded for user {user_id} ({priority})")
    return rows[0]['id'] if rows else None
