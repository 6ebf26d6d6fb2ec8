"""
Supabase Client Configuration
=============================
Environment-driven initialization for the server-side Supabase client.
Sessions, accounts, assessments, mood logs, referrals and crisis alerts all
go through this one client; no secrets live in code.
"""

import os
import logging
from supabase import create_client, Client
from dotenv import load_dotenv

load_dotenv()
logger = logging.getLogger(__name__)

SUPABASE_URL = os.getenv('SUPABASE_URL')
SUPABASE_SERVICE_KEY = os.getenv('SUPABASE_SERVICE_ROLE_KEY')

# Guarded so the engine still imports (and degrades to fallback replies) without a database
try:
    supabase_service: Client = create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY)
except Exception as e:
    logger.warning("Supabase service client not initialized: %s", e)
    supabase_service = None  # type: ignore


def test_connection() -> bool:
    """Check the client can reach the bot_sessions table."""
    if supabase_service is None:
        logger.error("Supabase service client not initialized. Check SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY env vars.")
        return False
    try:
        supabase_service.table('bot_sessions').select('anonymous_id').limit(1).execute()
    except Exception as e:
        logger.error("Supabase connection failed: %s", e)
        return False
    logger.info("Supabase connection successful")
    return True


if __name__ == "__main__":
    test_connection()
