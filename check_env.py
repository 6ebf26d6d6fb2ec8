#!/usr/bin/env python3
"""
Environment Variables Checker for Deployment
Prints every variable the webhook service reads, masking secrets.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

REQUIRED_VARS = [
    # Flask Configuration
    'FLASK_ENV',
    'SECRET_KEY',
    'CORS_ORIGINS',
    'PORT',
    'LOG_LEVEL',
    'RATE_LIMIT_STORAGE',
    'RATE_LIMIT_DAY',
    'RATE_LIMIT_HOUR',

    # Supabase Configuration
    'SUPABASE_URL',
    'SUPABASE_SERVICE_ROLE_KEY',

    # Webhook
    'WEBHOOK_JWT_SECRET',
]

# Have sensible defaults; reported but never counted as missing
OPTIONAL_VARS = [
    'WEBHOOK_AUDIENCE',
    'DEFAULT_LANGUAGE',
    'CRISIS_RESOURCE_LIMIT',
    'CRISIS_FUZZY_THRESHOLD',
    'CRISIS_PATTERNS_PATH',
]

SECRET_VARS = ['SECRET_KEY', 'SUPABASE_SERVICE_ROLE_KEY', 'WEBHOOK_JWT_SECRET']


def mask(value: str) -> str:
    if len(value) > 16:
        return value[:4] + "*" * (len(value) - 8) + value[-4:]
    return "*" * len(value)


def check_env_vars() -> bool:
    """Print required and optional variables; False if any required one is missing"""
    print("=" * 60)
    print("ENVIRONMENT VARIABLES CHECK")
    print("=" * 60)

    missing_vars = []
    for var in REQUIRED_VARS + OPTIONAL_VARS:
        value = os.getenv(var)
        if value is None:
            label = "NOT SET" if var in REQUIRED_VARS else "DEFAULT"
            print(f"[{label}] {var}")
            if var in REQUIRED_VARS:
                missing_vars.append(var)
        elif var in SECRET_VARS:
            print(f"[OK] {var}: {mask(value)}")
        else:
            print(f"[OK] {var}: {value}")

    print("=" * 60)

    if missing_vars:
        print(f"[ERROR] MISSING VARIABLES ({len(missing_vars)}): {', '.join(missing_vars)}")
        return False
    print(f"[SUCCESS] ALL REQUIRED VARIABLES SET ({len(REQUIRED_VARS)} total)")
    return True


if __name__ == "__main__":
    env_path = Path('.env')
    if env_path.exists():
        load_dotenv(env_path)
        print(f"Loaded environment from: {env_path}")
    else:
        print("No .env file found, using system environment variables only")
    raise SystemExit(0 if check_env_vars() else 1)
