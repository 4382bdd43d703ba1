#!/usr/bin/env python3
"""
Write a starter .env for the SlotSwapper API. An existing .env is kept unless --force is given.
"""

import secrets
import sys
from pathlib import Path

DEFAULTS = {
    "ALGORITHM": "HS256",
    "ACCESS_TOKEN_EXPIRE_MINUTES": "30",
    "REFRESH_TOKEN_EXPIRE_DAYS": "7",
    "DATABASE_URL": "sqlite:///./slotswapper.db",
    "TRANSACTION_MAX_ATTEMPTS": "3",
    "EXCHANGE_PENDING_TTL_HOURS": "72",
    "CELERY_BROKER_URL": "redis://localhost:6379/0",
}


def render_env(secret_key: str) -> str:
    lines = ["# SlotSwapper API environment", f"SECRET_KEY={secret_key}"]
    lines += [f"{key}={value}" for key, value in DEFAULTS.items()]
    return "\n".join(lines) + "\n"


def write_env(path: Path, force: bool = False) -> bool:
    """Write a fresh .env at ``path``. Returns False when an existing file was left alone."""
    if path.exists() and not force:
        return False
    path.write_text(render_env(secrets.token_urlsafe(64)))
    return True


if __name__ == "__main__":
    env_path = Path(".env")
    if write_env(env_path, force="--force" in sys.argv[1:]):
        print(f"✅ Wrote {env_path}")
    else:
        print(f"⚠️  {env_path} already exists, leaving it alone (pass --force to overwrite)")
