#!/usr/bin/env python3
"""
Create a user and a session token for local use.

Creates the tables (if missing), inserts or reuses the user with the given
email, and prints a fresh session token for "Authorization: Bearer <token>".

Run from project root:

    python scripts/create_user.py --email me@example.com --name Me
    python scripts/create_user.py --email admin@example.com --admin
"""

import argparse
import secrets
import sys
from datetime import timedelta
from pathlib import Path

# Project root on path so "deepsearch" resolves
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import deepsearch.models.chat  # noqa: F401,E402 (registers tables)
from deepsearch.core.config import SESSION_TTL_DAYS  # noqa: E402
from deepsearch.core.database import Base, SessionLocal, engine, utcnow  # noqa: E402
from deepsearch.models.user import AuthSession, User  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser(description="Create a user and print a session token.")
    parser.add_argument("--email", required=True, help="User email (unique).")
    parser.add_argument("--name", default="", help="Display name.")
    parser.add_argument(
        "--admin",
        action="store_true",
        help="Mark the user as admin (exempt from the daily request quota).",
    )
    args = parser.parse_args()

    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        user = db.query(User).filter(User.email == args.email).first()
        if user is None:
            user = User(email=args.email, name=args.name or args.email, is_admin=args.admin)
            db.add(user)
            print(f"Created user {args.email}")
        else:
            user.is_admin = user.is_admin or args.admin
            print(f"Reusing user {args.email}")
        db.flush()

        token = secrets.token_urlsafe(32)
        db.add(AuthSession(session_token=token, user_id=user.id, expires=utcnow() + timedelta(days=SESSION_TTL_DAYS)))
        db.commit()

    print(f"Session token (valid {SESSION_TTL_DAYS} days): {token}")


if __name__ == "__main__":
    main()
