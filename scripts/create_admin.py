"""Provision an admin account from the command line."""

from __future__ import annotations

import argparse
import getpass
from typing import Optional, Sequence

from partner_me.auth.service import create_admin_user
from partner_me.core.errors import AppError
from partner_me.storage.db import get_session_factory


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Create or promote a Partner Me admin user.")
    parser.add_argument("username")
    parser.add_argument("--password", help="Prompted for when omitted.")
    args = parser.parse_args(argv)

    password = args.password or getpass.getpass("Password: ")
    session = get_session_factory()()
    try:
        user = create_admin_user(session, username=args.username, password=password)
    except AppError as exc:
        print(f"error={exc.code} message={exc.message}")
        if exc.details:
            for field, messages in exc.details.items():
                print(f"{field}: {'; '.join(messages)}")
        return 1
    finally:
        session.close()

    print(f"admin_user_id={user.id}")
    print(f"username={user.username}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
