from __future__ import annotations

import argparse
import getpass

from sqlalchemy import text

from core.database import ENGINE
from core.security import hash_password


def main() -> None:
    parser = argparse.ArgumentParser(description="Set a teacher's password by email (idempotent update).")
    parser.add_argument("email", help="Teacher email to update")
    parser.add_argument("--yes", action="store_true", help="Actually apply changes")
    args = parser.parse_args()

    email = (args.email or "").strip().lower()
    if not email:
        raise SystemExit("Email is required")

    if not args.yes:
        print("Dry run. Re-run with --yes to apply.")
        print(f"Would set password for email={email!r}")
        return

    pw1 = getpass.getpass("New password: ")
    pw2 = getpass.getpass("Confirm password: ")
    if pw1 != pw2:
        raise SystemExit("Passwords do not match")
    if len(pw1) < 8:
        raise SystemExit("Password must be at least 8 characters")

    pw_hash = hash_password(pw1)

    with ENGINE.begin() as conn:
        res = conn.execute(
            text(
                """
                update teachers
                set password_hash = :pw
                where lower(email) = :email
                returning id, name, email, is_available
                """.strip()
            ),
            {"email": email, "pw": pw_hash},
        ).first()

    if res is None:
        raise SystemExit(f"No such teacher: {email!r}")

    print({"id": str(res[0]), "name": res[1], "email": res[2], "is_available": bool(res[3])})


if __name__ == "__main__":
    main()
