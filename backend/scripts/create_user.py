"""Create an already verified user, e.g. the first admin.

Usage:
  python scripts/create_user.py --name Admin --email admin@example.com --phone 000 --password '...' --role admin
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from membership.config import get_settings
from membership.db.session import Database
from membership.services.accounts import create_active_user


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--name", required=True)
    ap.add_argument("--email", required=True)
    ap.add_argument("--phone", required=True)
    ap.add_argument("--password", required=True)
    ap.add_argument("--role", choices=["user", "admin"], default="user")
    args = ap.parse_args()

    database = Database.from_settings(get_settings())
    db = database.session()
    try:
        u = create_active_user(
            db,
            name=args.name,
            email=args.email,
            phone=args.phone,
            password=args.password,
            role=args.role,
        )
    finally:
        db.close()
        database.dispose()

    print(f"Created user id={u.id} email={u.email} role={u.role}")


if __name__ == "__main__":
    main()
