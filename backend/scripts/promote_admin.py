"""CLI script to grant (or revoke) admin rights on an existing account.
Usage: python scripts/promote_admin.py IDENTIFIER [--revoke]

IDENTIFIER is a username or an email address. Admin tokens are only
issued at the next login.
"""
import sys
import argparse
import pathlib
# Ensure `backend/` is on sys.path so `fittrack` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from fittrack.config import Settings
from fittrack.database import Database
from fittrack import repositories


def main(identifier: str, revoke: bool = False) -> int:
    """Set `is_admin` on the matching user and print the outcome."""
    db = Database.from_settings(Settings())
    try:
        with Session(db.relational) as session:
            repo = repositories.UserRepository(session)
            user = repo.get_by_identifier(identifier)
            if not user:
                print(f'No user matches {identifier!r}')
                return 1
            user.is_admin = not revoke
            repo.save(user)
            print(f"{user.username} (id {user.id}) is_admin={user.is_admin}")
            return 0
    finally:
        db.dispose()


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Grant or revoke admin rights')
    parser.add_argument('identifier', help='username or email')
    parser.add_argument('--revoke', action='store_true', help='remove admin rights instead')
    args = parser.parse_args()
    sys.exit(main(args.identifier, revoke=args.revoke))
