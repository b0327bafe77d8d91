"""Create the tables of both datastores for the configured database URLs.

Reads `RELATIONAL_DB_URL` and `DOCUMENT_DB_URL` from the environment and
creates any missing tables. Existing tables are left untouched.
"""
from fittrack.config import Settings
from fittrack.database import Database


def run():
    """Create missing tables in the relational and document stores."""
    settings = Settings()
    print("Relational store:", settings.RELATIONAL_DB_URL)
    print("Document store:", settings.DOCUMENT_DB_URL)
    db = Database.from_settings(settings)
    try:
        db.create_all()
    finally:
        db.dispose()
    print("Tables ready.")

if __name__ == '__main__':
    run()
