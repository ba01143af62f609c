"""
Initialize the audit retention database.
Run once before starting the app: python scripts/init_db.py

For PostgreSQL set POSTGRES_DB (and POSTGRES_USER / POSTGRES_PASSWORD), or
DATABASE_URL, and create the database first:

  psql -U postgres -c "CREATE USER audit WITH PASSWORD 'audit';"
  psql -U postgres -c "CREATE DATABASE audit_retention OWNER audit;"

With DB_INIT_MODE=migrate run `alembic upgrade head` before this script.
"""

import sys

from audit_retention.core.database import SessionLocal, check_connection, init_db
from audit_retention.services.retention_policy_store import RetentionPolicyStore


def main():
    error = check_connection()
    if error:
        print(f"Cannot connect to database: {error}")
        sys.exit(1)

    init_db()

    db = SessionLocal()
    try:
        if RetentionPolicyStore(db).seed_defaults():
            print("Seeded default retention policy.")
        else:
            print("Retention policy already present.")
    finally:
        db.close()


if __name__ == "__main__":
    main()
