"""
Add claim liveness and deduplication indexes

Migration to add:
- scheduled_tasks.claimed_at (stale claim recovery)
- uq_scheduled_tasks_active_key (task_key unique while pending/processing)
- uq_cleaner_assignments_live_job (one pending/confirmed assignment per job)

Run with: python migrations/add_task_liveness_and_dedup_indexes.py
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import text
from crewflow.database import engine


def upgrade():
    """Add claimed_at and the partial unique indexes"""
    with engine.connect() as conn:
        # Check if column already exists to make migration idempotent
        result = conn.execute(text("""
            SELECT column_name
            FROM information_schema.columns
            WHERE table_name = 'scheduled_tasks'
            AND column_name = 'claimed_at'
        """))
        if result.first() is None:
            conn.execute(text("""
                ALTER TABLE scheduled_tasks
                ADD COLUMN claimed_at TIMESTAMP
            """))
            print("✅ Added claimed_at column")
        else:
            print("ℹ️  claimed_at column already exists")

        conn.execute(text("""
            CREATE UNIQUE INDEX IF NOT EXISTS uq_scheduled_tasks_active_key
            ON scheduled_tasks (task_key)
            WHERE status IN ('pending', 'processing')
        """))
        print("✅ Ensured uq_scheduled_tasks_active_key")

        conn.execute(text("""
            CREATE UNIQUE INDEX IF NOT EXISTS uq_cleaner_assignments_live_job
            ON cleaner_assignments (job_id)
            WHERE status IN ('pending', 'confirmed')
        """))
        print("✅ Ensured uq_cleaner_assignments_live_job")

        conn.commit()
        print("\n✅ Migration completed successfully!")


def downgrade():
    """Remove claimed_at and the partial unique indexes"""
    with engine.connect() as conn:
        conn.execute(text("DROP INDEX IF EXISTS uq_cleaner_assignments_live_job"))
        conn.execute(text("DROP INDEX IF EXISTS uq_scheduled_tasks_active_key"))
        conn.execute(text("ALTER TABLE scheduled_tasks DROP COLUMN IF EXISTS claimed_at"))
        conn.commit()
        print("✅ Migration rolled back successfully!")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Manage task liveness and dedup index migration")
    parser.add_argument("--down", action="store_true", help="Rollback the migration")
    args = parser.parse_args()

    if args.down:
        print("Rolling back migration...")
        downgrade()
    else:
        print("Running migration...")
        upgrade()
