"""
Delete compliance log entries past the retention horizon
Run daily (cron) in addition to the purge done at app startup
"""
import sys
import os

# Add parent directory to path to import backend modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import COMPLIANCE_RETENTION_DAYS
from core.database import SessionLocal
from utils.compliance import purge_expired, retention_floor


def main():
    db = SessionLocal()
    try:
        print(f"Purging compliance logs created on or before {retention_floor().isoformat()} ({COMPLIANCE_RETENTION_DAYS} day retention)...")
        deleted = purge_expired(db)
        print(f"✓ Deleted {deleted} entries")
    except Exception as e:
        print(f"✗ Purge failed: {e}")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
