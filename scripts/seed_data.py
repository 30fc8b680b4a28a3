# scripts/seed_data.py
import sys
from pathlib import Path

# Add the parent directory to sys.path
sys.path.insert(0, str(Path(__file__).parent.parent))

from lifelog.db.base import SessionLocal
from lifelog.db.seed import seed_achievements
from lifelog.db.session import init_db


def main():
    """Main function to seed data."""
    init_db()
    db = SessionLocal()
    try:
        result = seed_achievements(db)
        print(f"Database seeded successfully! {result}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
