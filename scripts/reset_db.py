#!/usr/bin/env python3
"""Database reset script for the Jupiter Automation project portal.

Drops and recreates every table, then re-seeds profiles and sample
projects. Useful for resetting to a known state during development.

Usage:
    python scripts/reset_db.py

WARNING: This will delete ALL existing portal data, including profiles,
time entries and activity history! Stored files are not removed.
"""
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from jupiter_portal import create_app, db
from jupiter_portal.models import Profile, Project
from scripts.seed_data import seed_database


def main():
    """Main entry point for reset script."""
    app = create_app()

    with app.app_context():
        db.create_all()
        project_count = db.session.query(Project).count()
        profile_count = db.session.query(Profile).count()
        print(f"Current database has {project_count} projects and {profile_count} profiles.")

        if project_count or profile_count:
            response = input("This will delete all portal data. Continue? [y/N]: ")
            if response.lower() != 'y':
                print("Aborted.")
                return

        print("Recreating tables...")
        db.drop_all()
        db.create_all()

        print("\nSeeding database...")
        count = seed_database()
        print(f"Created {count} projects.")

        print("\nReset complete!")


if __name__ == "__main__":
    main()
