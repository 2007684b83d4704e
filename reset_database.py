#!/usr/bin/env python3
"""
Database reset script for the clinic scheduling backend.

This script drops every table and recreates the schema empty.
Use this to get a clean database state for local testing.
"""

import sys
import os

# Add backend/src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'backend', 'src'))

from sqlalchemy import inspect

from core.config import DATABASE_URL
from core.database import Base, create_tables, drop_tables, engine


def reset_database():
    """Reset the database by dropping all tables and recreating them."""

    print("🔄 Resetting clinic scheduling database...")
    print(f"Database URL: {DATABASE_URL}")

    # Refuse anything that looks like a shared database
    if 'localhost' not in str(DATABASE_URL) and not str(DATABASE_URL).startswith('sqlite'):
        print("❌ ERROR: This script only works with local databases!")
        print(f"Current database: {DATABASE_URL}")
        return

    try:
        print("🗑️  Dropping existing tables...")
        drop_tables()

        print("🏗️  Creating fresh tables...")
        create_tables()

        table_names = set(inspect(engine).get_table_names())
        expected_tables = sorted(Base.metadata.tables.keys())

        print("📋 Created tables:")
        for table in expected_tables:
            if table in table_names:
                print(f"   ✅ {table}")
            else:
                print(f"   ❌ {table} (missing)")

        if all(table in table_names for table in expected_tables):
            print("🎉 Database reset complete! All tables created successfully.")
        else:
            print("⚠️  Warning: Some tables may be missing")

    except Exception as e:
        print(f"❌ Error resetting database: {e}")
        raise


def show_usage():
    """Show usage information."""
    print("Clinic Scheduling Database Reset Script")
    print("=" * 40)
    print()
    print("This script will:")
    print("1. Drop all existing tables")
    print("2. Recreate all tables with empty data")
    print()
    print("Usage:")
    print("  python reset_database.py")
    print()
    print("Note: Only works with local PostgreSQL or SQLite databases")


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] in ['--help', '-h']:
        show_usage()
    else:
        reset_database()
