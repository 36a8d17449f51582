"""
Database maintenance utilities.

Use this script to:
1. Initialize a fresh database
2. Show idea and version statistics
3. Clear all data
"""

import sys

from sqlalchemy import func

from app import create_app
from models import db, User, Idea, IdeaVersion


def init_database():
    """Initialize a fresh database."""
    app = create_app()

    with app.app_context():
        # Create all tables
        db.create_all()
        print("✓ Database initialized successfully!")
        print(f"✓ Database location: {app.config['SQLALCHEMY_DATABASE_URI']}")


def clear_database():
    """Clear all data from database (WARNING: This cannot be undone!)."""
    app = create_app()

    with app.app_context():
        response = input("⚠️  This will delete ALL users, ideas and versions! Type 'yes' to confirm: ")
        if response.lower() == 'yes':
            db.drop_all()
            db.create_all()
            print("✓ Database cleared!")
        else:
            print("✗ Cancelled.")


def collect_statistics() -> dict:
    """Count users, ideas and versions. Requires an app context."""
    idea_count = Idea.query.count()
    rank_average = db.session.query(func.avg(Idea.rank)).scalar()
    return {
        'users': User.query.count(),
        'ideas': idea_count,
        'published': Idea.query.filter_by(published=True).count(),
        'versions': IdeaVersion.query.count(),
        'average_rank': round(float(rank_average), 2) if idea_count else None,
    }


def show_statistics():
    """Display database statistics."""
    app = create_app()

    with app.app_context():
        stats = collect_statistics()

        print("\n" + "="*50)
        print("DATABASE STATISTICS")
        print("="*50)
        print(f"Users: {stats['users']}")
        print(f"Ideas: {stats['ideas']} ({stats['published']} published)")
        print(f"Archived Versions: {stats['versions']}")
        if stats['average_rank'] is not None:
            print(f"Average Rank: {stats['average_rank']}")
        print("="*50 + "\n")


if __name__ == '__main__':
    if len(sys.argv) > 1:
        command = sys.argv[1]

        if command == 'init':
            init_database()
        elif command == 'clear':
            clear_database()
        elif command == 'stats':
            show_statistics()
        else:
            print("Usage:")
            print("  python init_db.py init          - Initialize database")
            print("  python init_db.py stats         - Show database statistics")
            print("  python init_db.py clear         - Clear all data (WARNING!)")
    else:
        print("Database Utilities")
        print("-" * 50)
        init_database()
        show_statistics()
