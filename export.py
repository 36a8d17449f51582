"""
Export utilities for Thought Percolator ideas.
"""

import json
from datetime import datetime
from typing import Dict, Any

from lifecycle import IdeaLifecycle
from models import User, Idea


def export_user_data(lifecycle: IdeaLifecycle, user: User) -> Dict[str, Any]:
    """
    Export all of a user's ideas, each with its version history.

    Args:
        lifecycle: Lifecycle core used to read the user's ideas
        user: User object to export

    Returns:
        Dictionary with exported data
    """
    export_data = {
        'version': '1.0',
        'exported_at': datetime.utcnow().isoformat(),
        'user': {
            'username': user.username,
        },
        'ideas': [],
    }

    for idea in lifecycle.list_ideas(user):
        idea_data = idea.to_dict()
        idea_data['versions'] = [
            version.to_dict() for version in lifecycle.view_history(user, idea.id)
        ]
        export_data['ideas'].append(idea_data)

    return export_data


def export_to_json(lifecycle: IdeaLifecycle, user: User) -> str:
    """Export user data as JSON string."""
    export_data = export_user_data(lifecycle, user)
    return json.dumps(export_data, indent=2)


def export_idea_to_text(idea: Idea) -> str:
    """Export a single idea as markdown."""
    text = f"# {idea.title}\n\n"
    text += f"**Maturity:** {idea.rank}/10\n"
    text += f"**Status:** {'Published' if idea.published else 'Draft'}\n"
    text += f"**Created:** {idea.date_created.strftime('%Y-%m-%d %H:%M:%S')}\n"
    text += f"**Updated:** {idea.date_modified.strftime('%Y-%m-%d %H:%M:%S')}\n"
    text += f"\n---\n\n{idea.description}"
    return text
