"""
Route handlers for the Thought Percolator application.

Every idea operation is a thin JSON wrapper around ``IdeaLifecycle``; typed
lifecycle failures are turned into JSON responses by ``handle_lifecycle_error``.
"""

import logging
import os
from functools import wraps
from io import BytesIO
from flask import Blueprint, session, current_app, request, g, send_file
from flask_wtf.csrf import CSRFProtect, generate_csrf
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from sqlalchemy import text

from errors import PercolatorError, Unauthenticated, ValidationError
from export import export_to_json, export_idea_to_text
from forms import IdeaForm, LoginForm, SignupForm
from lifecycle import IdeaLifecycle
from models import db
from storage import IdeaPatch

logger = logging.getLogger(__name__)

bp = Blueprint("main", __name__)
csrf = CSRFProtect()
_default_limits = [
    limit.strip()
    for limit in os.getenv("RATELIMIT_DEFAULT", "200 per day;50 per hour").split(";")
    if limit.strip()
]
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=_default_limits,
    storage_uri=os.getenv("RATELIMIT_STORAGE_URL", "memory://"),
)


def get_lifecycle() -> IdeaLifecycle:
    """Return the lifecycle core built by the application factory."""
    return current_app.extensions["lifecycle"]


def form_error_response(form):
    return {
        "error": ValidationError.category,
        "message": "Please check your input.",
        "fields": form.errors,
    }, 400


def json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Expected a JSON object.")
    return data


def check_json_form(*fields):
    """Reject JSON bodies the form layer cannot read as text fields."""
    if not request.is_json:
        return
    data = json_body()
    for name in fields:
        if name in data and not isinstance(data[name], str):
            raise ValidationError(f"{name.capitalize()} must be a string.")


@bp.errorhandler(PercolatorError)
def handle_lifecycle_error(error):
    """Map typed lifecycle failures to stable JSON responses."""
    return error.to_dict(), error.status_code


# Health and readiness probes -------------------------------------------------
@bp.route("/healthz", methods=["GET"])
def healthz():
    """Lightweight health check for load balancers."""
    return {"status": "ok"}, 200


@bp.route("/readyz", methods=["GET"])
def readyz():
    """Readiness check that validates DB connectivity."""
    try:
        # Minimal DB check
        db.session.execute(text("SELECT 1"))
        return {"status": "ok"}, 200
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        return {"status": "error", "reason": str(e)}, 503


def login_required(f):
    """Decorator to require login for a route."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.user is None:
            raise Unauthenticated()
        return f(*args, **kwargs)
    return decorated_function


@bp.before_app_request
def load_logged_in_user():
    """Load the logged-in user from session."""
    user_id = session.get('user_id')
    if user_id is None:
        g.user = None
    else:
        g.user = get_lifecycle().users.get(user_id)
        if g.user is None:
            session.clear()


@bp.route("/api/csrf-token", methods=["GET"])
def csrf_token():
    """Hand a CSRF token to JSON clients."""
    return {"csrfToken": generate_csrf()}, 200


# ============================================================================
# Auth Routes
# ============================================================================

@bp.route("/api/signup", methods=["POST"])
@limiter.limit("5 per minute")
def signup():
    """Handle user registration."""
    check_json_form("username", "password")
    form = SignupForm()
    if not form.validate_on_submit():
        return form_error_response(form)

    user = get_lifecycle().register(form.username.data.strip(), form.password.data)
    session.clear()
    session['user_id'] = user.id
    return user.to_dict(), 201


@bp.route("/api/login", methods=["POST"])
@limiter.limit("10 per minute")
def login():
    """Handle user login."""
    check_json_form("username", "password")
    form = LoginForm()
    if not form.validate_on_submit():
        return form_error_response(form)

    user = get_lifecycle().authenticate(form.username.data, form.password.data)
    if user is None:
        raise Unauthenticated("Invalid username or password.")

    session.clear()
    session['user_id'] = user.id
    session.permanent = bool(form.remember.data)
    logger.info(f"User {user.username} logged in")
    return user.to_dict(), 200


@bp.route("/api/logout", methods=["POST"])
def logout():
    """Handle user logout."""
    if g.user is not None:
        logger.info(f"User {g.user.username} logged out")
    session.clear()
    return {"success": True}, 200


@bp.route("/api/user", methods=["GET"])
@login_required
def current_user():
    """Return the logged-in user."""
    return g.user.to_dict(), 200


# ============================================================================
# Idea Routes
# ============================================================================

@bp.route("/api/ideas", methods=["GET"])
def list_ideas():
    """List the caller's ideas, or every idea when anonymous."""
    ideas = get_lifecycle().list_ideas(g.user)
    return [idea.to_dict() for idea in ideas], 200


@bp.route("/api/ideas/<int:idea_id>", methods=["GET"])
def get_idea(idea_id):
    return get_lifecycle().get_idea(g.user, idea_id).to_dict(), 200


@bp.route("/api/ideas", methods=["POST"])
def create_idea():
    """Handle idea creation. New ideas always start at rank 1."""
    lifecycle = get_lifecycle()
    if g.user is None and not lifecycle.allow_anonymous:
        raise Unauthenticated("You must be logged in to create ideas.")

    check_json_form("title", "description")
    form = IdeaForm()
    if not form.validate_on_submit():
        return form_error_response(form)

    idea = lifecycle.create_idea(g.user, form.title.data, form.description.data)
    return idea.to_dict(), 201


@bp.route("/api/ideas/<int:idea_id>", methods=["PUT"])
def edit_idea(idea_id):
    """Handle idea editing. Only the supplied fields change."""
    patch = IdeaPatch.from_mapping(json_body())
    idea = get_lifecycle().edit_idea(g.user, idea_id, patch)
    return idea.to_dict(), 200


@bp.route("/api/ideas/<int:idea_id>/rank", methods=["PATCH"])
def change_rank(idea_id):
    """Update an idea's rank; out-of-range values are clamped."""
    data = json_body()
    if "rank" not in data:
        raise ValidationError("Rank is required.")
    idea = get_lifecycle().change_rank(g.user, idea_id, data["rank"])
    return idea.to_dict(), 200


@bp.route("/api/ideas/<int:idea_id>/publish", methods=["PATCH"])
def publish_idea(idea_id):
    idea = get_lifecycle().publish(g.user, idea_id)
    return idea.to_dict(), 200


@bp.route("/api/ideas/<int:idea_id>", methods=["DELETE"])
def delete_idea(idea_id):
    get_lifecycle().delete_idea(g.user, idea_id)
    return "", 204


@bp.route("/api/ideas/<int:idea_id>/versions", methods=["GET"])
def list_versions(idea_id):
    """Version history of one of the caller's ideas, most recent first."""
    versions = get_lifecycle().view_history(g.user, idea_id)
    return [version.to_dict() for version in versions], 200


@bp.route("/api/ideas/<int:idea_id>/share", methods=["POST"])
def share_idea(idea_id):
    """Compose share text for one of the caller's ideas."""
    return {"text": get_lifecycle().share_text(g.user, idea_id)}, 200


# ============================================================================
# Public Routes
# ============================================================================

@bp.route("/api/public", methods=["GET"])
def list_all_public():
    """All published ideas with their author's username."""
    rows = get_lifecycle().list_all_public()
    return [dict(idea.to_dict(), username=username) for idea, username in rows], 200


@bp.route("/api/public/<username>", methods=["GET"])
def list_public_by_user(username):
    ideas = get_lifecycle().list_public_by_user(username)
    return [idea.to_dict() for idea in ideas], 200


@bp.route("/api/public/<username>/<int:idea_id>", methods=["GET"])
def view_public_idea(username, idea_id):
    idea = get_lifecycle().view_public(idea_id, username=username)
    return dict(idea.to_dict(), username=username), 200


@bp.route("/api/public/<username>/<int:idea_id>/versions", methods=["GET"])
def view_public_history(username, idea_id):
    versions = get_lifecycle().view_public_history(idea_id, username=username)
    return [version.to_dict() for version in versions], 200


# ============================================================================
# Export Routes
# ============================================================================

@bp.route("/api/export", methods=["GET"])
@login_required
def export_data():
    """Export all user ideas and their histories as JSON."""
    json_data = export_to_json(get_lifecycle(), g.user)

    # Create file-like object
    file = BytesIO(json_data.encode('utf-8'))
    file.seek(0)

    logger.info(f"Data exported for user {g.user.username}")

    return send_file(
        file,
        mimetype='application/json',
        as_attachment=True,
        download_name=f'percolator-export-{g.user.username}.json'
    )


@bp.route("/api/export/ideas/<int:idea_id>", methods=["GET"])
@login_required
def export_idea(idea_id):
    """Export a single idea as markdown."""
    idea = get_lifecycle().view_owned(g.user, idea_id)
    text_data = export_idea_to_text(idea)

    file = BytesIO(text_data.encode('utf-8'))
    file.seek(0)

    logger.info(f"Idea {idea_id} exported for user {g.user.username}")

    return send_file(
        file,
        mimetype='text/markdown',
        as_attachment=True,
        download_name=f'idea-{idea.id}.md'
    )
