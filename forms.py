"""
Flask-WTF forms for the Thought Percolator application.

Forms accept either HTML form posts or JSON bodies.
"""

from flask_wtf import FlaskForm
from wtforms import TextAreaField, StringField, PasswordField, BooleanField
from wtforms.validators import DataRequired, Length, ValidationError
from config import get_config
from models import User, TITLE_MAX_LENGTH

config = get_config()


class IdeaForm(FlaskForm):
    """Form for creating a new idea."""

    title = StringField(
        "Title",
        validators=[
            DataRequired(message="Please enter a title."),
            Length(
                max=TITLE_MAX_LENGTH,
                message=f"Title must be {TITLE_MAX_LENGTH} characters or less.",
            ),
        ],
    )
    description = TextAreaField(
        "Description",
        validators=[
            DataRequired(message="Please describe your idea."),
            Length(
                min=1,
                max=config.MAX_DESCRIPTION_LENGTH,
                message=f"Description must be between 1 and {config.MAX_DESCRIPTION_LENGTH} characters.",
            ),
        ],
    )


class LoginForm(FlaskForm):
    """Form for user login."""

    username = StringField(
        "Username",
        validators=[DataRequired(message="Username is required.")]
    )
    password = PasswordField(
        "Password",
        validators=[DataRequired(message="Password is required.")]
    )
    remember = BooleanField("Remember me")


class SignupForm(FlaskForm):
    """Form for user registration."""

    username = StringField(
        "Username",
        validators=[
            DataRequired(message="Username is required."),
            Length(min=3, max=80, message="Username must be between 3 and 80 characters.")
        ]
    )
    password = PasswordField(
        "Password",
        validators=[
            DataRequired(message="Password is required."),
            Length(min=6, message="Password must be at least 6 characters.")
        ]
    )

    def validate_username(self, field):
        """Check if username is already taken."""
        if User.query.filter_by(username=field.data.strip()).first():
            raise ValidationError("Username already exists.")
