"""
Authentication routes for user registration and login.
Supports both JWT and Supabase Auth based on environment configuration.
"""
import logging
from flask import Blueprint, request, jsonify
from marshmallow import Schema, fields, validate, ValidationError, EXCLUDE
from email_validator import validate_email, EmailNotValidError

from ..models import db, User
from ..utils.auth_adapter import auth_required, register_user, login_user, current_user_id, use_supabase_auth

auth_bp = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)


# Input validation schemas
class RegisterSchema(Schema):
    """Registration request schema validation."""
    class Meta:
        unknown = EXCLUDE

    username = fields.String(required=True, validate=validate.Length(min=3, max=80))
    email = fields.Email(required=True)
    password = fields.String(required=True, validate=validate.Length(min=8))


class LoginSchema(Schema):
    """Login request schema validation."""
    class Meta:
        unknown = EXCLUDE

    username = fields.String(required=True)
    password = fields.String(required=True)


def validate_registration_input(data):
    """Validate registration input data.

    Args:
        data: Dictionary containing registration data.

    Returns:
        Tuple of (is_valid, errors) where errors is a dict or None.
    """
    try:
        RegisterSchema().load(data)
    except ValidationError as e:
        return False, e.messages

    try:
        validate_email(data.get('email', ''), check_deliverability=False)
    except EmailNotValidError as e:
        return False, {"email": str(e)}

    password = data.get('password', '')
    if not any(c.isupper() for c in password) or not any(c.islower() for c in password) or not any(c.isdigit() for c in password):
        return False, {"password": "Password must contain uppercase, lowercase, and numeric characters"}

    return True, None


@auth_bp.route('/register', methods=['POST'])
def register():
    """Register a new user.

    Returns:
        JSON response with user data and access token.
    """
    data = request.get_json(silent=True) or {}

    is_valid, errors = validate_registration_input(data)
    if not is_valid:
        logger.warning(f"Registration validation failed: {errors}")
        return jsonify({"error": "Validation failed", "details": errors}), 400

    username = data['username']
    logger.info(f"Registration attempt for: {username}")

    try:
        user_data, access_token = register_user(username, data['email'], data['password'])
        logger.info(f"User {username} registered successfully with ID: {user_data.get('id')}")
        return jsonify({
            "message": "User registered successfully",
            "access_token": access_token,
            "user": user_data,
            "auth_method": "supabase" if use_supabase_auth else "jwt"
        }), 201
    except ValueError as e:
        logger.warning(f"Registration rejected: {str(e)}")
        return jsonify({"error": str(e)}), 409
    except Exception as e:
        db.session.rollback()
        logger.error(f"Registration error: {str(e)}", exc_info=True)
        return jsonify({"error": "An error occurred during registration", "details": str(e)}), 500


@auth_bp.route('/login', methods=['POST'])
def login():
    """Log in a user by username or email."""
    data = request.get_json(silent=True) or {}
    try:
        LoginSchema().load(data)
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.messages}), 400

    try:
        user_data, access_token = login_user(data['username'], data['password'])
        logger.info(f"User {data['username']} logged in successfully")
        return jsonify({
            "message": "Login successful",
            "access_token": access_token,
            "user": user_data,
            "auth_method": "supabase" if use_supabase_auth else "jwt"
        })
    except ValueError as e:
        logger.warning(f"Login failed: {str(e)}")
        return jsonify({"error": str(e)}), 401
    except Exception as e:
        logger.error(f"Login error: {str(e)}", exc_info=True)
        return jsonify({"error": "An error occurred during login"}), 500


@auth_bp.route('/me', methods=['GET'])
@auth_required
def get_me():
    """Get the current authenticated user."""
    user = db.session.get(User, current_user_id())
    if not user:
        return jsonify({"error": "User not found"}), 404
    return jsonify(user.to_dict())
