"""
Authentication adapter module.
Provides a unified interface for authentication with either the app's own
JWTs or Supabase Auth access tokens.
"""
import os
import logging
import secrets
from typing import Dict, Any, Optional, Tuple
from functools import wraps

from flask import request, g, jsonify
from flask_jwt_extended import verify_jwt_in_request, get_jwt_identity, create_access_token
from werkzeug.local import LocalProxy

from harbor.app.utils.supabase_client import supabase

logger = logging.getLogger(__name__)

# Configuration
use_supabase_auth = os.environ.get('SUPABASE_USE_FOR_AUTH', 'False').lower() == 'true'


def get_current_user() -> Optional[Dict[str, Any]]:
    """Get the current authenticated user, or None for anonymous requests."""
    return getattr(g, 'current_user', None)


def current_user_id() -> Optional[str]:
    user = get_current_user()
    return str(user['id']) if user else None


# Create a proxy for the current user
current_user = LocalProxy(get_current_user)


def _sync_supabase_user(supabase_user) -> None:
    """Make sure a Supabase-authenticated user has local user and profile rows."""
    from harbor.app.models import db, User, UserProfile

    if db.session.get(User, supabase_user.id):
        return

    metadata = supabase_user.user_metadata or {}
    username_base = metadata.get('username') or supabase_user.email.split('@')[0]
    username = username_base
    counter = 1
    while User.query.filter_by(username=username).first():
        username = f"{username_base}{counter}"
        counter += 1

    # Password is never used: Supabase owns the credentials
    user = User(username=username, email=supabase_user.email, password=secrets.token_urlsafe(16))
    user.id = supabase_user.id
    db.session.add(user)
    db.session.add(UserProfile(user_id=user.id))
    try:
        db.session.commit()
        logger.info(f"Created local user record for Supabase user {user.id}")
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to create local user for Supabase user {supabase_user.id}: {str(e)}")


def _authenticate() -> Optional[Dict[str, Any]]:
    """Resolve the bearer token on the current request.

    Returns:
        User dict, or None when no credentials were sent.

    Raises:
        Exception: When credentials were sent but are invalid.
    """
    auth_header = request.headers.get('Authorization')
    if not auth_header:
        return None

    if use_supabase_auth:
        if not auth_header.startswith('Bearer '):
            raise ValueError("Missing or invalid authorization header")
        token = auth_header.split(' ', 1)[1]
        user_data = supabase.client.auth.get_user(token)
        if not user_data or not user_data.user:
            raise ValueError("Invalid or expired token")
        _sync_supabase_user(user_data.user)
        return {"id": str(user_data.user.id), "email": user_data.user.email}

    verify_jwt_in_request()
    return {"id": str(get_jwt_identity())}


def auth_required(f):
    """
    Decorator for routes that require authentication.
    Works with both JWT and Supabase auth strategies.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        # Allow OPTIONS requests to pass through without authentication
        if request.method == 'OPTIONS':
            return f(*args, **kwargs)

        try:
            user = _authenticate()
        except Exception as e:
            logger.warning(f"Authentication error: {str(e)}")
            return jsonify({"error": "Authentication failed"}), 401

        if user is None:
            return jsonify({"error": "Authentication failed", "details": "Missing authorization header"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated


def auth_optional(f):
    """
    Decorator for routes that serve anonymous visitors too.
    Invalid credentials are still rejected.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        try:
            g.current_user = _authenticate()
        except Exception as e:
            logger.warning(f"Authentication error: {str(e)}")
            return jsonify({"error": "Authentication failed"}), 401
        return f(*args, **kwargs)

    return decorated


def admin_required(f):
    """Decorator for admin console routes."""
    @wraps(f)
    @auth_required
    def decorated(*args, **kwargs):
        if request.method == 'OPTIONS':
            return f(*args, **kwargs)

        from harbor.app.models import db, User
        user = db.session.get(User, current_user_id())
        if not user or not user.is_admin:
            logger.warning(f"Non-admin user {current_user_id()} attempted admin access to {request.path}")
            return jsonify({"error": "Admin access required"}), 403
        return f(*args, **kwargs)

    return decorated


def register_user(username: str, email: str, password: str) -> Tuple[Dict[str, Any], str]:
    """
    Register a new user using the appropriate authentication system.

    Returns:
        Tuple of user data and access token.

    Raises:
        ValueError: If the username or email is taken.
    """
    from harbor.app.models import db, User, UserProfile

    if use_supabase_auth:
        signup_data = supabase.client.auth.sign_up({
            "email": email,
            "password": password,
            "options": {"data": {"username": username}}
        })
        if not signup_data.user:
            raise ValueError("User registration failed")
        _sync_supabase_user(signup_data.user)
        user = db.session.get(User, signup_data.user.id)
        token = signup_data.session.access_token if signup_data.session else None
        return user.to_dict(), token

    if User.query.filter_by(username=username).first():
        raise ValueError("Username already exists")
    if User.query.filter_by(email=email).first():
        raise ValueError("Email already exists")

    user = User(username=username, email=email, password=password)
    db.session.add(user)
    db.session.flush()
    db.session.add(UserProfile(user_id=user.id))
    db.session.commit()

    access_token = create_access_token(identity=user.id)
    return user.to_dict(), access_token


def login_user(username: str, password: str) -> Tuple[Dict[str, Any], str]:
    """
    Log in a user by username or email.

    Raises:
        ValueError: If the credentials are invalid.
    """
    from harbor.app.models import User

    if use_supabase_auth:
        email = username
        if '@' not in username:
            user = User.query.filter_by(username=username).first()
            if not user:
                raise ValueError("Invalid username or password")
            email = user.email
        login_data = supabase.client.auth.sign_in_with_password({"email": email, "password": password})
        if not login_data.user:
            raise ValueError("Invalid username or password")
        _sync_supabase_user(login_data.user)
        user = User.query.filter_by(id=login_data.user.id).first()
        return user.to_dict(), login_data.session.access_token

    user = User.query.filter((User.username == username) | (User.email == username)).first()
    if not user or not user.verify_password(password):
        raise ValueError("Invalid username or password")

    return user.to_dict(), create_access_token(identity=user.id)
