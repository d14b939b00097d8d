"""
Environment configuration manager.
Loads the dotenv files that match FLASK_ENV before the app factory runs.
"""
import os
import logging
from typing import List

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

SECRET_ENV_KEYS = ('ANTHROPIC_API_KEY', 'OPENAI_API_KEY', 'RESEND_API_KEY', 'TWILIO_AUTH_TOKEN', 'SUPABASE_KEY')


def env_file_candidates(env: str) -> List[str]:
    """Env files in load order; later files override earlier ones."""
    return [
        ".env",
        ".env.local",
        f".env.{env}",
        f".env.{env}.local",
    ]


def mask_database_url(db_url: str) -> str:
    """Hide the password portion of a database URL."""
    if '@' not in db_url or '://' not in db_url:
        return db_url
    scheme, rest = db_url.split('://', 1)
    credentials, host = rest.rsplit('@', 1)
    username = credentials.split(':', 1)[0]
    return f"{scheme}://{username}:***@{host}"


def load_environment():
    """
    Load the appropriate environment files based on FLASK_ENV.

    Priority (highest first):
    1. .env.{environment}.local
    2. .env.{environment}
    3. .env.local
    4. .env
    5. .env.shared (loaded first, never overrides)

    Returns:
        The process environment after loading.
    """
    env = os.environ.get('FLASK_ENV', 'development')
    logger.info(f"Loading environment configuration for: {env}")

    if os.path.isfile('.env.shared'):
        load_dotenv('.env.shared')
        logger.info("Loaded shared environment from .env.shared")

    loaded_files = []
    for env_file in env_file_candidates(env):
        if os.path.isfile(env_file):
            load_dotenv(env_file, override=True)
            loaded_files.append(env_file)

    if loaded_files:
        logger.info(f"Loaded environment from: {', '.join(loaded_files)}")
    else:
        logger.warning("No environment files found. Using system environment variables.")

    db_url = os.environ.get('DATABASE_URL')
    if db_url:
        logger.info(f"Using database: {mask_database_url(db_url)}")

    missing = [key for key in SECRET_ENV_KEYS if not os.environ.get(key)]
    if missing:
        logger.warning(f"Vendor credentials not set: {', '.join(missing)}")

    return os.environ
