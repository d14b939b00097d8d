import os
from datetime import timedelta
from typing import Optional
from urllib.parse import quote_plus, urlparse

# Database URL configuration function
def get_db_url() -> Optional[str]:
    """Get database URL with encoded password."""
    db_url = os.environ.get('DATABASE_URL')

    if not db_url:
        return None

    # SQLAlchemy 1.4+ requires 'postgresql://' instead of 'postgres://'
    if db_url.startswith('postgres://'):
        db_url = db_url.replace('postgres://', 'postgresql://', 1)

    if db_url.startswith('postgresql://'):
        parsed = urlparse(db_url)
        userinfo, _, host_port = parsed.netloc.rpartition('@')

        if ':' in userinfo:
            username, password = userinfo.split(':', 1)
            encoded_password = quote_plus(password)
            query = f"?{parsed.query}" if parsed.query else ""
            return f"postgresql://{username}:{encoded_password}@{host_port}{parsed.path}{query}"

    return db_url


class Config:
    """Base configuration."""
    # Flask settings
    SECRET_KEY = os.environ.get('JWT_SECRET_KEY', 'dev-secret-key-change-in-production')

    # JWT settings
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY', 'dev-secret-key-change-in-production')
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(days=1)

    # Database settings
    SQLALCHEMY_DATABASE_URI = get_db_url() or 'sqlite:///harbor.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CORS settings
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', 'http://localhost:3000,http://127.0.0.1:3000').split(',')

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # AI vendors
    ANTHROPIC_API_KEY = os.environ.get('ANTHROPIC_API_KEY')
    CLAUDE_MODEL = os.environ.get('CLAUDE_MODEL', 'claude-3-5-sonnet-20241022')
    OPENAI_API_KEY = os.environ.get('OPENAI_API_KEY')
    OPENAI_MODEL = os.environ.get('OPENAI_MODEL', 'gpt-4o')

    # Notifications
    RESEND_API_KEY = os.environ.get('RESEND_API_KEY')
    NOTIFICATION_FROM_EMAIL = os.environ.get('NOTIFICATION_FROM_EMAIL', 'Harbor <notifications@harbor.app>')
    TWILIO_ACCOUNT_SID = os.environ.get('TWILIO_ACCOUNT_SID')
    TWILIO_AUTH_TOKEN = os.environ.get('TWILIO_AUTH_TOKEN')
    TWILIO_FROM_NUMBER = os.environ.get('TWILIO_FROM_NUMBER')

    # Audio storage
    STORAGE_BACKEND = os.environ.get('STORAGE_BACKEND', 'local')  # 'local' or 'supabase'
    LOCAL_STORAGE_DIR = os.environ.get('LOCAL_STORAGE_DIR', 'instance/storage')
    AUDIO_BUCKET = os.environ.get('AUDIO_BUCKET', 'audio-recordings')
    MAX_AUDIO_CHUNK_BYTES = int(os.environ.get('MAX_AUDIO_CHUNK_BYTES', 10 * 1024 * 1024))


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    DEBUG = True
    # Use in-memory SQLite for testing
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    STORAGE_BACKEND = 'local'


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False
    # Enforce HTTPS in production
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True
    STORAGE_BACKEND = os.environ.get('STORAGE_BACKEND', 'supabase')

    # Set strict CORS in production
    CORS_ORIGINS = [origin for origin in os.environ.get('CORS_ORIGINS', '').split(',') if origin] or ['https://harbor.app']


# Configuration dictionary
config_by_name = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}

# Get configuration based on environment
def get_config() -> Config:
    env = os.environ.get('FLASK_ENV', 'default')
    return config_by_name.get(env, config_by_name['default'])
