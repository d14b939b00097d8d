"""
Application factory module.
"""
from typing import Optional, Dict, Any

from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from .models import db, migrate
from .utils.logger import configure_logging
from .utils.llm_service import llm_service
from .config.config import get_config


def create_app(test_config: Optional[Dict[str, Any]] = None) -> Flask:
    """Application factory for creating a Flask app instance.

    Args:
        test_config: Optional configuration mapping used instead of the
            environment-derived config object.

    Returns:
        Configured Flask application instance.
    """
    app = Flask(__name__, instance_relative_config=True)

    # Load config
    if test_config is None:
        app.config.from_object(get_config())
    else:
        app.config.from_mapping(test_config)

    configure_logging(app)

    # Trust one proxy hop for client IPs (usage tracking)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    JWTManager(app)

    llm_service.configure(app.config)

    cors_origins = app.config.get('CORS_ORIGINS') or ['http://localhost:3000']
    if isinstance(cors_origins, str):
        cors_origins = [origin.strip() for origin in cors_origins.split(',') if origin.strip()]
    app.logger.info(f"Configuring CORS with origins: {cors_origins}")
    CORS(app, resources={r"/api/*": {
        "origins": cors_origins,
        "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        "allow_headers": ["Content-Type", "Authorization", "X-Requested-With"],
        "supports_credentials": True
    }})

    @app.route('/health')
    def health_check():
        """Simple health check endpoint."""
        return {"status": "ok", "message": "App is running"}, 200

    @app.route('/api/health', methods=['GET'])
    def api_health():
        return {"status": "ok", "message": "Backend is healthy"}

    @app.route('/', methods=['GET'])
    def index():
        return jsonify({
            "message": "Harbor API - Backend Service",
            "status": "running",
            "api_endpoints": {
                "health_check": "/health",
                "api_base": "/api",
                "api_health": "/api/health"
            }
        })

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        """Return JSON instead of HTML for routing and method errors."""
        if request.path.startswith('/api/'):
            return jsonify({"error": e.name, "details": e.description}), e.code
        return e

    # Register blueprints
    from .api.auth import auth_bp
    from .api.profiles import profiles_bp
    from .api.sessions import sessions_bp
    from .api.resources import resources_bp
    from .api.admin import admin_bp
    from .api.circles import circles_bp
    from .api.posts import posts_bp
    from .api.feedback import feedback_bp
    from .api.moderation import moderation_bp
    from .api.therapists import therapists_bp
    from .api.voice import voice_bp
    from .api.usage import usage_bp

    for blueprint in (auth_bp, profiles_bp, sessions_bp, resources_bp, admin_bp, circles_bp,
                      posts_bp, feedback_bp, moderation_bp, therapists_bp, voice_bp, usage_bp):
        app.register_blueprint(blueprint, url_prefix='/api')

    # Shell context for Flask CLI
    @app.shell_context_processor
    def ctx():
        return {'app': app, 'db': db}

    return app
