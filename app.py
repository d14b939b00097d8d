#!/usr/bin/env python
"""
Development server script for running the Harbor API.
Supports different environments through environment files:
- .env, .env.development, .env.staging, .env.production

Usage:
  FLASK_ENV=development python app.py  # Local SQLite or PostgreSQL
  FLASK_ENV=staging python app.py      # Staging with Supabase auth and storage
"""
import os

from harbor.app.config.env_manager import load_environment, mask_database_url
from harbor.app import create_app

# Load environment variables based on FLASK_ENV
load_environment()
flask_env = os.environ.get('FLASK_ENV', 'development')

if __name__ == "__main__":
    app = create_app()
    port = int(os.environ.get("PORT", 5000))

    app.logger.info(f"Starting Harbor API on http://localhost:{port}")
    app.logger.info(f"Environment: {flask_env}")
    app.logger.info(f"Database: {mask_database_url(app.config['SQLALCHEMY_DATABASE_URI'])}")

    debug = os.environ.get('DEBUG', 'False').lower() == 'true'
    app.run(host=os.environ.get('HOST', '0.0.0.0'), port=port, debug=debug)
