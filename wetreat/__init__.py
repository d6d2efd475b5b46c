import os
from flask import Flask
from sqlalchemy import text
from wetreat.extensions import db, bcrypt, migrate, jwt, limiter, cors
from wetreat.utils.error_handlers import register_error_handlers
from wetreat.commands import register_commands
from config import config


def create_app(config_name=None):
    config_name = config_name or os.environ.get('FLASK_CONFIG', 'default')
    config_class = config[config_name]

    app = Flask(__name__)
    app.config.from_object(config_class)

    # Initialize extensions
    db.init_app(app)
    bcrypt.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    limiter.init_app(app)
    cors.init_app(app, origins=app.config['ALLOWED_ORIGINS'])

    # Initialize app with config
    config_class.init_app(app)

    # Models must be imported before create_all / migrations see the metadata
    from wetreat.models import user_models, emr_models  # noqa: F401

    # Register blueprints
    from wetreat.api import api_bp
    app.register_blueprint(api_bp, url_prefix='/api')

    # Register error handlers and commands
    register_error_handlers(app)
    register_commands(app)

    return app


def check_store(app):
    """Fails fast when the record store is unreachable."""
    with app.app_context():
        db.session.execute(text('SELECT 1'))
        db.session.remove()
