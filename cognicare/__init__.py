from flask import Flask
from .extensions import db, migrate, bcrypt, jwt, celery
import click
import logging
import os

# Setup basic logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(config_name=None):
    """Create Flask application factory"""
    app = Flask(__name__)

    # Load configuration
    from cognicare.config import config, get_config
    config_class = config.get(config_name, config['default']) if config_name else get_config()
    config_class.validate()
    app.config.from_object(config_class)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    bcrypt.init_app(app)
    jwt.init_app(app)

    # Initialize CORS
    from cognicare.utils.cors import init_cors
    init_cors(app)

    # Initialize Celery
    celery.conf.update(
        broker_url=app.config['CELERY_BROKER_URL'],
        result_backend=app.config['CELERY_RESULT_BACKEND'],
        task_serializer=app.config['CELERY_TASK_SERIALIZER'],
        accept_content=app.config['CELERY_ACCEPT_CONTENT'],
        result_serializer=app.config['CELERY_RESULT_SERIALIZER'],
        timezone=app.config['CELERY_TIMEZONE'],
        enable_utc=app.config['CELERY_ENABLE_UTC'],
        beat_schedule=app.config['CELERY_BEAT_SCHEDULE'],
    )

    # Make celery tasks work with Flask app context
    class FlaskAppContextTask(celery.Task):
        """Make celery tasks work with Flask app context."""
        def __call__(self, *args, **kwargs):
            with app.app_context():
                return self.run(*args, **kwargs)

    celery.Task = FlaskAppContextTask

    # Error handlers, external collaborators, middleware
    from cognicare.errors import register_error_handlers
    from cognicare.services.external import init_external_services
    from cognicare.middleware import setup_middleware
    register_error_handlers(app)
    init_external_services(app)
    setup_middleware(app)

    # Setup logging
    logging.getLogger().setLevel(app.config['LOG_LEVEL'])
    if not app.debug and not app.testing:
        from logging.handlers import RotatingFileHandler

        log_dir = app.config['LOG_DIR']
        if not os.path.exists(log_dir):
            os.mkdir(log_dir)

        file_handler = RotatingFileHandler(
            os.path.join(log_dir, 'app.log'),
            maxBytes=10240000,
            backupCount=10
        )
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(logging.INFO)
        app.logger.addHandler(file_handler)
        app.logger.setLevel(logging.INFO)
        app.logger.info('Application startup')

    # Register blueprints
    from .routes import (
        addon_bp, analytics_bp, appointment_bp, auth_bp, backup_bp,
        clinic_bp, ehr_bp, health_bp, organization_bp, patient_bp,
    )
    app.register_blueprint(health_bp)  # Register health check first
    app.register_blueprint(auth_bp)
    app.register_blueprint(organization_bp)
    app.register_blueprint(clinic_bp)
    app.register_blueprint(patient_bp)
    app.register_blueprint(appointment_bp)
    app.register_blueprint(ehr_bp)
    app.register_blueprint(addon_bp)
    app.register_blueprint(analytics_bp)
    app.register_blueprint(backup_bp)

    register_commands(app)

    if app.config['SEED_ADDONS']:
        from cognicare.seeds import seed_addons
        with app.app_context():
            seed_addons()

    return app


def register_commands(app):
    """flask create-db / drop-db / seed-addons"""

    @app.cli.command('create-db')
    def create_db():
        """Create all database tables."""
        db.create_all()
        click.echo('Database tables created.')

    @app.cli.command('drop-db')
    @click.confirmation_option(prompt='This deletes all data. Continue?')
    def drop_db():
        """Drop all database tables."""
        db.drop_all()
        click.echo('Database tables dropped.')

    @app.cli.command('seed-addons')
    def seed_addons_command():
        """Create the default add-on catalog when it is empty."""
        from cognicare.seeds import seed_addons
        created = seed_addons()
        click.echo(f'Seeded {created} add-on(s).')
