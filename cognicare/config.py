import os
from datetime import timedelta

from celery.schedules import crontab
from dotenv import load_dotenv

load_dotenv()

DEFAULT_SECRET_KEY = 'dev-secret-key-change-in-production'


class Config:
    """Base configuration"""
    SECRET_KEY = os.getenv('SECRET_KEY') or DEFAULT_SECRET_KEY

    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///cognicare.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
    }

    # JWT
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY') or SECRET_KEY
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=int(os.getenv('JWT_ACCESS_TOKEN_HOURS', '24')))

    # Token lifetimes
    EMAIL_VERIFICATION_TTL = timedelta(hours=24)
    PASSWORD_RESET_TTL = timedelta(hours=1)
    INVITE_TTL = timedelta(days=7)

    # Backups
    BACKUP_COOLDOWN = timedelta(hours=1)
    BACKUP_DOWNLOAD_TTL = timedelta(hours=24)
    BACKUP_HISTORY_PAGE_SIZE = 10

    # Pagination
    DEFAULT_PAGE_SIZE = 20
    MAX_PAGE_SIZE = 100

    # Frontend links used in emails
    FRONTEND_URL = os.getenv('FRONTEND_URL', 'http://localhost:3000')

    # Payment gateway
    RAZORPAY_WEBHOOK_SECRET = os.getenv('RAZORPAY_WEBHOOK_SECRET', 'dev-webhook-secret')
    BILLING_CURRENCY = os.getenv('BILLING_CURRENCY', 'INR')

    # External service stubs (multiplier applied to their fixed delays)
    EXTERNAL_SERVICE_LATENCY = float(os.getenv('EXTERNAL_SERVICE_LATENCY', '1.0'))
    BACKUP_STORAGE_URL = os.getenv('BACKUP_STORAGE_URL', 'https://storage.cognicare.local/backups')

    # CORS
    CORS_ORIGINS = os.getenv('CORS_ORIGINS', '*')

    # Celery Configuration
    CELERY_BROKER_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
    CELERY_RESULT_BACKEND = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
    CELERY_ACCEPT_CONTENT = ['json']
    CELERY_TASK_SERIALIZER = 'json'
    CELERY_RESULT_SERIALIZER = 'json'
    CELERY_TIMEZONE = 'UTC'
    CELERY_ENABLE_UTC = True
    CELERY_BEAT_SCHEDULE = {
        'scheduled-cloud-backups': {
            'task': 'tasks.scheduled_cloud_backups',
            'schedule': crontab(hour=2, minute=0),
        },
    }

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_DIR = os.getenv('LOG_DIR', 'logs')

    # Email Configuration
    MAIL_SERVER = os.getenv('MAIL_SERVER', 'smtp.gmail.com')
    MAIL_PORT = int(os.getenv('MAIL_PORT', '587'))
    MAIL_USE_TLS = os.getenv('MAIL_USE_TLS', 'true').lower() == 'true'
    MAIL_USE_SSL = os.getenv('MAIL_USE_SSL', 'false').lower() == 'true'
    MAIL_USERNAME = os.getenv('MAIL_USERNAME')
    MAIL_PASSWORD = os.getenv('MAIL_PASSWORD')
    MAIL_DEFAULT_SENDER = os.getenv('MAIL_DEFAULT_SENDER', 'noreply@cognicare.app')

    # Seed the add-on catalog on startup when empty
    SEED_ADDONS = os.getenv('SEED_ADDONS', 'true').lower() == 'true'

    MAX_CONTENT_LENGTH = int(os.getenv('MAX_CONTENT_LENGTH', str(20 * 1024 * 1024)))

    @classmethod
    def validate(cls):
        """Hook for environment-specific startup checks."""


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False

    # Security
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'

    # Database connection pool for production
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 3600,
        'pool_size': 20,
        'max_overflow': 40,
    }

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'WARNING')

    @classmethod
    def validate(cls):
        secret = os.getenv('SECRET_KEY')
        if not secret or secret == DEFAULT_SECRET_KEY:
            raise ValueError("SECRET_KEY environment variable must be set in production and must not be the default value")
        if not os.getenv('RAZORPAY_WEBHOOK_SECRET'):
            raise ValueError("RAZORPAY_WEBHOOK_SECRET environment variable must be set in production")


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.getenv('TEST_DATABASE_URL', 'sqlite:///:memory:')
    SQLALCHEMY_ENGINE_OPTIONS = {}
    SECRET_KEY = 'testing-secret-key'
    JWT_SECRET_KEY = 'testing-jwt-secret-key-with-enough-length'
    RAZORPAY_WEBHOOK_SECRET = 'testing-webhook-secret'
    EXTERNAL_SERVICE_LATENCY = 0.0
    MAIL_USERNAME = None
    MAIL_PASSWORD = None
    BCRYPT_LOG_ROUNDS = 4
    SEED_ADDONS = False


# Configuration mapping
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config():
    """Get configuration based on FLASK_ENV"""
    env = os.getenv('FLASK_ENV', 'development')
    return config.get(env, config['default'])
