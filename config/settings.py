# config/settings.py
"""
Environment-based configuration for the form relay service
"""

import os
from datetime import timedelta

from dotenv import load_dotenv

# Load a local .env before any class attribute reads the environment
load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_list(name: str, default: str) -> list:
    return [item.strip() for item in os.environ.get(name, default).split(',') if item.strip()]


def current_environment() -> str:
    """Resolve the runtime environment name (NODE_ENV kept for older deployments)"""
    return (
        os.environ.get('APP_ENV')
        or os.environ.get('FLASK_ENV')
        or os.environ.get('NODE_ENV')
        or 'production'
    ).lower()


class Config:
    """Base configuration shared by every environment"""

    APP_ENV = 'production'
    TESTING = False
    PORT = int(os.environ.get('PORT', 5000))

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_FILE = os.environ.get('LOG_FILE')
    SLOW_REQUEST_THRESHOLD = 1000  # milliseconds

    # HTTP
    CORS_ORIGINS = _env_list('CORS_ORIGINS', '*')
    TRUST_PROXY = _env_bool('TRUST_PROXY')
    MAX_CONTENT_LENGTH = 64 * 1024
    JSON_SORT_KEYS = False

    # Rate limiting (Flask-Limiter)
    RATELIMIT_ENABLED = True
    RATELIMIT_STORAGE_URI = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')
    RATELIMIT_STRATEGY = os.environ.get('RATELIMIT_STRATEGY', 'moving-window')
    RATELIMIT_HEADERS_ENABLED = True
    CONTACT_RATE_LIMIT = os.environ.get('CONTACT_RATE_LIMIT', '5 per 15 minutes')

    # Outbound mail
    EMAIL_USER = os.environ.get('EMAIL_USER')
    EMAIL_PASS = os.environ.get('EMAIL_PASS')
    EMAIL_SERVICE = os.environ.get('EMAIL_SERVICE', 'gmail')
    EMAIL_HOST = os.environ.get('EMAIL_HOST')
    EMAIL_PORT = int(os.environ['EMAIL_PORT']) if os.environ.get('EMAIL_PORT') else None
    EMAIL_SECURE = _env_bool('EMAIL_SECURE') if 'EMAIL_SECURE' in os.environ else None
    ADMIN_EMAIL = os.environ.get('ADMIN_EMAIL')
    EMAIL_FROM_NAME = os.environ.get('EMAIL_FROM_NAME')
    USER_EMAIL_SUBJECT = os.environ.get('USER_EMAIL_SUBJECT')
    EMAIL_SEND_TIMEOUT = float(os.environ.get('EMAIL_SEND_TIMEOUT', 30))
    EMAIL_POOL_MAX_CONNECTIONS = int(os.environ.get('EMAIL_POOL_MAX_CONNECTIONS', 5))
    EMAIL_POOL_MAX_MESSAGES = int(os.environ.get('EMAIL_POOL_MAX_MESSAGES', 100))
    EMAIL_RATE_LIMIT = int(os.environ.get('EMAIL_RATE_LIMIT', 10))
    EMAIL_RATE_DELTA = float(os.environ.get('EMAIL_RATE_DELTA', 1.0))
    MAIL_REQUIRED = _env_bool('MAIL_REQUIRED')

    # Submission retention
    SWEEP_ENABLED = True
    SWEEP_INTERVAL_SECONDS = int(os.environ.get('SWEEP_INTERVAL_SECONDS', 3600))
    RETENTION_PERIOD = timedelta(hours=int(os.environ.get('RETENTION_HOURS', 24)))

    # Email copy
    BRAND_NAME = os.environ.get('BRAND_NAME', 'EmotionEase')
    SUPPORT_EMAIL = os.environ.get('SUPPORT_EMAIL', 'support@emotionease.in')
    SUPPORT_PHONE = os.environ.get('SUPPORT_PHONE', '+91 1234567890')
    DISPLAY_TIMEZONE = os.environ.get('DISPLAY_TIMEZONE', 'Asia/Kolkata')

    # Response headers
    SECURITY_HEADERS = {
        'X-Content-Type-Options': 'nosniff',
        'X-Frame-Options': 'DENY',
        'Referrer-Policy': 'strict-origin-when-cross-origin',
        'Permissions-Policy': 'camera=(), microphone=(), geolocation=()',
    }


class DevelopmentConfig(Config):
    APP_ENV = 'development'
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'DEBUG')


class TestingConfig(Config):
    APP_ENV = 'testing'
    TESTING = True
    SWEEP_ENABLED = False
    MAIL_REQUIRED = False
    EMAIL_USER = 'relay@example.com'
    EMAIL_PASS = 'test-password'
    ADMIN_EMAIL = 'admin@example.com'
    EMAIL_SEND_TIMEOUT = 5.0
    LOG_LEVEL = 'WARNING'


class ProductionConfig(Config):
    """Production settings: strict transport headers and mandatory mail credentials"""

    APP_ENV = 'production'
    MAIL_REQUIRED = _env_bool('MAIL_REQUIRED', default=True)
    SECURITY_HEADERS = dict(
        Config.SECURITY_HEADERS,
        **{'Strict-Transport-Security': 'max-age=31536000; includeSubDomains'}
    )


CONFIGS = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
}


def get_config(name: str = None):
    """Return the config class for an environment name, defaulting to production"""
    return CONFIGS.get((name or current_environment()).lower(), ProductionConfig)
