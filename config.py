import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    # Security settings
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    SERVER_NAME = os.environ.get('SERVER_NAME')
    APPLICATION_ROOT = os.environ.get('APPLICATION_ROOT', '/')
    PREFERRED_URL_SCHEME = os.environ.get('PREFERRED_URL_SCHEME', 'http')

    # Public base URL used in e-mailed links (check-in, verification, invitations)
    APP_URL = os.environ.get('APP_URL', 'http://localhost:5050').rstrip('/')

    # Database configuration
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', 'sqlite:///final_note.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Session configuration (sessions are issued by the external auth service)
    SESSION_COOKIE_SECURE = False
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    PERMANENT_SESSION_LIFETIME = int(os.environ.get('SESSION_LIFETIME', 86400))  # 24 hours default

    # Message encryption master key: 64 hex characters (32 bytes)
    ENCRYPTION_KEY = os.environ.get('ENCRYPTION_KEY')

    # Shared secret for the scheduler trigger endpoint
    CRON_SECRET = os.environ.get('CRON_SECRET')

    # OTP hashing cost
    BCRYPT_LOG_ROUNDS = int(os.environ.get('BCRYPT_LOG_ROUNDS', 12))

    # Email configuration
    MAIL_SERVER = os.environ.get('MAIL_SERVER')
    MAIL_PORT = int(os.environ.get('MAIL_PORT', 587))
    MAIL_USE_TLS = os.environ.get('MAIL_USE_TLS', 'True').lower() == 'true'
    MAIL_USE_SSL = os.environ.get('MAIL_USE_SSL', 'False').lower() == 'true'
    MAIL_USERNAME = os.environ.get('MAIL_USERNAME')
    MAIL_PASSWORD = os.environ.get('MAIL_PASSWORD')
    MAIL_DEFAULT_SENDER = os.environ.get('MAIL_DEFAULT_SENDER', 'noreply@example.com')
    MAIL_FROM_NAME = os.environ.get('MAIL_FROM_NAME', 'Final Note')

    # Switch defaults
    DEFAULT_VERIFICATION_WINDOW_DAYS = int(os.environ.get('DEFAULT_VERIFICATION_WINDOW_DAYS', 7))
    DEFAULT_FINAL_DELAY_HOURS = int(os.environ.get('DEFAULT_FINAL_DELAY_HOURS', 24))
    DEFAULT_REQUIRED_CONFIRMATIONS = int(os.environ.get('DEFAULT_REQUIRED_CONFIRMATIONS', 2))

    # Token lifetimes
    VERIFIER_INVITE_EXPIRY_DAYS = int(os.environ.get('VERIFIER_INVITE_EXPIRY_DAYS', 30))
    VERIFICATION_OTP_TTL_HOURS = int(os.environ.get('VERIFICATION_OTP_TTL_HOURS', 72))
    CHECK_IN_TOKEN_EXPIRY_DAYS = int(os.environ.get('CHECK_IN_TOKEN_EXPIRY_DAYS', 7))

    # What a single DENY vote does to the switch: 'pause' or 'reset'
    VERIFICATION_DENY_POLICY = os.environ.get('VERIFICATION_DENY_POLICY', 'pause').lower()

    # Scheduler settings
    SCHEDULER_INTERVAL_MINUTES = int(os.environ.get('SCHEDULER_INTERVAL_MINUTES', 5))
    REMINDER_LOOKAHEAD_HOURS = int(os.environ.get('REMINDER_LOOKAHEAD_HOURS', 24))

    # Notification settings
    NOTIFICATION_MAX_RETRIES = int(os.environ.get('NOTIFICATION_MAX_RETRIES', 3))
    NOTIFICATION_DEBUG = os.environ.get('NOTIFICATION_DEBUG', 'False').lower() == 'true'

    # Logging
    LOG_TO_STDOUT = os.environ.get('LOG_TO_STDOUT', 'False').lower() == 'true'
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()


    # Debug mode - automatically set based on environment
    DEBUG = os.environ.get('FLASK_ENV', 'development').lower() == 'development'

    # Testing mode
    TESTING = False

class ProductionConfig(Config):
    DEBUG = False
    SESSION_COOKIE_SECURE = True


class DevelopmentConfig(Config):
    DEBUG = True
    NOTIFICATION_DEBUG = os.environ.get('NOTIFICATION_DEBUG', 'True').lower() == 'true'

class TestingConfig(Config):
    TESTING = True
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    APP_URL = 'http://testserver'
    ENCRYPTION_KEY = '00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff'
    CRON_SECRET = 'test-cron-secret-value'
    BCRYPT_LOG_ROUNDS = 4
    MAIL_SUPPRESS_SEND = True
    NOTIFICATION_DEBUG = False
    VERIFICATION_DENY_POLICY = 'pause'

config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': Config
}

def get_config():
    """Get configuration based on environment variable"""
    env = os.environ.get('FLASK_ENV', 'development').lower()
    return config.get(env, config['default'])
