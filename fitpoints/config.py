"""
Configuration management for the FitPoints service.
"""
import os
import string
from dotenv import load_dotenv

load_dotenv()


class BaseConfig:
    """Base configuration."""
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Redemption protocol constants
    REDEMPTION_WINDOW_SECONDS = int(os.getenv('REDEMPTION_WINDOW_SECONDS', '300'))  # 5 minutes
    VERIFICATION_CODE_LENGTH = 6
    VERIFICATION_CODE_ALPHABET = string.ascii_uppercase + string.digits  # 36^6 codes
    VERIFICATION_CODE_MAX_ATTEMPTS = 50

    # Where the member's scannable code points the staff terminal
    STAFF_VERIFY_URL = os.getenv('STAFF_VERIFY_URL', 'http://localhost:3000/staff/verify')

    # Points awarded by the attendance/workout/registration collaborators
    AWARD_POINTS = {
        'attendance': 10,
        'workout_record': 20,
        'verification_post': 30,
        'workout_verification': 5,
        'signup': 100,
    }

    # Staff code lookups are rate limited against code guessing
    RATELIMIT_STORAGE_URI = os.getenv('RATELIMIT_STORAGE_URI', 'memory://')
    STAFF_LOOKUP_RATE_LIMIT = os.getenv('STAFF_LOOKUP_RATE_LIMIT', '30 per minute')

    # Accept X-Member-ID / X-Staff-ID headers instead of bearer tokens
    IDENTITY_HEADERS_ENABLED = False

    # Background sweep of stale pending requests (bookkeeping only)
    ENABLE_SCHEDULER = os.getenv('ENABLE_SCHEDULER', 'false').lower() == 'true'
    EXPIRY_SWEEP_INTERVAL_SECONDS = int(os.getenv('EXPIRY_SWEEP_INTERVAL_SECONDS', '60'))


class DevelopmentConfig(BaseConfig):
    """Development configuration."""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.getenv(
        'DATABASE_URL',
        'sqlite:///fitpoints_dev.db'  # SQLite fallback for local dev
    )
    IDENTITY_HEADERS_ENABLED = True


class ProductionConfig(BaseConfig):
    """Production configuration."""
    DEBUG = False

    _db_url = os.getenv('DATABASE_URL', '')
    if _db_url.startswith('postgres://'):
        # SQLAlchemy requires postgresql:// not postgres://
        _db_url = _db_url.replace('postgres://', 'postgresql://', 1)

    SQLALCHEMY_DATABASE_URI = _db_url

    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 5,
        'pool_recycle': 300,
        'pool_pre_ping': True,
    }

    _secret_key = os.getenv('SECRET_KEY', '')

    @classmethod
    def validate_secret_key(cls) -> str:
        """
        Validate SECRET_KEY in production environment.

        Raises:
            RuntimeError: If SECRET_KEY is missing, empty, or contains unsafe values
        """
        if not cls._secret_key:
            raise RuntimeError(
                "CRITICAL: SECRET_KEY environment variable is not set!\n"
                "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
            )

        insecure_patterns = ['dev', 'change', 'default', 'test', 'secret', 'password']
        lower_key = cls._secret_key.lower()
        for pattern in insecure_patterns:
            if pattern in lower_key:
                raise RuntimeError(
                    f"CRITICAL: SECRET_KEY contains '{pattern}' which suggests it's not secure!\n"
                    "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
                )

        if len(cls._secret_key) < 32:
            raise RuntimeError(
                "CRITICAL: SECRET_KEY is too short (minimum 32 characters required)!"
            )

        return cls._secret_key

    SECRET_KEY = _secret_key  # Validated at app startup


class TestingConfig(BaseConfig):
    """Testing configuration."""
    TESTING = True
    SECRET_KEY = 'testing-secret-key'
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    IDENTITY_HEADERS_ENABLED = True
    RATELIMIT_ENABLED = False


config_map = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig
}


def get_config(config_name: str = 'development'):
    """Get configuration class by name."""
    return config_map.get(config_name, DevelopmentConfig)


def validate_config(config_name: str = 'development') -> None:
    """
    Validate configuration before app startup.

    Raises:
        RuntimeError: If validation fails in production
    """
    if config_name == 'production':
        ProductionConfig.validate_secret_key()
        if not ProductionConfig.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("CRITICAL: DATABASE_URL environment variable is not set!")
