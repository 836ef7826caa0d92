"""Configuration module for Flask application."""
import os
from decimal import Decimal
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'settlement')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'settlement')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'settlement')

        DATABASE_URL = (
            f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # Payment settings fallbacks (used until the admin saves payment_settings)
    DEFAULT_MIN_WITHDRAWAL_AMOUNT = Decimal(os.getenv('DEFAULT_MIN_WITHDRAWAL_AMOUNT', '50.00'))
    DEFAULT_MIN_DAYS_TO_WITHDRAW = int(os.getenv('DEFAULT_MIN_DAYS_TO_WITHDRAW', '7'))

    # Settlement
    # 'current': partner profit uses the product cost at delivery time
    # 'frozen': uses the cost captured on the order line at placement
    SETTLEMENT_COST_BASIS = os.getenv('SETTLEMENT_COST_BASIS', 'current').lower()
    SETTLEMENT_RETRY_LIMIT = int(os.getenv('SETTLEMENT_RETRY_LIMIT', '3'))

    # Reconciliation tolerance (currency rounding)
    BALANCE_TOLERANCE = Decimal(os.getenv('BALANCE_TOLERANCE', '0.01'))


class TestConfig(Config):
    """Configuration for the test suite (in-memory SQLite)."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ECHO = False
