"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '0') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # Session
    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'false').lower() == 'true'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')
    PERMANENT_SESSION_LIFETIME = 86400  # 24 hours

    # Database - DATABASE_URL > DB_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        DB_HOST = os.getenv('DB_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME', 'pos')
        DB_USER = os.getenv('DB_USER', 'pos')
        DB_PASSWORD = os.getenv('DB_PASSWORD', 'pos')

        DATABASE_URL = (
            f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'
    AUTO_CREATE_SCHEMA = os.getenv('AUTO_CREATE_SCHEMA', 'false').lower() == 'true'

    # Store defaults (a store_settings row overrides these field by field)
    STORE_NAME = os.getenv('STORE_NAME', 'My Store')
    STORE_ADDRESS = os.getenv('STORE_ADDRESS', '')
    STORE_CONTACT = os.getenv('STORE_CONTACT', '')
    STORE_TAX_ID = os.getenv('STORE_TAX_ID', '')
    STORE_LOGO_URL = os.getenv('STORE_LOGO_URL')
    RECEIPT_TEMPLATE = os.getenv('RECEIPT_TEMPLATE', 'compact')
    RECEIPT_FOOTER_NOTE = os.getenv('RECEIPT_FOOTER_NOTE')
    INVOICE_PREFIX = os.getenv('INVOICE_PREFIX', '')

    # Money
    CURRENCY_SYMBOL = os.getenv('CURRENCY_SYMBOL', '₹')
    CURRENCY_GROUPING = os.getenv('CURRENCY_GROUPING', 'indian')  # indian | western
    PAYABLE_ROUNDING = os.getenv('PAYABLE_ROUNDING', 'none')  # none | ceil

    # Catalog lookup and export
    CATALOG_LOOKUP_LIMIT = int(os.getenv('CATALOG_LOOKUP_LIMIT', '10'))
    EXPORT_PAGE_SIZE = int(os.getenv('EXPORT_PAGE_SIZE', '50'))

    # Receipt printing
    RECEIPT_SPOOL_DIR = os.getenv('RECEIPT_SPOOL_DIR', 'receipts')
    RECEIPT_OPEN_BROWSER = os.getenv('RECEIPT_OPEN_BROWSER', 'false').lower() == 'true'

    # Redis cache (store settings)
    REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
    CACHE_ENABLED = os.getenv('CACHE_ENABLED', 'true').lower() == 'true'
    CACHE_KEY_PREFIX = os.getenv('CACHE_KEY_PREFIX', 'pos')
    SETTINGS_CACHE_TTL = int(os.getenv('SETTINGS_CACHE_TTL', '300'))  # seconds


class TestingConfig(Config):
    """In-memory SQLite, no cache, no CSRF."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ECHO = False
    AUTO_CREATE_SCHEMA = True
    CACHE_ENABLED = False
    WTF_CSRF_ENABLED = False

    STORE_NAME = 'Test Mart'
    STORE_ADDRESS = '12 Market Road'
    STORE_CONTACT = 'Ph: 0000000000'
    STORE_TAX_ID = '29ABCDE1234F1Z5'
    STORE_LOGO_URL = None
    RECEIPT_TEMPLATE = 'compact'
    RECEIPT_FOOTER_NOTE = 'Goods once sold will not be taken back'
    INVOICE_PREFIX = 'INV-'
    CURRENCY_SYMBOL = '₹'
    CURRENCY_GROUPING = 'indian'
    PAYABLE_ROUNDING = 'none'
    RECEIPT_OPEN_BROWSER = False
