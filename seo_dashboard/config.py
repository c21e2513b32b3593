"""
Configuration for the SEO dashboard service

Loads settings from environment variables with sensible defaults.
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from the project .env file
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(env_path)


class Config:
    """Service configuration."""

    # Database path - use /tmp for Vercel (writable), local for development
    DB_PATH = os.getenv(
        'DB_PATH',
        '/tmp/seo_dashboard.db' if os.getenv('VERCEL') else 'seo_dashboard.db'
    )

    # Upstream SEO data API (local proxy in front of DataForSEO)
    DATAFORSEO_PROXY_URL = os.getenv('DATAFORSEO_PROXY_URL', 'http://localhost:3333/mcp/call')
    DATAFORSEO_MODE = os.getenv('DATAFORSEO_MODE', 'auto')  # live, mock, auto
    DEFAULT_LOCATION = os.getenv('DEFAULT_LOCATION', 'United States')
    DEFAULT_LANGUAGE = os.getenv('DEFAULT_LANGUAGE', 'en')
    REQUEST_TIMEOUT = float(os.getenv('REQUEST_TIMEOUT', '30'))
    MAX_RETRIES = int(os.getenv('MAX_RETRIES', '3'))
    RETRY_BACKOFF = float(os.getenv('RETRY_BACKOFF', '0.5'))
    CACHE_TTL_SECONDS = int(os.getenv('CACHE_TTL_SECONDS', '86400'))  # 1 day

    # Admin access
    ADMIN_KEY = os.getenv('ADMIN_KEY', 'admin_secret_key')

    # Server settings
    HOST = os.getenv('HOST', '0.0.0.0')
    PORT = int(os.getenv('PORT', '8000'))
    CORS_ORIGINS = os.getenv('CORS_ORIGINS', '*').split(',')

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # Limits
    MAX_COMPETITORS = int(os.getenv('MAX_COMPETITORS', '5'))
    CRAWL_MAX_PAGES = int(os.getenv('CRAWL_MAX_PAGES', '50'))
    CRAWL_DELAY = float(os.getenv('CRAWL_DELAY', '0.5'))

    @classmethod
    def validate(cls):
        """Validate configuration."""
        errors = []

        if cls.DATAFORSEO_MODE not in ('live', 'mock', 'auto'):
            errors.append(f"DATAFORSEO_MODE must be live, mock or auto (got {cls.DATAFORSEO_MODE!r})")

        if cls.DATAFORSEO_MODE != 'mock' and not cls.DATAFORSEO_PROXY_URL:
            errors.append("DATAFORSEO_PROXY_URL is not set")

        if cls.MAX_RETRIES < 0:
            errors.append("MAX_RETRIES cannot be negative")

        if not 1 <= cls.MAX_COMPETITORS <= 5:
            errors.append("MAX_COMPETITORS must be between 1 and 5")

        if cls.CRAWL_MAX_PAGES < 1:
            errors.append("CRAWL_MAX_PAGES must be at least 1")

        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")

        return True


def configure_logging(level: str = None):
    """Configure root logging once for the service."""
    logging.basicConfig(
        level=getattr(logging, (level or Config.LOG_LEVEL).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
