import hashlib
import logging
import secrets
from typing import Optional

from .models import execute_query, now_iso

logger = logging.getLogger(__name__)

API_KEY_PREFIX = 'seo_'


def generate_api_key() -> str:
    """Generate a secure API key"""
    return f"{API_KEY_PREFIX}{secrets.token_urlsafe(32)}"


def hash_api_key(api_key: str) -> str:
    """Hash API key for storage"""
    return hashlib.sha256(api_key.encode()).hexdigest()


def verify_api_key(api_key: str) -> Optional[dict]:
    """Verify API key and return the agency it belongs to"""
    if not api_key or not api_key.startswith(API_KEY_PREFIX):
        return None

    from .agencies import get_agency_by_api_key
    return get_agency_by_api_key(api_key)


def regenerate_api_key(agency_id: str) -> str:
    """Issue a new API key for an agency, invalidating the old one"""
    api_key = generate_api_key()

    execute_query(
        "UPDATE agencies SET api_key = ?, updated_at = ? WHERE id = ?",
        (hash_api_key(api_key), now_iso(), agency_id)
    )
    logger.info("Regenerated API key for agency %s", agency_id)

    return api_key
