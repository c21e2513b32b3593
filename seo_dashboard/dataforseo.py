"""
DataForSEO client - keyword, SERP, backlink and on-page data for the dashboard.

Calls go through a local proxy that exposes the DataForSEO tools as
``POST /mcp/call`` with ``{"method": "mcp__dataforseo-simple__<tool>", "params": {...}}``
and answers ``{"result": {"items": [...]}}``.

Modes:
    live   only real upstream responses
    mock   only synthesized responses (see mock_data)
    auto   real responses, synthesized when the upstream gives none

Each successful live call adds its cost to ``total_cost``. Cache hits and
synthesized responses are free.
"""

import hashlib
import json
import logging
from datetime import datetime, timedelta
from typing import List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from . import mock_data
from .config import Config
from .models import execute_query, now_iso

logger = logging.getLogger(__name__)

TOOL_PREFIX = 'mcp__dataforseo-simple__'

# Estimated USD per call
METHOD_COSTS = {
    'dataforseo_labs_google_keyword_overview': 0.02,
    'serp_organic_live_advanced': 0.5,
    'dataforseo_labs_google_ranked_keywords': 2.0,
    'dataforseo_labs_google_keyword_ideas': 1.0,
    'dataforseo_labs_google_related_keywords': 2.0,
    'dataforseo_labs_google_competitors_domain': 2.0,
    'dataforseo_labs_google_domain_rank_overview': 0.5,
    'backlinks_bulk_ranks': 0.1,
    'on_page_instant_pages': 0.5,
    'on_page_lighthouse': 0.5,
}

RETRY_STATUSES = (429, 500, 502, 503, 504)


def build_session(max_retries: int = None, backoff: float = None) -> requests.Session:
    """Session that retries transient upstream failures with exponential backoff"""
    retry = Retry(
        total=Config.MAX_RETRIES if max_retries is None else max_retries,
        backoff_factor=Config.RETRY_BACKOFF if backoff is None else backoff,
        status_forcelist=RETRY_STATUSES,
        allowed_methods=frozenset(['POST']),
        raise_on_status=False,
    )
    session = requests.Session()
    session.headers.update({'Content-Type': 'application/json'})
    session.mount('http://', HTTPAdapter(max_retries=retry))
    session.mount('https://', HTTPAdapter(max_retries=retry))
    return session


def _items(result: Optional[dict]) -> List[dict]:
    return (result or {}).get('items') or []


def _first(result: Optional[dict]) -> Optional[dict]:
    items = _items(result)
    return items[0] if items else None


class DataForSEOClient:
    def __init__(self, base_url: str = None, mode: str = None,
                 session: requests.Session = None, cache_ttl: int = None,
                 timeout: float = None, location: str = None, language: str = None):
        self.base_url = base_url or Config.DATAFORSEO_PROXY_URL
        self.mode = mode or Config.DATAFORSEO_MODE
        self.session = session or build_session()
        self.cache_ttl = Config.CACHE_TTL_SECONDS if cache_ttl is None else cache_ttl
        self.timeout = timeout or Config.REQUEST_TIMEOUT
        self.location = location or Config.DEFAULT_LOCATION
        self.language = language or Config.DEFAULT_LANGUAGE
        self.total_cost = 0.0
        self.calls = []

    # ------------------------------------------------------------------
    # Core call
    # ------------------------------------------------------------------

    def call(self, method: str, params: dict, cost: float = None) -> Optional[dict]:
        """Return the ``result`` object for a tool call, or None when no data is available"""
        key = self._cache_key(method, params)

        cached = self._cache_get(key)
        if cached is not None:
            self.calls.append({'method': method, 'cost': 0.0, 'source': 'cache'})
            return cached

        if self.mode in ('live', 'auto'):
            result = self._post(method, params)
            if result is not None:
                charge = METHOD_COSTS.get(method, 0.0) if cost is None else cost
                self.total_cost += charge
                self.calls.append({'method': method, 'cost': charge, 'source': 'live'})
                self._cache_put(key, method, result)
                return result

        if self.mode in ('mock', 'auto'):
            result = mock_data.generate(method, params)
            if result is not None:
                self.calls.append({'method': method, 'cost': 0.0, 'source': 'mock'})
            return result

        return None

    def _post(self, method: str, params: dict) -> Optional[dict]:
        try:
            response = self.session.post(
                self.base_url,
                json={'method': f"{TOOL_PREFIX}{method}", 'params': params},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("DataForSEO %s request failed: %s", method, e)
            return None

        if not response.ok:
            logger.warning("DataForSEO %s returned HTTP %s", method, response.status_code)
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning("DataForSEO %s returned a non-JSON body", method)
            return None

        if not isinstance(data, dict) or data.get('result') is None:
            logger.warning("DataForSEO %s returned no result: %s", method, data.get('error') if isinstance(data, dict) else data)
            return None

        return data['result']

    def reset_cost(self) -> float:
        """Return accumulated cost and start counting again"""
        spent, self.total_cost = self.total_cost, 0.0
        self.calls = []
        return round(spent, 4)

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def _cache_key(self, method: str, params: dict) -> str:
        return hashlib.sha256(f"{method}:{json.dumps(params, sort_keys=True)}".encode()).hexdigest()

    def _cache_get(self, key: str) -> Optional[dict]:
        if not self.cache_ttl:
            return None
        rows = execute_query(
            "SELECT response FROM api_cache WHERE cache_key = ? AND expires_at > ?",
            (key, now_iso()),
            fetch=True
        )
        return json.loads(rows[0][0]) if rows else None

    def _cache_put(self, key: str, method: str, result: dict):
        if not self.cache_ttl:
            return
        now = datetime.now()
        execute_query(
            """INSERT OR REPLACE INTO api_cache (cache_key, method, response, created_at, expires_at)
               VALUES (?, ?, ?, ?, ?)""",
            (key, method, json.dumps(result), now.isoformat(),
             (now + timedelta(seconds=self.cache_ttl)).isoformat())
        )

    @staticmethod
    def purge_expired_cache() -> None:
        execute_query("DELETE FROM api_cache WHERE expires_at <= ?", (now_iso(),))

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    def _geo(self, location: str = None, language: str = None) -> dict:
        return {'location_name': location or self.location, 'language_code': language or self.language}

    def keyword_overview(self, keyword: str, location: str = None, language: str = None) -> Optional[dict]:
        result = self.call('dataforseo_labs_google_keyword_overview',
                           {'keywords': [keyword], **self._geo(location, language)})
        return _first(result)

    def serp_organic(self, keyword: str, depth: int = 10, location: str = None,
                     language: str = None, people_also_ask_click_depth: int = None,
                     cost: float = None) -> Optional[List[dict]]:
        """SERP items for a keyword, or None when the SERP could not be fetched"""
        params = {'keyword': keyword, **self._geo(location, language), 'depth': depth}
        if people_also_ask_click_depth:
            params['people_also_ask_click_depth'] = people_also_ask_click_depth
        result = self.call('serp_organic_live_advanced', params, cost=cost)
        if result is None:
            return None
        first = _first(result)
        return (first or {}).get('items') or []

    def ranked_keywords(self, target: str, filters: list = None, limit: int = 100,
                        order_by: list = None) -> List[dict]:
        params = {'target': target, **self._geo(), 'limit': limit}
        if filters:
            params['filters'] = filters
        if order_by:
            params['order_by'] = order_by
        return _items(self.call('dataforseo_labs_google_ranked_keywords', params))

    def keyword_ideas(self, keywords: List[str], filters: list = None, limit: int = 30,
                      order_by: list = None) -> List[dict]:
        params = {'keywords': keywords, **self._geo(), 'limit': limit}
        if filters:
            params['filters'] = filters
        if order_by:
            params['order_by'] = order_by
        return _items(self.call('dataforseo_labs_google_keyword_ideas', params))

    def related_keywords(self, keyword: str, depth: int = 1, limit: int = 20) -> List[dict]:
        return _items(self.call('dataforseo_labs_google_related_keywords',
                                {'keyword': keyword, **self._geo(), 'depth': depth, 'limit': limit}))

    def competitors_domain(self, target: str, limit: int = 10, exclude_top_domains: bool = True) -> List[dict]:
        return _items(self.call('dataforseo_labs_google_competitors_domain',
                                {'target': target, **self._geo(), 'limit': limit,
                                 'exclude_top_domains': exclude_top_domains}))

    def domain_rank_overview(self, target: str) -> Optional[dict]:
        return _first(self.call('dataforseo_labs_google_domain_rank_overview',
                                {'target': target, **self._geo()}))

    def backlinks_bulk_ranks(self, targets: List[str]) -> List[dict]:
        return _items(self.call('backlinks_bulk_ranks', {'targets': targets}))

    def on_page_instant_pages(self, url: str, cost: float = None) -> Optional[dict]:
        return _first(self.call('on_page_instant_pages', {'url': url}, cost=cost))

    def on_page_lighthouse(self, url: str) -> Optional[dict]:
        return _first(self.call('on_page_lighthouse', {'url': url}))


def get_client() -> DataForSEOClient:
    """Fresh client per request so cost accounting stays per operation"""
    return DataForSEOClient()
