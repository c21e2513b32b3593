"""
Competitor tracking

Competitors are domains an agency follows for a client. Each analysis stores
a snapshot of organic, paid and backlink metrics so changes show over time.
"""

import logging
from typing import List

from . import agencies
from .errors import LimitExceededError, NotFoundError, ValidationError
from .models import execute_query, fetch_all, fetch_one, new_id, now_iso
from .scoring import normalize_domain

logger = logging.getLogger(__name__)

DISCOVERY_LIMIT = 10
MAX_SUGGESTIONS = 5

_SNAPSHOT_COLUMNS = """organic_keywords, organic_traffic, paid_keywords, backlinks,
                       referring_domains, domain_rating, captured_at"""


def _snapshot(row: dict) -> dict:
    return {
        'organicKeywords': row['organic_keywords'],
        'organicTraffic': row['organic_traffic'],
        'paidKeywords': row['paid_keywords'],
        'backlinks': row['backlinks'],
        'referringDomains': row['referring_domains'],
        'domainRating': row['domain_rating'],
        'capturedAt': row['captured_at'],
    }


def list_competitors(client_id: str) -> List[dict]:
    """Tracked competitors with their latest snapshot"""
    competitors = fetch_all(
        """SELECT id, domain, name, added_at, last_analysis
           FROM competitors WHERE client_id = ? ORDER BY added_at DESC""",
        (client_id,)
    )

    result = []
    for comp in competitors:
        latest = fetch_one(
            f"""SELECT {_SNAPSHOT_COLUMNS} FROM competitor_snapshots
                WHERE competitor_id = ? ORDER BY captured_at DESC LIMIT 1""",
            (comp['id'],)
        )
        result.append({
            'id': comp['id'],
            'domain': comp['domain'],
            'name': comp['name'],
            'addedAt': comp['added_at'],
            'lastAnalysis': comp['last_analysis'],
            'snapshot': _snapshot(latest) if latest else None,
        })
    return result


def get_competitor(competitor_id: str, agency_id: str = None) -> dict:
    query = """SELECT p.id, p.client_id, p.domain, p.name, p.added_at, p.last_analysis, c.agency_id
               FROM competitors p JOIN clients c ON c.id = p.client_id WHERE p.id = ?"""
    params = [competitor_id]
    if agency_id:
        query += " AND c.agency_id = ?"
        params.append(agency_id)

    competitor = fetch_one(query, tuple(params))
    if not competitor:
        raise NotFoundError("Competitor not found")
    return competitor


def add_competitor(client: dict, domain: str, name: str = None) -> dict:
    domain = normalize_domain(domain)
    if not domain:
        raise ValidationError("Domain is required")
    if domain == client['domain']:
        raise ValidationError("A client cannot be its own competitor")

    max_competitors = client['tier_limits']['max_competitors']
    count = execute_query("SELECT COUNT(*) FROM competitors WHERE client_id = ?",
                          (client['id'],), fetch=True)[0][0]
    if count >= max_competitors:
        raise LimitExceededError(f"Maximum of {max_competitors} competitors allowed")

    if fetch_one("SELECT id FROM competitors WHERE client_id = ? AND domain = ?", (client['id'], domain)):
        raise ValidationError("Competitor already tracked")

    competitor_id = new_id()
    execute_query(
        "INSERT INTO competitors (id, client_id, domain, name, added_at) VALUES (?, ?, ?, ?, ?)",
        (competitor_id, client['id'], domain, name or domain, now_iso())
    )
    logger.info("Client %s now tracks competitor %s", client['id'], domain)

    return {'id': competitor_id, 'domain': domain, 'name': name or domain}


def discover_competitors(client: dict, api) -> dict:
    """Suggest domains competing for the client's keywords that are not tracked yet"""
    items = api.competitors_domain(client['domain'], limit=DISCOVERY_LIMIT, exclude_top_domains=True)

    existing = {r['domain'] for r in fetch_all(
        "SELECT domain FROM competitors WHERE client_id = ?", (client['id'],))}

    suggestions = []
    for item in items:
        domain = normalize_domain(item.get('domain') or '')
        if domain and domain != client['domain'] and domain not in existing and domain not in suggestions:
            suggestions.append(domain)

    api_cost = api.reset_cost()
    agencies.record_spend(client['agency_id'], client['id'], 'competitor-discovery', api_cost)

    return {'suggestions': suggestions[:MAX_SUGGESTIONS], 'apiCost': api_cost}


def analyze_competitor(competitor: dict, api) -> dict:
    """Capture a metrics snapshot for a competitor"""
    overview = api.domain_rank_overview(competitor['domain']) or {}
    metrics = overview.get('metrics') or {}
    organic = metrics.get('organic') or {}
    paid = metrics.get('paid') or {}

    ranks = api.backlinks_bulk_ranks([competitor['domain']])
    links = ranks[0] if ranks else {}

    snapshot = {
        'organic_keywords': organic.get('count') or 0,
        'organic_traffic': organic.get('etv') or 0,
        'paid_keywords': paid.get('count') or 0,
        'backlinks': links.get('backlinks') or 0,
        'referring_domains': links.get('referring_domains') or 0,
        'domain_rating': links.get('rank') or 0,
        'captured_at': now_iso(),
    }

    execute_query(
        f"""INSERT INTO competitor_snapshots (id, competitor_id, {_SNAPSHOT_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (new_id(), competitor['id'], *snapshot.values())
    )
    execute_query("UPDATE competitors SET last_analysis = ? WHERE id = ?",
                  (snapshot['captured_at'], competitor['id']))

    api_cost = api.reset_cost()
    agencies.record_spend(competitor['agency_id'], competitor['client_id'], 'competitor-analysis', api_cost)

    return {'success': True, 'snapshot': _snapshot(snapshot), 'apiCost': api_cost}


def get_snapshot_history(competitor_id: str, limit: int = 30) -> List[dict]:
    rows = fetch_all(
        f"""SELECT {_SNAPSHOT_COLUMNS} FROM competitor_snapshots
            WHERE competitor_id = ? ORDER BY captured_at DESC LIMIT ?""",
        (competitor_id, limit)
    )
    return [_snapshot(r) for r in rows]


def delete_competitor(competitor_id: str, agency_id: str = None):
    get_competitor(competitor_id, agency_id)
    execute_query("DELETE FROM competitor_snapshots WHERE competitor_id = ?", (competitor_id,))
    execute_query("DELETE FROM keyword_gaps WHERE competitor_id = ?", (competitor_id,))
    execute_query("DELETE FROM competitors WHERE id = ?", (competitor_id,))
