"""
Client management module for the SEO dashboard
Handles agency clients, their service tiers and the dashboard rollup
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from .agencies import AGENCY_PLANS, get_agency
from .config import Config
from .errors import LimitExceededError, NotFoundError, ValidationError
from .models import execute_query, fetch_all, fetch_one, new_id, now_iso
from .scoring import normalize_domain

logger = logging.getLogger(__name__)

# ============================================================================
# CONSTANTS
# ============================================================================

SERVICE_TIERS = {
    'Pro': {
        'monthly_keywords': 200,
        'audit_interval_days': 14,
        'rank_check_interval_days': 7,
        'max_competitors': 5,
    },
    'Business': {
        'monthly_keywords': 100,
        'audit_interval_days': 30,
        'rank_check_interval_days': 7,
        'max_competitors': 5,
    },
    'Starter': {
        'monthly_keywords': 50,
        'audit_interval_days': 30,
        'rank_check_interval_days': 14,
        'max_competitors': 3,
    },
    'Legacy': {
        'monthly_keywords': 25,
        'audit_interval_days': 90,
        'rank_check_interval_days': 30,
        'max_competitors': 1,
    },
}

CLIENT_STATUS = ['active', 'inactive']
UPDATABLE_FIELDS = ('name', 'website', 'industry', 'status', 'service_tier')

_CLIENT_COLUMNS = """id, agency_id, name, website, domain, industry, status, service_tier,
                     created_at, updated_at, last_audit_id, last_audit_score, last_audit_at,
                     next_audit_at, last_rank_check_at"""


def get_tier_limits(service_tier: str) -> dict:
    limits = dict(SERVICE_TIERS.get(service_tier, SERVICE_TIERS['Starter']))
    limits['max_competitors'] = min(limits['max_competitors'], Config.MAX_COMPETITORS)
    return limits


def next_audit_date(service_tier: str, from_date: datetime = None) -> str:
    from_date = from_date or datetime.now()
    return (from_date + timedelta(days=get_tier_limits(service_tier)['audit_interval_days'])).isoformat()


def _validate(service_tier: Optional[str] = None, status: Optional[str] = None):
    if service_tier is not None and service_tier not in SERVICE_TIERS:
        raise ValidationError(f"Unknown service tier '{service_tier}'")
    if status is not None and status not in CLIENT_STATUS:
        raise ValidationError(f"Unknown client status '{status}'")


# ============================================================================
# CLIENT CRUD
# ============================================================================

def create_client(agency_id: str, name: str, website: str, industry: str = None,
                  service_tier: str = 'Starter', status: str = 'active') -> dict:
    """Register a client website under an agency"""
    _validate(service_tier, status)
    domain = normalize_domain(website)
    if not domain:
        raise ValidationError("Website is required")

    agency = get_agency(agency_id)
    if not agency:
        raise NotFoundError("Agency not found")

    count = execute_query("SELECT COUNT(*) FROM clients WHERE agency_id = ?", (agency_id,), fetch=True)[0][0]
    max_clients = AGENCY_PLANS[agency['plan_type']]['max_clients']
    if count >= max_clients:
        raise LimitExceededError(f"Plan '{agency['plan_type']}' allows at most {max_clients} clients")

    if fetch_one("SELECT id FROM clients WHERE agency_id = ? AND domain = ?", (agency_id, domain)):
        raise ValidationError("Client already exists")

    client_id = new_id()
    execute_query(
        """INSERT INTO clients (id, agency_id, name, website, domain, industry, status,
                                service_tier, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (client_id, agency_id, name, website, domain, industry, status, service_tier, now_iso())
    )
    logger.info("Created client %s (%s) for agency %s", client_id, domain, agency_id)

    return get_client(client_id, agency_id)


def get_client(client_id: str, agency_id: str = None) -> dict:
    """Get client by ID, optionally scoped to an agency"""
    if agency_id:
        client = fetch_one(f"SELECT {_CLIENT_COLUMNS} FROM clients WHERE id = ? AND agency_id = ?",
                           (client_id, agency_id))
    else:
        client = fetch_one(f"SELECT {_CLIENT_COLUMNS} FROM clients WHERE id = ?", (client_id,))

    if not client:
        raise NotFoundError("Client not found")
    client['tier_limits'] = get_tier_limits(client['service_tier'])
    return client


def list_clients(agency_id: str, status: str = None, service_tier: str = None) -> List[dict]:
    query = f"SELECT {_CLIENT_COLUMNS} FROM clients WHERE agency_id = ?"
    params = [agency_id]

    if status:
        query += " AND status = ?"
        params.append(status)
    if service_tier:
        query += " AND service_tier = ?"
        params.append(service_tier)

    query += " ORDER BY created_at DESC"
    return fetch_all(query, tuple(params))


def update_client(client_id: str, agency_id: str, updates: dict) -> dict:
    """Update editable client fields"""
    client = get_client(client_id, agency_id)

    fields = {k: v for k, v in updates.items() if k in UPDATABLE_FIELDS and v is not None}
    _validate(fields.get('service_tier'), fields.get('status'))

    if 'website' in fields:
        domain = normalize_domain(fields['website'])
        if not domain:
            raise ValidationError("Website is required")
        clash = fetch_one("SELECT id FROM clients WHERE agency_id = ? AND domain = ? AND id != ?",
                          (agency_id, domain, client_id))
        if clash:
            raise ValidationError("Client already exists")
        fields['domain'] = domain

    if 'service_tier' in fields and client['last_audit_at']:
        fields['next_audit_at'] = next_audit_date(
            fields['service_tier'], datetime.fromisoformat(client['last_audit_at']))

    if not fields:
        return client

    fields['updated_at'] = now_iso()
    assignments = ", ".join(f"{k} = ?" for k in fields)
    execute_query(f"UPDATE clients SET {assignments} WHERE id = ?", (*fields.values(), client_id))

    return get_client(client_id, agency_id)


def delete_client(client_id: str, agency_id: str):
    """Delete a client and everything recorded for it"""
    get_client(client_id, agency_id)

    audit_scope = "SELECT id FROM audit_runs WHERE client_id = ?"
    for table in ('technical_issues', 'meta_tags', 'content_scores'):
        execute_query(f"DELETE FROM {table} WHERE audit_id IN ({audit_scope})", (client_id,))
    execute_query("DELETE FROM ranking_history WHERE keyword_id IN "
                  "(SELECT id FROM tracked_keywords WHERE client_id = ?)", (client_id,))
    execute_query("DELETE FROM competitor_snapshots WHERE competitor_id IN "
                  "(SELECT id FROM competitors WHERE client_id = ?)", (client_id,))
    for table in ('audit_runs', 'tracked_keywords', 'competitors', 'keyword_gaps',
                  'content_briefs', 'page_optimizations', 'tasks', 'job_runs'):
        execute_query(f"DELETE FROM {table} WHERE client_id = ?", (client_id,))
    execute_query("DELETE FROM clients WHERE id = ?", (client_id,))

    logger.info("Deleted client %s", client_id)


def mark_rank_check(client_id: str):
    execute_query("UPDATE clients SET last_rank_check_at = ? WHERE id = ?", (now_iso(), client_id))


# ============================================================================
# DASHBOARD
# ============================================================================

def get_dashboard_analytics(agency_id: str) -> dict:
    """Agency-wide rollup of clients, audits, tasks and API spend"""
    agency = get_agency(agency_id)
    if not agency:
        raise NotFoundError("Agency not found")

    clients = list_clients(agency_id)
    month_ago = (datetime.now() - timedelta(days=30)).isoformat()
    month_start = datetime.now().replace(day=1, hour=0, minute=0, second=0, microsecond=0).isoformat()

    active_audits = execute_query(
        """SELECT COUNT(*) FROM audit_runs a JOIN clients c ON a.client_id = c.id
           WHERE c.agency_id = ? AND a.created_at >= ?""",
        (agency_id, month_ago),
        fetch=True
    )[0][0]

    pending_tasks = execute_query(
        """SELECT COUNT(*) FROM tasks t JOIN clients c ON t.client_id = c.id
           WHERE c.agency_id = ? AND t.status = 'pending'""",
        (agency_id,),
        fetch=True
    )[0][0]

    completed_tasks = execute_query(
        """SELECT COUNT(*) FROM tasks t JOIN clients c ON t.client_id = c.id
           WHERE c.agency_id = ? AND t.status = 'completed' AND t.completed_at >= ?""",
        (agency_id, month_start),
        fetch=True
    )[0][0]

    recent = fetch_all(
        """SELECT c.name AS client, a.id AS audit_id, a.overall_score AS score, a.created_at AS date
           FROM audit_runs a JOIN clients c ON a.client_id = c.id
           WHERE c.agency_id = ?
           ORDER BY a.created_at DESC LIMIT 5""",
        (agency_id,)
    )

    scored = [c['last_audit_score'] for c in clients if c['last_audit_score'] is not None]
    tiers = {tier: 0 for tier in SERVICE_TIERS}
    for c in clients:
        tiers[c['service_tier']] = tiers.get(c['service_tier'], 0) + 1

    return {
        'agency': agency['name'],
        'plan': agency['plan_type'],
        'totalClients': len(clients),
        'activeClients': sum(1 for c in clients if c['status'] == 'active'),
        'activeAudits': active_audits,
        'pendingTasks': pending_tasks,
        'completedTasksThisMonth': completed_tasks,
        'averageAuditScore': round(sum(scored) / len(scored), 2) if scored else 0,
        'tierBreakdown': tiers,
        'recentAudits': recent,
        'apiSpend': {
            'current': round(agency['spend'], 4),
            'budget': agency['monthly_budget'],
            'billing_end': agency['billing_end'],
        },
    }
