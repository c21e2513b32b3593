"""
Agency management module for the SEO dashboard
Handles agency accounts, plans, API budget windows and spend tracking
"""

import calendar
import logging
from datetime import datetime
from typing import List, Optional

from .auth import generate_api_key, hash_api_key
from .errors import BudgetExceededError, NotFoundError, ValidationError
from .models import (
    current_billing_cycle, execute_query, fetch_all, fetch_one, new_id, now_iso
)

logger = logging.getLogger(__name__)

# ============================================================================
# CONSTANTS
# ============================================================================

AGENCY_PLANS = {
    'starter': {
        'monthly_budget': 50.0,
        'max_clients': 10,
        'price_monthly': 49,
        'price_yearly': 490,
    },
    'agency': {
        'monthly_budget': 250.0,
        'max_clients': 50,
        'price_monthly': 199,
        'price_yearly': 1990,
    },
    'enterprise': {
        'monthly_budget': 1000.0,
        'max_clients': 500,
        'price_monthly': 799,
        'price_yearly': 7990,
    },
}

BILLING_CYCLES = ['monthly', 'yearly']
SUBSCRIPTION_STATUS = ['active', 'past_due', 'canceled', 'trial']

ALERT_WARNING_RATIO = 0.8

_AGENCY_COLUMNS = """id, name, email, plan_type, billing_cycle, monthly_budget, spend,
                     created_at, updated_at, billing_start, billing_end, last_reset,
                     subscription_status"""

# ============================================================================
# AGENCY CORE FUNCTIONS
# ============================================================================


def create_agency(name: str, email: str, plan_type: str = 'starter',
                  billing_cycle: str = 'monthly') -> dict:
    """Create a new agency and return it with its API key (shown only once)"""
    if plan_type not in AGENCY_PLANS:
        raise ValidationError(f"Unknown plan '{plan_type}'")
    if billing_cycle not in BILLING_CYCLES:
        raise ValidationError(f"Unknown billing cycle '{billing_cycle}'")
    if fetch_one("SELECT id FROM agencies WHERE email = ?", (email,)):
        raise ValidationError("An agency with this email already exists")

    agency_id = new_id()
    api_key = generate_api_key()

    execute_query(
        """INSERT INTO agencies (
            id, name, email, api_key, plan_type, billing_cycle,
            monthly_budget, spend, created_at, subscription_status
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (agency_id, name, email, hash_api_key(api_key), plan_type, billing_cycle,
         AGENCY_PLANS[plan_type]['monthly_budget'], 0, now_iso(), 'active')
    )

    initialize_agency_billing(agency_id, billing_cycle)

    agency = get_agency(agency_id)
    agency['api_key'] = api_key
    logger.info("Created agency %s on plan %s", agency_id, plan_type)
    return agency


def get_agency(agency_id: str) -> Optional[dict]:
    """Get agency by ID with billing info"""
    return fetch_one(f"SELECT {_AGENCY_COLUMNS} FROM agencies WHERE id = ?", (agency_id,))


def get_agency_by_api_key(api_key: str) -> Optional[dict]:
    """Get agency by plaintext API key, rolling its billing window if it ended"""
    row = fetch_one("SELECT id FROM agencies WHERE api_key = ?", (hash_api_key(api_key),))
    if not row:
        return None
    check_and_reset_spend(row['id'])
    return get_agency(row['id'])


def list_agencies(status: Optional[str] = None) -> List[dict]:
    if status:
        return fetch_all(
            f"SELECT {_AGENCY_COLUMNS} FROM agencies WHERE subscription_status = ? ORDER BY created_at",
            (status,)
        )
    return fetch_all(f"SELECT {_AGENCY_COLUMNS} FROM agencies ORDER BY created_at")


def change_plan(agency_id: str, plan_type: str, billing_cycle: Optional[str] = None) -> dict:
    """Move an agency to another plan, resetting the window if the cycle changes"""
    agency = get_agency(agency_id)
    if not agency:
        raise NotFoundError("Agency not found")
    if plan_type not in AGENCY_PLANS:
        raise ValidationError(f"Unknown plan '{plan_type}'")
    if billing_cycle and billing_cycle not in BILLING_CYCLES:
        raise ValidationError(f"Unknown billing cycle '{billing_cycle}'")

    execute_query(
        "UPDATE agencies SET plan_type = ?, monthly_budget = ?, updated_at = ? WHERE id = ?",
        (plan_type, AGENCY_PLANS[plan_type]['monthly_budget'], now_iso(), agency_id)
    )

    if billing_cycle and billing_cycle != agency['billing_cycle']:
        initialize_agency_billing(agency_id, billing_cycle)

    return get_agency(agency_id)


# ============================================================================
# BILLING WINDOW
# ============================================================================

def get_next_billing_date(start_date: str, cycle_type: str = 'monthly') -> str:
    """Calculate next billing date"""
    start = datetime.fromisoformat(start_date)

    if cycle_type == 'monthly':
        month = start.month + 1
        year = start.year
        if month > 12:
            month = 1
            year += 1
        last_day = calendar.monthrange(year, month)[1]
        day = min(start.day, last_day)
        next_date = start.replace(year=year, month=month, day=day)
    else:  # yearly
        last_day = calendar.monthrange(start.year + 1, start.month)[1]
        next_date = start.replace(year=start.year + 1, day=min(start.day, last_day))

    return next_date.isoformat()


def initialize_agency_billing(agency_id: str, billing_cycle: str = 'monthly'):
    """Open a fresh billing window starting now"""
    now = datetime.now()
    billing_start = now.isoformat()
    billing_end = get_next_billing_date(billing_start, billing_cycle)

    execute_query(
        """UPDATE agencies
           SET billing_start = ?, billing_end = ?, last_reset = ?, billing_cycle = ?, spend = 0
           WHERE id = ?""",
        (billing_start, billing_end, billing_start, billing_cycle, agency_id)
    )


def check_and_reset_spend(agency_id: str):
    """Check if the billing window ended and reset spend"""
    agency = get_agency(agency_id)
    if not agency or not agency.get('billing_end'):
        return

    now = datetime.now()
    if now > datetime.fromisoformat(agency['billing_end']):
        logger.info("Billing window ended for agency %s (spent $%.2f), resetting",
                    agency_id, agency['spend'])
        new_start = now.isoformat()
        new_end = get_next_billing_date(new_start, agency['billing_cycle'])
        execute_query(
            """UPDATE agencies
               SET billing_start = ?, billing_end = ?, last_reset = ?, spend = 0
               WHERE id = ?""",
            (new_start, new_end, new_start, agency_id)
        )


# ============================================================================
# SPEND TRACKING
# ============================================================================

def check_budget(agency_id: str) -> tuple:
    """Check whether the agency may make further paid API calls"""
    agency = get_agency(agency_id)
    if not agency:
        return False, {'error': 'agency_not_found'}

    if agency['subscription_status'] != 'active':
        return False, {
            'error': 'subscription_inactive',
            'status': agency['subscription_status']
        }

    days_left = (datetime.fromisoformat(agency['billing_end']) - datetime.now()).days
    remaining = round(agency['monthly_budget'] - agency['spend'], 4)

    if remaining <= 0:
        return False, {
            'error': 'budget_exceeded',
            'spend': agency['spend'],
            'budget': agency['monthly_budget'],
            'days_left': days_left,
            'billing_end': agency['billing_end'],
            'message': f"API budget exceeded. Spent ${agency['spend']:.2f} of ${agency['monthly_budget']:.2f}"
        }

    return True, {
        'spend': agency['spend'],
        'budget': agency['monthly_budget'],
        'remaining': remaining,
        'days_left': days_left,
        'billing_end': agency['billing_end']
    }


def record_spend(agency_id: str, client_id: Optional[str], endpoint: str, cost: float):
    """Log an upstream API charge against the agency's window"""
    execute_query(
        """INSERT INTO api_usage (id, agency_id, client_id, endpoint, cost, timestamp, billing_cycle)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (new_id(), agency_id, client_id, endpoint, cost, now_iso(), current_billing_cycle())
    )

    if cost:
        execute_query(
            "UPDATE agencies SET spend = spend + ?, updated_at = ? WHERE id = ?",
            (cost, now_iso(), agency_id)
        )


def get_usage_summary(agency_id: str) -> dict:
    """Spend in the current window, broken down by endpoint and client"""
    agency = get_agency(agency_id)
    if not agency:
        raise NotFoundError("Agency not found")

    by_endpoint = fetch_all(
        """SELECT endpoint, COUNT(*) AS calls, ROUND(SUM(cost), 4) AS cost
           FROM api_usage WHERE agency_id = ? AND timestamp >= ?
           GROUP BY endpoint ORDER BY cost DESC""",
        (agency_id, agency['billing_start'])
    )
    by_client = fetch_all(
        """SELECT u.client_id, c.name, ROUND(SUM(u.cost), 4) AS cost
           FROM api_usage u LEFT JOIN clients c ON c.id = u.client_id
           WHERE u.agency_id = ? AND u.timestamp >= ? AND u.client_id IS NOT NULL
           GROUP BY u.client_id ORDER BY cost DESC""",
        (agency_id, agency['billing_start'])
    )

    budget = agency['monthly_budget']
    days_left = (datetime.fromisoformat(agency['billing_end']) - datetime.now()).days

    return {
        'agency_id': agency_id,
        'plan_type': agency['plan_type'],
        'billing_cycle': agency['billing_cycle'],
        'billing_start': agency['billing_start'],
        'billing_end': agency['billing_end'],
        'days_left': max(0, days_left),
        'spend': round(agency['spend'], 4),
        'budget': budget,
        'remaining': round(max(0.0, budget - agency['spend']), 4),
        'percentage_used': round(agency['spend'] / budget * 100, 2) if budget > 0 else 0,
        'by_endpoint': by_endpoint,
        'by_client': by_client,
        'alerts': check_usage_alerts(agency_id),
    }


def check_usage_alerts(agency_id: str) -> List[dict]:
    """Budget alerts at 80% and 100% of the window budget"""
    agency = get_agency(agency_id)
    if not agency or agency['monthly_budget'] <= 0:
        return []

    ratio = agency['spend'] / agency['monthly_budget']
    if ratio >= 1:
        return [{
            'level': 'critical',
            'message': f"API budget exhausted (${agency['spend']:.2f} of ${agency['monthly_budget']:.2f})"
        }]
    if ratio >= ALERT_WARNING_RATIO:
        return [{
            'level': 'warning',
            'message': f"{ratio * 100:.0f}% of API budget used"
        }]
    return []


def require_budget(agency_id: str) -> dict:
    """Raise BudgetExceededError unless the agency may spend on paid API calls"""
    allowed, info = check_budget(agency_id)
    if not allowed:
        if info.get('error') == 'agency_not_found':
            raise NotFoundError("Agency not found")
        raise BudgetExceededError(info.get('message') or info['error'])
    return info
