import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, List, Optional

from .config import Config

logger = logging.getLogger(__name__)


def get_connection():
    """Get database connection"""
    conn = sqlite3.connect(Config.DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


def init_db():
    """Initialize database schema"""
    conn = get_connection()
    c = conn.cursor()

    # Agencies (API key holders) with budget window
    c.execute('''
        CREATE TABLE IF NOT EXISTS agencies (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            email TEXT NOT NULL UNIQUE,
            api_key TEXT UNIQUE,
            plan_type TEXT DEFAULT 'starter',
            billing_cycle TEXT DEFAULT 'monthly',
            monthly_budget REAL NOT NULL,
            spend REAL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT,
            billing_start TEXT,
            billing_end TEXT,
            last_reset TEXT,
            subscription_status TEXT DEFAULT 'active'
        )
    ''')

    c.execute('''
        CREATE TABLE IF NOT EXISTS clients (
            id TEXT PRIMARY KEY,
            agency_id TEXT NOT NULL,
            name TEXT NOT NULL,
            website TEXT NOT NULL,
            domain TEXT NOT NULL,
            industry TEXT,
            status TEXT DEFAULT 'active',
            service_tier TEXT DEFAULT 'Starter',
            created_at TEXT NOT NULL,
            updated_at TEXT,
            last_audit_id TEXT,
            last_audit_score REAL,
            last_audit_at TEXT,
            next_audit_at TEXT,
            last_rank_check_at TEXT,
            FOREIGN KEY (agency_id) REFERENCES agencies (id),
            UNIQUE(agency_id, domain)
        )
    ''')

    c.execute('''
        CREATE TABLE IF NOT EXISTS competitors (
            id TEXT PRIMARY KEY,
            client_id TEXT NOT NULL,
            domain TEXT NOT NULL,
            name TEXT NOT NULL,
            added_at TEXT NOT NULL,
            last_analysis TEXT,
            FOREIGN KEY (client_id) REFERENCES clients (id),
            UNIQUE(client_id, domain)
        )
    ''')

    c.execute('''
        CREATE TABLE IF NOT EXISTS competitor_snapshots (
            id TEXT PRIMARY KEY,
            competitor_id TEXT NOT NULL,
            organic_keywords INTEGER DEFAULT 0,
            organic_traffic REAL DEFAULT 0,
            paid_keywords INTEGER DEFAULT 0,
            backlinks INTEGER DEFAULT 0,
            referring_domains INTEGER DEFAULT 0,
            domain_rating REAL DEFAULT 0,
            captured_at TEXT NOT NULL,
            FOREIGN KEY (competitor_id) REFERENCES competitors (id)
        )
    ''')

    c.execute('''
        CREATE TABLE IF NOT EXISTS tracked_keywords (
            id TEXT PRIMARY KEY,
            client_id TEXT NOT NULL,
            keyword TEXT NOT NULL,
            volume INTEGER DEFAULT 0,
            difficulty INTEGER DEFAULT 0,
            cpc REAL DEFAULT 0,
            url TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT,
            FOREIGN KEY (client_id) REFERENCES clients (id),
            UNIQUE(client_id, keyword)
        )
    ''')

    c.execute('''
        CREATE TABLE IF NOT EXISTS ranking_history (
            id TEXT PRIMARY KEY,
            keyword_id TEXT NOT NULL,
            rank INTEGER NOT NULL,
            url TEXT,
            serp_features TEXT,
            estimated_traffic INTEGER DEFAULT 0,
            checked_at TEXT NOT NULL,
            FOREIGN KEY (keyword_id) REFERENCES tracked_keywords (id)
        )
    ''')

    c.execute('''
        CREATE TABLE IF NOT EXISTS keyword_gaps (
            id TEXT PRIMARY KEY,
            client_id TEXT NOT NULL,
            competitor_id TEXT NOT NULL,
            keyword TEXT NOT NULL,
            client_rank INTEGER,
            competitor_rank INTEGER NOT NULL,
            search_volume INTEGER DEFAULT 0,
            difficulty INTEGER DEFAULT 0,
            cpc REAL DEFAULT 0,
            gap_type TEXT NOT NULL,
            opportunity INTEGER NOT NULL,
            created_at TEXT NOT NULL,
            FOREIGN KEY (client_id) REFERENCES clients (id),
            FOREIGN KEY (competitor_id) REFERENCES competitors (id)
        )
    ''')

    c.execute('''
        CREATE TABLE IF NOT EXISTS audit_runs (
            id TEXT PRIMARY KEY,
            client_id TEXT NOT NULL,
            overall_score INTEGER NOT NULL,
            technical_score INTEGER NOT NULL,
            content_score INTEGER NOT NULL,
            backlink_score INTEGER DEFAULT 0,
            ux_score INTEGER NOT NULL,
            pages_analyzed INTEGER DEFAULT 0,
            source TEXT DEFAULT 'api',
            api_cost REAL DEFAULT 0,
            duration_ms INTEGER,
            created_at TEXT NOT NULL,
            FOREIGN KEY (client_id) REFERENCES clients (id)
        )
    ''')

    c.execute('''
        CREATE TABLE IF NOT EXISTS technical_issues (
            id TEXT PRIMARY KEY,
            audit_id TEXT NOT NULL,
            issue_type TEXT NOT NULL,
            severity TEXT NOT NULL,
            category TEXT NOT NULL,
            title TEXT NOT NULL,
            description TEXT,
            url TEXT,
            how_to_fix TEXT,
            FOREIGN KEY (audit_id) REFERENCES audit_runs (id)
        )
    ''')

    c.execute('''
        CREATE TABLE IF NOT EXISTS meta_tags (
            id TEXT PRIMARY KEY,
            audit_id TEXT NOT NULL,
            page_url TEXT NOT NULL,
            current_title TEXT,
            current_desc TEXT,
            recommended_title TEXT,
            recommended_desc TEXT,
            missing_tags TEXT,
            FOREIGN KEY (audit_id) REFERENCES audit_runs (id)
        )
    ''')

    c.execute('''
        CREATE TABLE IF NOT EXISTS content_scores (
            id TEXT PRIMARY KEY,
            audit_id TEXT NOT NULL,
            page_url TEXT NOT NULL,
            quality_score INTEGER,
            readability REAL DEFAULT 0,
            word_count INTEGER DEFAULT 0,
            keyword_density REAL DEFAULT 0,
            internal_links INTEGER DEFAULT 0,
            external_links INTEGER DEFAULT 0,
            images INTEGER DEFAULT 0,
            missing_alt_tags INTEGER DEFAULT 0,
            recommendations TEXT,
            FOREIGN KEY (audit_id) REFERENCES audit_runs (id)
        )
    ''')

    c.execute('''
        CREATE TABLE IF NOT EXISTS content_briefs (
            id TEXT PRIMARY KEY,
            client_id TEXT NOT NULL,
            keyword TEXT NOT NULL,
            target_word_count INTEGER,
            brief_data TEXT NOT NULL,
            serp_analysis TEXT,
            status TEXT DEFAULT 'draft',
            created_at TEXT NOT NULL,
            updated_at TEXT,
            FOREIGN KEY (client_id) REFERENCES clients (id)
        )
    ''')

    c.execute('''
        CREATE TABLE IF NOT EXISTS page_optimizations (
            id TEXT PRIMARY KEY,
            client_id TEXT NOT NULL,
            url TEXT NOT NULL,
            target_keyword TEXT NOT NULL,
            current_score INTEGER,
            recommendations TEXT,
            competitor_data TEXT,
            created_at TEXT NOT NULL,
            FOREIGN KEY (client_id) REFERENCES clients (id)
        )
    ''')

    c.execute('''
        CREATE TABLE IF NOT EXISTS tasks (
            id TEXT PRIMARY KEY,
            client_id TEXT NOT NULL,
            audit_id TEXT,
            title TEXT NOT NULL,
            description TEXT,
            priority TEXT DEFAULT 'medium',
            status TEXT DEFAULT 'pending',
            ai_generated INTEGER DEFAULT 0,
            estimated_hours REAL,
            created_at TEXT NOT NULL,
            updated_at TEXT,
            completed_at TEXT,
            FOREIGN KEY (client_id) REFERENCES clients (id)
        )
    ''')

    # API usage with billing cycle tracking
    c.execute('''
        CREATE TABLE IF NOT EXISTS api_usage (
            id TEXT PRIMARY KEY,
            agency_id TEXT NOT NULL,
            client_id TEXT,
            endpoint TEXT NOT NULL,
            cost REAL NOT NULL,
            timestamp TEXT NOT NULL,
            billing_cycle TEXT,
            FOREIGN KEY (agency_id) REFERENCES agencies (id)
        )
    ''')

    # Upstream response cache
    c.execute('''
        CREATE TABLE IF NOT EXISTS api_cache (
            cache_key TEXT PRIMARY KEY,
            method TEXT NOT NULL,
            response TEXT NOT NULL,
            created_at TEXT NOT NULL,
            expires_at TEXT NOT NULL
        )
    ''')

    c.execute('''
        CREATE TABLE IF NOT EXISTS job_runs (
            id TEXT PRIMARY KEY,
            client_id TEXT NOT NULL,
            job_type TEXT NOT NULL,
            status TEXT NOT NULL,
            attempt INTEGER DEFAULT 1,
            error TEXT,
            started_at TEXT NOT NULL,
            finished_at TEXT
        )
    ''')

    # Indexes
    c.execute('CREATE INDEX IF NOT EXISTS idx_agencies_api_key ON agencies(api_key)')
    c.execute('CREATE INDEX IF NOT EXISTS idx_clients_agency ON clients(agency_id)')
    c.execute('CREATE INDEX IF NOT EXISTS idx_competitors_client ON competitors(client_id)')
    c.execute('CREATE INDEX IF NOT EXISTS idx_snapshots_competitor ON competitor_snapshots(competitor_id, captured_at)')
    c.execute('CREATE INDEX IF NOT EXISTS idx_keywords_client ON tracked_keywords(client_id)')
    c.execute('CREATE INDEX IF NOT EXISTS idx_rankings_keyword ON ranking_history(keyword_id, checked_at)')
    c.execute('CREATE INDEX IF NOT EXISTS idx_gaps_client ON keyword_gaps(client_id, competitor_id)')
    c.execute('CREATE INDEX IF NOT EXISTS idx_audits_client ON audit_runs(client_id, created_at)')
    c.execute('CREATE INDEX IF NOT EXISTS idx_tasks_client ON tasks(client_id, status)')
    c.execute('CREATE INDEX IF NOT EXISTS idx_usage_agency_cycle ON api_usage(agency_id, billing_cycle)')
    c.execute('CREATE INDEX IF NOT EXISTS idx_cache_expires ON api_cache(expires_at)')

    conn.commit()
    conn.close()

    logger.info("Database initialized at %s", Config.DB_PATH)


@contextmanager
def transaction():
    """Connection whose statements commit together or not at all"""
    conn = get_connection()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        logger.warning("Transaction rolled back")
        raise
    finally:
        conn.close()


def execute_query(query: str, params: tuple = (), fetch: bool = False, conn=None) -> List[Any]:
    """Execute query with automatic connection handling.

    With ``conn`` the statement joins that open transaction and is committed
    by whoever owns it.
    """
    if conn is not None:
        c = conn.execute(query, params)
        return [tuple(r) for r in c.fetchall()] if fetch else []

    conn = None
    try:
        conn = get_connection()
        c = conn.cursor()
        c.execute(query, params)

        if fetch:
            results = c.fetchall()
            conn.commit()
            return [tuple(r) for r in results]
        else:
            conn.commit()
            return []
    except Exception:
        if conn:
            conn.rollback()
        logger.exception("Database error running: %s", query.split('\n')[0].strip())
        raise
    finally:
        if conn:
            conn.close()


def fetch_all(query: str, params: tuple = (), conn=None) -> List[dict]:
    """Run a SELECT and return rows as dicts"""
    if conn is not None:
        return [dict(r) for r in conn.execute(query, params).fetchall()]
    conn = get_connection()
    try:
        return [dict(r) for r in conn.execute(query, params).fetchall()]
    finally:
        conn.close()


def fetch_one(query: str, params: tuple = (), conn=None) -> Optional[dict]:
    rows = fetch_all(query, params, conn=conn)
    return rows[0] if rows else None


def new_id() -> str:
    return str(uuid.uuid4())


def now_iso() -> str:
    return datetime.now().isoformat()


def current_billing_cycle() -> str:
    """Get current billing cycle (YYYY-MM)"""
    return datetime.now().strftime('%Y-%m')
