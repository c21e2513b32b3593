#!/usr/bin/env python3
"""
Periodic audit and rank-check runner.

Finds clients whose next audit is due or whose keyword rankings are older
than their service tier allows, and runs those jobs with retries and
exponential backoff. Every attempt is recorded in ``job_runs``.

Usage:
    python -m seo_dashboard.scheduler                 # run due jobs once
    python -m seo_dashboard.scheduler --loop --interval 3600
"""

import argparse
import logging
import signal
import time
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from . import agencies, audits, clients, keywords
from .config import Config, configure_logging
from .dataforseo import DataForSEOClient, get_client
from .errors import BudgetExceededError, DashboardError
from .models import execute_query, fetch_all, init_db, new_id, now_iso

logger = logging.getLogger(__name__)

JOB_AUDIT = 'audit'
JOB_RANK_CHECK = 'rank-check'

DEFAULT_INTERVAL = 3600

shutdown_requested = False


def signal_handler(signum, frame):
    global shutdown_requested
    logger.info("Received signal %s, finishing current cycle", signum)
    shutdown_requested = True


# ============================================================================
# JOB DISCOVERY
# ============================================================================

def find_due_jobs(now: datetime = None) -> List[dict]:
    """Audit and rank-check jobs due for active clients of active agencies"""
    now = now or datetime.now()

    candidates = fetch_all(
        """SELECT c.id, c.service_tier, c.next_audit_at, c.last_rank_check_at,
                  (SELECT COUNT(*) FROM tracked_keywords k WHERE k.client_id = c.id) AS keyword_count
           FROM clients c JOIN agencies a ON a.id = c.agency_id
           WHERE c.status = 'active' AND a.subscription_status = 'active'
           ORDER BY c.created_at"""
    )

    jobs = []
    for client in candidates:
        if not client['next_audit_at'] or datetime.fromisoformat(client['next_audit_at']) <= now:
            jobs.append({'client_id': client['id'], 'job_type': JOB_AUDIT})

        if client['keyword_count']:
            interval = clients.get_tier_limits(client['service_tier'])['rank_check_interval_days']
            last = client['last_rank_check_at']
            if not last or datetime.fromisoformat(last) <= now - timedelta(days=interval):
                jobs.append({'client_id': client['id'], 'job_type': JOB_RANK_CHECK})

    return jobs


# ============================================================================
# EXECUTION
# ============================================================================

def _execute(job: dict, api: DataForSEOClient) -> dict:
    client = clients.get_client(job['client_id'])
    agencies.require_budget(client['agency_id'])

    if job['job_type'] == JOB_AUDIT:
        return audits.run_full_audit(client, api)

    if job['job_type'] == JOB_RANK_CHECK:
        tracked = [k['keyword'] for k in keywords.list_tracked_keywords(client['id'])]
        return keywords.track_keywords(client, tracked, api)

    raise DashboardError(f"Unknown job type '{job['job_type']}'")


def _start_run(job: dict, attempt: int) -> str:
    run_id = new_id()
    execute_query(
        """INSERT INTO job_runs (id, client_id, job_type, status, attempt, started_at)
           VALUES (?, ?, ?, 'running', ?, ?)""",
        (run_id, job['client_id'], job['job_type'], attempt, now_iso())
    )
    return run_id


def _finish_run(run_id: str, status: str, error: str = None):
    execute_query(
        "UPDATE job_runs SET status = ?, error = ?, finished_at = ? WHERE id = ?",
        (status, error, now_iso(), run_id)
    )


def run_job(job: dict, api: DataForSEOClient, max_attempts: int = None,
            backoff: float = None, sleep: Callable[[float], None] = time.sleep) -> dict:
    """Run one job, retrying failures with exponential backoff"""
    max_attempts = max(1, Config.MAX_RETRIES if max_attempts is None else max_attempts)
    backoff = Config.RETRY_BACKOFF if backoff is None else backoff
    error = None

    for attempt in range(1, max_attempts + 1):
        api.reset_cost()
        run_id = _start_run(job, attempt)
        try:
            result = _execute(job, api)
        except BudgetExceededError as e:
            logger.warning("Skipping %s for client %s: %s", job['job_type'], job['client_id'], e)
            _finish_run(run_id, 'skipped', str(e))
            return {**job, 'status': 'skipped', 'attempts': attempt, 'error': str(e)}
        except DashboardError as e:
            logger.error("%s for client %s failed: %s", job['job_type'], job['client_id'], e)
            _finish_run(run_id, 'failed', str(e))
            return {**job, 'status': 'failed', 'attempts': attempt, 'error': str(e)}
        except Exception as e:
            error = str(e) or e.__class__.__name__
            logger.error("%s for client %s failed (attempt %d/%d): %s",
                         job['job_type'], job['client_id'], attempt, max_attempts, error)
            _finish_run(run_id, 'failed', error)
            if attempt < max_attempts:
                sleep(backoff * 2 ** (attempt - 1))
            continue

        _finish_run(run_id, 'succeeded')
        return {**job, 'status': 'succeeded', 'attempts': attempt,
                'apiCost': result.get('apiCost', 0)}

    return {**job, 'status': 'failed', 'attempts': max_attempts, 'error': error}


def run_due_jobs(api: DataForSEOClient = None, now: datetime = None, **kwargs) -> dict:
    api = api or get_client()
    jobs = find_due_jobs(now)
    results = [run_job(job, api, **kwargs) for job in jobs]

    summary = {
        'total': len(results),
        'succeeded': sum(1 for r in results if r['status'] == 'succeeded'),
        'failed': sum(1 for r in results if r['status'] == 'failed'),
        'skipped': sum(1 for r in results if r['status'] == 'skipped'),
        'jobs': results,
    }
    logger.info("Ran %d jobs: %d succeeded, %d failed, %d skipped",
                summary['total'], summary['succeeded'], summary['failed'], summary['skipped'])
    return summary


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(description="Run due SEO audits and rank checks")
    parser.add_argument('--loop', action='store_true', help="keep running, checking every --interval seconds")
    parser.add_argument('--interval', type=int, default=DEFAULT_INTERVAL, help="seconds between cycles")
    args = parser.parse_args(argv)

    configure_logging()
    Config.validate()
    init_db()

    if not args.loop:
        run_due_jobs()
        return

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)
    logger.info("Scheduler started, interval %ss", args.interval)

    while not shutdown_requested:
        run_due_jobs()
        DataForSEOClient.purge_expired_cache()

        waited = 0
        while waited < args.interval and not shutdown_requested:
            time.sleep(1)
            waited += 1

    logger.info("Scheduler stopped")


if __name__ == "__main__":
    main()
