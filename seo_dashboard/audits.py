"""
Site audits: run, persist and compare.

An audit scores the client's site with the audit engine, stores the run with
its technical issues, meta tag findings and content scores, moves the
client's next audit date forward by its tier interval, books the API spend
against the agency and raises tasks for error-level issues. Everything but
the spend is written in a single transaction.
"""

import logging
from datetime import datetime
from typing import List

from . import agencies, clients, tasks
from .crawler import Crawler
from .engine import AuditEngine
from .errors import NotFoundError, ValidationError
from .models import execute_query, fetch_all, fetch_one, new_id, now_iso, transaction

logger = logging.getLogger(__name__)

AUDIT_SOURCES = ('api', 'crawl')
SCORE_FIELDS = ('overall_score', 'technical_score', 'content_score', 'backlink_score', 'ux_score')

_AUDIT_COLUMNS = """a.id, a.client_id, a.overall_score, a.technical_score, a.content_score,
                    a.backlink_score, a.ux_score, a.pages_analyzed, a.source, a.api_cost,
                    a.duration_ms, a.created_at"""


def _store_audit(conn, client: dict, audit_id: str, created_at: str, source: str,
                 api_cost: float, result: dict) -> List[dict]:
    """Write the run, its findings, the client's audit dates and follow-up tasks"""
    execute_query(
        """INSERT INTO audit_runs (id, client_id, overall_score, technical_score, content_score,
                                   backlink_score, ux_score, pages_analyzed, source, api_cost,
                                   duration_ms, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (audit_id, client['id'], result['overall_score'], result['technical_score'],
         result['content_score'], result['backlink_score'], result['ux_score'],
         result['pages_analyzed'], source, api_cost, result['duration_ms'], created_at),
        conn=conn
    )

    for issue in result['technical_issues']:
        execute_query(
            """INSERT INTO technical_issues (id, audit_id, issue_type, severity, category, title,
                                             description, url, how_to_fix)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (new_id(), audit_id, issue['issue_type'], issue['severity'], issue['category'],
             issue['title'], issue['description'], issue['url'], issue['how_to_fix']),
            conn=conn
        )

    for tag in result['meta_tags']:
        if not tag['page_url']:
            continue
        execute_query(
            """INSERT INTO meta_tags (id, audit_id, page_url, current_title, current_desc,
                                      recommended_title, recommended_desc, missing_tags)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (new_id(), audit_id, tag['page_url'], tag['current_title'], tag['current_desc'],
             tag['recommended_title'], tag['recommended_desc'], tag['missing_tags']),
            conn=conn
        )

    for score in result['content_scores']:
        execute_query(
            """INSERT INTO content_scores (id, audit_id, page_url, quality_score, readability,
                                           word_count, keyword_density, internal_links,
                                           external_links, images, missing_alt_tags, recommendations)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (new_id(), audit_id, score['page_url'], score['quality_score'], score['readability'],
             score['word_count'], 0, score['internal_links'], score['external_links'],
             score['images'], score['missing_alt_tags'], score['recommendations']),
            conn=conn
        )

    execute_query(
        """UPDATE clients
           SET last_audit_id = ?, last_audit_score = ?, last_audit_at = ?, next_audit_at = ?
           WHERE id = ?""",
        (audit_id, result['overall_score'], created_at,
         clients.next_audit_date(client['service_tier'], datetime.fromisoformat(created_at)),
         client['id']),
        conn=conn
    )

    return tasks.generate_tasks_from_issues(client['id'], audit_id, result['technical_issues'],
                                            conn=conn)


def run_full_audit(client: dict, api, source: str = 'api', crawler: Crawler = None,
                   max_pages: int = None) -> dict:
    """Audit a client's website and persist the results"""
    if source not in AUDIT_SOURCES:
        raise ValidationError(f"Unknown audit source '{source}'")

    logger.info("Starting %s audit for %s", source, client['website'])
    result = AuditEngine(api, crawler=crawler).run(client['website'], source=source, max_pages=max_pages)
    api_cost = api.reset_cost()
    agencies.record_spend(client['agency_id'], client['id'], 'full-audit', api_cost)

    audit_id = new_id()
    created_at = now_iso()
    with transaction() as conn:
        generated = _store_audit(conn, client, audit_id, created_at, source, api_cost, result)

    logger.info("Audit %s completed in %dms, API cost: $%.2f",
                audit_id, result['duration_ms'], api_cost)

    return {
        'success': True,
        'auditId': audit_id,
        'overallScore': result['overall_score'],
        'technicalScore': result['technical_score'],
        'contentScore': result['content_score'],
        'uxScore': result['ux_score'],
        'pagesAnalyzed': result['pages_analyzed'],
        'technicalIssuesCount': len(result['technical_issues']),
        'metaTagIssuesCount': sum(1 for t in result['meta_tags'] if t['missing_tags']),
        'tasksCreated': len(generated),
        'source': source,
        'apiCost': api_cost,
        'duration': result['duration_ms'],
    }


def get_audit(audit_id: str, agency_id: str = None) -> dict:
    """Audit run with its issues, meta tags, content scores and client"""
    query = f"SELECT {_AUDIT_COLUMNS} FROM audit_runs a JOIN clients c ON c.id = a.client_id WHERE a.id = ?"
    params = [audit_id]
    if agency_id:
        query += " AND c.agency_id = ?"
        params.append(agency_id)

    audit = fetch_one(query, tuple(params))
    if not audit:
        raise NotFoundError("Audit not found")

    audit['technical_issues'] = fetch_all(
        """SELECT id, issue_type, severity, category, title, description, url, how_to_fix
           FROM technical_issues WHERE audit_id = ?
           ORDER BY CASE severity WHEN 'error' THEN 0 WHEN 'warning' THEN 1 ELSE 2 END""",
        (audit_id,)
    )
    audit['meta_tags'] = fetch_all(
        """SELECT id, page_url, current_title, current_desc, recommended_title, recommended_desc,
                  missing_tags
           FROM meta_tags WHERE audit_id = ?""",
        (audit_id,)
    )
    audit['content_scores'] = fetch_all(
        """SELECT id, page_url, quality_score, readability, word_count, keyword_density,
                  internal_links, external_links, images, missing_alt_tags, recommendations
           FROM content_scores WHERE audit_id = ?""",
        (audit_id,)
    )
    client = clients.get_client(audit['client_id'])
    audit['client'] = {k: client[k] for k in ('id', 'name', 'website', 'domain', 'service_tier')}
    return audit


def list_audits(client_id: str, limit: int = 50) -> List[dict]:
    audits = fetch_all(
        f"SELECT {_AUDIT_COLUMNS} FROM audit_runs a WHERE a.client_id = ? ORDER BY a.created_at DESC LIMIT ?",
        (client_id, limit)
    )
    counts = dict(execute_query(
        """SELECT audit_id, COUNT(*) FROM technical_issues
           WHERE audit_id IN (SELECT id FROM audit_runs WHERE client_id = ?)
           GROUP BY audit_id""",
        (client_id,),
        fetch=True
    ))
    for audit in audits:
        audit['issues_count'] = counts.get(audit['id'], 0)
    return audits


def compare_audits(base_id: str, target_id: str, agency_id: str = None) -> dict:
    """Score deltas and issue churn from one audit to another of the same client"""
    base = get_audit(base_id, agency_id)
    target = get_audit(target_id, agency_id)
    if base['client_id'] != target['client_id']:
        raise ValidationError("Audits belong to different clients")

    base_types = {i['issue_type'] for i in base['technical_issues']}
    target_types = {i['issue_type'] for i in target['technical_issues']}

    return {
        'clientId': base['client_id'],
        'base': {'id': base_id, 'created_at': base['created_at']},
        'target': {'id': target_id, 'created_at': target['created_at']},
        'changes': {field: target[field] - base[field] for field in SCORE_FIELDS},
        'resolvedIssues': sorted(base_types - target_types),
        'newIssues': sorted(target_types - base_types),
        'persistingIssues': sorted(base_types & target_types),
    }
