"""
Agency work items per client

Tasks are raised by hand or generated from audit findings, then move through
a small approval workflow before they are worked and closed.
"""

import logging
from typing import List, Optional

from .errors import NotFoundError, ValidationError
from .models import execute_query, fetch_all, fetch_one, new_id, now_iso

logger = logging.getLogger(__name__)

TASK_PRIORITIES = ['critical', 'high', 'medium', 'low']
TASK_STATUSES = ['pending', 'approved', 'rejected', 'in-progress', 'completed']

TRANSITIONS = {
    'pending': {'approved', 'rejected'},
    'approved': {'in-progress'},
    'in-progress': {'completed'},
    'rejected': set(),
    'completed': set(),
}

# Generated tasks: issue severity -> (priority, estimated hours)
SEVERITY_TASKS = {
    'error': ('high', 2.0),
    'warning': ('medium', 1.0),
}

_TASK_COLUMNS = """t.id, t.client_id, t.audit_id, t.title, t.description, t.priority, t.status,
                   t.ai_generated, t.estimated_hours, t.created_at, t.updated_at, t.completed_at"""


def _row(task: dict) -> dict:
    task['ai_generated'] = bool(task['ai_generated'])
    return task


def create_task(client_id: str, title: str, description: str = None, priority: str = 'medium',
                estimated_hours: float = None, audit_id: str = None, ai_generated: bool = False,
                conn=None) -> dict:
    if not title:
        raise ValidationError("Task title is required")
    if priority not in TASK_PRIORITIES:
        raise ValidationError(f"Unknown priority '{priority}'")

    task_id = new_id()
    execute_query(
        """INSERT INTO tasks (id, client_id, audit_id, title, description, priority, status,
                              ai_generated, estimated_hours, created_at)
           VALUES (?, ?, ?, ?, ?, ?, 'pending', ?, ?, ?)""",
        (task_id, client_id, audit_id, title, description, priority,
         1 if ai_generated else 0, estimated_hours, now_iso()),
        conn=conn
    )
    return get_task(task_id, conn=conn)


def get_task(task_id: str, agency_id: str = None, conn=None) -> dict:
    query = f"SELECT {_TASK_COLUMNS} FROM tasks t JOIN clients c ON c.id = t.client_id WHERE t.id = ?"
    params = [task_id]
    if agency_id:
        query += " AND c.agency_id = ?"
        params.append(agency_id)

    task = fetch_one(query, tuple(params), conn=conn)
    if not task:
        raise NotFoundError("Task not found")
    return _row(task)


def list_tasks(client_id: str, status: Optional[str] = None) -> List[dict]:
    query = f"SELECT {_TASK_COLUMNS} FROM tasks t WHERE t.client_id = ?"
    params = [client_id]
    if status:
        query += " AND t.status = ?"
        params.append(status)

    query += """ ORDER BY CASE t.priority WHEN 'critical' THEN 0 WHEN 'high' THEN 1
                 WHEN 'medium' THEN 2 ELSE 3 END, t.created_at DESC"""
    return [_row(t) for t in fetch_all(query, tuple(params))]


def update_task_status(task_id: str, status: str, agency_id: str = None) -> dict:
    """Move a task along its workflow"""
    task = get_task(task_id, agency_id)

    if status not in TASK_STATUSES:
        raise ValidationError(f"Unknown task status '{status}'")
    if status not in TRANSITIONS[task['status']]:
        raise ValidationError(f"Cannot move task from '{task['status']}' to '{status}'")

    now = now_iso()
    execute_query(
        "UPDATE tasks SET status = ?, updated_at = ?, completed_at = ? WHERE id = ?",
        (status, now, now if status == 'completed' else None, task_id)
    )
    logger.info("Task %s: %s -> %s", task_id, task['status'], status)

    return get_task(task_id)


def generate_tasks_from_issues(client_id: str, audit_id: str, issues: List[dict],
                               severities=('error',), conn=None) -> List[dict]:
    """One pending task per distinct issue type at the given severities"""
    created = []
    seen = set()

    for issue in issues:
        if issue['severity'] not in severities or issue['issue_type'] in seen:
            continue
        seen.add(issue['issue_type'])

        open_task = fetch_one(
            """SELECT id FROM tasks
               WHERE client_id = ? AND title = ? AND status IN ('pending', 'approved', 'in-progress')""",
            (client_id, issue['title']),
            conn=conn
        )
        if open_task:
            continue

        priority, hours = SEVERITY_TASKS.get(issue['severity'], ('low', 0.5))
        created.append(create_task(
            client_id,
            issue['title'],
            description=f"{issue['description']}\n\n{issue.get('how_to_fix') or ''}".strip(),
            priority=priority,
            estimated_hours=hours,
            audit_id=audit_id,
            ai_generated=True,
            conn=conn,
        ))

    if created:
        logger.info("Generated %d tasks for client %s from audit %s", len(created), client_id, audit_id)
    return created
