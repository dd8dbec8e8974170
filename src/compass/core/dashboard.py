"""Org-level compliance summary: scores, trend, draft progress, task health."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from ..catalog.loader import ControlCatalog
from ..models.assessment import AssessmentStatus
from ..models.control import RiskLevel
from ..models.organization import Actor
from ..models.remediation import TaskStatus
from .branching import applicable_controls, evaluate
from .organizations import get_org
from .store import Store

TREND_LENGTH = 6
ACTIVE_TASK_STATUSES = frozenset({TaskStatus.OPEN, TaskStatus.IN_PROGRESS})


class ScorePoint(BaseModel):
    version: int
    score: float
    finalized_at: Optional[datetime] = None


class ComplianceSummary(BaseModel):
    org_name: str
    current_score: Optional[float] = None
    current_version: Optional[int] = None
    critical_gaps: int = 0
    high_gaps: int = 0
    medium_gaps: int = 0
    low_gaps: int = 0
    trend: list[ScorePoint] = []
    draft_assessment_id: Optional[str] = None
    draft_progress: Optional[int] = None
    tasks_by_status: dict[str, int] = {}
    tasks_by_risk: dict[str, int] = {}
    overdue_tasks: int = 0
    total_tasks: int = 0
    completion_rate: float = 0.0


def compliance_summary(
    store: Store,
    catalog: ControlCatalog,
    actor: Actor,
    now: datetime,
) -> ComplianceSummary:
    org = get_org(store, actor)
    assessments = store.assessments_for_org(org.id)

    scored = sorted(
        (a for a in assessments
         if a.status in (AssessmentStatus.FINALIZED, AssessmentStatus.ARCHIVED)
         and a.overall_score is not None),
        key=lambda a: a.assessment_version,
    )
    latest_final = max(
        (a for a in scored if a.status == AssessmentStatus.FINALIZED),
        key=lambda a: a.assessment_version,
        default=None,
    )

    summary = ComplianceSummary(
        org_name=org.name,
        trend=[
            ScorePoint(version=a.assessment_version, score=a.overall_score, finalized_at=a.finalized_at)
            for a in scored[-TREND_LENGTH:]
        ],
    )
    if latest_final is not None:
        summary.current_score = latest_final.overall_score
        summary.current_version = latest_final.assessment_version
        summary.critical_gaps = latest_final.critical_gaps or 0
        summary.high_gaps = latest_final.high_gaps or 0
        summary.medium_gaps = latest_final.medium_gaps or 0
        summary.low_gaps = latest_final.low_gaps or 0

    draft = max(
        (a for a in assessments if a.is_editable),
        key=lambda a: a.assessment_version,
        default=None,
    )
    if draft is not None:
        total = len(applicable_controls(catalog, org.profile, evaluate(org.profile)))
        answered = len(store.responses_for(draft.id))
        summary.draft_assessment_id = draft.id
        summary.draft_progress = round(answered / total * 100) if total > 0 else 0

    tasks = store.tasks_for_org(org.id)
    summary.total_tasks = len(tasks)
    summary.tasks_by_status = {s.value: 0 for s in TaskStatus}
    summary.tasks_by_risk = {r.value: 0 for r in RiskLevel}
    for task in tasks:
        summary.tasks_by_status[task.status.value] += 1
        summary.tasks_by_risk[task.risk_level.value] += 1
        if task.status in ACTIVE_TASK_STATUSES and task.deadline < now:
            summary.overdue_tasks += 1

    if tasks:
        closed = summary.tasks_by_status[TaskStatus.CLOSED.value]
        summary.completion_rate = round(closed / len(tasks) * 100, 1)
    return summary
