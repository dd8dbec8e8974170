"""Remediation tasks: generation from gaps and the task status workflow.

Tasks are created while the parent assessment's lock is held (see
AssessmentService.submit_response); status changes lock the task row.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional, Protocol

from ..catalog.loader import ControlCatalog
from ..models.assessment import Answer, Assessment
from ..models.control import RISK_PRIORITY, Control, RiskLevel
from ..models.organization import Actor
from ..models.remediation import GapType, RemediationTask, TaskStatus
from .audit import AuditSink, record_audit
from .clock import Clock, new_id, utcnow
from .errors import (
    EvidenceRequiredError,
    ForbiddenError,
    InvalidTransitionError,
    InvalidUserError,
    JustificationRequiredError,
    NotesRequiredError,
    NotFoundError,
    RejectionNoteRequiredError,
    ValidationError,
)
from .scoring import deadline_days
from .store import Store

logger = logging.getLogger(__name__)

TASK_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.OPEN: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.DEFERRED}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.UNDER_REVIEW, TaskStatus.DEFERRED}),
    TaskStatus.UNDER_REVIEW: frozenset({TaskStatus.CLOSED, TaskStatus.IN_PROGRESS, TaskStatus.DEFERRED}),
    TaskStatus.CLOSED: frozenset(),
    TaskStatus.DEFERRED: frozenset({TaskStatus.OPEN, TaskStatus.IN_PROGRESS}),
}

TRANSFER_SUSPENSION_PREFIX = "PDPL-T.8"
TRANSFER_SUSPENSION_BASIS = "Transfer Reg. Art. 7"


class EvidenceCheck(Protocol):
    def has_evidence(self, task_id: str, org_id: str) -> bool: ...


def is_transfer_suspension_control(control_id: str) -> bool:
    return control_id.startswith(TRANSFER_SUSPENSION_PREFIX)


def open_gap_task(
    store: Store,
    assessment: Assessment,
    control: Control,
    answer: Answer,
    clock: Clock = utcnow,
) -> Optional[RemediationTask]:
    """Create the gap task for a NO/PARTIAL answer unless the pair already has a task.

    Any existing task counts, including an urgent transfer-suspension task.

    Caller must hold the assessment lock.
    """
    if answer not in (Answer.NO, Answer.PARTIAL):
        return None
    if store.find_task(assessment.id, control.id) is not None:
        return None

    now = clock()
    task = RemediationTask(
        id=new_id(),
        org_id=assessment.org_id,
        assessment_id=assessment.id,
        control_id=control.id,
        gap_type=GapType.GAP if answer == Answer.NO else GapType.PARTIAL,
        risk_level=control.risk_level,
        status=TaskStatus.OPEN,
        title=f"Implement: {control.objective[:200]}",
        legal_basis=control.legal_basis,
        evidence_required=[control.evidence_guidance] if control.evidence_guidance else [],
        responsible_role=control.responsible_roles[0] if control.responsible_roles else None,
        deadline=now + timedelta(days=deadline_days(control.risk_level)),
        evidence_required_for_closure=control.risk_level in (RiskLevel.CRITICAL, RiskLevel.HIGH),
        created_at=now,
    )
    store.tasks[task.id] = task
    logger.info("Opened %s task %s for %s (%s)", task.gap_type.value, task.id, control.id, control.risk_level.value)
    return task


def open_transfer_suspension_task(
    store: Store,
    assessment: Assessment,
    control: Control,
    clock: Clock = utcnow,
) -> Optional[RemediationTask]:
    """Urgent-stop task for a transfer-suspension trigger answered YES.

    Independent of the gap task for the same control; created once per
    (assessment, control). Caller must hold the assessment lock.
    """
    if store.find_task(assessment.id, control.id, transfer_suspension=True) is not None:
        return None

    now = clock()
    task = RemediationTask(
        id=new_id(),
        org_id=assessment.org_id,
        assessment_id=assessment.id,
        control_id=control.id,
        gap_type=GapType.GAP,
        risk_level=RiskLevel.CRITICAL,
        status=TaskStatus.OPEN,
        title=f"URGENT: Transfer suspension required - {control.id}",
        legal_basis=TRANSFER_SUSPENSION_BASIS,
        deadline=now,
        evidence_required_for_closure=True,
        transfer_suspension=True,
        created_at=now,
    )
    store.tasks[task.id] = task
    logger.warning("Transfer suspension trigger on %s; urgent task %s opened", control.id, task.id)
    return task


class RemediationService:
    def __init__(
        self,
        store: Store,
        catalog: ControlCatalog,
        evidence: EvidenceCheck,
        audit: Optional[AuditSink] = None,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.catalog = catalog
        self.evidence = evidence
        self.audit = audit
        self.clock = clock

    def _task_or_404(self, actor: Actor, task_id: str) -> RemediationTask:
        task = self.store.tasks.get(task_id)
        if task is None or task.org_id != actor.org_id:
            raise NotFoundError("Task not found")
        return task

    def get_task(self, actor: Actor, task_id: str) -> RemediationTask:
        return self._task_or_404(actor, task_id)

    def list_tasks(
        self,
        actor: Actor,
        status: Optional[TaskStatus | str] = None,
        risk_level: Optional[RiskLevel | str] = None,
        owner_user_id: Optional[str] = None,
        control_id: Optional[str] = None,
        domain_number: Optional[int] = None,
    ) -> list[RemediationTask]:
        """Org tasks, highest risk first, then earliest deadline."""
        try:
            status = TaskStatus(status) if status else None
            risk_level = RiskLevel(risk_level) if risk_level else None
        except ValueError as e:
            raise ValidationError(str(e)) from None

        tasks = []
        for task in self.store.tasks_for_org(actor.org_id):
            if status and task.status != status:
                continue
            if risk_level and task.risk_level != risk_level:
                continue
            if owner_user_id and task.owner_user_id != owner_user_id:
                continue
            if control_id and task.control_id != control_id:
                continue
            if domain_number is not None:
                control = self.catalog.get(task.control_id)
                if control is None or control.domain_number != domain_number:
                    continue
            tasks.append(task)

        tasks.sort(key=lambda t: (RISK_PRIORITY.get(t.risk_level, len(RISK_PRIORITY)), t.deadline))
        return tasks

    def change_status(
        self,
        actor: Actor,
        task_id: str,
        status: TaskStatus | str,
        notes: Optional[str] = None,
        rejection_note: Optional[str] = None,
    ) -> RemediationTask:
        """Move a task through the workflow; every guard runs before the write."""
        try:
            new_status = TaskStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid task status: {status}") from None
        notes = (notes or "").strip() or None
        rejection_note = (rejection_note or "").strip() or None

        with self.store.transaction(task_id):
            task = self._task_or_404(actor, task_id)
            old_status = task.status

            if new_status not in TASK_TRANSITIONS[old_status]:
                raise InvalidTransitionError(
                    f"Invalid transition from {old_status.value} to {new_status.value}"
                )

            if (
                old_status == TaskStatus.IN_PROGRESS
                and new_status == TaskStatus.UNDER_REVIEW
                and not notes
                and not task.notes
            ):
                raise NotesRequiredError()

            if new_status == TaskStatus.CLOSED:
                if not actor.role.can_close_tasks():
                    raise ForbiddenError("Only DPO or Compliance Officer can close tasks")
                if task.evidence_required_for_closure and not self.evidence.has_evidence(task.id, actor.org_id):
                    raise EvidenceRequiredError()

            if new_status == TaskStatus.DEFERRED:
                if not actor.role.can_defer():
                    raise ForbiddenError("Only DPO can defer tasks")
                if not notes:
                    raise JustificationRequiredError()

            if (
                old_status == TaskStatus.UNDER_REVIEW
                and new_status == TaskStatus.IN_PROGRESS
                and not rejection_note
            ):
                raise RejectionNoteRequiredError()

            updates: dict = {"status": new_status, "notes": notes or task.notes}
            if new_status == TaskStatus.CLOSED:
                updates["closed_at"] = self.clock()
            task = task.model_copy(update=updates)
            self.store.tasks[task.id] = task

        new_value = {"status": new_status.value, "notes": notes}
        if rejection_note:
            new_value["rejection_note"] = rejection_note
        record_audit(
            self.audit, actor, "TASK_STATUS_CHANGED",
            entity_type="task", entity_id=task.id,
            old_value={"status": old_status.value}, new_value=new_value,
            timestamp=self.clock(),
        )
        return task

    def assign_owner(self, actor: Actor, task_id: str, owner_user_id: Optional[str]) -> RemediationTask:
        """Set or clear (None) the task owner; the owner must belong to the same org."""
        if not actor.role.can_assign_tasks():
            raise ForbiddenError()

        with self.store.transaction(task_id):
            task = self._task_or_404(actor, task_id)
            if owner_user_id:
                owner = self.store.users.get(owner_user_id)
                if owner is None or owner.org_id != actor.org_id or owner.is_deleted:
                    raise InvalidUserError()
            old_owner = task.owner_user_id
            task = task.model_copy(update={"owner_user_id": owner_user_id or None})
            self.store.tasks[task.id] = task

        record_audit(
            self.audit, actor, "TASK_ASSIGNED",
            entity_type="task", entity_id=task.id,
            old_value={"owner_user_id": old_owner}, new_value={"owner_user_id": task.owner_user_id},
            timestamp=self.clock(),
        )
        return task
