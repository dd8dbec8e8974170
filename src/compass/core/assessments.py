"""Assessment lifecycle: DRAFT -> IN_REVIEW -> FINALIZED -> ARCHIVED.

Each mutating operation runs read -> validate -> write inside a store
transaction keyed on the assessment (and the org for creation), then
writes its audit entry.
"""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import BaseModel

from ..catalog.loader import ControlCatalog
from ..models.assessment import (
    Answer,
    Assessment,
    AssessmentDetail,
    AssessmentStatus,
    AssessmentSummary,
    Response,
)
from ..models.control import Control
from ..models.organization import Actor
from .audit import AuditSink, record_audit
from .branching import HEALTH_MANDATORY_CONTROLS, applicable_controls, evaluate, is_health_org
from .clock import Clock, new_id, utcnow
from .errors import (
    AssessmentLockedError,
    ForbiddenError,
    InvalidStatusError,
    MandatoryControlError,
    NotFoundError,
    OnboardingIncompleteError,
    ValidationError,
)
from .organizations import get_org
from .remediation import is_transfer_suspension_control, open_gap_task, open_transfer_suspension_task
from .scoring import ScoredAnswer, points_for_answer, score
from .store import Store

logger = logging.getLogger(__name__)

MIN_NA_JUSTIFICATION = 20
DPIA_CONTROL = "PDPL-G.3"


class DomainGroup(BaseModel):
    domain_number: int
    domain_name: str
    controls: list[Control] = []


class ApplicableControls(BaseModel):
    controls: list[Control] = []
    domains: list[DomainGroup] = []
    activated_controls: list[str] = []
    na_controls: list[str] = []

    @property
    def total(self) -> int:
        return len(self.controls)


def na_forbidden(control: Control, org_type) -> bool:
    """N/A is never allowed on health-mandatory controls for health orgs."""
    if control.id in HEALTH_MANDATORY_CONTROLS and is_health_org(org_type):
        return True
    return org_type in control.mandatory_for_types


class AssessmentService:
    def __init__(
        self,
        store: Store,
        catalog: ControlCatalog,
        audit: Optional[AuditSink] = None,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.catalog = catalog
        self.audit = audit
        self.clock = clock

    def _assessment_or_404(self, actor: Actor, assessment_id: str) -> Assessment:
        assessment = self.store.assessments.get(assessment_id)
        if assessment is None or assessment.org_id != actor.org_id:
            raise NotFoundError("Assessment not found")
        return assessment

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_applicable_controls(self, actor: Actor) -> ApplicableControls:
        org = get_org(self.store, actor)
        result = evaluate(org.profile)
        controls = applicable_controls(self.catalog, org.profile, result)

        domains: dict[int, DomainGroup] = {}
        for control in controls:
            group = domains.setdefault(
                control.domain_number,
                DomainGroup(domain_number=control.domain_number, domain_name=control.domain_name),
            )
            group.controls.append(control)

        return ApplicableControls(
            controls=controls,
            domains=[domains[n] for n in sorted(domains)],
            activated_controls=sorted(result.activated_controls),
            na_controls=sorted(result.na_controls),
        )

    def list_assessments(
        self,
        actor: Actor,
        status: Optional[AssessmentStatus | str] = None,
    ) -> list[AssessmentSummary]:
        try:
            status = AssessmentStatus(status) if status else None
        except ValueError:
            raise ValidationError(f"Invalid assessment status: {status}") from None

        assessments = [
            a for a in self.store.assessments_for_org(actor.org_id)
            if status is None or a.status == status
        ]
        assessments.sort(key=lambda a: (a.created_at, a.assessment_version), reverse=True)
        return [
            AssessmentSummary(assessment=a, response_count=len(self.store.responses_for(a.id)))
            for a in assessments
        ]

    def get_assessment(self, actor: Actor, assessment_id: str) -> AssessmentDetail:
        """Assessment with progress measured against the org's current profile."""
        assessment = self._assessment_or_404(actor, assessment_id)
        org = get_org(self.store, actor)
        result = evaluate(org.profile)

        responses = sorted(self.store.responses_for(assessment.id), key=lambda r: r.control_id)
        total_applicable = len(applicable_controls(self.catalog, org.profile, result))
        answered = len(responses)
        progress = round(answered / total_applicable * 100) if total_applicable > 0 else 0

        return AssessmentDetail(
            assessment=assessment,
            organization=org,
            responses=responses,
            answered_count=answered,
            total_applicable=total_applicable,
            progress=progress,
            activated_controls=sorted(result.activated_controls),
            na_controls=sorted(result.na_controls),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_assessment(self, actor: Actor) -> Assessment:
        """Start a new DRAFT version, archiving the previous latest one."""
        if not actor.role.can_create_assessment():
            raise ForbiddenError()

        with self.store.transaction(f"org:{actor.org_id}"):
            org = self.store.organizations.get(actor.org_id)
            if org is None or not org.onboarding_completed:
                raise OnboardingIncompleteError()

            existing = self.store.assessments_for_org(actor.org_id)
            latest = max(existing, key=lambda a: a.assessment_version, default=None)
            new_version = latest.assessment_version + 1 if latest else 1

            if latest is not None and latest.status != AssessmentStatus.ARCHIVED:
                with self.store.transaction(latest.id):
                    current = self.store.assessments[latest.id]
                    self.store.assessments[latest.id] = current.model_copy(
                        update={"status": AssessmentStatus.ARCHIVED}
                    )
                logger.info("Archived assessment v%d (%s)", latest.assessment_version, latest.id)

            assessment = Assessment(
                id=new_id(),
                org_id=actor.org_id,
                assessment_version=new_version,
                status=AssessmentStatus.DRAFT,
                created_by=actor.user_id,
                created_at=self.clock(),
            )
            self.store.assessments[assessment.id] = assessment

        record_audit(
            self.audit, actor, "ASSESSMENT_CREATED",
            entity_type="assessment", entity_id=assessment.id,
            new_value={"version": new_version},
            timestamp=self.clock(),
        )
        return assessment

    def submit_response(
        self,
        actor: Actor,
        assessment_id: str,
        control_id: str,
        answer: Answer | str,
        na_justification: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Response:
        """Upsert one control answer and open any remediation task it implies."""
        try:
            answer = Answer(answer)
        except ValueError:
            raise ValidationError("Invalid answer. Must be YES, PARTIAL, NO, or NA") from None

        with self.store.transaction(assessment_id):
            assessment = self._assessment_or_404(actor, assessment_id)
            if not assessment.is_editable:
                raise AssessmentLockedError()

            control = self.catalog.get(control_id)
            if control is None:
                raise NotFoundError("Control not found")

            org = get_org(self.store, actor)
            if answer == Answer.NA:
                if na_forbidden(control, org.profile.org_type):
                    raise MandatoryControlError()
                if not na_justification or len(na_justification.strip()) < MIN_NA_JUSTIFICATION:
                    raise ValidationError(
                        f"N/A justification required (minimum {MIN_NA_JUSTIFICATION} characters)"
                    )

            now = self.clock()
            points = points_for_answer(answer, control.points_yes, control.points_partial)
            justification = na_justification if answer == Answer.NA else None
            existing = self.store.responses.get((assessment_id, control_id))

            if existing is not None:
                response = existing.model_copy(update={
                    "answer": answer,
                    "na_justification": justification,
                    "points_earned": points,
                    "notes": notes,
                    "last_modified_by": actor.user_id,
                    "last_modified_at": now,
                })
            else:
                response = Response(
                    id=new_id(),
                    assessment_id=assessment_id,
                    control_id=control_id,
                    answer=answer,
                    na_justification=justification,
                    notes=notes,
                    points_earned=points,
                    answered_by=actor.user_id,
                    answered_at=now,
                )
            self.store.responses[(assessment_id, control_id)] = response

            if control_id == DPIA_CONTROL and answer == Answer.NO:
                logger.info("DPIA not conducted on %s; G.12 and D.5 cascade gaps flagged", assessment_id)

            open_gap_task(self.store, assessment, control, answer, clock=self.clock)

            if is_transfer_suspension_control(control_id) and answer == Answer.YES:
                open_transfer_suspension_task(self.store, assessment, control, clock=self.clock)

        record_audit(
            self.audit, actor, "RESPONSE_SUBMITTED",
            entity_type="response", entity_id=response.id,
            old_value={"answer": existing.answer.value} if existing else None,
            new_value={"control_id": control_id, "answer": answer.value, "points_earned": points},
            timestamp=self.clock(),
        )
        return response

    def submit_for_review(self, actor: Actor, assessment_id: str) -> Assessment:
        with self.store.transaction(assessment_id):
            assessment = self._assessment_or_404(actor, assessment_id)
            if assessment.status != AssessmentStatus.DRAFT:
                raise InvalidStatusError("Assessment must be in DRAFT status")
            assessment = assessment.model_copy(update={"status": AssessmentStatus.IN_REVIEW})
            self.store.assessments[assessment.id] = assessment

        record_audit(
            self.audit, actor, "ASSESSMENT_SUBMITTED_FOR_REVIEW",
            entity_type="assessment", entity_id=assessment.id,
            old_value={"status": AssessmentStatus.DRAFT.value},
            new_value={"status": AssessmentStatus.IN_REVIEW.value},
            timestamp=self.clock(),
        )
        return assessment

    def finalize(self, actor: Actor, assessment_id: str) -> Assessment:
        """Score all responses, persist the summary and lock the assessment."""
        if not actor.role.can_finalize():
            raise ForbiddenError()

        with self.store.transaction(assessment_id):
            assessment = self._assessment_or_404(actor, assessment_id)
            if not assessment.is_editable:
                raise InvalidStatusError("Assessment cannot be finalized from current status")

            scored: list[ScoredAnswer] = []
            for response in self.store.responses_for(assessment.id):
                control = self.catalog.get(response.control_id)
                if control is None:
                    logger.warning("Response for unknown control %s skipped in scoring", response.control_id)
                    continue
                scored.append(ScoredAnswer(control=control, answer=response.answer, points_earned=response.points_earned))

            result = score(scored)
            assessment = assessment.model_copy(update={
                "status": AssessmentStatus.FINALIZED,
                "overall_score": result.overall_score,
                "total_controls_assessed": result.total_controls_assessed,
                "domain_scores": result.domain_scores,
                "critical_gaps": result.critical_gaps,
                "high_gaps": result.high_gaps,
                "medium_gaps": result.medium_gaps,
                "low_gaps": result.low_gaps,
                "finalized_by": actor.user_id,
                "finalized_at": self.clock(),
            })
            self.store.assessments[assessment.id] = assessment

        record_audit(
            self.audit, actor, "ASSESSMENT_FINALIZED",
            entity_type="assessment", entity_id=assessment.id,
            new_value={"overall_score": result.overall_score, "version": assessment.assessment_version},
            timestamp=self.clock(),
        )
        return assessment
