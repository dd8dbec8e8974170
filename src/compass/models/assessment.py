"""Assessment, response and score data models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from .organization import Organization


class AssessmentStatus(str, Enum):
    DRAFT = "DRAFT"
    IN_REVIEW = "IN_REVIEW"
    FINALIZED = "FINALIZED"
    ARCHIVED = "ARCHIVED"


EDITABLE_STATUSES = frozenset({AssessmentStatus.DRAFT, AssessmentStatus.IN_REVIEW})


class Answer(str, Enum):
    YES = "YES"
    PARTIAL = "PARTIAL"
    NO = "NO"
    NA = "NA"


class DomainScore(BaseModel):
    domain_number: int
    domain_name: str
    total_points: float = 0
    earned_points: float = 0
    percentage: float = 0.0
    control_count: int = 0
    gap_count: int = 0
    partial_count: int = 0


class ScoreResult(BaseModel):
    overall_score: float = 0.0
    total_controls_assessed: int = 0
    critical_gaps: int = 0
    high_gaps: int = 0
    medium_gaps: int = 0
    low_gaps: int = 0
    domain_scores: list[DomainScore] = []


class Assessment(BaseModel):
    id: str
    org_id: str
    assessment_version: int
    status: AssessmentStatus = AssessmentStatus.DRAFT
    overall_score: Optional[float] = None
    total_controls_assessed: Optional[int] = None
    domain_scores: Optional[list[DomainScore]] = None
    critical_gaps: Optional[int] = None
    high_gaps: Optional[int] = None
    medium_gaps: Optional[int] = None
    low_gaps: Optional[int] = None
    created_by: str
    created_at: datetime
    finalized_by: Optional[str] = None
    finalized_at: Optional[datetime] = None

    @property
    def is_editable(self) -> bool:
        return self.status in EDITABLE_STATUSES


class Response(BaseModel):
    id: str
    assessment_id: str
    control_id: str
    answer: Answer
    na_justification: Optional[str] = None
    notes: Optional[str] = None
    points_earned: int = 0
    answered_by: str
    answered_at: datetime
    last_modified_by: Optional[str] = None
    last_modified_at: Optional[datetime] = None


class AssessmentSummary(BaseModel):
    """List view: an assessment plus its response count."""

    assessment: Assessment
    response_count: int = 0


class AssessmentDetail(BaseModel):
    """Detail view with progress computed against the current profile."""

    assessment: Assessment
    organization: Organization
    responses: list[Response] = []
    answered_count: int = 0
    total_applicable: int = 0
    progress: int = 0
    activated_controls: list[str] = []
    na_controls: list[str] = []
