"""Remediation task and evidence data models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from .control import RiskLevel


class GapType(str, Enum):
    GAP = "GAP"
    PARTIAL = "PARTIAL"


class TaskStatus(str, Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    UNDER_REVIEW = "UNDER_REVIEW"
    CLOSED = "CLOSED"
    DEFERRED = "DEFERRED"


class RemediationTask(BaseModel):
    id: str
    org_id: str
    assessment_id: str
    control_id: str
    gap_type: GapType
    risk_level: RiskLevel
    status: TaskStatus = TaskStatus.OPEN
    title: str = ""
    legal_basis: str = ""
    evidence_required: list[str] = []
    responsible_role: Optional[str] = None
    deadline: datetime
    evidence_required_for_closure: bool = False
    transfer_suspension: bool = False
    owner_user_id: Optional[str] = None
    notes: Optional[str] = None
    ai_guidance: Optional[str] = None
    ai_generated_at: Optional[datetime] = None
    created_at: datetime
    closed_at: Optional[datetime] = None


class EvidenceFile(BaseModel):
    id: str
    org_id: str
    task_id: Optional[str] = None
    control_id: Optional[str] = None
    assessment_id: Optional[str] = None
    filename: str
    sha256_hash: str
    description: Optional[str] = None
    uploaded_by: str
    uploaded_at: datetime
    is_deleted: bool = False
