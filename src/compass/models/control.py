"""Control catalog data models.

`conditional_on` is a closed set of typed conditions, one class per
profile field. The YAML form is a plain mapping of field name to the
required value; it is converted to condition objects on validation.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, StrictBool, field_validator, model_validator

from .organization import CloudUsage, OrgType

MAX_POINTS = 10


class RiskLevel(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


RISK_PRIORITY: dict[RiskLevel, int] = {
    RiskLevel.CRITICAL: 0,
    RiskLevel.HIGH: 1,
    RiskLevel.MEDIUM: 2,
    RiskLevel.LOW: 3,
}


class ControlSource(str, Enum):
    PDPL = "PDPL"
    NCA_ECC = "NCA_ECC"
    MOH = "MOH"


class OrgTypeCondition(BaseModel):
    key: Literal["org_type"] = "org_type"
    value: OrgType


class ProcessesMinorsCondition(BaseModel):
    key: Literal["processes_minors"] = "processes_minors"
    value: StrictBool


class CrossBorderCondition(BaseModel):
    key: Literal["cross_border_transfers"] = "cross_border_transfers"
    value: StrictBool


class CloudUsageCondition(BaseModel):
    key: Literal["uses_cloud"] = "uses_cloud"
    value: CloudUsage


class ResearchCondition(BaseModel):
    key: Literal["conducts_research"] = "conducts_research"
    value: StrictBool


class AutomatedDecisionsCondition(BaseModel):
    key: Literal["uses_ai_or_automated_decisions"] = "uses_ai_or_automated_decisions"
    value: StrictBool


class MonitoringCondition(BaseModel):
    key: Literal["continuous_monitoring"] = "continuous_monitoring"
    value: StrictBool


Condition = Annotated[
    Union[
        OrgTypeCondition,
        ProcessesMinorsCondition,
        CrossBorderCondition,
        CloudUsageCondition,
        ResearchCondition,
        AutomatedDecisionsCondition,
        MonitoringCondition,
    ],
    Field(discriminator="key"),
]


class Control(BaseModel):
    """A single compliance control. Immutable once loaded."""

    model_config = {"frozen": True}

    id: str
    source: ControlSource
    domain_number: int = Field(ge=1, le=10)
    domain_name: str = ""
    ref: str = ""
    objective: str = ""
    pdpl_articles: Optional[str] = None
    reg_articles: Optional[str] = None
    transfer_reg_articles: Optional[str] = None
    nca_ref: Optional[str] = None
    moh_policy_ref: Optional[str] = None
    risk_level: RiskLevel
    points_yes: int = Field(gt=0, le=MAX_POINTS)
    points_partial: int = Field(ge=0, le=MAX_POINTS)
    weight_multiplier: float = Field(default=1.0, gt=0)
    responsible_roles: tuple[str, ...] = ()
    mandatory_for_types: frozenset[OrgType] = frozenset()
    conditional_on: Optional[tuple[Condition, ...]] = None
    evidence_guidance: Optional[str] = None
    training_module_ids: tuple[str, ...] = ()

    @field_validator("conditional_on", mode="before")
    @classmethod
    def _conditions_from_mapping(cls, value):
        if isinstance(value, dict):
            return [{"key": k, "value": v} for k, v in value.items()]
        return value

    @model_validator(mode="after")
    def _partial_below_full(self) -> Control:
        if self.points_partial >= self.points_yes:
            raise ValueError(
                f"{self.id}: points_partial ({self.points_partial}) must be below points_yes ({self.points_yes})"
            )
        return self

    @property
    def legal_basis(self) -> str:
        parts = [self.reg_articles, self.transfer_reg_articles, self.nca_ref, self.moh_policy_ref]
        return " | ".join(p for p in parts if p)
