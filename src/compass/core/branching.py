"""Branching rules: organization profile -> control applicability.

The rule table is evaluated unconditionally; every rule only adds to the
activated or N/A sets. Only the N/A set and a control's `conditional_on`
gate applicability. The activated set is reported alongside for display.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from ..models.control import (
    AutomatedDecisionsCondition,
    CloudUsageCondition,
    Condition,
    Control,
    CrossBorderCondition,
    MonitoringCondition,
    OrgTypeCondition,
    ProcessesMinorsCondition,
    ResearchCondition,
)
from ..models.organization import CloudUsage, OrganizationProfile, OrgType

HEALTH_ORG_TYPES = frozenset({
    OrgType.GOVERNMENT_HOSPITAL,
    OrgType.PRIVATE_HOSPITAL,
    OrgType.CLINIC_SMALL,
    OrgType.CLINIC_LARGE,
    OrgType.INSURER,
    OrgType.PHARMA,
    OrgType.HEALTH_TECH,
})

MINORS_CONTROLS = ("PDPL-G.10", "PDPL-R.10")
TRANSFER_CONTROLS = ("PDPL-T.5", "PDPL-T.6", "PDPL-T.7", "PDPL-T.8", "PDPL-T.9", "HS-PDPL-013")
# NCA-D4.R2 is activated by transfers but not marked N/A without them
TRANSFER_ACTIVATED_CONTROLS = TRANSFER_CONTROLS + ("NCA-D4.R2",)
HEALTH_MANDATORY_CONTROLS = ("PDPL-C.1", "HS-PDPL-001", "HS-PDPL-002", "HS-PDPL-003", "PDPL-G.1")
CLOUD_CONTROLS = ("PDPL-T.2", "NCA-D4.R2")
AUTOMATED_DECISION_CONTROLS = ("PDPL-G.3", "HS-PDPL-020")


@dataclass(frozen=True)
class BranchingResult:
    activated_controls: frozenset[str] = field(default_factory=frozenset)
    na_controls: frozenset[str] = field(default_factory=frozenset)

    def to_dict(self) -> dict:
        return {
            "activated_controls": sorted(self.activated_controls),
            "na_controls": sorted(self.na_controls),
        }


def is_health_org(org_type: OrgType) -> bool:
    return org_type in HEALTH_ORG_TYPES


def evaluate(profile: OrganizationProfile) -> BranchingResult:
    """Evaluate the fixed rule table against a profile.

    The DPIA-not-conducted cascade is a response-level rule and is handled
    at answer submission, not here.
    """
    activated: set[str] = set()
    na: set[str] = set()

    if profile.processes_minors:
        activated.update(MINORS_CONTROLS)

    if profile.cross_border_transfers:
        activated.update(TRANSFER_ACTIVATED_CONTROLS)
    else:
        na.update(TRANSFER_CONTROLS)

    if is_health_org(profile.org_type):
        activated.update(HEALTH_MANDATORY_CONTROLS)

    if profile.uses_cloud in (CloudUsage.YES, CloudUsage.PARTIAL):
        activated.update(CLOUD_CONTROLS)

    if profile.uses_ai_or_automated_decisions:
        activated.update(AUTOMATED_DECISION_CONTROLS)

    return BranchingResult(activated_controls=frozenset(activated), na_controls=frozenset(na))


def condition_holds(condition: Condition, profile: OrganizationProfile) -> bool:
    match condition:
        case OrgTypeCondition(value=value):
            return profile.org_type == value
        case ProcessesMinorsCondition(value=value):
            return profile.processes_minors == value
        case CrossBorderCondition(value=value):
            return profile.cross_border_transfers == value
        case CloudUsageCondition(value=value):
            return profile.uses_cloud == value
        case ResearchCondition(value=value):
            return profile.conducts_research == value
        case AutomatedDecisionsCondition(value=value):
            return profile.uses_ai_or_automated_decisions == value
        case MonitoringCondition(value=value):
            return profile.continuous_monitoring == value
    raise TypeError(f"Unsupported condition: {condition!r}")


def is_applicable(
    control_id: str,
    conditional_on: Optional[Iterable[Condition]],
    profile: OrganizationProfile,
    result: BranchingResult,
) -> bool:
    """N/A wins over activation; otherwise every declared condition must hold."""
    if control_id in result.na_controls:
        return False
    if conditional_on:
        return all(condition_holds(c, profile) for c in conditional_on)
    return True


def applicable_controls(
    controls: Iterable[Control],
    profile: OrganizationProfile,
    result: Optional[BranchingResult] = None,
) -> list[Control]:
    result = result or evaluate(profile)
    return [c for c in controls if is_applicable(c.id, c.conditional_on, profile, result)]
