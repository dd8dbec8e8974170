"""Response scoring, deadlines and point derivation.

N/A answers are excluded from every total. Only NO answers count toward the
risk-bucketed gap tallies; PARTIAL is tracked per domain only.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from ..models.assessment import Answer, DomainScore, ScoreResult
from ..models.control import Control, RiskLevel

DOMAIN_NAMES: dict[int, str] = {
    1: "Governance & Accountability",
    2: "Lawful Basis & Consent Management",
    3: "Data Subject Rights Fulfillment",
    4: "Data Security & Cybersecurity (NCA ECC)",
    5: "Third-Party & Data Transfer Compliance",
    6: "Breach Management & Notification",
    7: "Records & Documentation",
    8: "Training & Awareness",
    9: "Sectoral & Special Processing",
    10: "MoH Health Sector Controls",
}

DEADLINE_DAYS: dict[RiskLevel, int] = {
    RiskLevel.CRITICAL: 30,
    RiskLevel.HIGH: 60,
    RiskLevel.MEDIUM: 90,
    RiskLevel.LOW: 180,
}
DEFAULT_DEADLINE_DAYS = 90

_HUNDREDTHS = Decimal("0.01")


@dataclass(frozen=True)
class ScoredAnswer:
    control: Control
    answer: Answer
    points_earned: int


def points_for_answer(answer: Answer, points_yes: int, points_partial: int) -> int:
    if answer == Answer.YES:
        return points_yes
    if answer == Answer.PARTIAL:
        return points_partial
    return 0


def deadline_days(risk_level: RiskLevel) -> int:
    return DEADLINE_DAYS.get(risk_level, DEFAULT_DEADLINE_DAYS)


def percentage(earned: Decimal, available: Decimal) -> float:
    """Percentage rounded half-up to two decimals; 0 when nothing is available."""
    if available <= 0:
        return 0.0
    return float((earned * 100 / available).quantize(_HUNDREDTHS, rounding=ROUND_HALF_UP))


class _Tally:
    __slots__ = ("available", "earned", "controls", "gaps", "partials")

    def __init__(self) -> None:
        self.available = Decimal(0)
        self.earned = Decimal(0)
        self.controls = 0
        self.gaps = 0
        self.partials = 0


def score(answers: list[ScoredAnswer]) -> ScoreResult:
    """Convert per-control answers into overall and per-domain scores."""
    assessed = [a for a in answers if a.answer != Answer.NA]

    overall = _Tally()
    domains: dict[int, _Tally] = {}
    gaps = {level: 0 for level in RiskLevel}

    for item in assessed:
        weight = Decimal(str(item.control.weight_multiplier))
        max_points = Decimal(item.control.points_yes) * weight
        earned = Decimal(item.points_earned) * weight

        overall.available += max_points
        overall.earned += earned

        domain = domains.setdefault(item.control.domain_number, _Tally())
        domain.available += max_points
        domain.earned += earned
        domain.controls += 1

        if item.answer == Answer.NO:
            gaps[item.control.risk_level] += 1
            domain.gaps += 1
        elif item.answer == Answer.PARTIAL:
            domain.partials += 1

    domain_scores = [
        DomainScore(
            domain_number=number,
            domain_name=DOMAIN_NAMES.get(number, f"Domain {number}"),
            total_points=float(tally.available),
            earned_points=float(tally.earned),
            percentage=percentage(tally.earned, tally.available),
            control_count=tally.controls,
            gap_count=tally.gaps,
            partial_count=tally.partials,
        )
        for number, tally in sorted(domains.items())
    ]

    return ScoreResult(
        overall_score=percentage(overall.earned, overall.available),
        total_controls_assessed=len(assessed),
        critical_gaps=gaps[RiskLevel.CRITICAL],
        high_gaps=gaps[RiskLevel.HIGH],
        medium_gaps=gaps[RiskLevel.MEDIUM],
        low_gaps=gaps[RiskLevel.LOW],
        domain_scores=domain_scores,
    )
