"""Markdown report for a finalized assessment."""

from __future__ import annotations

from ..catalog.loader import ControlCatalog
from ..models.assessment import Assessment, AssessmentStatus
from ..models.control import RISK_PRIORITY
from ..models.organization import Organization
from ..models.remediation import RemediationTask, TaskStatus
from ..core.errors import InvalidStatusError

REPORTABLE_STATUSES = frozenset({AssessmentStatus.FINALIZED, AssessmentStatus.ARCHIVED})


def generate_assessment_report(
    assessment: Assessment,
    organization: Organization,
    tasks: list[RemediationTask],
    catalog: ControlCatalog,
) -> str:
    """Render the assessment summary, domain scores and open gaps."""
    if assessment.status not in REPORTABLE_STATUSES:
        raise InvalidStatusError("Reports are only available for finalized assessments")

    finalized = assessment.finalized_at.strftime("%Y-%m-%d %H:%M UTC") if assessment.finalized_at else "-"

    lines: list[str] = []
    lines.append(f"# PDPL Compliance Assessment - {organization.name}")
    lines.append("")
    lines.append(f"**Organization type:** {organization.profile.org_type.value}")
    lines.append(f"**Assessment version:** {assessment.assessment_version}")
    lines.append(f"**Status:** {assessment.status.value}")
    lines.append(f"**Finalized:** {finalized}")
    lines.append(f"**Overall score:** {assessment.overall_score or 0:.2f}%")
    lines.append("")

    lines.append("## Summary")
    lines.append("")
    lines.append("| Risk | Gaps |")
    lines.append("|------|------|")
    lines.append(f"| CRITICAL | {assessment.critical_gaps or 0} |")
    lines.append(f"| HIGH     | {assessment.high_gaps or 0} |")
    lines.append(f"| MEDIUM   | {assessment.medium_gaps or 0} |")
    lines.append(f"| LOW      | {assessment.low_gaps or 0} |")
    lines.append(f"| **Controls assessed** | **{assessment.total_controls_assessed or 0}** |")
    lines.append("")

    lines.append("## Domain Scores")
    lines.append("")
    if assessment.domain_scores:
        lines.append("| # | Domain | Score | Controls | Gaps | Partial |")
        lines.append("|---|--------|-------|----------|------|---------|")
        for d in assessment.domain_scores:
            lines.append(
                f"| {d.domain_number} | {d.domain_name} | {d.percentage:.2f}% "
                f"| {d.control_count} | {d.gap_count} | {d.partial_count} |"
            )
    else:
        lines.append("No controls were assessed.")
    lines.append("")

    open_tasks = [
        t for t in tasks
        if t.assessment_id == assessment.id and t.status != TaskStatus.CLOSED
    ]
    open_tasks.sort(key=lambda t: (RISK_PRIORITY.get(t.risk_level, len(RISK_PRIORITY)), t.deadline))

    lines.append("## Open Gaps")
    lines.append("")
    if not open_tasks:
        lines.append("No open remediation tasks.")
        lines.append("")
    for task in open_tasks:
        control = catalog.get(task.control_id)
        objective = control.objective if control else task.title
        flag = " (TRANSFER SUSPENSION)" if task.transfer_suspension else ""
        lines.append(f"### [{task.risk_level.value}] {task.control_id}{flag}")
        lines.append("")
        lines.append(f"- **Objective:** {objective}")
        lines.append(f"- **Gap type:** {task.gap_type.value}")
        lines.append(f"- **Status:** {task.status.value}")
        lines.append(f"- **Deadline:** {task.deadline.strftime('%Y-%m-%d')}")
        if task.legal_basis:
            lines.append(f"- **Legal basis:** {task.legal_basis}")
        if task.evidence_required_for_closure:
            lines.append("- **Evidence required for closure:** yes")
        lines.append("")

    lines.append("---")
    lines.append("*Generated by PDPL Compass. This report is not legal advice.*")
    lines.append("")
    return "\n".join(lines)
