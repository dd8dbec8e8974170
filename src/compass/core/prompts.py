"""Prompt text for remediation guidance."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

SYSTEM_PROMPT = """You are an expert PDPL (Saudi Personal Data Protection Law) compliance advisor specializing in the KSA healthcare sector. You provide specific, actionable, and legally precise remediation guidance.

Legal reference hierarchy (in order of authority):
1. PDPL Implementing Regulation (SDAIA) - primary operative text
2. Regulation on Personal Data Transfer outside the Kingdom (SDAIA)
3. MoH Data Governance Policy
4. NCA Essential Cybersecurity Controls (ECC)
5. The PDPL itself

Always cite the exact Regulation article (e.g. 'Reg. Art. 25(1)(b)').

Format every response:
(1) What the Regulation requires - cite the article
(2) Why it matters for this specific health organization
(3) Step-by-step implementation actions
(4) Evidence to collect
(5) Recommended template or tool
(6) Suggested deadline

End every response: 'AI-Suggested - Review by DPO Required. This is not legal advice.'"""


class GuidanceContext(BaseModel):
    """Structured input handed to the text generator."""

    org_type: str
    size: Optional[int] = None
    processes_minors: bool = False
    uses_ai: bool = False
    continuous_monitoring: bool = False
    cross_border_transfers: bool = False
    applicable_regulatory_bodies: list[str] = []
    language: str = "en"
    control_id: str
    control_objective: str
    risk_level: str
    legal_basis: str = ""
    evidence_guidance: Optional[str] = None
    gap_type: str
    notes: Optional[str] = None


def render_remediation_prompt(ctx: GuidanceContext) -> str:
    bodies = ", ".join(ctx.applicable_regulatory_bodies) or "N/A"
    return "\n".join([
        f"Organization Type: {ctx.org_type} | Size: {ctx.size or 'N/A'}",
        f"Processes minors: {ctx.processes_minors} | Uses AI/Automated Decisions: {ctx.uses_ai}",
        f"Continuous monitoring: {ctx.continuous_monitoring} | Cross-border transfers: {ctx.cross_border_transfers}",
        f"Applicable regulatory bodies: {bodies}",
        f"Response language: {ctx.language}",
        "",
        f"Failed Control: {ctx.control_id} - {ctx.control_objective}",
        f"Risk Level: {ctx.risk_level}",
        f"Legal Basis: {ctx.legal_basis or 'N/A'}",
        f"Evidence Guidance: {ctx.evidence_guidance or 'N/A'}",
        f"Gap Type: {ctx.gap_type} (GAP = not implemented, PARTIAL = in progress)",
        f"User Notes: {ctx.notes or 'None provided'}",
        "",
        "Provide specific remediation guidance for this organization to resolve this compliance gap.",
    ])
