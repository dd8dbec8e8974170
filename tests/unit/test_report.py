"""Tests for formatters/report.py."""

from __future__ import annotations

import pytest

from compass.core.errors import InvalidStatusError
from compass.formatters.report import generate_assessment_report


class TestAssessmentReport:
    def test_requires_finalized(self, store, catalog, org_admin, draft):
        org = store.organizations[org_admin.org_id]
        with pytest.raises(InvalidStatusError):
            generate_assessment_report(draft, org, [], catalog)

    def test_contents(self, store, catalog, assessments, org_admin, draft):
        assessments.submit_response(org_admin, draft.id, "PDPL-S.1", "NO")
        assessments.submit_response(org_admin, draft.id, "PDPL-G.14", "PARTIAL")
        assessments.submit_response(org_admin, draft.id, "PDPL-G.6", "YES")
        final = assessments.finalize(org_admin, draft.id)
        org = store.organizations[org_admin.org_id]

        report = generate_assessment_report(final, org, store.tasks_for_org(org.id), catalog)
        assert report.startswith("# PDPL Compliance Assessment - Al Noor Hospital")
        assert "| CRITICAL | 1 |" in report
        assert "## Domain Scores" in report
        assert "Governance & Accountability" in report
        assert report.index("[CRITICAL] PDPL-S.1") < report.index("[LOW] PDPL-G.14")
        assert "not legal advice" in report

    def test_no_gaps(self, store, catalog, assessments, org_admin, draft):
        final = assessments.finalize(org_admin, draft.id)
        org = store.organizations[org_admin.org_id]
        report = generate_assessment_report(final, org, [], catalog)
        assert "No controls were assessed." in report
        assert "No open remediation tasks." in report
