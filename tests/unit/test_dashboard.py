"""Tests for core/dashboard.py."""

from __future__ import annotations

from compass.core.dashboard import compliance_summary


class TestComplianceSummary:
    def test_empty_org(self, store, catalog, org_admin, clock):
        s = compliance_summary(store, catalog, org_admin, clock())
        assert s.org_name == "Al Noor Hospital"
        assert s.current_score is None
        assert s.trend == []
        assert s.total_tasks == 0
        assert s.completion_rate == 0.0

    def test_draft_progress(self, store, catalog, assessments, org_admin, draft, clock):
        for cid in ("PDPL-G.1", "PDPL-G.3", "PDPL-G.6"):
            assessments.submit_response(org_admin, draft.id, cid, "YES")
        s = compliance_summary(store, catalog, org_admin, clock())
        assert s.draft_assessment_id == draft.id
        assert s.draft_progress == 10

    def test_scores_and_trend(self, store, catalog, assessments, org_admin, clock):
        for answer in ("NO", "PARTIAL", "YES"):
            a = assessments.create_assessment(org_admin)
            assessments.submit_response(org_admin, a.id, "PDPL-S.1", answer)
            assessments.finalize(org_admin, a.id)
        s = compliance_summary(store, catalog, org_admin, clock())
        assert [p.score for p in s.trend] == [0.0, 50.0, 100.0]
        assert s.current_score == 100.0
        assert s.current_version == 3
        assert s.draft_progress is None

    def test_task_counts(self, store, catalog, assessments, remediation, org_admin, draft, clock):
        assessments.submit_response(org_admin, draft.id, "PDPL-S.1", "NO")    # 30 days
        assessments.submit_response(org_admin, draft.id, "PDPL-G.14", "NO")   # 180 days
        low = store.find_task(draft.id, "PDPL-G.14")
        remediation.change_status(org_admin, low.id, "IN_PROGRESS")
        remediation.change_status(org_admin, low.id, "UNDER_REVIEW", notes="done")
        remediation.change_status(org_admin, low.id, "CLOSED")

        clock.advance(days=45)
        s = compliance_summary(store, catalog, org_admin, clock())
        assert s.total_tasks == 2
        assert s.tasks_by_status["OPEN"] == 1
        assert s.tasks_by_status["CLOSED"] == 1
        assert s.tasks_by_risk["CRITICAL"] == 1
        assert s.overdue_tasks == 1
        assert s.completion_rate == 50.0
