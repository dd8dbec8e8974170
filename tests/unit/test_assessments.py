"""Tests for core/assessments.py."""

from __future__ import annotations

from datetime import timedelta

import pytest

from compass.core.errors import (
    AssessmentLockedError,
    ForbiddenError,
    InvalidStatusError,
    MandatoryControlError,
    NotFoundError,
    OnboardingIncompleteError,
    ValidationError,
)
from compass.models.assessment import Answer, AssessmentStatus
from compass.models.organization import Actor, OrganizationProfile, OrgType, Role
from compass.models.remediation import GapType

JUSTIFICATION = "Not applicable: no such processing happens here."


class TestCreateAssessment:
    def test_first_version(self, assessments, org_admin, audit):
        a = assessments.create_assessment(org_admin)
        assert a.assessment_version == 1
        assert a.status == AssessmentStatus.DRAFT
        assert a.overall_score is None
        assert any(e.action == "ASSESSMENT_CREATED" for e in audit.entries(org_admin.org_id))

    def test_second_archives_first(self, assessments, org_admin, store, draft):
        second = assessments.create_assessment(org_admin)
        assert second.assessment_version == 2
        assert store.assessments[draft.id].status == AssessmentStatus.ARCHIVED
        assert second.status == AssessmentStatus.DRAFT

    def test_finalized_previous_is_archived(self, assessments, org_admin, store, draft):
        assessments.finalize(org_admin, draft.id)
        assessments.create_assessment(org_admin)
        assert store.assessments[draft.id].status == AssessmentStatus.ARCHIVED

    def test_at_most_one_non_archived(self, assessments, org_admin, store, draft):
        for _ in range(3):
            assessments.create_assessment(org_admin)
        live = [a for a in store.assessments_for_org(org_admin.org_id) if a.status != AssessmentStatus.ARCHIVED]
        assert len(live) == 1
        assert live[0].assessment_version == 4

    def test_onboarding_required(self, org_service, assessments):
        _, admin = org_service.create_organization(
            "New Clinic", OrganizationProfile(org_type=OrgType.CLINIC_SMALL), "new@clinic.sa",
        )
        with pytest.raises(OnboardingIncompleteError) as exc:
            assessments.create_assessment(Actor.for_user(admin))
        assert exc.value.code == "ONBOARDING_REQUIRED"

    def test_staff_cannot_create(self, assessments, staff):
        with pytest.raises(ForbiddenError):
            assessments.create_assessment(staff)


class TestSubmitResponse:
    def test_yes_earns_points(self, assessments, org_admin, draft):
        r = assessments.submit_response(org_admin, draft.id, "PDPL-G.3", "YES")
        assert r.answer == Answer.YES
        assert r.points_earned == 8
        assert r.answered_by == org_admin.user_id

    def test_invalid_answer(self, assessments, org_admin, draft):
        with pytest.raises(ValidationError):
            assessments.submit_response(org_admin, draft.id, "PDPL-G.3", "MAYBE")

    def test_unknown_control(self, assessments, org_admin, draft):
        with pytest.raises(NotFoundError, match="Control"):
            assessments.submit_response(org_admin, draft.id, "PDPL-X.99", "YES")

    def test_unknown_assessment(self, assessments, org_admin):
        with pytest.raises(NotFoundError, match="Assessment"):
            assessments.submit_response(org_admin, "missing", "PDPL-G.3", "YES")

    def test_other_org_cannot_see_assessment(self, assessments, org_service, draft):
        _, other = org_service.create_organization(
            "Other", OrganizationProfile(org_type=OrgType.INSURER), "x@other.sa", onboarding_completed=True,
        )
        with pytest.raises(NotFoundError):
            assessments.submit_response(Actor.for_user(other), draft.id, "PDPL-G.3", "YES")

    def test_na_requires_justification(self, assessments, org_admin, draft):
        with pytest.raises(ValidationError, match="justification"):
            assessments.submit_response(org_admin, draft.id, "PDPL-G.14", "NA", na_justification="too short")

    def test_na_with_justification(self, assessments, org_admin, draft):
        r = assessments.submit_response(org_admin, draft.id, "PDPL-G.14", "NA", na_justification=JUSTIFICATION)
        assert r.points_earned == 0
        assert r.na_justification == JUSTIFICATION

    def test_na_forbidden_on_mandatory_control_for_health_org(self, assessments, org_admin, draft):
        with pytest.raises(MandatoryControlError):
            assessments.submit_response(
                org_admin, draft.id, "HS-PDPL-001", "NA", na_justification=JUSTIFICATION,
            )

    def test_na_allowed_on_mandatory_control_for_non_health_org(self, org_service, assessments):
        _, admin = org_service.create_organization(
            "Retail Co", OrganizationProfile(org_type=OrgType.PRIVATE_COMPANY), "a@retail.sa",
            onboarding_completed=True,
        )
        actor = Actor.for_user(admin)
        a = assessments.create_assessment(actor)
        r = assessments.submit_response(actor, a.id, "HS-PDPL-001", "NA", na_justification=JUSTIFICATION)
        assert r.answer == Answer.NA

    def test_upsert_is_idempotent(self, assessments, org_admin, draft, store):
        assessments.submit_response(org_admin, draft.id, "PDPL-S.1", "NO")
        assessments.submit_response(org_admin, draft.id, "PDPL-S.1", "NO")
        assert len(store.responses_for(draft.id)) == 1
        tasks = [t for t in store.tasks_for_org(org_admin.org_id) if t.control_id == "PDPL-S.1"]
        assert len(tasks) == 1

    def test_update_tracks_modifier(self, assessments, org_admin, dpo, draft, clock):
        first = assessments.submit_response(org_admin, draft.id, "PDPL-G.6", "NO")
        clock.advance(hours=1)
        second = assessments.submit_response(dpo, draft.id, "PDPL-G.6", "YES")
        assert second.id == first.id
        assert second.answered_by == org_admin.user_id
        assert second.last_modified_by == dpo.user_id
        assert second.last_modified_at == clock()
        assert second.points_earned == 6

    def test_no_on_critical_creates_task(self, assessments, org_admin, draft, store, clock):
        assessments.submit_response(org_admin, draft.id, "PDPL-S.1", "NO")
        task = store.find_task(draft.id, "PDPL-S.1")
        assert task.gap_type == GapType.GAP
        assert task.deadline == clock() + timedelta(days=30)
        assert task.evidence_required_for_closure is True

    def test_no_on_low_creates_relaxed_task(self, assessments, org_admin, draft, store, clock):
        assessments.submit_response(org_admin, draft.id, "PDPL-G.14", "NO")
        task = store.find_task(draft.id, "PDPL-G.14")
        assert task.deadline == clock() + timedelta(days=180)
        assert task.evidence_required_for_closure is False

    def test_partial_creates_partial_task(self, assessments, org_admin, draft, store):
        assessments.submit_response(org_admin, draft.id, "PDPL-R.5", "PARTIAL")
        assert store.find_task(draft.id, "PDPL-R.5").gap_type == GapType.PARTIAL

    def test_yes_creates_no_task(self, assessments, org_admin, draft, store):
        assessments.submit_response(org_admin, draft.id, "PDPL-R.5", "YES")
        assert store.find_task(draft.id, "PDPL-R.5") is None

    def test_task_not_recreated_after_changing_answer(self, assessments, org_admin, draft, store):
        assessments.submit_response(org_admin, draft.id, "PDPL-R.5", "NO")
        assessments.submit_response(org_admin, draft.id, "PDPL-R.5", "YES")
        assessments.submit_response(org_admin, draft.id, "PDPL-R.5", "PARTIAL")
        tasks = [t for t in store.tasks_for_org(org_admin.org_id) if t.control_id == "PDPL-R.5"]
        assert len(tasks) == 1
        assert tasks[0].gap_type == GapType.GAP

    def test_transfer_suspension_on_yes(self, assessments, org_service, org_admin, draft, store, clock):
        org_service.update_profile(org_admin, cross_border_transfers=True)
        assessments.submit_response(org_admin, draft.id, "PDPL-T.8", "YES")
        task = store.find_task(draft.id, "PDPL-T.8", transfer_suspension=True)
        assert task is not None
        assert task.risk_level.value == "CRITICAL"
        assert task.deadline == clock()
        assert store.find_task(draft.id, "PDPL-T.8", transfer_suspension=False) is None

        assessments.submit_response(org_admin, draft.id, "PDPL-T.8", "YES")
        urgent = [t for t in store.tasks_for_org(org_admin.org_id) if t.transfer_suspension]
        assert len(urgent) == 1

    def test_no_after_suspension_trigger_opens_no_second_task(self, assessments, org_service, org_admin, draft, store):
        org_service.update_profile(org_admin, cross_border_transfers=True)
        assessments.submit_response(org_admin, draft.id, "PDPL-T.8", "YES")
        assessments.submit_response(org_admin, draft.id, "PDPL-T.8", "NO")
        tasks = [t for t in store.tasks_for_org(org_admin.org_id) if t.control_id == "PDPL-T.8"]
        assert len(tasks) == 1
        assert tasks[0].transfer_suspension

    def test_suspension_trigger_after_gap_keeps_both(self, assessments, org_service, org_admin, draft, store):
        org_service.update_profile(org_admin, cross_border_transfers=True)
        assessments.submit_response(org_admin, draft.id, "PDPL-T.8", "NO")
        assessments.submit_response(org_admin, draft.id, "PDPL-T.8", "YES")
        assert store.find_task(draft.id, "PDPL-T.8", transfer_suspension=False) is not None
        assert store.find_task(draft.id, "PDPL-T.8", transfer_suspension=True) is not None

    def test_audit_records_old_and_new_answer(self, assessments, org_admin, draft, audit):
        assessments.submit_response(org_admin, draft.id, "PDPL-G.6", "NO")
        assessments.submit_response(org_admin, draft.id, "PDPL-G.6", "YES")
        entries = [e for e in audit.entries(org_admin.org_id) if e.action == "RESPONSE_SUBMITTED"]
        assert entries[0].old_value is None
        assert entries[1].old_value == {"answer": "NO"}
        assert entries[1].new_value["answer"] == "YES"


class TestLifecycle:
    def test_submit_for_review(self, assessments, org_admin, draft):
        a = assessments.submit_for_review(org_admin, draft.id)
        assert a.status == AssessmentStatus.IN_REVIEW
        with pytest.raises(InvalidStatusError):
            assessments.submit_for_review(org_admin, draft.id)

    def test_responses_editable_in_review(self, assessments, org_admin, draft):
        assessments.submit_for_review(org_admin, draft.id)
        r = assessments.submit_response(org_admin, draft.id, "PDPL-G.6", "YES")
        assert r.answer == Answer.YES

    def test_finalize_scores_and_locks(self, assessments, org_admin, draft, clock):
        assessments.submit_response(org_admin, draft.id, "PDPL-S.1", "YES")
        assessments.submit_response(org_admin, draft.id, "PDPL-G.6", "NO")
        a = assessments.finalize(org_admin, draft.id)
        assert a.status == AssessmentStatus.FINALIZED
        assert a.overall_score == 62.5
        assert a.medium_gaps == 1
        assert a.total_controls_assessed == 2
        assert a.finalized_by == org_admin.user_id
        assert a.finalized_at == clock()

        with pytest.raises(AssessmentLockedError):
            assessments.submit_response(org_admin, draft.id, "PDPL-G.6", "YES")
        with pytest.raises(InvalidStatusError):
            assessments.finalize(org_admin, draft.id)

    def test_finalize_requires_privileged_role(self, assessments, officer, draft):
        with pytest.raises(ForbiddenError):
            assessments.finalize(officer, draft.id)

    def test_finalize_empty_assessment(self, assessments, dpo, draft):
        a = assessments.finalize(dpo, draft.id)
        assert a.overall_score == 0
        assert a.domain_scores == []

    def test_archived_is_locked(self, assessments, org_admin, draft):
        assessments.create_assessment(org_admin)
        with pytest.raises(AssessmentLockedError):
            assessments.submit_response(org_admin, draft.id, "PDPL-G.6", "YES")
        with pytest.raises(InvalidStatusError):
            assessments.finalize(org_admin, draft.id)


class TestQueries:
    def test_list_newest_first(self, assessments, org_admin, draft, clock):
        clock.advance(days=1)
        second = assessments.create_assessment(org_admin)
        assessments.submit_response(org_admin, second.id, "PDPL-G.6", "YES")
        summaries = assessments.list_assessments(org_admin)
        assert [s.assessment.id for s in summaries] == [second.id, draft.id]
        assert summaries[0].response_count == 1

    def test_list_filter_by_status(self, assessments, org_admin, draft):
        assessments.create_assessment(org_admin)
        archived = assessments.list_assessments(org_admin, status="ARCHIVED")
        assert [s.assessment.id for s in archived] == [draft.id]

    def test_list_rejects_bad_status(self, assessments, org_admin):
        with pytest.raises(ValidationError):
            assessments.list_assessments(org_admin, status="DONE")

    def test_get_assessment_progress(self, assessments, org_admin, draft):
        for cid in ("PDPL-G.1", "PDPL-G.3", "PDPL-G.6"):
            assessments.submit_response(org_admin, draft.id, cid, "YES")
        detail = assessments.get_assessment(org_admin, draft.id)
        assert detail.answered_count == 3
        assert detail.total_applicable == 30
        assert detail.progress == 10
        assert "PDPL-T.8" in detail.na_controls

    def test_applicable_controls_grouped(self, assessments, org_admin):
        result = assessments.list_applicable_controls(org_admin)
        assert result.total == 30
        assert [d.domain_number for d in result.domains] == sorted(d.domain_number for d in result.domains)
        assert "PDPL-G.1" in result.activated_controls
