"""Tests for core/store.py."""

from __future__ import annotations

import threading

import pytest

from compass.core.assessments import AssessmentService
from compass.core.errors import InvalidStatusError
from compass.core.organizations import OrganizationService
from compass.core.store import Store
from compass.core.workspace import Workspace, initialize_workspace
from compass.models.assessment import AssessmentStatus
from compass.models.organization import Actor, OrganizationProfile, OrgType


class TestPersistence:
    def test_in_memory_save_is_noop(self):
        assert Store().save() is None

    def test_round_trip(self, tmp_path, catalog, clock):
        path = tmp_path / ".compass" / "state.yaml"
        store = Store(path)
        orgs = OrganizationService(store, clock=clock)
        _, admin = orgs.create_organization(
            "Round Trip", OrganizationProfile(org_type=OrgType.CLINIC_LARGE), "rt@clinic.sa",
            onboarding_completed=True,
        )
        actor = Actor.for_user(admin)
        service = AssessmentService(store, catalog, clock=clock)
        a = service.create_assessment(actor)
        service.submit_response(actor, a.id, "PDPL-S.1", "NO")
        service.finalize(actor, a.id)
        assert path.exists()

        reloaded = Store(path)
        assert reloaded.snapshot() == store.snapshot()
        assert reloaded.find_task(a.id, "PDPL-S.1") is not None
        assert reloaded.assessments[a.id].status == AssessmentStatus.FINALIZED

    def test_empty_file(self, tmp_path):
        path = tmp_path / "state.yaml"
        path.write_text("", encoding="utf-8")
        assert Store(path).organizations == {}


class TestTransactions:
    def test_failed_block_does_not_save(self, tmp_path):
        path = tmp_path / "state.yaml"
        store = Store(path)
        with pytest.raises(RuntimeError):
            with store.transaction("k"):
                raise RuntimeError("boom")
        assert not path.exists()

    def test_failed_block_discards_partial_writes(self, tmp_path, clock):
        store = Store(tmp_path / "state.yaml")
        org, _ = OrganizationService(store, clock=clock).create_organization(
            "Rollback", OrganizationProfile(org_type=OrgType.CLINIC_LARGE), "rb@clinic.sa",
        )
        with pytest.raises(RuntimeError):
            with store.transaction(f"org:{org.id}"):
                store.organizations.pop(org.id)
                raise RuntimeError("boom")
        assert org.id in store.organizations

    def test_reentrant(self):
        store = Store()
        with store.transaction("a", "b"):
            with store.transaction("b"):
                pass

    def test_concurrent_finalize_succeeds_once(self, store, catalog, org_admin, clock):
        service = AssessmentService(store, catalog, clock=clock)
        a = service.create_assessment(org_admin)
        for cid in ("PDPL-G.1", "PDPL-G.3", "PDPL-S.1"):
            service.submit_response(org_admin, a.id, cid, "YES")

        barrier = threading.Barrier(8)
        successes: list[str] = []
        failures: list[Exception] = []

        def worker():
            barrier.wait()
            try:
                service.finalize(org_admin, a.id)
                successes.append(a.id)
            except InvalidStatusError as e:
                failures.append(e)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(successes) == 1
        assert len(failures) == 7
        assert store.assessments[a.id].status == AssessmentStatus.FINALIZED

    def test_concurrent_submissions_create_one_task(self, store, catalog, org_admin, clock):
        service = AssessmentService(store, catalog, clock=clock)
        a = service.create_assessment(org_admin)
        barrier = threading.Barrier(6)

        def worker():
            barrier.wait()
            service.submit_response(org_admin, a.id, "PDPL-B.1", "NO")

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(store.responses_for(a.id)) == 1
        assert len([t for t in store.tasks.values() if t.control_id == "PDPL-B.1"]) == 1


class TestSharedWorkspace:
    """Two handles on one `.compass/` directory, as two CLI processes would hold."""

    @pytest.fixture
    def root(self, workspace_root, hospital_profile, clock):
        initialize_workspace(workspace_root, "Al Noor Hospital", hospital_profile, "admin@alnoor.sa", clock=clock)
        return workspace_root

    def test_second_finalize_sees_first(self, root, clock):
        first, second = Workspace(root, clock=clock), Workspace(root, clock=clock)
        actor = first.resolve_actor()
        a = first.assessments.create_assessment(actor)
        first.assessments.submit_response(actor, a.id, "PDPL-S.1", "YES")
        finalized = first.assessments.finalize(actor, a.id)

        with pytest.raises(InvalidStatusError):
            second.assessments.finalize(second.resolve_actor(), a.id)

        reopened = Workspace(root, clock=clock)
        assert len(reopened.store.responses_for(a.id)) == 1
        assert reopened.store.assessments[a.id].overall_score == finalized.overall_score

    def test_writes_from_both_handles_persist(self, root, clock):
        first, second = Workspace(root, clock=clock), Workspace(root, clock=clock)
        a = first.assessments.create_assessment(first.resolve_actor())
        second.assessments.submit_response(second.resolve_actor(), a.id, "PDPL-G.1", "YES")
        first.assessments.submit_response(first.resolve_actor(), a.id, "PDPL-S.1", "NO")

        reopened = Workspace(root, clock=clock)
        assert {r.control_id for r in reopened.store.responses_for(a.id)} == {"PDPL-G.1", "PDPL-S.1"}
        assert reopened.store.find_task(a.id, "PDPL-S.1") is not None
