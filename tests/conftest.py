"""Shared fixtures for Compass tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from compass.catalog.loader import ControlCatalog, load_catalog
from compass.core.assessments import AssessmentService
from compass.core.audit import MemoryAuditLog
from compass.core.evidence import EvidenceRegistry
from compass.core.organizations import OrganizationService
from compass.core.remediation import RemediationService
from compass.core.store import Store
from compass.models.organization import Actor, OrganizationProfile, OrgType, Role

NOW = datetime(2026, 1, 15, 10, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Deterministic clock; call advance() to move time forward."""

    def __init__(self, start: datetime = NOW):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture(scope="session")
def catalog() -> ControlCatalog:
    return load_catalog()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def audit() -> MemoryAuditLog:
    return MemoryAuditLog()


@pytest.fixture
def store() -> Store:
    return Store()


@pytest.fixture
def org_service(store: Store, audit: MemoryAuditLog, clock: FrozenClock) -> OrganizationService:
    return OrganizationService(store, audit, clock)


@pytest.fixture
def hospital_profile() -> OrganizationProfile:
    return OrganizationProfile(org_type=OrgType.PRIVATE_HOSPITAL)


@pytest.fixture
def org_admin(org_service: OrganizationService, hospital_profile: OrganizationProfile) -> Actor:
    """Org admin of an onboarded private hospital."""
    _, admin = org_service.create_organization(
        "Al Noor Hospital",
        hospital_profile,
        "admin@alnoor.sa",
        admin_first_name="Sara",
        admin_last_name="Haddad",
        onboarding_completed=True,
    )
    return Actor.for_user(admin)


@pytest.fixture
def make_actor(org_service: OrganizationService, org_admin: Actor):
    """Factory: add a user with the given role to the org and return its Actor."""
    counter = {"n": 0}

    def _make(role: Role) -> Actor:
        counter["n"] += 1
        user = org_service.add_user(org_admin, f"{role.value}{counter['n']}@alnoor.sa", role)
        return Actor.for_user(user)

    return _make


@pytest.fixture
def dpo(make_actor) -> Actor:
    return make_actor(Role.DPO)


@pytest.fixture
def officer(make_actor) -> Actor:
    return make_actor(Role.COMPLIANCE_OFFICER)


@pytest.fixture
def staff(make_actor) -> Actor:
    return make_actor(Role.STAFF)


@pytest.fixture
def evidence_registry(store: Store, audit: MemoryAuditLog, clock: FrozenClock) -> EvidenceRegistry:
    return EvidenceRegistry(store, audit, clock)


@pytest.fixture
def assessments(store: Store, catalog: ControlCatalog, audit: MemoryAuditLog, clock: FrozenClock) -> AssessmentService:
    return AssessmentService(store, catalog, audit, clock)


@pytest.fixture
def remediation(
    store: Store,
    catalog: ControlCatalog,
    evidence_registry: EvidenceRegistry,
    audit: MemoryAuditLog,
    clock: FrozenClock,
) -> RemediationService:
    return RemediationService(store, catalog, evidence_registry, audit, clock)


@pytest.fixture
def draft(assessments: AssessmentService, org_admin: Actor):
    return assessments.create_assessment(org_admin)


@pytest.fixture
def sha() -> str:
    return "a" * 64


@pytest.fixture
def workspace_root(tmp_path: Path) -> Path:
    root = tmp_path / "hospital"
    root.mkdir()
    return root
