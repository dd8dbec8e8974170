"""Organization profile and user management."""

from __future__ import annotations

import logging
from typing import Any, Optional

import pydantic

from ..models.organization import Actor, Organization, OrganizationProfile, Role, User
from .audit import AuditSink, record_audit
from .branching import BranchingResult, evaluate
from .clock import Clock, new_id, utcnow
from .errors import ForbiddenError, NotFoundError, ValidationError
from .store import Store

logger = logging.getLogger(__name__)

ORG_FIELDS = frozenset({
    "name", "onboarding_completed", "bed_count", "staff_size",
    "applicable_regulatory_bodies", "language",
})
PROFILE_FIELDS = frozenset(OrganizationProfile.model_fields)


def get_org(store: Store, actor: Actor) -> Organization:
    org = store.organizations.get(actor.org_id)
    if org is None:
        raise NotFoundError("Organization not found")
    return org


class OrganizationService:
    def __init__(self, store: Store, audit: Optional[AuditSink] = None, clock: Clock = utcnow):
        self.store = store
        self.audit = audit
        self.clock = clock

    def create_organization(
        self,
        name: str,
        profile: OrganizationProfile,
        admin_email: str,
        admin_first_name: str = "",
        admin_last_name: str = "",
        onboarding_completed: bool = False,
    ) -> tuple[Organization, User]:
        """Bootstrap a tenant together with its first org_admin user."""
        if not name.strip():
            raise ValidationError("Organization name is required")
        if self.store.find_user_by_email(admin_email):
            raise ValidationError("Email already exists")

        org = Organization(
            id=new_id(),
            name=name.strip(),
            profile=profile,
            onboarding_completed=onboarding_completed,
        )
        admin = User(
            id=new_id(),
            org_id=org.id,
            email=admin_email,
            first_name=admin_first_name,
            last_name=admin_last_name,
            role=Role.ORG_ADMIN,
        )
        with self.store.transaction(f"org:{org.id}"):
            self.store.organizations[org.id] = org
            self.store.users[admin.id] = admin

        record_audit(
            self.audit, Actor.for_user(admin), "ORG_CREATED",
            entity_type="organization", entity_id=org.id,
            new_value={"name": org.name, "org_type": profile.org_type.value},
            timestamp=self.clock(),
        )
        return org, admin

    def get_profile(self, actor: Actor) -> tuple[Organization, BranchingResult]:
        org = get_org(self.store, actor)
        return org, evaluate(org.profile)

    def update_profile(self, actor: Actor, **changes: Any) -> tuple[Organization, BranchingResult]:
        """Apply organization and profile-flag changes; unknown fields are rejected."""
        if not actor.role.can_edit_profile():
            raise ForbiddenError()

        unknown = set(changes) - ORG_FIELDS - PROFILE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown profile fields: {', '.join(sorted(unknown))}")

        with self.store.transaction(f"org:{actor.org_id}"):
            old = get_org(self.store, actor)
            data = old.model_dump()
            for key, value in changes.items():
                if value is None:
                    continue
                if key in PROFILE_FIELDS:
                    data["profile"][key] = value
                else:
                    data[key] = value
            try:
                org = Organization.model_validate(data)
            except pydantic.ValidationError as e:
                raise ValidationError(f"Invalid profile: {e.errors()[0]['msg']}") from e
            self.store.organizations[org.id] = org

        record_audit(
            self.audit, actor, "ORG_PROFILE_UPDATED",
            entity_type="organization", entity_id=org.id,
            old_value=old.model_dump(mode="json"), new_value=org.model_dump(mode="json"),
            timestamp=self.clock(),
        )
        return org, evaluate(org.profile)

    def add_user(
        self,
        actor: Actor,
        email: str,
        role: Role | str,
        first_name: str = "",
        last_name: str = "",
    ) -> User:
        if not actor.role.can_manage_users():
            raise ForbiddenError()
        if not email or "@" not in email:
            raise ValidationError("A valid email is required")
        try:
            role = Role(role)
        except ValueError:
            raise ValidationError(f"Unknown role: {role}") from None

        with self.store.transaction(f"org:{actor.org_id}"):
            get_org(self.store, actor)
            if self.store.find_user_by_email(email):
                raise ValidationError("Email already exists")
            user = User(
                id=new_id(),
                org_id=actor.org_id,
                email=email,
                first_name=first_name,
                last_name=last_name,
                role=role,
            )
            self.store.users[user.id] = user

        record_audit(
            self.audit, actor, "USER_CREATED",
            entity_type="user", entity_id=user.id,
            new_value={"email": email, "role": role.value},
            timestamp=self.clock(),
        )
        return user

    def list_users(self, actor: Actor) -> list[User]:
        if not actor.role.can_manage_users():
            raise ForbiddenError()
        return sorted(self.store.users_for_org(actor.org_id), key=lambda u: u.email)
