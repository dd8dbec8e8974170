"""Workspace wiring: config, catalog, store, audit log and services."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .. import __version__
from ..catalog.loader import load_workspace_catalog
from ..models.organization import Actor, Organization, OrganizationProfile, User
from ..providers.base import get_text_generator
from .assessments import AssessmentService
from .audit import JsonlAuditLog
from .clock import Clock, utcnow
from .config import get_effective_config, load_workspace_config, save_workspace_config, workspace_dir
from .errors import ForbiddenError, NotFoundError, ValidationError
from .evidence import EvidenceRegistry
from .guidance import GuidanceService
from .organizations import OrganizationService
from .remediation import RemediationService
from .store import Store

logger = logging.getLogger(__name__)


class Workspace:
    """All services bound to one `.compass/` directory."""

    def __init__(self, root: Path, cli_overrides: Optional[dict] = None, clock: Clock = utcnow):
        self.root = root
        self.clock = clock
        self.config = get_effective_config(root, cli_overrides)

        base = workspace_dir(root)
        ws_config = self.config["workspace"]
        self.catalog = load_workspace_catalog(root)
        self.store = Store(base / ws_config["state_file"])
        self.audit = JsonlAuditLog(base / ws_config["audit_file"])

        self.organizations = OrganizationService(self.store, self.audit, clock)
        self.evidence = EvidenceRegistry(self.store, self.audit, clock)
        self.assessments = AssessmentService(self.store, self.catalog, self.audit, clock)
        self.remediation = RemediationService(self.store, self.catalog, self.evidence, self.audit, clock)

    @property
    def is_initialized(self) -> bool:
        return bool(self.store.organizations)

    def guidance(self, provider: Optional[str] = None, model: Optional[str] = None) -> GuidanceService:
        generator = get_text_generator(self.config, provider_override=provider, model_override=model)
        return GuidanceService(
            self.store,
            self.catalog,
            generator,
            clock=self.clock,
            cache_hours=self.config["guidance"]["cache_hours"],
            audit=self.audit,
        )

    def resolve_user(self, key: str) -> Optional[User]:
        """Look a user up by email or id."""
        if "@" in key:
            return self.store.find_user_by_email(key)
        user = self.store.users.get(key)
        return None if user is None or user.is_deleted else user

    def resolve_actor(self, user_key: Optional[str] = None) -> Actor:
        key = user_key or self.config["workspace"].get("default_user")
        if not key:
            raise ValidationError("No acting user. Pass --user or set workspace.default_user")
        user = self.resolve_user(key)
        if user is None:
            raise NotFoundError(f"User not found: {key}")
        if not user.is_active:
            raise ForbiddenError("User is inactive")
        return Actor.for_user(user, ip_address="127.0.0.1", user_agent=f"compass-cli/{__version__}")


def initialize_workspace(
    root: Path,
    org_name: str,
    profile: OrganizationProfile,
    admin_email: str,
    admin_first_name: str = "",
    admin_last_name: str = "",
    clock: Clock = utcnow,
    **org_fields,
) -> tuple[Workspace, Organization, User]:
    """Create `.compass/` with its config, the organization and its admin."""
    config = load_workspace_config(root)
    config.setdefault("compass_version", __version__)
    config.setdefault("workspace", {}).setdefault("default_user", admin_email)
    save_workspace_config(root, config)

    workspace = Workspace(root, clock=clock)
    if workspace.is_initialized:
        raise ValidationError(f"Workspace already initialized in {workspace_dir(root)}")

    org, admin = workspace.organizations.create_organization(
        org_name,
        profile,
        admin_email,
        admin_first_name=admin_first_name,
        admin_last_name=admin_last_name,
        onboarding_completed=True,
    )
    if org_fields:
        org, _ = workspace.organizations.update_profile(Actor.for_user(admin), **org_fields)
    logger.info("Initialized workspace for %s in %s", org.name, root)
    return workspace, org, admin
