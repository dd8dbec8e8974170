"""Organization, profile and user data models."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class OrgType(str, Enum):
    GOVERNMENT_HOSPITAL = "government_hospital"
    PRIVATE_HOSPITAL = "private_hospital"
    CLINIC_SMALL = "clinic_small"
    CLINIC_LARGE = "clinic_large"
    INSURER = "insurer"
    PHARMA = "pharma"
    HEALTH_TECH = "health_tech"
    GOVERNMENT_ENTITY = "government_entity"
    PRIVATE_COMPANY = "private_company"
    OTHER = "other"


class CloudUsage(str, Enum):
    YES = "yes"
    NO = "no"
    PARTIAL = "partial"


class OrganizationProfile(BaseModel):
    """The profile flags that drive control applicability."""

    org_type: OrgType
    processes_minors: bool = False
    cross_border_transfers: bool = False
    uses_cloud: CloudUsage = CloudUsage.NO
    conducts_research: bool = False
    uses_ai_or_automated_decisions: bool = False
    continuous_monitoring: bool = False


class Organization(BaseModel):
    id: str
    name: str
    profile: OrganizationProfile
    onboarding_completed: bool = False
    bed_count: Optional[int] = None
    staff_size: Optional[int] = None
    applicable_regulatory_bodies: list[str] = []
    language: str = "en"


class Role(str, Enum):
    """Closed set of platform roles with capability predicates."""

    SUPER_ADMIN = "super_admin"
    ORG_ADMIN = "org_admin"
    DPO = "dpo"
    CISO = "ciso"
    CDO = "cdo"
    COMPLIANCE_OFFICER = "compliance_officer"
    DATA_STEWARD = "data_steward"
    DATA_CUSTODIAN = "data_custodian"
    DEPARTMENT_MANAGER = "department_manager"
    STAFF = "staff"
    AUDITOR = "auditor"

    def can_create_assessment(self) -> bool:
        return self in (Role.ORG_ADMIN, Role.DPO, Role.COMPLIANCE_OFFICER)

    def can_finalize(self) -> bool:
        return self in (Role.DPO, Role.ORG_ADMIN)

    def can_close_tasks(self) -> bool:
        return self in (Role.DPO, Role.ORG_ADMIN, Role.COMPLIANCE_OFFICER)

    def can_defer(self) -> bool:
        return self in (Role.DPO, Role.ORG_ADMIN)

    def can_assign_tasks(self) -> bool:
        return self in (Role.DPO, Role.ORG_ADMIN, Role.COMPLIANCE_OFFICER)

    def can_edit_profile(self) -> bool:
        return self in (Role.ORG_ADMIN, Role.DPO, Role.SUPER_ADMIN)

    def can_manage_users(self) -> bool:
        return self in (Role.ORG_ADMIN, Role.DPO)

    def can_read_audit_log(self) -> bool:
        return self in (Role.DPO, Role.ORG_ADMIN, Role.AUDITOR)


class User(BaseModel):
    id: str
    org_id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    role: Role = Role.STAFF
    is_active: bool = True
    is_deleted: bool = False


class Actor(BaseModel):
    """The authenticated caller of a service operation."""

    user_id: str
    org_id: str
    role: Role
    ip_address: str = "0.0.0.0"
    user_agent: Optional[str] = None

    @classmethod
    def for_user(cls, user: User, ip_address: str = "0.0.0.0", user_agent: Optional[str] = None) -> Actor:
        return cls(
            user_id=user.id,
            org_id=user.org_id,
            role=user.role,
            ip_address=ip_address,
            user_agent=user_agent,
        )
