"""Audit log entry model."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel


class AuditEntry(BaseModel):
    id: str
    timestamp: datetime
    org_id: str
    user_id: str
    action: str
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    old_value: Optional[Any] = None
    new_value: Optional[Any] = None
    ip_address: str = "0.0.0.0"
    user_agent: Optional[str] = None
