"""Append-only audit trail.

Writes go through record_audit(), which never lets a sink failure escape:
the primary state change has already been committed when it is called.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

from ..models.audit import AuditEntry
from ..models.organization import Actor
from .errors import ForbiddenError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50


@runtime_checkable
class AuditSink(Protocol):
    def record(self, entry: AuditEntry) -> None: ...

    def entries(self, org_id: str) -> list[AuditEntry]: ...


class MemoryAuditLog:
    """In-process audit log, used by tests and short-lived sessions."""

    def __init__(self) -> None:
        self._entries: list[AuditEntry] = []
        self._lock = threading.Lock()

    def record(self, entry: AuditEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def entries(self, org_id: str) -> list[AuditEntry]:
        with self._lock:
            return [e for e in self._entries if e.org_id == org_id]


class JsonlAuditLog:
    """One JSON object per line, opened in append mode for every write."""

    def __init__(self, path: Path):
        self.path = path
        self._lock = threading.Lock()

    def record(self, entry: AuditEntry) -> None:
        line = entry.model_dump_json()
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")

    def entries(self, org_id: str) -> list[AuditEntry]:
        if not self.path.exists():
            return []
        result: list[AuditEntry] = []
        with self._lock:
            lines = self.path.read_text(encoding="utf-8").splitlines()
        for line in lines:
            if not line.strip():
                continue
            try:
                entry = AuditEntry.model_validate(json.loads(line))
            except (ValueError, TypeError):
                logger.warning("Skipping unreadable audit line in %s", self.path)
                continue
            if entry.org_id == org_id:
                result.append(entry)
        return result


def record_audit(
    sink: Optional[AuditSink],
    actor: Actor,
    action: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    old_value: Any = None,
    new_value: Any = None,
    timestamp: Optional[datetime] = None,
) -> None:
    """Best-effort audit write. Failures are logged and swallowed."""
    if sink is None:
        return
    try:
        entry = AuditEntry(
            id=str(uuid.uuid4()),
            timestamp=timestamp or datetime.now(timezone.utc),
            org_id=actor.org_id,
            user_id=actor.user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            old_value=old_value,
            new_value=new_value,
            ip_address=actor.ip_address,
            user_agent=actor.user_agent,
        )
        sink.record(entry)
    except Exception:
        logger.exception("Failed to write audit log entry %s for %s", action, entity_id)


def query_audit_log(
    sink: AuditSink,
    actor: Actor,
    action: Optional[str] = None,
    user_id: Optional[str] = None,
    entity_type: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    page: int = 1,
    per_page: int = DEFAULT_PAGE_SIZE,
) -> tuple[list[AuditEntry], int]:
    """Return one page of matching entries (newest first) and the total count."""
    if not actor.role.can_read_audit_log():
        raise ForbiddenError()

    matched = [
        e for e in sink.entries(actor.org_id)
        if (action is None or e.action == action)
        and (user_id is None or e.user_id == user_id)
        and (entity_type is None or e.entity_type == entity_type)
        and (date_from is None or e.timestamp >= date_from)
        and (date_to is None or e.timestamp <= date_to)
    ]
    matched.sort(key=lambda e: e.timestamp, reverse=True)

    page = max(page, 1)
    start = (page - 1) * per_page
    return matched[start:start + per_page], len(matched)
