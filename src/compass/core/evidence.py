"""Evidence registry.

File storage and hashing happen outside the core; this module records the
resulting metadata and answers whether a task has live evidence attached.
"""

from __future__ import annotations

import re
from typing import Optional

from ..models.organization import Actor
from ..models.remediation import EvidenceFile
from .audit import AuditSink, record_audit
from .clock import Clock, new_id, utcnow
from .errors import NotFoundError, ValidationError
from .store import Store

SHA256_RE = re.compile(r"^[0-9a-f]{64}$")


class EvidenceRegistry:
    def __init__(self, store: Store, audit: Optional[AuditSink] = None, clock: Clock = utcnow):
        self.store = store
        self.audit = audit
        self.clock = clock

    def has_evidence(self, task_id: str, org_id: str) -> bool:
        return bool(self.store.evidence_for_task(org_id, task_id))

    def link_evidence(
        self,
        actor: Actor,
        filename: str,
        sha256_hash: str,
        task_id: Optional[str] = None,
        control_id: Optional[str] = None,
        assessment_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> EvidenceFile:
        if not filename:
            raise ValidationError("filename is required")
        sha256_hash = sha256_hash.lower()
        if not SHA256_RE.match(sha256_hash):
            raise ValidationError("sha256_hash must be 64 hex characters")

        keys = [task_id] if task_id else [f"org:{actor.org_id}"]
        with self.store.transaction(*keys):
            if task_id:
                task = self.store.tasks.get(task_id)
                if task is None or task.org_id != actor.org_id:
                    raise NotFoundError("Task not found")
                control_id = control_id or task.control_id
                assessment_id = assessment_id or task.assessment_id

            evidence = EvidenceFile(
                id=new_id(),
                org_id=actor.org_id,
                task_id=task_id,
                control_id=control_id,
                assessment_id=assessment_id,
                filename=filename,
                sha256_hash=sha256_hash,
                description=description,
                uploaded_by=actor.user_id,
                uploaded_at=self.clock(),
            )
            self.store.evidence[evidence.id] = evidence

        record_audit(
            self.audit, actor, "EVIDENCE_UPLOADED",
            entity_type="evidence", entity_id=evidence.id,
            new_value={"control_id": control_id, "filename": filename, "sha256_hash": sha256_hash},
            timestamp=self.clock(),
        )
        return evidence

    def remove_evidence(self, actor: Actor, evidence_id: str) -> EvidenceFile:
        """Soft-delete; deleted records no longer count toward closure."""
        evidence = self.store.evidence.get(evidence_id)
        if evidence is None or evidence.org_id != actor.org_id or evidence.is_deleted:
            raise NotFoundError("Evidence not found")

        with self.store.transaction(evidence.task_id or f"org:{actor.org_id}"):
            evidence = self.store.evidence.get(evidence_id)
            if evidence is None or evidence.is_deleted:
                raise NotFoundError("Evidence not found")
            evidence = evidence.model_copy(update={"is_deleted": True})
            self.store.evidence[evidence.id] = evidence

        record_audit(
            self.audit, actor, "EVIDENCE_DELETED",
            entity_type="evidence", entity_id=evidence.id,
            timestamp=self.clock(),
        )
        return evidence

    def list_evidence(self, actor: Actor, task_id: Optional[str] = None) -> list[EvidenceFile]:
        files = [
            e for e in self.store.evidence.values()
            if e.org_id == actor.org_id and not e.is_deleted
            and (task_id is None or e.task_id == task_id)
        ]
        return sorted(files, key=lambda e: e.uploaded_at, reverse=True)
