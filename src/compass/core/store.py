"""Repository with per-aggregate locking and a YAML snapshot.

Every mutating service operation runs inside `Store.transaction(...)`, which
holds the row locks for the aggregates it touches. A file-backed store also
holds an exclusive lock on the state file for the outermost transaction:
the snapshot is reloaded before the block runs and written once it
completes without error, so separate processes sharing one workspace see
each other's committed writes.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import yaml
from filelock import FileLock

from ..models.assessment import Assessment, Response
from ..models.organization import Organization, User
from ..models.remediation import EvidenceFile, RemediationTask

logger = logging.getLogger(__name__)


class Store:
    def __init__(self, path: Optional[Path] = None):
        self.path = path
        self.organizations: dict[str, Organization] = {}
        self.users: dict[str, User] = {}
        self.assessments: dict[str, Assessment] = {}
        self.responses: dict[tuple[str, str], Response] = {}
        self.tasks: dict[str, RemediationTask] = {}
        self.evidence: dict[str, EvidenceFile] = {}

        self._locks: dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()
        self._save_lock = threading.Lock()

        # File-backed stores serialize whole transactions: in-process on
        # _file_guard, across processes on the lock file next to the state.
        self._file_guard = threading.RLock()
        self._file_lock = FileLock(str(path.with_name(path.name + ".lock"))) if path is not None else None
        self._depth = 0

        if path is not None and path.exists():
            self.load()

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    def _lock_for(self, key: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        """Hold the state file for the outermost transaction.

        Reloads before the block and saves after it. A failed block reloads
        again, discarding its partial in-memory writes.
        """
        if self._file_lock is None:
            yield
            self.save()
            return

        with self._file_guard:
            outermost = self._depth == 0
            if outermost:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self._file_lock.acquire()
            self._depth += 1
            try:
                if outermost and self.path.exists():
                    self.load()
                try:
                    yield
                except BaseException:
                    if outermost and self.path.exists():
                        self.load()
                    raise
                if outermost:
                    self.save()
            finally:
                self._depth -= 1
                if outermost:
                    self._file_lock.release()

    @contextmanager
    def transaction(self, *keys: str) -> Iterator[Store]:
        """Hold the row locks for `keys` for the block.

        Keys passed together are locked in sorted order. A nested
        transaction takes its keys after the outer ones, so creating an
        assessment locks the org first and the previous assessment second.
        """
        with self._exclusive():
            locks = [self._lock_for(k) for k in sorted(set(keys))]
            for lock in locks:
                lock.acquire()
            try:
                yield self
            finally:
                for lock in reversed(locks):
                    lock.release()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def users_for_org(self, org_id: str) -> list[User]:
        return [u for u in list(self.users.values()) if u.org_id == org_id and not u.is_deleted]

    def find_user_by_email(self, email: str) -> Optional[User]:
        email = email.lower()
        return next(
            (u for u in list(self.users.values()) if u.email.lower() == email and not u.is_deleted),
            None,
        )

    def assessments_for_org(self, org_id: str) -> list[Assessment]:
        return [a for a in list(self.assessments.values()) if a.org_id == org_id]

    def responses_for(self, assessment_id: str) -> list[Response]:
        return [r for (a_id, _), r in list(self.responses.items()) if a_id == assessment_id]

    def tasks_for_org(self, org_id: str) -> list[RemediationTask]:
        return [t for t in list(self.tasks.values()) if t.org_id == org_id]

    def find_task(
        self,
        assessment_id: str,
        control_id: str,
        transfer_suspension: Optional[bool] = None,
    ) -> Optional[RemediationTask]:
        """First task for the pair; `transfer_suspension` narrows to one kind."""
        return next(
            (
                t for t in list(self.tasks.values())
                if t.assessment_id == assessment_id
                and t.control_id == control_id
                and (transfer_suspension is None or t.transfer_suspension == transfer_suspension)
            ),
            None,
        )

    def evidence_for_task(self, org_id: str, task_id: str) -> list[EvidenceFile]:
        return [
            e for e in list(self.evidence.values())
            if e.task_id == task_id and e.org_id == org_id and not e.is_deleted
        ]

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def snapshot(self) -> dict:
        return {
            "organizations": [o.model_dump(mode="json") for o in list(self.organizations.values())],
            "users": [u.model_dump(mode="json") for u in list(self.users.values())],
            "assessments": [a.model_dump(mode="json") for a in list(self.assessments.values())],
            "responses": [r.model_dump(mode="json") for r in list(self.responses.values())],
            "tasks": [t.model_dump(mode="json") for t in list(self.tasks.values())],
            "evidence": [e.model_dump(mode="json") for e in list(self.evidence.values())],
        }

    def save(self) -> Optional[Path]:
        if self.path is None:
            return None
        with self._save_lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            content = yaml.safe_dump(
                self.snapshot(),
                default_flow_style=False,
                sort_keys=False,
                allow_unicode=True,
                width=120,
            )
            tmp = self.path.with_suffix(".tmp")
            tmp.write_text(content, encoding="utf-8")
            tmp.replace(self.path)
        return self.path

    def load(self) -> None:
        content = self.path.read_text(encoding="utf-8-sig")
        data = yaml.safe_load(content) or {}

        self.organizations = {
            o.id: o for o in (Organization.model_validate(d) for d in data.get("organizations") or [])
        }
        self.users = {u.id: u for u in (User.model_validate(d) for d in data.get("users") or [])}
        self.assessments = {
            a.id: a for a in (Assessment.model_validate(d) for d in data.get("assessments") or [])
        }
        self.responses = {
            (r.assessment_id, r.control_id): r
            for r in (Response.model_validate(d) for d in data.get("responses") or [])
        }
        self.tasks = {
            t.id: t for t in (RemediationTask.model_validate(d) for d in data.get("tasks") or [])
        }
        self.evidence = {
            e.id: e for e in (EvidenceFile.model_validate(d) for d in data.get("evidence") or [])
        }
        logger.debug(
            "Loaded %d organizations, %d assessments, %d tasks from %s",
            len(self.organizations), len(self.assessments), len(self.tasks), self.path,
        )
