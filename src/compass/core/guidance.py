"""Remediation guidance with a per-task cache in front of the text generator."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from ..catalog.loader import ControlCatalog
from ..models.organization import Actor
from ..providers.base import TextGenerator
from ..utils.sanitize import sanitize_error
from .audit import AuditSink, record_audit
from .clock import Clock, utcnow
from .errors import NotFoundError, ServiceUnavailableError
from .organizations import get_org
from .prompts import GuidanceContext
from .store import Store

logger = logging.getLogger(__name__)

DEFAULT_CACHE_HOURS = 24
FALLBACK_GUIDANCE = (
    "AI guidance temporarily unavailable. "
    "Please refer to the evidence guidance for this control."
)


class GuidanceService:
    def __init__(
        self,
        store: Store,
        catalog: ControlCatalog,
        generator: TextGenerator,
        clock: Clock = utcnow,
        cache_hours: int = DEFAULT_CACHE_HOURS,
        audit: Optional[AuditSink] = None,
    ):
        self.store = store
        self.catalog = catalog
        self.generator = generator
        self.clock = clock
        self.cache_ttl = timedelta(hours=cache_hours)
        self.audit = audit

    def build_context(self, actor: Actor, task_id: str) -> GuidanceContext:
        task = self.store.tasks.get(task_id)
        if task is None or task.org_id != actor.org_id:
            raise NotFoundError("Task not found")
        org = get_org(self.store, actor)
        control = self.catalog.get(task.control_id)
        if control is None:
            raise NotFoundError("Control not found")

        profile = org.profile
        return GuidanceContext(
            org_type=profile.org_type.value,
            size=org.bed_count or org.staff_size,
            processes_minors=profile.processes_minors,
            uses_ai=profile.uses_ai_or_automated_decisions,
            continuous_monitoring=profile.continuous_monitoring,
            cross_border_transfers=profile.cross_border_transfers,
            applicable_regulatory_bodies=org.applicable_regulatory_bodies,
            language=org.language,
            control_id=control.id,
            control_objective=control.objective,
            risk_level=task.risk_level.value,
            legal_basis=task.legal_basis,
            evidence_guidance=control.evidence_guidance,
            gap_type=task.gap_type.value,
            notes=task.notes,
        )

    async def get_guidance(self, actor: Actor, task_id: str, force: bool = False) -> tuple[str, bool]:
        """Return (guidance, cached).

        A stored value younger than the cache TTL is served without calling
        the generator. Generator failures yield the fallback text, which is
        never cached.
        """
        task = self.store.tasks.get(task_id)
        if task is None or task.org_id != actor.org_id:
            raise NotFoundError("Task not found")

        now = self.clock()
        if (
            not force
            and task.ai_guidance
            and task.ai_generated_at is not None
            and now - task.ai_generated_at < self.cache_ttl
        ):
            return task.ai_guidance, True

        context = self.build_context(actor, task_id)
        # Generation runs outside the task lock.
        try:
            guidance = await self.generator.generate(context)
        except ServiceUnavailableError as e:
            logger.warning("Guidance generation failed for task %s: %s", task_id, sanitize_error(str(e)))
            return FALLBACK_GUIDANCE, False

        with self.store.transaction(task_id):
            current = self.store.tasks[task_id]
            self.store.tasks[task_id] = current.model_copy(
                update={"ai_guidance": guidance, "ai_generated_at": now}
            )

        record_audit(
            self.audit, actor, "AI_GUIDANCE_GENERATED",
            entity_type="task", entity_id=task_id,
            new_value={"control_id": context.control_id},
            timestamp=now,
        )
        return guidance, False
