"""
Task Delegator - tracked handoffs between handlers.

Lifecycle of a ``Delegation``:
    delegate()          -> pending      (deadline fixed from urgency)
    mark_in_progress()  -> in_progress
    handoff()           -> completed
    mark_failed()       -> failed
    sweep_overdue()     -> timeout      (escalation emitted once)

Terminal states never change. Records are keyed by unique id in a plain
dict; every transition happens synchronously inside the event loop.

Timeout policy: ownership goes back to the delegating handler. The
escalation is audited, queued for the host (``drain_escalations``) and
passed to any registered callbacks. Nothing is re-delegated automatically.
"""

import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from loguru import logger

from agent_router.handlers import (
    DEFAULT_FUNCTIONAL_HANDLER,
    FALLBACK_HANDLER,
    display_name,
    functional_handler_for,
    is_relationship_tier,
    relationship_handler_for,
)
from agent_router.policies import (
    assess_task_priority,
    build_expectations,
    calculate_deadline,
    determine_expected_format,
    estimate_completion_minutes,
    estimate_task_complexity,
    is_overloaded,
    needs_specialist,
    result_confidence,
)
from agent_router.schemas import (
    AuditSink,
    Clock,
    Delegation,
    DelegationRecommendation,
    DelegationResult,
    DelegationStatus,
    DelegationStatusUpdate,
    HandlerId,
    HandlerResponse,
    HandoffResult,
    SystemClock,
    TimeoutEscalation,
    Urgency,
    Workload,
    WorkloadProvider,
    new_id,
)
from agent_router.synthesizer import ResponseSynthesizer, item_text, results_payload
from infrastructure.config import (
    MONITOR_INTERVAL_SECONDS,
    WORKLOAD_DEFAULT_CAPACITY,
    WORKLOAD_DEFAULT_CURRENT_TASKS,
)
from infrastructure.db import LoguruAuditSink

FOLLOW_UP_SUGGESTIONS = [
    "Dive deeper into the top recommendation",
    "Explore alternative approaches",
    "Get a second opinion",
    "Plan implementation steps",
]

TimeoutCallback = Callable[[TimeoutEscalation], None]


class StaticWorkloadProvider:
    """Fixed load figures (3/10 by default) with optional per-handler overrides."""

    def __init__(
        self,
        current_tasks: int = WORKLOAD_DEFAULT_CURRENT_TASKS,
        capacity: int = WORKLOAD_DEFAULT_CAPACITY,
        overrides: Optional[Mapping[HandlerId, Workload]] = None,
    ) -> None:
        self.default = Workload(current_tasks=current_tasks, capacity=capacity)
        self.overrides: Dict[HandlerId, Workload] = dict(overrides or {})

    def workload(self, handler: HandlerId) -> Workload:
        return self.overrides.get(handler, self.default)


class TaskDelegator:
    """
    Builds and tracks delegation records.

    Dependencies (injected via ``__init__``):
        audit              - AuditSink (default: LoguruAuditSink)
        workload_provider  - WorkloadProvider (default: StaticWorkloadProvider)
        clock              - Clock (default: SystemClock)
        synthesizer        - ResponseSynthesizer for the handoff summary
    """

    def __init__(
        self,
        audit: Optional[AuditSink] = None,
        workload_provider: Optional[WorkloadProvider] = None,
        clock: Optional[Clock] = None,
        synthesizer: Optional[ResponseSynthesizer] = None,
    ) -> None:
        self.audit = audit or LoguruAuditSink()
        self.workload_provider = workload_provider or StaticWorkloadProvider()
        self.clock = clock or SystemClock()
        self.synthesizer = synthesizer or ResponseSynthesizer()

        self._delegations: Dict[str, Delegation] = {}
        self._escalations: List[TimeoutEscalation] = []
        self._timeout_callbacks: List[TimeoutCallback] = []

    # ═══════════════════════════════════════════════════════════════════════
    # Delegation
    # ═══════════════════════════════════════════════════════════════════════

    async def delegate(
        self,
        from_handler: HandlerId,
        to_handler: HandlerId,
        task: str,
        context: Optional[Dict[str, Any]] = None,
        urgency: Any = Urgency.LOW,
    ) -> DelegationResult:
        level = Urgency.parse(urgency)
        now = self.clock.now()
        delegation = Delegation(
            id=new_id("del"),
            from_handler=from_handler,
            to_handler=to_handler,
            task=task,
            created_at=now,
            deadline=calculate_deadline(level, now),
            urgency=level,
            expectations=build_expectations(level),
            context=self._delegation_context(task, context or {}, from_handler),
        )
        self._delegations[delegation.id] = delegation
        self._audit("delegation_created", delegation.id, delegation.to_dict())

        logger.info(
            "Delegation {} {} -> {} (urgency={}, deadline={})",
            delegation.id,
            from_handler.value,
            to_handler.value,
            level.value,
            delegation.deadline.isoformat(),
        )
        return DelegationResult(
            id=delegation.id,
            status=delegation.status,
            estimated_minutes=estimate_completion_minutes(task),
            tracking_info={
                "from_handler": from_handler.value,
                "to_handler": to_handler.value,
                "task": task,
                "priority": level.value,
                "created_at": now.isoformat(),
                "deadline": delegation.deadline.isoformat(),
            },
        )

    def should_delegate(
        self,
        current_handler: HandlerId,
        task: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> DelegationRecommendation:
        context = context or {}
        persona = context.get("persona") or context.get("user_type")
        complexity = estimate_task_complexity(task)

        if is_relationship_tier(current_handler) and needs_specialist(complexity):
            return DelegationRecommendation(
                should_delegate=True,
                reason="Task requires specialized technical/analytical expertise",
                confidence=0.8,
                recommended_handler=functional_handler_for(persona),
            )

        if is_overloaded(self.workload_provider.workload(current_handler)):
            alternative = self._find_available(current_handler, persona)
            reason = "Handler is at capacity, load balancing required"
            if alternative is None:
                reason = "Handler is at capacity and no alternative handler has room"
            return DelegationRecommendation(
                should_delegate=True,
                reason=reason,
                confidence=0.9,
                recommended_handler=alternative,
            )

        return DelegationRecommendation(
            should_delegate=False,
            reason="Task is within handler capabilities and capacity",
            confidence=0.7,
        )

    async def handoff(
        self,
        delegation_id: str,
        results: Optional[Union[Mapping[str, Any], HandlerResponse]],
        from_handler: HandlerId,
        to_handler: HandlerId,
    ) -> HandoffResult:
        """
        Package the delegated handler's (``from_handler``) results for the
        delegating handler (``to_handler``) and close the delegation.

        The summary is always rendered; ``success`` is False when the id is
        unknown or the delegation already reached a terminal state.
        """
        summary = self.synthesizer.render_handoff_summary(results, display_name(from_handler))
        payload = results_payload(results) if results else {}
        action_items = [item_text(a, "action") for a in payload.get("action_items") or []]
        confidence = result_confidence(payload)

        delegation = self._delegations.get(delegation_id)
        success = False
        if delegation is None:
            logger.warning("Handoff for unknown delegation {}", delegation_id)
        elif delegation.status.is_terminal:
            logger.warning(
                "Handoff for delegation {} ignored (already {})",
                delegation_id,
                delegation.status.value,
            )
        else:
            delegation.status = DelegationStatus.COMPLETED
            delegation.completed_at = self.clock.now()
            success = True
            self._audit(
                "handoff_completed",
                delegation_id,
                {
                    "from_handler": from_handler.value,
                    "to_handler": to_handler.value,
                    "action_items": action_items,
                    "completed_at": delegation.completed_at.isoformat(),
                },
            )

        return HandoffResult(
            success=success,
            synthesized_response=summary,
            action_items=action_items,
            follow_up_suggestions=list(FOLLOW_UP_SUGGESTIONS),
            confidence=confidence,
        )

    # ── lifecycle ───────────────────────────────────────────

    def get_delegation(self, delegation_id: str) -> Optional[Delegation]:
        return self._delegations.get(delegation_id)

    def active_delegations(self) -> List[Delegation]:
        return [d for d in self._delegations.values() if not d.status.is_terminal]

    def mark_in_progress(self, delegation_id: str) -> bool:
        """Move a pending delegation to in_progress. Raises KeyError on unknown ids."""
        delegation = self._delegations[delegation_id]
        if delegation.status is not DelegationStatus.PENDING:
            return False
        delegation.status = DelegationStatus.IN_PROGRESS
        return True

    def mark_failed(self, delegation_id: str, reason: str) -> bool:
        delegation = self._delegations[delegation_id]
        if delegation.status.is_terminal:
            return False
        delegation.status = DelegationStatus.FAILED
        delegation.failure_reason = reason
        delegation.completed_at = self.clock.now()
        self._audit("delegation_failed", delegation_id, {"reason": reason})
        return True

    # ═══════════════════════════════════════════════════════════════════════
    # Timeout monitoring
    # ═══════════════════════════════════════════════════════════════════════

    def on_timeout(self, callback: TimeoutCallback) -> None:
        self._timeout_callbacks.append(callback)

    def sweep_overdue(self, now: Optional[datetime] = None) -> List[DelegationStatusUpdate]:
        """Mark every non-terminal delegation past its deadline as timeout."""
        now = now or self.clock.now()
        updates: List[DelegationStatusUpdate] = []
        for delegation in list(self._delegations.values()):
            if delegation.status.is_terminal or now <= delegation.deadline:
                continue
            delegation.status = DelegationStatus.TIMEOUT
            delegation.completed_at = now
            self._escalate(delegation, now)
            updates.append(
                DelegationStatusUpdate(
                    delegation_id=delegation.id,
                    status=delegation.status,
                    deadline=delegation.deadline,
                    action="escalated",
                )
            )
        if updates:
            logger.warning("{} delegation(s) timed out", len(updates))
        return updates

    def drain_escalations(self) -> List[TimeoutEscalation]:
        """Hand queued timeout escalations to the host and clear the queue."""
        drained, self._escalations = self._escalations, []
        return drained

    def _escalate(self, delegation: Delegation, now: datetime) -> TimeoutEscalation:
        escalation = TimeoutEscalation(
            delegation_id=delegation.id,
            from_handler=delegation.from_handler,
            to_handler=delegation.to_handler,
            task=delegation.task,
            reason=f"No handoff before deadline {delegation.deadline.isoformat()}",
            fallback_handler=delegation.from_handler,
            user_notice=(
                f"The {display_name(delegation.to_handler)} didn't finish in time, "
                f"so your {display_name(delegation.from_handler)} is picking this back up."
            ),
            detected_at=now,
        )
        self._audit("delegation_timeout", delegation.id, escalation.to_dict())
        self._escalations.append(escalation)

        for callback in self._timeout_callbacks:
            try:
                callback(escalation)
            except Exception as exc:
                logger.warning("Timeout callback failed for {}: {}", delegation.id, exc)
        return escalation

    # helpers

    def _audit(self, event: str, delegation_id: str, payload: Dict[str, Any]) -> None:
        try:
            self.audit.record(event, delegation_id, payload)
        except Exception as exc:
            logger.warning("Audit '{}' failed for {}: {}", event, delegation_id, exc)

    def _find_available(self, current: HandlerId, persona: Any) -> Optional[HandlerId]:
        candidates = [
            functional_handler_for(persona),
            DEFAULT_FUNCTIONAL_HANDLER,
            FALLBACK_HANDLER,
            relationship_handler_for(persona),
        ]
        seen = {current}
        for handler in candidates:
            if handler in seen:
                continue
            seen.add(handler)
            if not is_overloaded(self.workload_provider.workload(handler)):
                return handler
        return None

    def _delegation_context(
        self, task: str, context: Dict[str, Any], from_handler: HandlerId
    ) -> Dict[str, Any]:
        persona = context.get("persona") or context.get("user_type")
        return {
            "original_task": task,
            "user_context": {
                "user_id": context.get("user_id"),
                "persona": getattr(persona, "value", persona),
                "current_phase": context.get("business_phase", "unknown"),
            },
            "delegating_handler": from_handler.value,
            "priority": assess_task_priority(task),
            "expected_format": determine_expected_format(task),
        }


class DelegationMonitor:
    """
    Periodic deadline sweep over a ``TaskDelegator``.

    ``start()`` schedules ``run()`` on the running loop; ``stop()`` ends it
    after the current sweep.
    """

    def __init__(self, delegator: TaskDelegator, interval_seconds: Optional[float] = None) -> None:
        self.delegator = delegator
        self.interval_seconds = (
            MONITOR_INTERVAL_SECONDS if interval_seconds is None else interval_seconds
        )
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    def start(self) -> asyncio.Task:
        self._stop.clear()
        self._task = asyncio.create_task(self.run())
        return self._task

    async def run(self) -> None:
        logger.info("Delegation monitor started (interval={}s)", self.interval_seconds)
        while not self._stop.is_set():
            try:
                self.delegator.sweep_overdue()
            except Exception:
                logger.exception("Delegation sweep failed")
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("Delegation monitor stopped")

    async def stop(self) -> None:
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None
