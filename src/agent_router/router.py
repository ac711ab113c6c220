"""
Intelligent Router - single entry point for every interaction.

Flow (``route``):
  1. Describe the request (QueryClassifier).
  2. Select primary + support handlers (AgentSelector).
  3. Run the primary and, concurrently, the support handlers. Supports run
     in a bounded group with a per-handler timeout; a slow or failing one
     is dropped rather than failing the interaction.
  4. Synthesize one combined reply (ResponseSynthesizer).

Also exposed: ``route_streaming``, ``complete_support``, ``delegate_task``,
``should_escalate`` and ``get_agent_recommendations``.

``route``, ``route_streaming`` and ``delegate_task`` never raise: any error
becomes one apology response authored by the platform orchestrator, with
the error message under ``metadata["error"]``.
"""

import asyncio
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple, Union

from loguru import logger

from agent_router.classifier import QueryClassifier
from agent_router.delegator import TaskDelegator
from agent_router.executor import HandlerExecutor
from agent_router.handlers import (
    DEFAULT_FUNCTIONAL_HANDLER,
    FALLBACK_HANDLER,
    FUNCTIONAL_REASONS,
    functional_handler_for,
    get_profile,
    is_relationship_tier,
    relationship_handler_for,
)
from agent_router.schemas import (
    CancellationToken,
    CombinedResponse,
    EscalationDecision,
    HandlerId,
    HandlerResponse,
    Interaction,
    Priority,
    QueryDescription,
    Recommendation,
    ResponseFragment,
    RoutingDecision,
    Urgency,
    utcnow,
)
from agent_router.selector import AgentSelector
from agent_router.synthesizer import ResponseSynthesizer
from infrastructure.config import (
    ROUTER_MAX_SUPPORT_CONCURRENCY,
    ROUTER_SUPPORT_TIMEOUT_SECONDS,
    STREAM_CHUNK_DELAY_SECONDS,
    STREAM_CHUNK_WORDS,
)
from infrastructure.observability import (
    observe,
    score_current_trace,
    update_current_observation,
    update_current_trace,
)

FALLBACK_MESSAGE = (
    "I apologize, but I encountered an error processing your request. "
    "Please try again or contact support if the issue persists."
)
PARTNER_RECOMMENDATION_REASON = "Your dedicated partnership agent for strategic guidance"
SUPPORT_IN_PROGRESS_MESSAGE = "Additional analysis in progress..."


def chunk_words(content: str, size: int) -> List[str]:
    """Split on single spaces into ``size``-word groups, each with a trailing space."""
    if not content:
        return []
    words = content.split(" ")
    return [" ".join(words[i:i + size]) + " " for i in range(0, len(words), size)]


def _error_text(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


def _query_preview(interaction: Any) -> str:
    return str(getattr(interaction, "query", ""))[:80]


def _persona_of(user_context: Dict[str, Any]) -> Any:
    return user_context.get("persona") or user_context.get("user_type")


class IntelligentRouter:
    """
    Orchestrates classifier, selector, executor, synthesizer and delegator.

    Dependencies (injected via ``__init__``; defaults built when omitted):
        classifier   - QueryClassifier
        selector     - AgentSelector (shares the classifier)
        executor     - HandlerExecutor (templated content without a generator)
        synthesizer  - ResponseSynthesizer
        delegator    - TaskDelegator
    """

    def __init__(
        self,
        classifier: Optional[QueryClassifier] = None,
        selector: Optional[AgentSelector] = None,
        executor: Optional[HandlerExecutor] = None,
        synthesizer: Optional[ResponseSynthesizer] = None,
        delegator: Optional[TaskDelegator] = None,
        support_timeout_seconds: Optional[float] = None,
        max_support_concurrency: Optional[int] = None,
        stream_chunk_words: Optional[int] = None,
        stream_chunk_delay_seconds: Optional[float] = None,
    ) -> None:
        self.classifier = classifier or QueryClassifier()
        self.selector = selector or AgentSelector(self.classifier)
        self.executor = executor or HandlerExecutor(classifier=self.classifier)
        self.synthesizer = synthesizer or ResponseSynthesizer()
        self.delegator = delegator or TaskDelegator(synthesizer=self.synthesizer)

        self.support_timeout_seconds = (
            ROUTER_SUPPORT_TIMEOUT_SECONDS if support_timeout_seconds is None
            else support_timeout_seconds
        )
        self.max_support_concurrency = max_support_concurrency or ROUTER_MAX_SUPPORT_CONCURRENCY
        self.stream_chunk_words = stream_chunk_words or STREAM_CHUNK_WORDS
        self.stream_chunk_delay_seconds = (
            STREAM_CHUNK_DELAY_SECONDS if stream_chunk_delay_seconds is None
            else stream_chunk_delay_seconds
        )

    # ═══════════════════════════════════════════════════════════════════════
    # route
    # ═══════════════════════════════════════════════════════════════════════

    @observe(name="route")
    async def route(self, interaction: Interaction) -> CombinedResponse:
        try:
            return await self._route(interaction)
        except Exception as exc:
            logger.exception("Routing failed for query {!r}", _query_preview(interaction))
            return self._fallback_combined(exc)

    async def _route(self, interaction: Interaction) -> CombinedResponse:
        update_current_trace(
            user_id=interaction.context.get("user_id"),
            session_id=interaction.context.get("session_id"),
            tags=["router"],
        )
        description, decision = self._decide(interaction)
        logger.info(
            "Route: {} -> {} (support={}, conf={:.2f})",
            description.category.value,
            decision.primary.value,
            [h.value for h in decision.support],
            description.confidence,
        )

        support = asyncio.ensure_future(
            self._run_support(decision.support, interaction, description)
        )
        try:
            primary = await self.executor.execute(decision.primary, interaction, description)
        except BaseException:
            support.cancel()
            raise
        contributors, dropped = await support

        combined = self.synthesizer.synthesize(primary, contributors)
        combined.collaboration_meta.update(
            routing_decision=decision.to_dict(),
            query_type=description.category.value,
            dropped_contributors=dropped,
        )

        if decision.notify_primary_tier:
            partner = relationship_handler_for(interaction.persona)
            combined.collaboration_meta["notify_handler"] = partner.value
            if interaction.context.get("relationship_voice") and is_relationship_tier(partner):
                combined.primary = self.synthesizer.handoff_to_relationship_voice(
                    combined.primary, partner, interaction.query, interaction.context
                )

        update_current_observation(
            output=combined.primary.content[:1000],
            metadata={
                "primary": decision.primary.value,
                "contributors": [h.value for h in combined.contributors],
                "dropped": len(dropped),
            },
        )
        score_current_trace("routing_confidence", description.confidence, comment=description.category.value)
        return combined

    def _decide(self, interaction: Interaction) -> Tuple[QueryDescription, RoutingDecision]:
        description = self.classifier.describe(interaction.query)
        return description, self.selector.decide(description.category, interaction.persona)

    async def _run_support(
        self,
        handlers: Sequence[HandlerId],
        interaction: Interaction,
        description: Optional[QueryDescription],
    ) -> Tuple[List[HandlerResponse], List[Dict[str, str]]]:
        """Bounded fan-out; returns (responses, dropped) and never raises."""
        if not handlers:
            return [], []

        semaphore = asyncio.Semaphore(self.max_support_concurrency)

        async def run_one(handler: HandlerId) -> HandlerResponse:
            async with semaphore:
                return await asyncio.wait_for(
                    self.executor.execute(handler, interaction, description),
                    timeout=self.support_timeout_seconds,
                )

        results = await asyncio.gather(
            *(run_one(h) for h in handlers), return_exceptions=True
        )

        contributors: List[HandlerResponse] = []
        dropped: List[Dict[str, str]] = []
        for handler, result in zip(handlers, results):
            if isinstance(result, BaseException):
                reason = "timeout" if isinstance(result, asyncio.TimeoutError) else _error_text(result)
                logger.warning("Support handler {} dropped: {}", handler.value, reason)
                dropped.append({"handler": handler.value, "reason": reason})
            else:
                contributors.append(result)
        return contributors, dropped

    # ═══════════════════════════════════════════════════════════════════════
    # streaming
    # ═══════════════════════════════════════════════════════════════════════

    async def route_streaming(
        self,
        interaction: Interaction,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[ResponseFragment]:
        """
        Routing metadata, then the primary's content in word groups, then a
        final fragment (``complete=True``). Support handlers are announced
        for out-of-band delivery and never awaited here.
        """
        try:
            description, decision = self._decide(interaction)
            yield ResponseFragment(
                metadata={
                    "routing_decision": decision.to_dict(),
                    "query_type": description.category.value,
                    "confidence": description.confidence,
                }
            )

            response = await self.executor.execute(decision.primary, interaction, description)
            chunks = chunk_words(response.content, self.stream_chunk_words)
            for index, chunk in enumerate(chunks):
                if cancel_token is not None and cancel_token.cancelled:
                    logger.info("Stream cancelled for {}", decision.primary.value)
                    yield ResponseFragment(handler=decision.primary, metadata={"cancelled": True})
                    return
                yield ResponseFragment(content=chunk)
                if index < len(chunks) - 1:
                    await asyncio.sleep(self.stream_chunk_delay_seconds)

            if cancel_token is not None and cancel_token.cancelled:
                yield ResponseFragment(handler=decision.primary, metadata={"cancelled": True})
                return

            final_meta: Dict[str, Any] = {"complete": True}
            if decision.support:
                final_meta.update(
                    support_handlers_triggered=[h.value for h in decision.support],
                    support_status="in_progress",
                    delivery="out_of_band",
                    message=SUPPORT_IN_PROGRESS_MESSAGE,
                )
            yield ResponseFragment(
                handler=decision.primary,
                timestamp=response.timestamp,
                suggestions=response.suggestions,
                insights=response.insights,
                metadata=final_meta,
            )
        except Exception as exc:
            logger.exception("Streaming failed for query {!r}", _query_preview(interaction))
            yield ResponseFragment(
                content=FALLBACK_MESSAGE,
                handler=FALLBACK_HANDLER,
                timestamp=utcnow(),
                metadata={"error": _error_text(exc), "complete": True},
            )

    async def complete_support(
        self,
        interaction: Interaction,
        support: Sequence[Union[HandlerId, str]],
    ) -> List[HandlerResponse]:
        """
        Run support handlers announced by ``route_streaming``; drops are logged.
        Unknown handler ids are skipped with a warning.
        """
        handlers: List[HandlerId] = []
        for h in support:
            try:
                handlers.append(HandlerId(h))
            except ValueError:
                logger.warning("Unknown support handler {!r} skipped", h)
        description = self.classifier.describe(interaction.query)
        contributors, _ = await self._run_support(handlers, interaction, description)
        return contributors

    # ═══════════════════════════════════════════════════════════════════════
    # delegation / escalation / recommendations
    # ═══════════════════════════════════════════════════════════════════════

    @observe(name="delegate_task")
    async def delegate_task(
        self,
        from_handler: HandlerId,
        task: str,
        user_context: Optional[Dict[str, Any]] = None,
        urgency: Any = Urgency.MEDIUM,
    ) -> HandlerResponse:
        user_context = dict(user_context or {})
        try:
            return await self._delegate_task(from_handler, task, user_context, urgency)
        except Exception as exc:
            logger.exception("Delegation from {} failed", from_handler.value)
            return self._fallback_response(exc)

    async def _delegate_task(
        self,
        from_handler: HandlerId,
        task: str,
        user_context: Dict[str, Any],
        urgency: Any,
    ) -> HandlerResponse:
        target = self._delegation_target(from_handler, task, user_context)
        result = await self.delegator.delegate(from_handler, target, task, user_context, urgency)
        self.delegator.mark_in_progress(result.id)

        try:
            response = await self.executor.execute_task(target, task, user_context, result.id)
        except Exception as exc:
            self.delegator.mark_failed(result.id, _error_text(exc))
            raise

        handoff = await self.delegator.handoff(result.id, response, target, from_handler)
        return HandlerResponse(
            content=handoff.synthesized_response,
            handler=from_handler,
            suggestions=handoff.follow_up_suggestions,
            actions=list(response.actions),
            insights=list(response.insights),
            metadata={
                "delegation_id": result.id,
                "delegated_to": target.value,
                "handoff_completed": handoff.success,
                "estimated_minutes": result.estimated_minutes,
                "action_items": handoff.action_items,
                "confidence": handoff.confidence,
            },
        )

    def _delegation_target(
        self, from_handler: HandlerId, task: str, user_context: Dict[str, Any]
    ) -> HandlerId:
        """Persona's functional handler for the task, never the delegator itself."""
        persona = _persona_of(user_context)
        category = self.classifier.classify(task)
        target = self.selector.select_functional_handler(category, persona)
        if target == from_handler:
            target = DEFAULT_FUNCTIONAL_HANDLER
        if target == from_handler:
            target = FALLBACK_HANDLER
        return target

    def should_escalate(
        self,
        current_handler: HandlerId,
        query: str,
        user_context: Optional[Dict[str, Any]] = None,
    ) -> EscalationDecision:
        user_context = user_context or {}
        category = self.classifier.classify(query)
        return self.selector.should_escalate(
            current_handler, category, _persona_of(user_context), user_context
        )

    def get_agent_recommendations(
        self, user_context: Optional[Dict[str, Any]] = None
    ) -> List[Recommendation]:
        persona = _persona_of(user_context or {})
        recommendations: List[Recommendation] = []

        partner = relationship_handler_for(persona)
        if is_relationship_tier(partner):
            profile = get_profile(partner)
            recommendations.append(
                Recommendation(
                    handler=partner,
                    reason=PARTNER_RECOMMENDATION_REASON,
                    priority=Priority.HIGH,
                    tier=profile.tier,
                    description=profile.description,
                )
            )

        specialist = functional_handler_for(persona)
        profile = get_profile(specialist)
        recommendations.append(
            Recommendation(
                handler=specialist,
                reason=FUNCTIONAL_REASONS.get(specialist, "For specialized analysis"),
                priority=Priority.MEDIUM,
                tier=profile.tier,
                description=profile.description,
            )
        )
        return recommendations

    # helpers

    @staticmethod
    def _fallback_response(exc: BaseException) -> HandlerResponse:
        return HandlerResponse(
            content=FALLBACK_MESSAGE,
            handler=FALLBACK_HANDLER,
            metadata={"error": _error_text(exc)},
        )

    def _fallback_combined(self, exc: BaseException) -> CombinedResponse:
        return CombinedResponse(
            primary=self._fallback_response(exc),
            contributors=[],
            merged_insights=[],
            collaboration_meta={"error": True},
        )


# Factory: build a fully-wired router from config


def build_router(use_llm: bool = True, audit_sink: Any = None) -> IntelligentRouter:
    """
    Convenience factory that constructs and wires all components.

    Reads config / env for API keys and the audit DB URL. Without an API
    key for the handler provider, handlers fall back to templated content.

    Args:
        use_llm: Generate handler content with the configured chat model.
        audit_sink: Override the sink chosen by ``audit.sink`` in param.yaml.

    Returns:
        A fully initialised ``IntelligentRouter``.
    """
    from dotenv import load_dotenv

    load_dotenv()

    # Eagerly init LangFuse so child spans are captured
    from infrastructure.observability import get_langfuse

    get_langfuse()

    from infrastructure.config import HANDLER_PROVIDER, get_api_key
    from infrastructure.db import build_audit_sink

    generator = None
    if use_llm:
        if get_api_key(HANDLER_PROVIDER):
            from infrastructure.llm import LangChainTextGenerator, get_handler_llm

            generator = LangChainTextGenerator(get_handler_llm())
        else:
            logger.warning(
                "No API key for provider '{}' - handlers will use templated content.",
                HANDLER_PROVIDER,
            )

    classifier = QueryClassifier()
    synthesizer = ResponseSynthesizer()
    router = IntelligentRouter(
        classifier=classifier,
        executor=HandlerExecutor(generator=generator, classifier=classifier),
        synthesizer=synthesizer,
        delegator=TaskDelegator(audit=audit_sink or build_audit_sink(), synthesizer=synthesizer),
    )
    logger.info("Router ready (generator={})", "llm" if generator else "templates")
    return router
