"""Tests for IntelligentRouter."""

import asyncio

import pytest

from agent_router.executor import HandlerExecutor
from agent_router.router import (
    FALLBACK_MESSAGE,
    PARTNER_RECOMMENDATION_REASON,
    chunk_words,
)
from agent_router.schemas import (
    CancellationToken,
    DelegationStatus,
    HandlerId,
    Interaction,
    Persona,
    Priority,
)
from conftest import FakeGenerator, ScriptedExecutor

H = HandlerId

STRATEGY_QUERY = "What strategy should I use for market entry?"


def _break_selector(router):
    def explode(*args, **kwargs):
        raise RuntimeError("selector down")

    router.selector.decide = explode


class TestRoute:
    """Full route: classify, select, fan out, synthesize."""

    @pytest.mark.asyncio
    async def test_strategic_query_with_support(self, router):
        combined = await router.route(Interaction(query=STRATEGY_QUERY, persona=Persona.ENTREPRENEUR))

        assert combined.primary.handler is H.CO_FOUNDER
        assert combined.contributors == [H.BUSINESS_ADVISOR]
        assert "**Business Advisor:**" in combined.primary.content
        meta = combined.collaboration_meta
        assert meta["query_type"] == "strategic"
        assert meta["routing_decision"]["primary"] == "co_founder"
        assert meta["routing_decision"]["support"] == ["business_advisor"]
        assert meta["synthesis_method"] == "coagent_with_functional"
        assert meta["dropped_contributors"] == []
        assert 0.0 <= meta["confidence_score"] <= 1.0

    @pytest.mark.asyncio
    async def test_functional_query_notifies_partner(self, router):
        combined = await router.route(
            Interaction(query="Analyze our revenue forecast", persona=Persona.INVESTOR)
        )

        assert combined.primary.handler is H.INVESTMENT_ANALYST
        assert combined.contributors == []
        assert combined.collaboration_meta["notify_handler"] == "co_investor"
        assert combined.collaboration_meta["synthesis_method"] == "single_agent"

    @pytest.mark.asyncio
    async def test_relationship_voice_rewrites_specialist_answer(self, router):
        combined = await router.route(
            Interaction(
                query="Analyze our revenue forecast",
                persona=Persona.ENTREPRENEUR,
                context={"relationship_voice": True},
            )
        )

        assert combined.primary.handler is H.CO_FOUNDER
        assert combined.primary.metadata["synthesized_from"] == "business_advisor"

    @pytest.mark.asyncio
    async def test_lender_specialist_is_not_revoiced(self, router):
        combined = await router.route(
            Interaction(
                query="Analyze our revenue forecast",
                persona=Persona.LENDER,
                context={"relationship_voice": True},
            )
        )
        assert combined.primary.handler is H.CREDIT_ANALYST

    @pytest.mark.asyncio
    async def test_empty_query_routes_to_partner(self, router):
        combined = await router.route(Interaction(query=""))
        assert combined.primary.handler is H.CO_FOUNDER
        assert combined.collaboration_meta["query_type"] == "general"

    @pytest.mark.asyncio
    async def test_generator_content_is_used(self, make_router, classifier):
        generator = FakeGenerator("Let's weigh the two markets.")
        router = make_router(HandlerExecutor(generator=generator, classifier=classifier))

        combined = await router.route(Interaction(query="I feel anxious about this decision"))

        assert combined.primary.content == "Let's weigh the two markets."
        assert combined.primary.metadata["generated"] is True
        messages = generator.calls[0]
        assert messages[0]["role"] == "system"
        assert messages[-1]["role"] == "user"
        assert "I feel anxious about this decision" in messages[-1]["content"]


class TestSupportFanOut:
    """Slow or failing support handlers degrade the reply."""

    @pytest.mark.asyncio
    async def test_slow_support_is_dropped(self, make_router, classifier):
        router = make_router(ScriptedExecutor(slow=[H.BUSINESS_ADVISOR], classifier=classifier))

        combined = await router.route(Interaction(query=STRATEGY_QUERY))

        assert combined.primary.handler is H.CO_FOUNDER
        assert combined.contributors == []
        assert combined.collaboration_meta["dropped_contributors"] == [
            {"handler": "business_advisor", "reason": "timeout"}
        ]
        assert combined.collaboration_meta["synthesis_method"] == "single_agent"

    @pytest.mark.asyncio
    async def test_failing_support_is_dropped(self, make_router, classifier):
        router = make_router(ScriptedExecutor(failing=[H.BUSINESS_ADVISOR], classifier=classifier))

        combined = await router.route(Interaction(query=STRATEGY_QUERY))

        assert combined.contributors == []
        dropped = combined.collaboration_meta["dropped_contributors"]
        assert dropped[0]["reason"] == "business_advisor exploded"
        assert "error" not in combined.collaboration_meta


class TestFallback:
    """Errors become one apology response."""

    @pytest.mark.asyncio
    async def test_primary_failure(self, make_router, classifier):
        router = make_router(ScriptedExecutor(failing=[H.CO_FOUNDER], classifier=classifier))

        combined = await router.route(Interaction(query=STRATEGY_QUERY))

        assert combined.primary.content == FALLBACK_MESSAGE
        assert combined.primary.handler is H.PLATFORM_ORCHESTRATOR
        assert combined.primary.metadata["error"] == "co_founder exploded"
        assert combined.collaboration_meta == {"error": True}

    @pytest.mark.asyncio
    async def test_selector_failure(self, router):
        _break_selector(router)
        combined = await router.route(Interaction(query=STRATEGY_QUERY))
        assert combined.primary.metadata["error"] == "selector down"

    @pytest.mark.asyncio
    async def test_non_string_query_still_falls_back(self, router):
        _break_selector(router)
        combined = await router.route(Interaction(query=12345))
        assert combined.primary.content == FALLBACK_MESSAGE
        assert combined.primary.metadata["error"] == "selector down"


class TestStreaming:
    """Cancellable, finite fragment sequence."""

    def test_chunk_words(self):
        assert chunk_words("a b c d e f g", 5) == ["a b c d e ", "f g "]
        assert chunk_words("", 5) == []

    @pytest.mark.asyncio
    async def test_no_delay_after_last_chunk(self, make_router, classifier):
        router = make_router(
            HandlerExecutor(generator=FakeGenerator("Short answer."), classifier=classifier),
            stream_chunk_delay_seconds=30,
        )

        async def consume():
            return [f async for f in router.route_streaming(Interaction(query="I feel anxious about this decision"))]

        fragments = await asyncio.wait_for(consume(), timeout=2)

        assert [f.content for f in fragments if f.content] == ["Short answer. "]
        assert fragments[-1].metadata["complete"] is True

    @pytest.mark.asyncio
    async def test_support_handlers_are_not_run_inline(self, make_router, classifier):
        executor = ScriptedExecutor(classifier=classifier)
        router = make_router(executor)

        fragments = [f async for f in router.route_streaming(Interaction(query=STRATEGY_QUERY))]

        assert fragments[-1].metadata["support_handlers_triggered"] == ["business_advisor"]
        assert executor.executed == [H.CO_FOUNDER]

    @pytest.mark.asyncio
    async def test_fragment_order(self, router):
        fragments = [f async for f in router.route_streaming(Interaction(query=STRATEGY_QUERY))]

        first, chunks, final = fragments[0], fragments[1:-1], fragments[-1]
        assert first.metadata["routing_decision"]["primary"] == "co_founder"
        assert first.metadata["query_type"] == "strategic"
        assert all(f.content and f.content.endswith(" ") for f in chunks)

        assert final.metadata["complete"] is True
        assert final.handler is H.CO_FOUNDER
        assert final.metadata["support_handlers_triggered"] == ["business_advisor"]
        assert final.metadata["support_status"] == "in_progress"
        assert final.suggestions

        streamed = "".join(f.content for f in chunks)
        direct = await router.executor.execute(H.CO_FOUNDER, Interaction(query=STRATEGY_QUERY))
        assert streamed == direct.content + " "

    @pytest.mark.asyncio
    async def test_no_support_announcement_for_emotional(self, router):
        fragments = [
            f async for f in router.route_streaming(Interaction(query="I feel anxious about this decision"))
        ]
        assert "support_handlers_triggered" not in fragments[-1].metadata

    @pytest.mark.asyncio
    async def test_cancellation_stops_stream(self, router):
        token = CancellationToken()
        fragments = []
        async for fragment in router.route_streaming(Interaction(query=STRATEGY_QUERY), token):
            fragments.append(fragment)
            if fragment.content:
                token.cancel()

        assert [f.content for f in fragments if f.content] == [fragments[1].content]
        assert fragments[-1].metadata == {"cancelled": True}
        assert not any(f.metadata.get("complete") for f in fragments)

    @pytest.mark.asyncio
    async def test_stream_error_yields_fallback(self, make_router, classifier):
        router = make_router(ScriptedExecutor(failing=[H.CO_FOUNDER], classifier=classifier))

        fragments = [f async for f in router.route_streaming(Interaction(query=STRATEGY_QUERY))]

        assert fragments[-1].content == FALLBACK_MESSAGE
        assert fragments[-1].metadata["error"] == "co_founder exploded"
        assert fragments[-1].metadata["complete"] is True

    @pytest.mark.asyncio
    async def test_complete_support(self, router):
        responses = await router.complete_support(Interaction(query=STRATEGY_QUERY), ["business_advisor"])
        assert [r.handler for r in responses] == [H.BUSINESS_ADVISOR]

    @pytest.mark.asyncio
    async def test_complete_support_skips_unknown_ids(self, router):
        responses = await router.complete_support(
            Interaction(query=STRATEGY_QUERY), ["business_advisor", "night_watchman"]
        )
        assert [r.handler for r in responses] == [H.BUSINESS_ADVISOR]


class TestDelegateTask:
    """Router-level delegation round trip."""

    @pytest.mark.asyncio
    async def test_round_trip(self, router, delegator, audit):
        response = await router.delegate_task(
            H.CO_FOUNDER, "Build a cash flow forecast", {"persona": "entrepreneur"}, "high"
        )

        assert response.handler is H.CO_FOUNDER
        assert response.content.startswith("Here's what our Business Advisor found:")
        assert response.metadata["delegated_to"] == "business_advisor"
        assert response.metadata["handoff_completed"] is True

        delegation = delegator.get_delegation(response.metadata["delegation_id"])
        assert delegation.status is DelegationStatus.COMPLETED
        assert audit.names == ["delegation_created", "handoff_completed"]

    @pytest.mark.asyncio
    async def test_specialist_never_delegates_to_itself(self, router):
        response = await router.delegate_task(H.BUSINESS_ADVISOR, "Review the pitch deck", {})
        assert response.metadata["delegated_to"] == "platform_orchestrator"

    @pytest.mark.asyncio
    async def test_failed_execution_marks_delegation(self, make_router, classifier, delegator, audit):
        router = make_router(ScriptedExecutor(failing=[H.BUSINESS_ADVISOR], classifier=classifier))

        response = await router.delegate_task(H.CO_FOUNDER, "Build a cash flow forecast", {})

        assert response.content == FALLBACK_MESSAGE
        assert response.metadata["error"] == "business_advisor exploded"
        assert audit.names == ["delegation_created", "delegation_failed"]
        assert delegator.active_delegations() == []


class TestEscalationAndRecommendations:
    """Thin wrappers over the selector and handler tables."""

    def test_should_escalate_classifies_query(self, router):
        result = router.should_escalate(
            H.CO_FOUNDER, "Debug the API deployment", {"persona": "entrepreneur", "complexity": "high"}
        )
        assert result.escalate is True
        assert result.target_handler is H.BUSINESS_ADVISOR

    def test_entrepreneur_recommendations(self, router):
        recs = router.get_agent_recommendations({"persona": "entrepreneur"})

        assert [r.handler for r in recs] == [H.CO_FOUNDER, H.BUSINESS_ADVISOR]
        assert recs[0].priority is Priority.HIGH
        assert recs[0].reason == PARTNER_RECOMMENDATION_REASON
        assert recs[1].priority is Priority.MEDIUM

    def test_lender_gets_specialist_only(self, router):
        recs = router.get_agent_recommendations({"user_type": "lender"})
        assert [r.handler for r in recs] == [H.CREDIT_ANALYST]
