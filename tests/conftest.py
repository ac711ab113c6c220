"""Shared fixtures for the router test suite."""

import os

# Tracing off before any project module reads the flag
os.environ["OBSERVABILITY_ENABLED"] = "false"

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

import pytest

from agent_router.classifier import QueryClassifier
from agent_router.delegator import StaticWorkloadProvider, TaskDelegator
from agent_router.executor import HandlerExecutor
from agent_router.router import IntelligentRouter
from agent_router.schemas import HandlerId, HandlerResponse, Interaction, QueryDescription
from agent_router.synthesizer import ResponseSynthesizer

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FixedClock:
    """Clock pinned to a given instant; advance it explicitly."""

    def __init__(self, now: datetime = T0) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


class RecordingAuditSink:
    def __init__(self) -> None:
        self.events: List[Dict[str, Any]] = []

    def record(self, event: str, delegation_id: str, payload: Dict[str, Any]) -> None:
        self.events.append({"event": event, "delegation_id": delegation_id, "payload": payload})

    @property
    def names(self) -> List[str]:
        return [e["event"] for e in self.events]


class FailingAuditSink:
    def record(self, event: str, delegation_id: str, payload: Dict[str, Any]) -> None:
        raise RuntimeError("audit store unavailable")


class FakeGenerator:
    """TextGenerator returning fixed text and keeping every prompt it saw."""

    model_name = "fake-model"

    def __init__(self, text: str = "Generated answer.") -> None:
        self.text = text
        self.calls: List[List[Dict[str, str]]] = []

    async def generate(self, messages: List[Dict[str, str]]) -> str:
        self.calls.append(messages)
        return self.text


class ScriptedExecutor(HandlerExecutor):
    """
    Templated executor where chosen handlers hang or fail.

    ``slow`` handlers sleep far beyond any router timeout; ``failing``
    handlers raise.
    """

    def __init__(
        self,
        slow: Sequence[HandlerId] = (),
        failing: Sequence[HandlerId] = (),
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.slow = set(slow)
        self.failing = set(failing)
        self.executed: List[HandlerId] = []

    async def execute(
        self,
        handler: HandlerId,
        interaction: Interaction,
        description: Optional[QueryDescription] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> HandlerResponse:
        self.executed.append(handler)
        if handler in self.failing:
            raise RuntimeError(f"{handler.value} exploded")
        if handler in self.slow:
            await asyncio.sleep(30)
        return await super().execute(handler, interaction, description, metadata)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def audit():
    return RecordingAuditSink()


@pytest.fixture
def classifier():
    return QueryClassifier()


@pytest.fixture
def synthesizer():
    return ResponseSynthesizer()


@pytest.fixture
def delegator(audit, clock, synthesizer):
    return TaskDelegator(
        audit=audit,
        workload_provider=StaticWorkloadProvider(),
        clock=clock,
        synthesizer=synthesizer,
    )


@pytest.fixture
def make_router(classifier, synthesizer, delegator):
    """Factory for routers with a custom executor and fast streaming."""

    def _make(executor: Optional[HandlerExecutor] = None, **kwargs) -> IntelligentRouter:
        kwargs.setdefault("support_timeout_seconds", 0.2)
        kwargs.setdefault("stream_chunk_delay_seconds", 0)
        return IntelligentRouter(
            classifier=classifier,
            executor=executor or HandlerExecutor(classifier=classifier),
            synthesizer=synthesizer,
            delegator=delegator,
            **kwargs,
        )

    return _make


@pytest.fixture
def router(make_router):
    return make_router()
