"""
Routing schemas and interfaces.

Enums and dataclasses for interactions, routing decisions, handler
responses, insights, delegations and streamed fragments.
Protocol definitions for the text-generation, audit, workload and clock
collaborators.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Protocol, Tuple


# ═══════════════════════════════════════════════════════════════════════════════
# Tagged variants
# ═══════════════════════════════════════════════════════════════════════════════


class QueryCategory(str, Enum):
    STRATEGIC = "strategic"
    ACCOUNTABILITY = "accountability"
    EMOTIONAL = "emotional"
    RELATIONSHIP = "relationship"
    BRAINSTORM = "brainstorm"
    ANALYSIS = "analysis"
    RESEARCH = "research"
    DOCUMENT = "document"
    TECHNICAL = "technical"
    REPORTING = "reporting"
    GENERAL = "general"


class Persona(str, Enum):
    ENTREPRENEUR = "entrepreneur"
    INVESTOR = "investor"
    LENDER = "lender"
    GRANTOR = "grantor"
    PARTNER = "partner"
    ADMIN = "admin"


class HandlerTier(str, Enum):
    """Long-lived partner handlers vs stateless specialist handlers."""

    RELATIONSHIP = "relationship"
    FUNCTIONAL = "functional"


class HandlerId(str, Enum):
    # Relationship tier
    CO_FOUNDER = "co_founder"
    CO_INVESTOR = "co_investor"
    CO_BUILDER = "co_builder"

    # Functional tier
    BUSINESS_ADVISOR = "business_advisor"
    INVESTMENT_ANALYST = "investment_analyst"
    CREDIT_ANALYST = "credit_analyst"
    IMPACT_ANALYST = "impact_analyst"
    PROGRAM_MANAGER = "program_manager"
    PLATFORM_ORCHESTRATOR = "platform_orchestrator"


class Approach(str, Enum):
    CONVERSATIONAL = "conversational"
    TASK_FOCUSED = "task_focused"


class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: Any) -> "Urgency":
        """Coerce a raw urgency; anything unrecognised is ``LOW``."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.LOW


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class DelegationStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    TIMEOUT = "timeout"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (
            DelegationStatus.COMPLETED,
            DelegationStatus.TIMEOUT,
            DelegationStatus.FAILED,
        )


def coerce_persona(value: Any) -> Optional[Persona]:
    """Return the matching ``Persona`` or ``None`` for unknown values."""
    if isinstance(value, Persona):
        return value
    try:
        return Persona(str(value).lower())
    except ValueError:
        return None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


# ═══════════════════════════════════════════════════════════════════════════════
# Interaction + routing
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Interaction:
    """
    One user request as handed over by the host layer.

    ``persona`` is kept as given; unknown values fall back to the default
    table entries during selection.
    """
    query: str
    persona: Any = Persona.ENTREPRENEUR
    context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        persona = self.persona.value if isinstance(self.persona, Persona) else self.persona
        return {"query": self.query, "persona": persona, "context": dict(self.context)}

    @classmethod
    def from_dict(cls, data: Dict) -> "Interaction":
        persona = data.get("persona") or data.get("user_type") or Persona.ENTREPRENEUR.value
        return cls(
            query=data.get("query", ""),
            persona=coerce_persona(persona) or persona,
            context=dict(data.get("context") or {}),
        )


@dataclass(frozen=True)
class QueryDescription:
    """Output of ``QueryClassifier.describe``."""
    category: QueryCategory
    confidence: float
    context_flags: Dict[str, bool] = field(default_factory=dict)
    suggested_approach: Approach = Approach.CONVERSATIONAL
    scores: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "category": self.category.value,
            "confidence": self.confidence,
            "context_flags": dict(self.context_flags),
            "suggested_approach": self.suggested_approach.value,
            "scores": dict(self.scores),
        }


@dataclass(frozen=True)
class RoutingDecision:
    """
    Which handler(s) answer an interaction and how.

    Produced once per interaction by the ``AgentSelector``.
    """
    primary: HandlerId
    support: Tuple[HandlerId, ...] = ()
    approach: Approach = Approach.CONVERSATIONAL
    may_delegate: bool = False
    notify_primary_tier: bool = False
    category: QueryCategory = QueryCategory.GENERAL

    def to_dict(self) -> Dict:
        return {
            "primary": self.primary.value,
            "support": [h.value for h in self.support],
            "approach": self.approach.value,
            "may_delegate": self.may_delegate,
            "notify_primary_tier": self.notify_primary_tier,
            "category": self.category.value,
        }


@dataclass(frozen=True)
class EscalationDecision:
    escalate: bool
    target_handler: Optional[HandlerId] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "escalate": self.escalate,
            "target_handler": self.target_handler.value if self.target_handler else None,
            "reason": self.reason,
        }


# ═══════════════════════════════════════════════════════════════════════════════
# Handler output
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Insight:
    """A short prioritised observation surfaced alongside a response."""
    title: str
    message: str = ""
    priority: Priority = Priority.MEDIUM
    kind: str = "recommendation"
    id: str = field(default_factory=lambda: new_id("ins"))
    delivery_channels: FrozenSet[str] = frozenset({"in_app"})

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "priority": self.priority.value,
            "title": self.title,
            "message": self.message,
            "delivery_channels": sorted(self.delivery_channels),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Insight":
        return cls(
            id=data.get("id") or new_id("ins"),
            kind=data.get("kind") or data.get("type") or "recommendation",
            priority=Priority(data.get("priority", "medium")),
            title=data["title"],
            message=data.get("message") or data.get("description", ""),
            delivery_channels=frozenset(data.get("delivery_channels") or ["in_app"]),
        )


@dataclass(frozen=True)
class Action:
    kind: str
    description: str
    label: Optional[str] = None
    parameters: Dict[str, Any] = field(default_factory=dict)
    automated: bool = False
    requires_approval: bool = True

    def to_dict(self) -> Dict:
        return {
            "kind": self.kind,
            "description": self.description,
            "label": self.label,
            "parameters": dict(self.parameters),
            "automated": self.automated,
            "requires_approval": self.requires_approval,
        }


@dataclass
class HandlerResponse:
    """
    Output of one handler for one interaction.

    ``metadata["confidence"]`` feeds the synthesizer's confidence blend.
    """
    content: str
    handler: HandlerId
    id: str = field(default_factory=lambda: new_id("resp"))
    timestamp: datetime = field(default_factory=utcnow)
    suggestions: List[str] = field(default_factory=list)
    actions: List[Action] = field(default_factory=list)
    insights: List[Insight] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "content": self.content,
            "handler": self.handler.value,
            "timestamp": self.timestamp.isoformat(),
            "suggestions": list(self.suggestions),
            "actions": [a.to_dict() for a in self.actions],
            "insights": [i.to_dict() for i in self.insights],
            "metadata": dict(self.metadata),
        }


@dataclass
class CombinedResponse:
    """Primary response merged with its contributors' output."""
    primary: HandlerResponse
    contributors: List[HandlerId] = field(default_factory=list)
    merged_insights: List[Insight] = field(default_factory=list)
    collaboration_meta: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        meta = dict(self.collaboration_meta)
        for key, value in meta.items():
            if isinstance(value, datetime):
                meta[key] = value.isoformat()
        return {
            "primary": self.primary.to_dict(),
            "contributors": [h.value for h in self.contributors],
            "merged_insights": [i.to_dict() for i in self.merged_insights],
            "collaboration_meta": meta,
        }


@dataclass(frozen=True)
class Risk:
    type: str
    description: str
    probability: str

    def to_dict(self) -> Dict:
        return {"type": self.type, "description": self.description, "probability": self.probability}


@dataclass(frozen=True)
class Recommendation:
    """Handler recommendation for UI display."""
    handler: HandlerId
    reason: str
    priority: Priority
    tier: HandlerTier
    description: str

    def to_dict(self) -> Dict:
        return {
            "handler": self.handler.value,
            "reason": self.reason,
            "priority": self.priority.value,
            "tier": self.tier.value,
            "description": self.description,
        }


# ═══════════════════════════════════════════════════════════════════════════════
# Delegation
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass
class Delegation:
    """
    A tracked handoff of a task from one handler to another.

    ``deadline`` is computed from urgency at creation and never recomputed.
    Only non-terminal records change status.
    """
    id: str
    from_handler: HandlerId
    to_handler: HandlerId
    task: str
    created_at: datetime
    deadline: datetime
    urgency: Urgency = Urgency.LOW
    expectations: Dict[str, Any] = field(default_factory=dict)
    context: Dict[str, Any] = field(default_factory=dict)
    status: DelegationStatus = DelegationStatus.PENDING
    completed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "from_handler": self.from_handler.value,
            "to_handler": self.to_handler.value,
            "task": self.task,
            "created_at": self.created_at.isoformat(),
            "deadline": self.deadline.isoformat(),
            "urgency": self.urgency.value,
            "expectations": dict(self.expectations),
            "context": dict(self.context),
            "status": self.status.value,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "failure_reason": self.failure_reason,
        }


@dataclass(frozen=True)
class DelegationResult:
    id: str
    status: DelegationStatus
    estimated_minutes: int
    tracking_info: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DelegationRecommendation:
    should_delegate: bool
    reason: str
    confidence: float
    recommended_handler: Optional[HandlerId] = None


@dataclass(frozen=True)
class HandoffResult:
    success: bool
    synthesized_response: str
    action_items: List[str] = field(default_factory=list)
    follow_up_suggestions: List[str] = field(default_factory=list)
    confidence: float = 0.8


@dataclass(frozen=True)
class DelegationStatusUpdate:
    delegation_id: str
    status: DelegationStatus
    deadline: datetime
    action: Optional[str] = None


@dataclass(frozen=True)
class TimeoutEscalation:
    """Emitted once when a delegation misses its deadline."""
    delegation_id: str
    from_handler: HandlerId
    to_handler: HandlerId
    task: str
    reason: str
    fallback_handler: HandlerId
    user_notice: str
    detected_at: datetime

    def to_dict(self) -> Dict:
        return {
            "delegation_id": self.delegation_id,
            "from_handler": self.from_handler.value,
            "to_handler": self.to_handler.value,
            "task": self.task,
            "reason": self.reason,
            "fallback_handler": self.fallback_handler.value,
            "user_notice": self.user_notice,
            "detected_at": self.detected_at.isoformat(),
        }


@dataclass(frozen=True)
class TaskComplexity:
    technical: float
    analytical: float
    creative: float


@dataclass(frozen=True)
class Workload:
    current_tasks: int
    capacity: int


# ═══════════════════════════════════════════════════════════════════════════════
# Streaming
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass
class ResponseFragment:
    """A partial ``HandlerResponse`` emitted by ``route_streaming``."""
    content: Optional[str] = None
    handler: Optional[HandlerId] = None
    timestamp: Optional[datetime] = None
    suggestions: Optional[List[str]] = None
    insights: Optional[List[Insight]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        data: Dict[str, Any] = {"metadata": dict(self.metadata)}
        if self.content is not None:
            data["content"] = self.content
        if self.handler is not None:
            data["handler"] = self.handler.value
        if self.timestamp is not None:
            data["timestamp"] = self.timestamp.isoformat()
        if self.suggestions is not None:
            data["suggestions"] = list(self.suggestions)
        if self.insights is not None:
            data["insights"] = [i.to_dict() for i in self.insights]
        return data


class CancellationToken:
    """Explicit cancellation signal observed between streamed chunks."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


# ═══════════════════════════════════════════════════════════════════════════════
# Protocol interfaces
# ═══════════════════════════════════════════════════════════════════════════════


class TextGenerator(Protocol):
    """Text-generation collaborator (system framing + history + user message)."""

    async def generate(self, messages: List[Dict[str, str]]) -> str:
        ...


class AuditSink(Protocol):
    """Fire-and-forget recorder for delegation lifecycle events."""

    def record(self, event: str, delegation_id: str, payload: Dict[str, Any]) -> None:
        ...


class WorkloadProvider(Protocol):
    """Supplies current load figures for a handler (mocked by default)."""

    def workload(self, handler: HandlerId) -> Workload:
        ...


class Clock(Protocol):
    """Clock abstraction - allows pinning time in tests."""

    def now(self) -> datetime:
        ...


class SystemClock:
    def now(self) -> datetime:
        return utcnow()
