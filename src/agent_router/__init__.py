"""
Agent Router: two-tier query routing and response synthesis.

Public API:
    build_router()        → IntelligentRouter (fully wired from config)
    IntelligentRouter     → route / route_streaming / delegate_task / should_escalate
    QueryClassifier       → request → category
    AgentSelector         → category + persona → RoutingDecision
    TaskDelegator         → tracked delegations, handoff, timeout sweep
    DelegationMonitor     → periodic deadline sweep
    ResponseSynthesizer   → merges handler outputs
    HandlerExecutor       → runs one handler
"""

from .classifier import QueryClassifier
from .delegator import DelegationMonitor, StaticWorkloadProvider, TaskDelegator
from .executor import HandlerExecutor
from .router import IntelligentRouter, build_router
from .schemas import (
    CancellationToken,
    CombinedResponse,
    HandlerId,
    HandlerResponse,
    Interaction,
    Persona,
    QueryCategory,
    RoutingDecision,
)
from .selector import AgentSelector
from .synthesizer import ResponseSynthesizer

__all__ = [
    "AgentSelector",
    "CancellationToken",
    "CombinedResponse",
    "DelegationMonitor",
    "HandlerExecutor",
    "HandlerId",
    "HandlerResponse",
    "IntelligentRouter",
    "Interaction",
    "Persona",
    "QueryCategory",
    "QueryClassifier",
    "ResponseSynthesizer",
    "RoutingDecision",
    "StaticWorkloadProvider",
    "TaskDelegator",
    "build_router",
]
