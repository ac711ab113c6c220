"""
Agent Selector - routing decisions for the two-tier handler hierarchy.

Relationship tier (partner handlers):
    long-lived, personality-bearing, strategic/emotional/accountability
    engagement; may delegate to specialists.

Functional tier (specialist handlers):
    stateless, task-focused; the persona's relationship handler is kept
    informed but not invoked.
"""

from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from loguru import logger

from agent_router.classifier import QueryClassifier
from agent_router.handlers import (
    HandlerProfile,
    functional_handler_for,
    get_profile,
    is_functional_tier,
    is_relationship_tier,
    relationship_handler_for,
)
from agent_router.schemas import (
    Approach,
    EscalationDecision,
    HandlerId,
    HandlerTier,
    Interaction,
    QueryCategory,
    RoutingDecision,
)

C = QueryCategory

CATEGORY_TIERS: Mapping[QueryCategory, HandlerTier] = MappingProxyType({
    C.STRATEGIC: HandlerTier.RELATIONSHIP,
    C.ACCOUNTABILITY: HandlerTier.RELATIONSHIP,
    C.EMOTIONAL: HandlerTier.RELATIONSHIP,
    C.RELATIONSHIP: HandlerTier.RELATIONSHIP,
    C.BRAINSTORM: HandlerTier.RELATIONSHIP,
    C.ANALYSIS: HandlerTier.FUNCTIONAL,
    C.RESEARCH: HandlerTier.FUNCTIONAL,
    C.DOCUMENT: HandlerTier.FUNCTIONAL,
    C.TECHNICAL: HandlerTier.FUNCTIONAL,
    C.REPORTING: HandlerTier.FUNCTIONAL,
    C.GENERAL: HandlerTier.RELATIONSHIP,
})

# Relationship-tier category -> the kind of specialist support it pulls in
SUPPORT_CATEGORIES: Mapping[QueryCategory, QueryCategory] = MappingProxyType({
    C.STRATEGIC: C.ANALYSIS,
    C.BRAINSTORM: C.RESEARCH,
    C.ACCOUNTABILITY: C.REPORTING,
})

# Categories that pull a specialist back to the partner handler
PARTNER_ESCALATION_CATEGORIES = frozenset({C.EMOTIONAL, C.STRATEGIC, C.RELATIONSHIP})

# Categories a partner hands to a specialist when complexity is high
SPECIALIST_ESCALATION_CATEGORIES = frozenset({C.TECHNICAL, C.REPORTING})


class AgentSelector:
    """
    Maps (query category, persona) to a ``RoutingDecision``.

    Also owns the escalation rule used when a conversation changes nature
    mid-stream.
    """

    def __init__(self, classifier: Optional[QueryClassifier] = None) -> None:
        self.classifier = classifier or QueryClassifier()

    def select_agent(self, interaction: Interaction) -> RoutingDecision:
        """Classify the interaction's query and decide who answers it."""
        category = self.classifier.classify(interaction.query)
        decision = self.decide(category, interaction.persona)
        logger.debug(
            "Selected {} for {} query (support={})",
            decision.primary.value,
            category.value,
            [h.value for h in decision.support],
        )
        return decision

    def decide(self, category: QueryCategory, persona: Any) -> RoutingDecision:
        tier = CATEGORY_TIERS.get(category, HandlerTier.RELATIONSHIP)

        if tier is HandlerTier.FUNCTIONAL:
            return RoutingDecision(
                primary=self.select_functional_handler(category, persona),
                support=(),
                approach=Approach.TASK_FOCUSED,
                may_delegate=False,
                notify_primary_tier=True,
                category=category,
            )

        primary = relationship_handler_for(persona)
        return RoutingDecision(
            primary=primary,
            support=tuple(self._support_handlers(category, persona, primary)),
            approach=Approach.CONVERSATIONAL,
            may_delegate=True,
            notify_primary_tier=False,
            category=category,
        )

    def select_functional_handler(self, category: QueryCategory, persona: Any) -> HandlerId:
        # Every functional category resolves to the persona's specialist
        return functional_handler_for(persona)

    def _support_handlers(
        self, category: QueryCategory, persona: Any, primary: HandlerId
    ) -> List[HandlerId]:
        support_category = SUPPORT_CATEGORIES.get(category)
        if support_category is None:
            return []
        handler = self.select_functional_handler(support_category, persona)
        if handler == primary:
            return []
        return [handler]

    # escalation

    def should_escalate(
        self,
        current_handler: HandlerId,
        category: QueryCategory,
        persona: Any,
        context: Optional[Dict[str, Any]] = None,
    ) -> EscalationDecision:
        """Decide whether the current handler should hand off to the other tier."""
        context = context or {}

        # Specialist -> partner for emotional/strategic content
        if is_functional_tier(current_handler) and category in PARTNER_ESCALATION_CATEGORIES:
            target = relationship_handler_for(persona)
            # lender/grantor/admin slots are specialists already
            if target != current_handler:
                return EscalationDecision(
                    escalate=True,
                    target_handler=target,
                    reason="Query requires partnership-level guidance",
                )

        # Partner -> specialist for complex technical/reporting work
        if (
            is_relationship_tier(current_handler)
            and category in SPECIALIST_ESCALATION_CATEGORIES
            and context.get("complexity") == "high"
        ):
            return EscalationDecision(
                escalate=True,
                target_handler=self.select_functional_handler(category, persona),
                reason="Query requires specialized technical expertise",
            )

        return EscalationDecision(escalate=False)

    @staticmethod
    def get_handler_profile(handler: HandlerId) -> HandlerProfile:
        return get_profile(handler)
