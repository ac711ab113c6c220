"""
Handler registry - static lookup tables for the two-tier hierarchy.

Every table is a read-only ``MappingProxyType`` built once at import time
and checked for exhaustiveness against its enum, so adding a ``HandlerId``
or ``Persona`` without updating the tables fails at import.

Tables:
    HANDLER_PROFILES        handler -> display metadata + tier
    RELATIONSHIP_HANDLERS   persona -> relationship slot
    FUNCTIONAL_HANDLERS     persona -> functional specialist
    PERSONALITIES           relationship handler -> voice profile
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping, Optional

from agent_router.schemas import HandlerId, HandlerTier, Persona, coerce_persona


@dataclass(frozen=True)
class HandlerProfile:
    name: str
    tier: HandlerTier
    description: str
    emoji: str
    color: str


@dataclass(frozen=True)
class Personality:
    style: str
    tone: str
    approach: str
    intro: str
    perspective: str


def _exhaustive(table: Mapping, enum_cls, table_name: str) -> Mapping:
    missing = [member.value for member in enum_cls if member not in table]
    if missing:
        raise RuntimeError(f"{table_name} is missing entries for: {', '.join(missing)}")
    return MappingProxyType(dict(table))


HANDLER_PROFILES: Mapping[HandlerId, HandlerProfile] = _exhaustive(
    {
        HandlerId.CO_FOUNDER: HandlerProfile(
            name="Co-Founder",
            tier=HandlerTier.RELATIONSHIP,
            description="Your strategic partner and accountability coach",
            emoji="🤝",
            color="#6366f1",
        ),
        HandlerId.CO_INVESTOR: HandlerProfile(
            name="Co-Investor",
            tier=HandlerTier.RELATIONSHIP,
            description="Your investment strategy partner",
            emoji="💰",
            color="#10b981",
        ),
        HandlerId.CO_BUILDER: HandlerProfile(
            name="Co-Builder",
            tier=HandlerTier.RELATIONSHIP,
            description="Your ecosystem partnership strategist",
            emoji="🏗️",
            color="#f59e0b",
        ),
        HandlerId.BUSINESS_ADVISOR: HandlerProfile(
            name="Business Advisor",
            tier=HandlerTier.FUNCTIONAL,
            description="Expert in business strategy and operations",
            emoji="📊",
            color="#8b5cf6",
        ),
        HandlerId.INVESTMENT_ANALYST: HandlerProfile(
            name="Investment Analyst",
            tier=HandlerTier.FUNCTIONAL,
            description="Specialized in deal analysis and due diligence",
            emoji="📈",
            color="#06b6d4",
        ),
        HandlerId.CREDIT_ANALYST: HandlerProfile(
            name="Credit Analyst",
            tier=HandlerTier.FUNCTIONAL,
            description="Expert in credit assessment and risk analysis",
            emoji="🏦",
            color="#ef4444",
        ),
        HandlerId.IMPACT_ANALYST: HandlerProfile(
            name="Impact Analyst",
            tier=HandlerTier.FUNCTIONAL,
            description="Specialized in social and environmental impact",
            emoji="🌱",
            color="#22c55e",
        ),
        HandlerId.PROGRAM_MANAGER: HandlerProfile(
            name="Program Manager",
            tier=HandlerTier.FUNCTIONAL,
            description="Expert in program optimization and partnerships",
            emoji="🎯",
            color="#f97316",
        ),
        HandlerId.PLATFORM_ORCHESTRATOR: HandlerProfile(
            name="Platform Orchestrator",
            tier=HandlerTier.FUNCTIONAL,
            description="Cross-platform coordination and insights",
            emoji="🎼",
            color="#64748b",
        ),
    },
    HandlerId,
    "HANDLER_PROFILES",
)

# Lenders and grantors have no partner handler: their relationship slot is a
# functional specialist. Admins land on the platform orchestrator.
RELATIONSHIP_HANDLERS: Mapping[Persona, HandlerId] = _exhaustive(
    {
        Persona.ENTREPRENEUR: HandlerId.CO_FOUNDER,
        Persona.INVESTOR: HandlerId.CO_INVESTOR,
        Persona.PARTNER: HandlerId.CO_BUILDER,
        Persona.LENDER: HandlerId.CREDIT_ANALYST,
        Persona.GRANTOR: HandlerId.IMPACT_ANALYST,
        Persona.ADMIN: HandlerId.PLATFORM_ORCHESTRATOR,
    },
    Persona,
    "RELATIONSHIP_HANDLERS",
)

FUNCTIONAL_HANDLERS: Mapping[Persona, HandlerId] = _exhaustive(
    {
        Persona.ENTREPRENEUR: HandlerId.BUSINESS_ADVISOR,
        Persona.INVESTOR: HandlerId.INVESTMENT_ANALYST,
        Persona.LENDER: HandlerId.CREDIT_ANALYST,
        Persona.GRANTOR: HandlerId.IMPACT_ANALYST,
        Persona.PARTNER: HandlerId.PROGRAM_MANAGER,
        Persona.ADMIN: HandlerId.PLATFORM_ORCHESTRATOR,
    },
    Persona,
    "FUNCTIONAL_HANDLERS",
)

DEFAULT_RELATIONSHIP_HANDLER = HandlerId.CO_FOUNDER
DEFAULT_FUNCTIONAL_HANDLER = HandlerId.BUSINESS_ADVISOR

# Author of fallback responses when the pipeline fails
FALLBACK_HANDLER = HandlerId.PLATFORM_ORCHESTRATOR

_CO_FOUNDER_VOICE = Personality(
    style="supportive_challenger",
    tone="collaborative",
    approach="strategic_partnership",
    intro="I asked the team to dig into this with me, and here is what came back.",
    perspective=(
        "This gives us solid ground to stand on, but let's pressure-test the "
        "assumptions before we commit. Pick the one finding that would change "
        "your plan the most and we'll start there."
    ),
)

PERSONALITIES: Mapping[HandlerId, Personality] = MappingProxyType({
    HandlerId.CO_FOUNDER: _CO_FOUNDER_VOICE,
    HandlerId.CO_INVESTOR: Personality(
        style="analytical_advisor",
        tone="professional_friendly",
        approach="data_driven_guidance",
        intro="I ran this past our analysts. Here is the picture the numbers paint.",
        perspective=(
            "The data points in a clear direction, but position sizing and "
            "timing still matter. Let's weigh this against the rest of your "
            "portfolio before acting."
        ),
    ),
    HandlerId.CO_BUILDER: Personality(
        style="ecosystem_connector",
        tone="energetic_optimistic",
        approach="partnership_focused",
        intro="Great question! I pulled in our specialists and they came back with some useful findings.",
        perspective=(
            "There is real momentum here. The strongest move is usually the one "
            "that brings the right partners in early, so let's map who else "
            "benefits from this."
        ),
    ),
})

# Why a persona would open each functional handler, for recommendation lists
FUNCTIONAL_REASONS: Mapping[HandlerId, str] = MappingProxyType({
    HandlerId.BUSINESS_ADVISOR: "For business analysis and strategic planning",
    HandlerId.INVESTMENT_ANALYST: "For investment analysis and due diligence",
    HandlerId.CREDIT_ANALYST: "For credit assessment and risk analysis",
    HandlerId.IMPACT_ANALYST: "For impact measurement and ESG analysis",
    HandlerId.PROGRAM_MANAGER: "For program optimization and partnerships",
    HandlerId.PLATFORM_ORCHESTRATOR: "For cross-platform coordination and insights",
})


# ── lookups ────────────────────────────────────────────────


def get_profile(handler: HandlerId) -> HandlerProfile:
    return HANDLER_PROFILES[handler]


def display_name(handler: Optional[HandlerId]) -> str:
    if handler is None:
        return "Specialist"
    return HANDLER_PROFILES[handler].name


def tier_of(handler: HandlerId) -> HandlerTier:
    return HANDLER_PROFILES[handler].tier


def is_relationship_tier(handler: HandlerId) -> bool:
    return tier_of(handler) is HandlerTier.RELATIONSHIP


def is_functional_tier(handler: HandlerId) -> bool:
    return tier_of(handler) is HandlerTier.FUNCTIONAL


def relationship_handler_for(persona: Any) -> HandlerId:
    """The persona's relationship slot; unknown personas get the default."""
    return RELATIONSHIP_HANDLERS.get(coerce_persona(persona), DEFAULT_RELATIONSHIP_HANDLER)


def functional_handler_for(persona: Any) -> HandlerId:
    """The persona's functional specialist; unknown personas get the default."""
    return FUNCTIONAL_HANDLERS.get(coerce_persona(persona), DEFAULT_FUNCTIONAL_HANDLER)


def personality_for(handler: HandlerId) -> Personality:
    return PERSONALITIES.get(handler, _CO_FOUNDER_VOICE)
