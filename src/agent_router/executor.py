"""
Handler Executor - produces one handler's response to one interaction.

With a ``TextGenerator`` wired in, content comes from the model using
the handler's system prompt. Without one, content is a deterministic
template built from the handler profile and the request category, so the
pipeline runs end-to-end offline (CLI dry runs, tests).

Suggestions, insights and actions are rule-based in both modes.
"""

import time
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from loguru import logger

from agent_router.classifier import QueryClassifier
from agent_router.handlers import get_profile, is_relationship_tier
from agent_router.prompts import build_handler_messages
from agent_router.schemas import (
    Action,
    HandlerId,
    HandlerResponse,
    Insight,
    Interaction,
    Priority,
    QueryCategory,
    QueryDescription,
    TextGenerator,
)
from infrastructure.observability import observe, update_current_observation

C = QueryCategory

CATEGORY_TASKS: Mapping[QueryCategory, str] = MappingProxyType({
    C.STRATEGIC: "strategic_session",
    C.ACCOUNTABILITY: "accountability_check",
    C.EMOTIONAL: "emotional_support",
    C.RELATIONSHIP: "relationship_check_in",
    C.BRAINSTORM: "brainstorm",
    C.ANALYSIS: "analysis",
    C.RESEARCH: "research",
    C.DOCUMENT: "document_review",
    C.TECHNICAL: "technical_guidance",
    C.REPORTING: "reporting",
})
DEFAULT_TASK = "general_assistance"

GENERIC_SUGGESTIONS = [
    "Explore this topic further",
    "Get additional analysis",
    "Plan next steps",
    "Discuss with team",
]

CATEGORY_SUGGESTIONS: Mapping[QueryCategory, List[str]] = MappingProxyType({
    C.STRATEGIC: ["Stress-test this direction", "Compare the alternatives", "Set a decision deadline"],
    C.ACCOUNTABILITY: ["Review this week's commitments", "Reset the next milestone", "Schedule a check-in"],
    C.EMOTIONAL: ["Talk through what's weighing on you", "Break the problem into smaller steps"],
    C.RELATIONSHIP: ["Adjust how we work together", "Share what's been most useful"],
    C.BRAINSTORM: ["Generate more options", "Pick the top three ideas", "Test the riskiest assumption"],
    C.ANALYSIS: ["Run a sensitivity analysis", "Benchmark against peers", "Build a forecast model"],
    C.RESEARCH: ["Size the market", "Profile the top competitors", "Plan customer interviews"],
    C.DOCUMENT: ["Tighten the executive summary", "Restructure the outline", "Review the financial section"],
    C.TECHNICAL: ["Outline the architecture", "List integration risks", "Estimate the build effort"],
    C.REPORTING: ["Set up a monthly report", "Choose the core KPIs", "Export the dashboard data"],
})

# (talking points, closing line) per category
_TALKING_POINTS: Mapping[QueryCategory, Tuple[Tuple[str, ...], str]] = MappingProxyType({
    C.STRATEGIC: (
        ("Clarify the outcome you want twelve months from now",
         "Name the two or three options that are genuinely on the table",
         "Decide which assumption would change the answer if it were wrong"),
        "Which option do you lean towards today, and why?",
    ),
    C.ACCOUNTABILITY: (
        ("Compare what was committed against what actually shipped",
         "Identify the single blocker that cost the most time",
         "Agree on one commitment for the next check-in"),
        "What is the one thing you will have done by our next check-in?",
    ),
    C.EMOTIONAL: (
        ("What you are feeling is a normal part of building something hard",
         "Separate the parts you control from the parts you don't",
         "Pick one small, concrete step that restores momentum"),
        "What would make this week feel like a win?",
    ),
    C.RELATIONSHIP: (
        ("Tell me what has been most and least useful so far",
         "We can change the pace, format or depth of our sessions"),
        "What should I do more of, or less of?",
    ),
    C.BRAINSTORM: (
        ("Start wide: no idea is filtered out at this stage",
         "Look at adjacent markets and unusual partners for inspiration",
         "Then narrow to the ideas that are cheap to test"),
        "Which of these sparks the most energy for you?",
    ),
    C.ANALYSIS: (
        ("Frame the question as a metric with a target and a deadline",
         "Build the baseline from your current revenue and cost figures",
         "Flag the inputs that drive most of the variance"),
        "Share your latest figures and I will run the numbers.",
    ),
    C.RESEARCH: (
        ("Define who the customer is before sizing the market",
         "Use at least two independent sources for every key number",
         "Summarise competitors by positioning, pricing and traction"),
        "I can turn this into a short research brief.",
    ),
    C.DOCUMENT: (
        ("Lead with the problem, the solution and the ask",
         "Keep each section to one idea with supporting evidence",
         "Make the financial section consistent with the narrative"),
        "Send over the current draft and I will mark it up.",
    ),
    C.TECHNICAL: (
        ("Start from the smallest architecture that meets the requirement",
         "Choose managed services for anything that isn't a differentiator",
         "Document integration points and failure modes early"),
        "I can sketch the system design next.",
    ),
    C.REPORTING: (
        ("Pick a handful of KPIs that map directly to your goals",
         "Report them on a fixed cadence with the same definitions",
         "Pair every chart with a one-line takeaway"),
        "I can set up the first version of the report.",
    ),
})

_GENERAL_POINTS: Tuple[Tuple[str, ...], str] = (
    ("Tell me a little more about what you are trying to achieve",
     "Share any deadlines or constraints I should know about"),
    "Where would you like to start?",
)

CATEGORY_INSIGHTS: Mapping[QueryCategory, Tuple[str, str]] = MappingProxyType({
    C.STRATEGIC: ("Decide with explicit criteria", "Write down how you will judge the options before comparing them"),
    C.ACCOUNTABILITY: ("Protect your next milestone", "One committed deliverable beats three aspirational ones"),
    C.EMOTIONAL: ("Momentum over perfection", "A small completed step usually resolves more doubt than more planning"),
    C.RELATIONSHIP: ("Tune the partnership", "Regular feedback keeps the guidance relevant"),
    C.BRAINSTORM: ("Test the cheapest idea first", "Rank ideas by cost to validate, not by excitement"),
    C.ANALYSIS: ("Know your key drivers", "Most of the outcome depends on a few inputs; validate those first"),
    C.RESEARCH: ("Triangulate market data", "Cross-check every market figure with a second source"),
    C.DOCUMENT: ("Lead with the ask", "Readers decide in the first page; put the ask there"),
    C.TECHNICAL: ("Buy before you build", "Managed services shorten time to market for non-core parts"),
    C.REPORTING: ("Fewer, sharper KPIs", "Track only the metrics that change decisions"),
})
DEFAULT_INSIGHT = ("Consider next steps", "Based on your query, here are some recommended actions")

CATEGORY_ACTIONS: Mapping[QueryCategory, Action] = MappingProxyType({
    C.ACCOUNTABILITY: Action(
        kind="schedule_check_in",
        description="Schedule the next accountability check-in",
        label="Schedule check-in",
    ),
    C.DOCUMENT: Action(
        kind="review_document",
        description="Review the current document draft",
        label="Review draft",
    ),
    C.REPORTING: Action(
        kind="generate_report",
        description="Generate the requested report",
        label="Generate report",
    ),
})


class HandlerExecutor:
    """
    Runs a single handler.

    Generator failures propagate: the router decides whether they drop a
    support contribution or trigger the fallback response.
    """

    def __init__(
        self,
        generator: Optional[TextGenerator] = None,
        classifier: Optional[QueryClassifier] = None,
    ) -> None:
        self.generator = generator
        self.classifier = classifier or QueryClassifier()

    @observe(name="handler_execute")
    async def execute(
        self,
        handler: HandlerId,
        interaction: Interaction,
        description: Optional[QueryDescription] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> HandlerResponse:
        description = description or self.classifier.describe(interaction.query)
        category = description.category
        t0 = time.perf_counter()

        if self.generator is None:
            content = self.render_template(handler, interaction, category)
        else:
            messages = build_handler_messages(handler, interaction, description)
            update_current_observation(
                input=messages[-1]["content"][:1000],
                model=getattr(self.generator, "model_name", None),
            )
            content = await self.generator.generate(messages)

        elapsed_ms = int((time.perf_counter() - t0) * 1000)
        update_current_observation(output=content[:1000], metadata={"handler": handler.value})
        logger.debug("{} answered in {} ms", handler.value, elapsed_ms)

        response_metadata: Dict[str, Any] = {
            "category": category.value,
            "confidence": description.confidence,
            "task": CATEGORY_TASKS.get(category, DEFAULT_TASK),
            "generated": self.generator is not None,
            "processing_ms": elapsed_ms,
        }
        response_metadata.update(metadata or {})

        return HandlerResponse(
            content=content,
            handler=handler,
            suggestions=self.suggestions(category),
            actions=self.actions(category),
            insights=self.insights(category, description),
            metadata=response_metadata,
        )

    async def execute_task(
        self,
        handler: HandlerId,
        task: str,
        user_context: Dict[str, Any],
        delegation_id: str,
    ) -> HandlerResponse:
        """Run a delegated task as if the user had asked it directly."""
        interaction = Interaction(
            query=task,
            persona=user_context.get("persona") or user_context.get("user_type"),
            context=dict(user_context),
        )
        return await self.execute(
            handler, interaction, metadata={"delegation_id": delegation_id}
        )

    # ── rule-based extras ───────────────────────────────────

    @staticmethod
    def suggestions(category: QueryCategory) -> List[str]:
        return list(CATEGORY_SUGGESTIONS.get(category, GENERIC_SUGGESTIONS))

    @staticmethod
    def actions(category: QueryCategory) -> List[Action]:
        action = CATEGORY_ACTIONS.get(category)
        return [action] if action else []

    @staticmethod
    def insights(category: QueryCategory, description: QueryDescription) -> List[Insight]:
        title, message = CATEGORY_INSIGHTS.get(category, DEFAULT_INSIGHT)
        urgent = description.context_flags.get("has_urgency", False)
        return [
            Insight(
                title=title,
                message=message,
                priority=Priority.HIGH if urgent else Priority.MEDIUM,
            )
        ]

    @staticmethod
    def render_template(
        handler: HandlerId, interaction: Interaction, category: QueryCategory
    ) -> str:
        profile = get_profile(handler)
        points, closing = _TALKING_POINTS.get(category, _GENERAL_POINTS)
        bullets = "\n".join(f"• {p}" for p in points)

        if is_relationship_tier(handler):
            return (
                f"{profile.emoji} I'm your {profile.name}. You asked: \"{interaction.query}\"\n\n"
                f"Here's how I'd approach it together:\n{bullets}\n\n{closing}"
            )
        heading = category.value.replace("_", " ").title()
        return (
            f"{profile.emoji} **{profile.name}: {heading} brief**\n\n"
            f"Request: \"{interaction.query}\"\n\n{bullets}\n\n{closing}"
        )
