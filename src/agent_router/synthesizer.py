"""
Response Synthesizer - merges handler outputs into one reply.

Three jobs:
    1. Insight merge (dedupe by title, rank by priority, keep top 5).
    2. Confidence blend (primary weighted 0.6, contributors 0.4).
    3. Merge template, picked from which tiers contributed.

Plus the specialised flows used by the router and delegator: handoff to
a relationship handler's voice, brainstorm merge, decision-support merge
and the delegated-results summary.
"""

import re
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from loguru import logger

from agent_router.handlers import display_name, is_relationship_tier, personality_for
from agent_router.policies import (
    blended_confidence,
    probability_label,
    rank_insights,
)
from agent_router.schemas import (
    Action,
    CombinedResponse,
    HandlerId,
    HandlerResponse,
    Insight,
    Risk,
    utcnow,
)

SINGLE_AGENT = "single_agent"
COAGENT_WITH_FUNCTIONAL = "coagent_with_functional"
MULTI_FUNCTIONAL = "multi_functional"
COLLABORATIVE = "collaborative"

MAX_MERGED_INSIGHTS = 5
MAX_KEY_POINTS = 5

RELATIONSHIP_FOLLOW_UPS = [
    "Dive deeper into this analysis",
    "Challenge these assumptions",
    "Explore alternative approaches",
    "Plan next steps together",
]

RISK_KINDS = frozenset({"risk", "warning"})

DEFAULT_RISK = Risk(type="Market", description="Market conditions may change", probability="Medium")
DEFAULT_PRIMARY_RECOMMENDATION = "Proceed with caution based on current analysis"
DEFAULT_ALTERNATIVES = ["Consider alternative approach", "Gather more data"]

_BULLET = re.compile(r"^\s*[•\-*]\s+(.+)$")
_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")


class ResponseSynthesizer:
    """Stateless; one instance is shared by the router and the delegator."""

    def synthesize(
        self,
        primary: HandlerResponse,
        contributors: Sequence[HandlerResponse] = (),
        context: Optional[Dict[str, Any]] = None,
    ) -> CombinedResponse:
        contributors = list(contributors)
        merged = self.merge_insights(
            list(primary.insights) + [i for r in contributors for i in r.insights]
        )
        method = self.synthesis_method(primary, contributors)

        content = primary.content
        if method == COAGENT_WITH_FUNCTIONAL:
            content = self._relationship_with_support(primary, contributors)
        elif method != SINGLE_AGENT:
            content = self._functional_collaboration(primary, contributors, merged)

        combined_primary = replace(primary, content=content, insights=merged)
        meta: Dict[str, Any] = {
            "primary_handler": primary.handler.value,
            "contributing_handlers": [r.handler.value for r in contributors],
            "synthesis_method": method,
            "confidence_score": self.overall_confidence(primary, contributors),
            "timestamp": utcnow(),
        }
        if context:
            meta["context"] = dict(context)

        logger.debug(
            "Synthesized {} with {} contributor(s) via {}",
            primary.handler.value,
            len(contributors),
            method,
        )
        return CombinedResponse(
            primary=combined_primary,
            contributors=[r.handler for r in contributors],
            merged_insights=merged,
            collaboration_meta=meta,
        )

    # ── building blocks ─────────────────────────────────────

    @staticmethod
    def merge_insights(insights: Iterable[Insight]) -> List[Insight]:
        return rank_insights(insights, limit=MAX_MERGED_INSIGHTS)

    @staticmethod
    def overall_confidence(
        primary: HandlerResponse, contributors: Sequence[HandlerResponse]
    ) -> float:
        return blended_confidence(primary.metadata, [r.metadata for r in contributors])

    @staticmethod
    def synthesis_method(
        primary: HandlerResponse, contributors: Sequence[HandlerResponse]
    ) -> str:
        """Label for the merge template; ``synthesize`` picks its template from it."""
        if not contributors:
            return SINGLE_AGENT
        if is_relationship_tier(primary.handler):
            return COAGENT_WITH_FUNCTIONAL
        if len(contributors) > 1:
            return MULTI_FUNCTIONAL
        return COLLABORATIVE

    @staticmethod
    def extract_key_points(content: str, limit: int = MAX_KEY_POINTS) -> List[str]:
        """
        Bulleted lines (•, -, *) longer than 10 chars, bullet stripped.

        Prose without bullets falls back to its sentences so a contributor
        is never rendered as an empty block.
        """
        content = content or ""
        points = []
        for line in content.split("\n"):
            match = _BULLET.match(line)
            if match and len(line.strip()) > 10:
                points.append(match.group(1).strip())
        if not points:
            points = [
                s.strip() for s in _SENTENCE_END.split(content.replace("\n", " "))
                if len(s.strip()) > 10
            ]
        return points[:limit]

    # ── merge templates ─────────────────────────────────────

    def _relationship_with_support(
        self, primary: HandlerResponse, contributors: Sequence[HandlerResponse]
    ) -> str:
        blocks = []
        for response in contributors:
            points = self.extract_key_points(response.content)[:3]
            bullets = "\n".join(f"• {p}" for p in points)
            blocks.append(f"**{display_name(response.handler)}:**\n{bullets}")

        return (
            f"{primary.content}\n\n"
            "**💡 Additional Analysis from Our Team:**\n\n"
            + "\n\n".join(blocks)
            + "\n\nBased on this combined perspective, here's what I'm thinking..."
        )

    def _functional_collaboration(
        self,
        primary: HandlerResponse,
        contributors: Sequence[HandlerResponse],
        merged: Sequence[Insight],
    ) -> str:
        blocks = []
        for response in contributors:
            points = self.extract_key_points(response.content)[:2]
            bullets = "\n".join(f"• {p}" for p in points)
            blocks.append(f"**{display_name(response.handler)}:**\n{bullets}")

        return (
            f"**Primary Analysis:**\n{primary.content}\n\n"
            "**Additional Perspectives:**\n"
            + "\n\n".join(blocks)
            + f"\n\n**Synthesized Recommendation:**\n{self._combined_recommendation(merged)}"
        )

    @staticmethod
    def _combined_recommendation(merged: Sequence[Insight]) -> str:
        if not merged:
            return "Based on all perspectives, the recommended approach is to act on the primary analysis."
        top = merged[0]
        detail = f": {top.message}" if top.message else ""
        return f"Based on all perspectives, the recommended approach is to focus on {top.title}{detail}"

    # ═══════════════════════════════════════════════════════════════════════
    # Specialised flows
    # ═══════════════════════════════════════════════════════════════════════

    def handoff_to_relationship_voice(
        self,
        functional_response: HandlerResponse,
        relationship_handler: HandlerId,
        original_query: str,
        user_context: Optional[Mapping[str, Any]] = None,
    ) -> HandlerResponse:
        """Rewrite a specialist's output in the relationship handler's voice."""
        personality = personality_for(relationship_handler)
        content = (
            f"{personality.intro}\n\n"
            f"{self._personalized_context(original_query, user_context or {})}\n\n"
            f"{functional_response.content}\n\n"
            f"**My Take:**\n{personality.perspective}\n\n"
            "What resonates with you? Want to dig deeper into any of this?"
        )
        return HandlerResponse(
            content=content,
            handler=relationship_handler,
            suggestions=list(functional_response.suggestions[:2]) + RELATIONSHIP_FOLLOW_UPS[:2],
            actions=[self._adapt_action(a) for a in functional_response.actions],
            insights=[
                replace(i, message=f"💡 {i.message}") for i in functional_response.insights
            ],
            metadata={
                "synthesized_from": functional_response.handler.value,
                "original_response": functional_response.id,
                "synthesis_type": "functional_to_coagent",
                "tone": personality.tone,
            },
        )

    def brainstorm_merge(
        self,
        primary: HandlerResponse,
        contributors: Sequence[HandlerResponse],
        topic: str,
    ) -> HandlerResponse:
        blocks = []
        for response in contributors:
            bullets = "\n".join(f"• {p}" for p in self.extract_key_points(response.content))
            blocks.append(f"**{display_name(response.handler)} Perspective:**\n{bullets}")

        merged = self.merge_insights(
            list(primary.insights) + [i for r in contributors for i in r.insights]
        )
        content = (
            f"🚀 **Collaborative Brainstorm: {topic}**\n\n"
            "I've been thinking about this with our team of specialists, and "
            "here's what we've come up with together:\n\n"
            f"{primary.content}\n\n"
            "**💡 Additional Perspectives from Our Specialists:**\n\n"
            + "\n\n".join(blocks)
            + "\n\n**🎯 Synthesized Recommendations:**\n\n"
            + self._brainstorm_recommendations(merged)
            + "\n\nWant to dive deeper into any of these directions? "
            "Or should we explore something completely different?"
        )
        metadata = dict(primary.metadata)
        metadata.update(
            collaboration_type="brainstorming",
            contributing_handlers=[r.handler.value for r in contributors],
        )
        return replace(primary, content=content, insights=merged, metadata=metadata)

    @staticmethod
    def _brainstorm_recommendations(merged: Sequence[Insight]) -> str:
        if not merged:
            return "Based on our collaborative analysis, here are the top recommendations..."
        return "\n".join(f"{n}. {i.title}" for n, i in enumerate(merged[:3], start=1))

    def decision_support_merge(
        self,
        primary: HandlerResponse,
        inputs: Sequence[HandlerResponse],
        decision_context: Optional[Mapping[str, Any]] = None,
    ) -> HandlerResponse:
        """Primary analysis plus per-specialist findings, risk list and options."""
        insights = [i for r in inputs for i in r.insights]
        risks = self.assess_risks(insights)
        recommendation, alternatives = self._recommendations(insights)

        perspectives = []
        for response in inputs:
            findings = "\n".join(f"• {p}" for p in self.extract_key_points(response.content))
            perspectives.append(f"**{display_name(response.handler)}:**\n{findings}")

        content = (
            "🎯 **Decision Support: Multi-Perspective Analysis**\n\n"
            f"{primary.content}\n\n"
            "**📊 Data-Driven Insights:**\n\n"
            + "\n\n".join(perspectives)
            + "\n\n**⚠️ Risk Assessment:**\n"
            + "\n".join(f"• **{r.type}**: {r.description} ({r.probability})" for r in risks)
            + f"\n\n**💡 Synthesized Recommendation:**\n\n{recommendation}\n\n"
            "**Alternative Approaches:**\n"
            + "\n".join(f"{n}. {alt}" for n, alt in enumerate(alternatives, start=1))
            + "\n\nMy take: Based on all this analysis, I think we should move "
            "forward strategically...\n\n"
            "What's your gut telling you about this direction?"
        )
        metadata = dict(primary.metadata)
        metadata.update(
            collaboration_type="decision_support",
            risks=[r.to_dict() for r in risks],
        )
        if decision_context:
            metadata["decision_context"] = dict(decision_context)
        return replace(
            primary,
            content=content,
            insights=self.merge_insights(list(primary.insights) + insights),
            metadata=metadata,
        )

    @staticmethod
    def assess_risks(insights: Iterable[Insight]) -> List[Risk]:
        risks = [
            Risk(
                type=i.title,
                description=i.message or i.title,
                probability=probability_label(i.priority),
            )
            for i in insights
            if i.kind in RISK_KINDS
        ]
        return risks or [DEFAULT_RISK]

    @staticmethod
    def _recommendations(insights: Sequence[Insight]):
        recs = [i for i in insights if i.kind == "recommendation"]
        if not recs:
            return DEFAULT_PRIMARY_RECOMMENDATION, list(DEFAULT_ALTERNATIVES)
        primary = recs[0].message or recs[0].title
        alternatives = [i.title for i in recs[1:3]] or list(DEFAULT_ALTERNATIVES)
        return primary, alternatives

    # ── delegated results ───────────────────────────────────

    @staticmethod
    def render_handoff_summary(
        results: Optional[Union[Mapping[str, Any], HandlerResponse]],
        handler_name: str,
    ) -> str:
        """
        Summary of a delegated handler's results for the delegating handler.

        ``results`` is either a payload mapping (summary, insights,
        recommendations, action_items) or a ``HandlerResponse``.
        """
        if not results:
            return "No results available from the analysis."
        payload = results_payload(results)

        sections = [
            f"Here's what our {handler_name} found:",
            f"**Summary:** {payload.get('summary') or 'Analysis completed'}",
        ]
        insights = list(payload.get("insights") or [])[:3]
        if insights:
            sections.append("**Key Insights:**\n" + _numbered(insights, "title"))
        recommendations = list(payload.get("recommendations") or [])[:2]
        if recommendations:
            sections.append("**Recommendations:**\n" + _numbered(recommendations, "description"))
        steps = list(payload.get("action_items") or [])[:3]
        if steps:
            sections.append("**Next Steps:**\n" + _numbered(steps, "action"))
        sections.append("What would you like to explore further?")
        return "\n\n".join(sections)

    # helpers

    @staticmethod
    def _personalized_context(query: str, user_context: Mapping[str, Any]) -> str:
        subject = user_context.get("business_name") or user_context.get("company")
        phase = user_context.get("business_phase") or user_context.get("stage")
        if subject and phase:
            lead = f"Given where {subject} is right now ({phase} stage)"
        elif subject:
            lead = f"Given where {subject} is right now"
        else:
            lead = "Given your current situation and goals"
        if query:
            return f'{lead}, here is how this answers "{query}":'
        return f"{lead}..."

    @staticmethod
    def _adapt_action(action: Action) -> Action:
        return replace(
            action,
            label=action.label or action.description or "Take Action",
            parameters={**action.parameters, "relationship_context": True},
        )


# ── payload helpers (shared with the delegator) ────────────


def results_payload(results: Union[Mapping[str, Any], HandlerResponse]) -> Dict[str, Any]:
    """Normalise delegated results into the handoff payload mapping."""
    if isinstance(results, HandlerResponse):
        return {
            "summary": results.content,
            "insights": list(results.insights),
            "recommendations": [
                i for i in results.insights if i.kind == "recommendation"
            ],
            "action_items": [a.description for a in results.actions],
            "confidence": results.metadata.get("confidence"),
        }
    payload = dict(results)
    if "action_items" not in payload and "actionItems" in payload:
        payload["action_items"] = payload["actionItems"]
    return payload


def item_text(item: Any, key: str) -> str:
    if isinstance(item, Insight):
        return item.title if key == "title" else (item.message or item.title)
    if isinstance(item, Action):
        return item.description
    if isinstance(item, Mapping):
        return str(item.get(key) or item.get("title") or item.get("description") or item)
    return str(item)


def _numbered(items: Sequence[Any], key: str) -> str:
    return "\n".join(f"{n}. {item_text(item, key)}" for n, item in enumerate(items, start=1))
