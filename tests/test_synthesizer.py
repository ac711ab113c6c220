"""Tests for ResponseSynthesizer."""

import pytest

from agent_router.schemas import Action, HandlerId, HandlerResponse, Insight, Priority
from agent_router.synthesizer import (
    COAGENT_WITH_FUNCTIONAL,
    COLLABORATIVE,
    DEFAULT_RISK,
    MULTI_FUNCTIONAL,
    RELATIONSHIP_FOLLOW_UPS,
    SINGLE_AGENT,
    ResponseSynthesizer,
)

H = HandlerId

ADVISOR_CONTENT = (
    "📊 **Business Advisor: Analysis brief**\n\n"
    "• Unit economics are positive after month six\n"
    "• Churn is the largest driver of lifetime value\n"
    "• Pricing is ten percent under the market median\n"
    "• ok\n\n"
    "Share your latest figures."
)


def response(handler, content="Plain answer.", insights=(), confidence=None, **kwargs):
    metadata = {} if confidence is None else {"confidence": confidence}
    return HandlerResponse(
        content=content,
        handler=handler,
        insights=list(insights),
        metadata=metadata,
        **kwargs,
    )


class TestMergeInsights:
    """Dedupe by title, rank by priority, cap at five."""

    def test_duplicate_title_keeps_higher_priority(self, synthesizer):
        merged = synthesizer.merge_insights([
            Insight(title="A", priority=Priority.HIGH),
            Insight(title="A", priority=Priority.LOW),
            Insight(title="B", priority=Priority.MEDIUM),
        ])
        assert [(i.title, i.priority) for i in merged] == [
            ("A", Priority.HIGH),
            ("B", Priority.MEDIUM),
        ]

    def test_later_higher_priority_replaces_earlier(self, synthesizer):
        merged = synthesizer.merge_insights([
            Insight(title="A", priority=Priority.LOW, message="first"),
            Insight(title="A", priority=Priority.HIGH, message="second"),
        ])
        assert len(merged) == 1
        assert merged[0].message == "second"

    def test_equal_priority_keeps_first(self, synthesizer):
        merged = synthesizer.merge_insights([
            Insight(title="A", message="first"),
            Insight(title="A", message="second"),
        ])
        assert merged[0].message == "first"

    def test_at_most_five_sorted(self, synthesizer):
        insights = [Insight(title=f"low {n}", priority=Priority.LOW) for n in range(4)]
        insights += [Insight(title=f"high {n}", priority=Priority.HIGH) for n in range(3)]

        merged = synthesizer.merge_insights(insights)
        assert len(merged) == 5
        assert [i.title for i in merged[:3]] == ["high 0", "high 1", "high 2"]
        assert [i.title for i in merged[3:]] == ["low 0", "low 1"]


class TestConfidence:
    """Primary weighted 0.6, contributors' mean weighted 0.4."""

    def test_blend(self, synthesizer):
        primary = response(H.CO_FOUNDER, confidence=0.9)
        contributors = [response(H.BUSINESS_ADVISOR, confidence=0.5)]
        assert synthesizer.overall_confidence(primary, contributors) == pytest.approx(0.74)

    def test_defaults(self, synthesizer):
        primary = response(H.CO_FOUNDER)
        contributors = [response(H.BUSINESS_ADVISOR)]
        assert synthesizer.overall_confidence(primary, contributors) == pytest.approx(0.76)

    def test_primary_alone(self, synthesizer):
        assert synthesizer.overall_confidence(response(H.CO_FOUNDER, confidence=0.4), []) == 0.4
        assert synthesizer.overall_confidence(response(H.CO_FOUNDER), []) == 0.8

    def test_zero_confidence_is_kept(self, synthesizer):
        primary = response(H.CO_FOUNDER, confidence=0.0)
        contributors = [response(H.BUSINESS_ADVISOR, confidence=0.0)]
        assert synthesizer.overall_confidence(primary, contributors) == 0.0


class TestSynthesize:
    """Template choice and collaboration metadata."""

    def test_single_agent_passes_content_through(self, synthesizer):
        primary = response(H.CO_FOUNDER, insights=[Insight(title="x")])
        combined = synthesizer.synthesize(primary)

        assert combined.primary.content == "Plain answer."
        assert combined.contributors == []
        assert combined.collaboration_meta["synthesis_method"] == SINGLE_AGENT
        assert combined.collaboration_meta["primary_handler"] == "co_founder"
        assert [i.title for i in combined.merged_insights] == ["x"]

    def test_relationship_primary_with_specialist(self, synthesizer):
        primary = response(H.CO_FOUNDER, content="Let's think about pricing.")
        advisor = response(H.BUSINESS_ADVISOR, content=ADVISOR_CONTENT)

        combined = synthesizer.synthesize(primary, [advisor])
        content = combined.primary.content

        assert content.startswith("Let's think about pricing.")
        assert "**💡 Additional Analysis from Our Team:**" in content
        assert "**Business Advisor:**" in content
        assert "• Unit economics are positive after month six" in content
        assert "• Pricing is ten percent under the market median" in content
        assert "• ok" not in content
        assert content.endswith("Based on this combined perspective, here's what I'm thinking...")
        assert combined.contributors == [H.BUSINESS_ADVISOR]
        assert combined.collaboration_meta["synthesis_method"] == COAGENT_WITH_FUNCTIONAL
        assert combined.collaboration_meta["contributing_handlers"] == ["business_advisor"]

    def test_functional_primary_collaboration(self, synthesizer):
        primary = response(H.BUSINESS_ADVISOR, content="Primary numbers.")
        analyst = response(
            H.INVESTMENT_ANALYST,
            content=ADVISOR_CONTENT,
            insights=[Insight(title="Watch churn", message="Churn drives LTV", priority=Priority.HIGH)],
        )

        combined = synthesizer.synthesize(primary, [analyst])
        content = combined.primary.content

        assert content.startswith("**Primary Analysis:**\nPrimary numbers.")
        assert "**Investment Analyst:**" in content
        assert "• Churn is the largest driver of lifetime value" in content
        # two points per contributor
        assert "Pricing is ten percent" not in content
        assert "focus on Watch churn: Churn drives LTV" in content
        assert combined.collaboration_meta["synthesis_method"] == COLLABORATIVE

    def test_multi_functional(self, synthesizer):
        primary = response(H.BUSINESS_ADVISOR)
        contributors = [response(H.INVESTMENT_ANALYST), response(H.CREDIT_ANALYST)]
        assert synthesizer.synthesis_method(primary, contributors) == MULTI_FUNCTIONAL

    def test_relationship_contributors_keep_label_and_template_aligned(self, synthesizer):
        primary = response(H.CO_FOUNDER, content="Let's think about pricing.")
        partner = response(H.CO_INVESTOR, content=ADVISOR_CONTENT)

        combined = synthesizer.synthesize(primary, [partner])

        assert combined.collaboration_meta["synthesis_method"] == COAGENT_WITH_FUNCTIONAL
        assert combined.primary.content.startswith("Let's think about pricing.")
        assert "**💡 Additional Analysis from Our Team:**" in combined.primary.content
        assert "**Primary Analysis:**" not in combined.primary.content

    def test_context_is_recorded(self, synthesizer):
        combined = synthesizer.synthesize(response(H.CO_FOUNDER), context={"session_id": "s1"})
        assert combined.collaboration_meta["context"] == {"session_id": "s1"}

    def test_to_dict_serialises_timestamp(self, synthesizer):
        data = synthesizer.synthesize(response(H.CO_FOUNDER)).to_dict()
        assert isinstance(data["collaboration_meta"]["timestamp"], str)


class TestKeyPoints:
    """Bullet extraction."""

    def test_bullets_only(self, synthesizer):
        points = synthesizer.extract_key_points(ADVISOR_CONTENT)
        assert points == [
            "Unit economics are positive after month six",
            "Churn is the largest driver of lifetime value",
            "Pricing is ten percent under the market median",
        ]

    def test_dash_and_star_bullets(self, synthesizer):
        content = "- first long bullet here\n* second long bullet here\nCo-Founder heading"
        assert synthesizer.extract_key_points(content) == [
            "first long bullet here",
            "second long bullet here",
        ]

    def test_prose_falls_back_to_sentences(self, synthesizer):
        points = synthesizer.extract_key_points("Revenue grew fast. Hiring lagged behind plan. Ok.")
        assert points == ["Revenue grew fast.", "Hiring lagged behind plan."]

    def test_limit(self, synthesizer):
        content = "\n".join(f"• bullet number {n} here" for n in range(8))
        assert len(synthesizer.extract_key_points(content)) == 5


class TestRelationshipVoice:
    """Specialist output re-voiced by the partner handler."""

    def test_handoff(self, synthesizer):
        specialist = HandlerResponse(
            content="Cash runway is 14 months.",
            handler=H.BUSINESS_ADVISOR,
            suggestions=["Model a downturn", "Cut burn", "Raise a bridge"],
            actions=[Action(kind="task", description="Update the runway model")],
            insights=[Insight(title="Runway", message="14 months")],
        )

        voiced = synthesizer.handoff_to_relationship_voice(
            specialist, H.CO_FOUNDER, "How long is our runway?", {"business_name": "Acme"}
        )

        assert voiced.handler is H.CO_FOUNDER
        assert "Cash runway is 14 months." in voiced.content
        assert "Acme" in voiced.content
        assert "**My Take:**" in voiced.content
        assert voiced.content.endswith("What resonates with you? Want to dig deeper into any of this?")
        assert voiced.suggestions == ["Model a downturn", "Cut burn"] + RELATIONSHIP_FOLLOW_UPS[:2]
        assert voiced.actions[0].label == "Update the runway model"
        assert voiced.actions[0].parameters["relationship_context"] is True
        assert voiced.insights[0].message == "💡 14 months"
        assert voiced.metadata["synthesized_from"] == "business_advisor"
        assert voiced.metadata["original_response"] == specialist.id
        assert voiced.metadata["synthesis_type"] == "functional_to_coagent"


class TestCollaborativeFlows:
    """Brainstorm and decision-support merges."""

    def test_brainstorm(self, synthesizer):
        primary = response(H.CO_FOUNDER, content="Here are my ideas.")
        advisor = response(
            H.BUSINESS_ADVISOR,
            content=ADVISOR_CONTENT,
            insights=[Insight(title="Bundle services"), Insight(title="Annual plans", priority=Priority.HIGH)],
        )

        merged = synthesizer.brainstorm_merge(primary, [advisor], "New revenue streams")

        assert merged.content.startswith("🚀 **Collaborative Brainstorm: New revenue streams**")
        assert "**Business Advisor Perspective:**" in merged.content
        assert "1. Annual plans\n2. Bundle services" in merged.content
        assert merged.metadata["collaboration_type"] == "brainstorming"

    def test_brainstorm_without_insights(self, synthesizer):
        merged = synthesizer.brainstorm_merge(response(H.CO_FOUNDER), [], "Names")
        assert "here are the top recommendations..." in merged.content

    def test_decision_support(self, synthesizer):
        primary = response(H.CO_FOUNDER, content="We should decide on the raise.")
        analyst = response(
            H.INVESTMENT_ANALYST,
            content=ADVISOR_CONTENT,
            insights=[
                Insight(title="Dilution", message="Founders drop below 50%", kind="risk", priority=Priority.HIGH),
                Insight(title="Raise now", message="Raise a seed extension this quarter"),
                Insight(title="Wait for traction"),
            ],
        )

        merged = synthesizer.decision_support_merge(primary, [analyst], {"deadline": "Q3"})

        assert merged.content.startswith("🎯 **Decision Support: Multi-Perspective Analysis**")
        assert "• **Dilution**: Founders drop below 50% (High)" in merged.content
        assert "**💡 Synthesized Recommendation:**\n\nRaise a seed extension this quarter" in merged.content
        assert "1. Wait for traction" in merged.content
        assert merged.content.endswith("What's your gut telling you about this direction?")
        assert merged.metadata["collaboration_type"] == "decision_support"
        assert merged.metadata["decision_context"] == {"deadline": "Q3"}

    def test_decision_support_defaults(self, synthesizer):
        merged = synthesizer.decision_support_merge(response(H.CO_FOUNDER), [])
        assert "• **Market**: Market conditions may change (Medium)" in merged.content
        assert "Proceed with caution based on current analysis" in merged.content
        assert "1. Consider alternative approach\n2. Gather more data" in merged.content

    def test_assess_risks_default(self, synthesizer):
        assert synthesizer.assess_risks([Insight(title="fine")]) == [DEFAULT_RISK]
        warning = Insight(title="Cash", kind="warning", priority=Priority.LOW)
        assert synthesizer.assess_risks([warning])[0].probability == "Low"


class TestHandoffSummary:
    """Delegated results rendered for the delegating handler."""

    def test_sections_are_capped(self, synthesizer):
        results = {
            "summary": "Done",
            "insights": [{"title": f"insight {n}"} for n in range(5)],
            "recommendations": [f"rec {n}" for n in range(4)],
            "actionItems": [{"action": f"step {n}"} for n in range(5)],
        }
        text = synthesizer.render_handoff_summary(results, "Credit Analyst")

        assert text.startswith("Here's what our Credit Analyst found:")
        assert "3. insight 2" in text and "insight 3" not in text
        assert "2. rec 1" in text and "rec 2" not in text
        assert "3. step 2" in text and "step 3" not in text

    def test_no_results(self, synthesizer):
        assert synthesizer.render_handoff_summary({}, "Credit Analyst") == (
            "No results available from the analysis."
        )
