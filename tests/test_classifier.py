"""Tests for QueryClassifier."""

import re

import pytest

from agent_router.classifier import Boost, QueryClassifier, Rule
from agent_router.schemas import Approach, QueryCategory

C = QueryCategory


class TestClassify:
    """Category selection from the default rule table."""

    @pytest.mark.parametrize("text", ["", None, "   ", "zzz qqq"])
    def test_unmatched_input_is_general(self, classifier, text):
        assert classifier.classify(text) is C.GENERAL
        assert classifier.describe(text).confidence == 0.0

    def test_anxious_decision_is_emotional(self, classifier):
        description = classifier.describe("I feel anxious about this decision")

        assert description.category is C.EMOTIONAL
        assert description.confidence == 1.0
        assert description.scores["emotional"] == 2.0
        assert description.suggested_approach is Approach.CONVERSATIONAL

    def test_financial_analysis(self, classifier):
        description = classifier.describe("Analyze our revenue forecast")

        assert description.category is C.ANALYSIS
        assert description.confidence == 1.0
        assert description.suggested_approach is Approach.TASK_FOCUSED

    def test_tie_goes_to_priority_order(self, classifier):
        # strategic and accountability both score 1
        scores = classifier.score("strategy and progress")
        assert scores[C.STRATEGIC] == scores[C.ACCOUNTABILITY] == 1.0
        assert classifier.classify("strategy and progress") is C.STRATEGIC

    def test_case_insensitive(self, classifier):
        assert classifier.classify("DEBUG the API") is C.TECHNICAL


class TestContextClues:
    """Boosts and context flags."""

    def test_boost_alone_can_decide_category(self, classifier):
        description = classifier.describe("great")

        assert description.category is C.RELATIONSHIP
        # confidence counts rule matches only
        assert description.confidence == 0.0
        assert description.context_flags["is_emotional"] is True

    def test_urgency_and_deadline_flags(self, classifier):
        flags = classifier.describe("I need this urgent by friday").context_flags

        assert flags["has_urgency"] is True
        assert flags["has_deadline"] is True
        assert flags["is_exploratory"] is False

    def test_flags_all_false_for_empty(self, classifier):
        flags = classifier.describe("").context_flags
        assert not any(flags.values())


class TestInjectedRules:
    """Alternative rule sets without touching the defaults."""

    def test_custom_rules(self):
        classifier = QueryClassifier(
            rules={C.TECHNICAL: (Rule(re.compile("widget")),)},
            boosts=(),
        )
        assert classifier.classify("the widget broke") is C.TECHNICAL
        assert classifier.classify("strategy") is C.GENERAL

    def test_rule_weight(self):
        classifier = QueryClassifier(
            rules={
                C.RESEARCH: (Rule(re.compile("market"), weight=1.0),),
                C.ANALYSIS: (Rule(re.compile("market"), weight=2.0),),
            },
            boosts=(),
        )
        assert classifier.classify("market") is C.ANALYSIS

    def test_custom_priority_breaks_ties(self):
        rules = {
            C.RESEARCH: (Rule(re.compile("market")),),
            C.ANALYSIS: (Rule(re.compile("market")),),
        }
        classifier = QueryClassifier(rules=rules, boosts=(), priority=[C.RESEARCH, C.ANALYSIS])
        assert classifier.classify("market") is C.RESEARCH

    def test_custom_boost(self):
        classifier = QueryClassifier(
            rules={C.DOCUMENT: (Rule(re.compile("deck")),)},
            clues={"rush": re.compile("tonight")},
            boosts=(Boost("rush", (C.TECHNICAL,), 2.0),),
        )
        assert classifier.classify("fix the deck tonight") is C.TECHNICAL
