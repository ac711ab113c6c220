"""
Query Classifier - keyword/pattern classification of user requests.

Maps a raw request string to exactly one ``QueryCategory`` plus a
confidence and a handful of context flags. Pure and deterministic: the
rule table, boost table and tie-break order are plain data injected at
construction time.
"""

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Pattern, Sequence, Tuple

from loguru import logger

from agent_router.schemas import Approach, QueryCategory, QueryDescription

C = QueryCategory


@dataclass(frozen=True)
class Rule:
    pattern: Pattern
    weight: float = 1.0

    def matches(self, text: str) -> bool:
        return bool(self.pattern.search(text))


@dataclass(frozen=True)
class Boost:
    """Add ``increment`` to every category in ``categories`` when ``clue`` fires."""
    clue: str
    categories: Tuple[QueryCategory, ...]
    increment: float


def _rules(*patterns: str) -> Tuple[Rule, ...]:
    return tuple(Rule(re.compile(p)) for p in patterns)


# Relationship tier first, then functional
DEFAULT_RULES: Mapping[QueryCategory, Tuple[Rule, ...]] = MappingProxyType({
    C.STRATEGIC: _rules(
        r"strategy|direction|should i|advice|what do you think|help me decide",
        r"pivot|market entry|expansion|product direction",
        r"long.?term|vision|mission|goals",
        r"competitive|positioning|differentiation",
    ),
    C.ACCOUNTABILITY: _rules(
        r"progress|committed|goal|deadline|check.?in",
        r"update|status|follow.?up|reminder",
        r"accomplished|completed|behind|stuck",
        r"accountability|track|measure",
    ),
    C.EMOTIONAL: _rules(
        r"stressed|worried|scared|excited|frustrated|overwhelmed",
        r"feel|feeling|emotion|morale|confidence",
        r"doubt|uncertain|anxious|motivated",
        r"celebration|celebrate|proud|disappointed",
    ),
    C.RELATIONSHIP: _rules(
        r"how am i doing|partnership|feedback|our work together",
        r"trust|relationship|communication|understanding",
        r"appreciate|grateful|thankful|working well",
        r"not helpful|different approach|change style",
    ),
    C.BRAINSTORM: _rules(
        r"ideas|brainstorm|what if|creative|innovative",
        r"alternatives|options|possibilities|approach",
        r"think outside|unconventional|unique|novel",
        r"creativity|inspiration|spark|generate",
    ),
    C.ANALYSIS: _rules(
        r"analyze|evaluate|assess|calculate|forecast|model",
        r"financial|revenue|profit|cash flow|valuation",
        r"metrics|kpi|performance|benchmark",
        r"market analysis|competitive analysis|swot",
    ),
    C.RESEARCH: _rules(
        r"research|find|lookup|data on|information about",
        r"competitor|market size|industry trends",
        r"customer|user research|survey|interview",
        r"due diligence|background check|verify",
    ),
    C.DOCUMENT: _rules(
        r"review|edit|improve|draft|create|write",
        r"business plan|pitch deck|proposal|contract",
        r"document|report|presentation|memo",
        r"format|structure|organize|outline",
    ),
    C.TECHNICAL: _rules(
        r"build|implement|code|technical|integrate",
        r"system|platform|infrastructure|architecture",
        r"api|database|deployment|hosting",
        r"troubleshoot|debug|fix|error",
    ),
    C.REPORTING: _rules(
        r"report|dashboard|metrics|kpi|summary",
        r"chart|graph|visualization|display",
        r"export|download|generate|create",
        r"monthly|weekly|quarterly|annual",
    ),
})

DEFAULT_CLUES: Mapping[str, Pattern] = MappingProxyType({
    # emotional context
    "urgency": re.compile(r"urgent|asap|emergency|critical|immediately"),
    "confusion": re.compile(r"confused|lost|don't understand|not sure"),
    "satisfaction": re.compile(r"great|awesome|perfect|exactly|love it"),
    "dissatisfaction": re.compile(r"not working|unhelpful|frustrating|wrong"),
    # task context
    "deadline": re.compile(r"by \w+|due|deadline|timeline|schedule"),
    "specific": re.compile(r"exactly|precisely|specific|detailed|step.?by.?step"),
    "exploratory": re.compile(r"explore|consider|possibility|maybe|perhaps"),
    "decisive": re.compile(r"decide|choose|pick|select|final"),
})

_PARTNER = (C.STRATEGIC, C.EMOTIONAL, C.RELATIONSHIP)
_TASK = (C.ANALYSIS, C.RESEARCH, C.DOCUMENT, C.TECHNICAL)

DEFAULT_BOOSTS: Tuple[Boost, ...] = (
    Boost("urgency", _PARTNER, 0.5),
    Boost("confusion", _PARTNER, 0.5),
    Boost("satisfaction", (C.RELATIONSHIP,), 1.0),
    Boost("dissatisfaction", (C.RELATIONSHIP,), 1.0),
    Boost("deadline", _TASK, 0.5),
    Boost("specific", _TASK, 0.5),
    Boost("decisive", _TASK, 0.3),
    Boost("exploratory", (C.STRATEGIC, C.BRAINSTORM), 0.3),
)

# Ties go to the first category in this order reaching the maximum score
DEFAULT_PRIORITY: Tuple[QueryCategory, ...] = (
    C.STRATEGIC,
    C.ACCOUNTABILITY,
    C.EMOTIONAL,
    C.RELATIONSHIP,
    C.BRAINSTORM,
    C.ANALYSIS,
    C.RESEARCH,
    C.DOCUMENT,
    C.TECHNICAL,
    C.REPORTING,
)

CONVERSATIONAL_CATEGORIES = frozenset({
    C.STRATEGIC, C.ACCOUNTABILITY, C.EMOTIONAL, C.RELATIONSHIP, C.BRAINSTORM,
})


class QueryClassifier:
    """
    Scores every category against the lower-cased request and picks one.

    Never raises: ``None``, empty or unmatched text classifies as
    ``general`` with confidence 0.
    """

    def __init__(
        self,
        rules: Optional[Mapping[QueryCategory, Sequence[Rule]]] = None,
        clues: Optional[Mapping[str, Pattern]] = None,
        boosts: Optional[Sequence[Boost]] = None,
        priority: Optional[Sequence[QueryCategory]] = None,
    ) -> None:
        self.rules = rules if rules is not None else DEFAULT_RULES
        self.clues = clues if clues is not None else DEFAULT_CLUES
        self.boosts = tuple(boosts) if boosts is not None else DEFAULT_BOOSTS
        order = list(priority) if priority is not None else list(DEFAULT_PRIORITY)
        # categories with rules but missing from the order are appended
        for category in self.rules:
            if category not in order:
                order.append(category)
        self.priority = tuple(order)

    # public API

    def classify(self, text: Optional[str]) -> QueryCategory:
        category, _ = self._winner(self.score(text))
        return category

    def describe(self, text: Optional[str]) -> QueryDescription:
        normalized = self._normalize(text)
        scores = self.score(normalized)
        category, _ = self._winner(scores)
        fired = self._fired_clues(normalized)

        description = QueryDescription(
            category=category,
            confidence=self.confidence(normalized, category),
            context_flags={
                "has_urgency": "urgency" in fired,
                "is_exploratory": "exploratory" in fired,
                "needs_specific": "specific" in fired,
                "has_deadline": "deadline" in fired,
                "is_emotional": bool(
                    fired & {"confusion", "satisfaction", "dissatisfaction"}
                ),
            },
            suggested_approach=self.suggest_approach(category),
            scores={c.value: s for c, s in scores.items()},
        )
        logger.debug(
            "Classified as {} (conf={:.2f}) scores={}",
            category.value,
            description.confidence,
            {k: v for k, v in description.scores.items() if v},
        )
        return description

    def score(self, text: Optional[str]) -> Dict[QueryCategory, float]:
        """Base rule weights plus context-clue boosts, per category."""
        normalized = self._normalize(text)
        scores: Dict[QueryCategory, float] = {c: 0.0 for c in self.priority}
        if not normalized:
            return scores

        for category, rules in self.rules.items():
            scores[category] = sum(r.weight for r in rules if r.matches(normalized))

        fired = self._fired_clues(normalized)
        for boost in self.boosts:
            if boost.clue in fired:
                for category in boost.categories:
                    scores[category] = scores.get(category, 0.0) + boost.increment
        return scores

    def confidence(self, text: Optional[str], category: QueryCategory) -> float:
        normalized = self._normalize(text)
        rules = self.rules.get(category, ())
        matched = sum(1 for r in rules if r.matches(normalized))
        return min(matched / 2, 1.0)

    @staticmethod
    def suggest_approach(category: QueryCategory) -> Approach:
        if category in CONVERSATIONAL_CATEGORIES:
            return Approach.CONVERSATIONAL
        return Approach.TASK_FOCUSED

    # helpers

    @staticmethod
    def _normalize(text: Optional[str]) -> str:
        if not text:
            return ""
        return str(text).lower()

    def _fired_clues(self, normalized: str) -> frozenset:
        if not normalized:
            return frozenset()
        return frozenset(name for name, pattern in self.clues.items() if pattern.search(normalized))

    def _winner(self, scores: Dict[QueryCategory, float]) -> Tuple[QueryCategory, float]:
        best = max(scores.values(), default=0.0)
        if best <= 0:
            return C.GENERAL, 0.0
        for category in self.priority:
            if scores.get(category, 0.0) == best:
                return category, best
        return C.GENERAL, 0.0
