"""
Prompt templates for handler text generation.

Prompts are fetched from **LangFuse Prompt Management** at runtime.
If a prompt hasn't been created in LangFuse yet, the local fallback
(defined below) is used instead - so the router works out-of-the-box.

To manage prompts via LangFuse Cloud:
  1. Open LangFuse → Prompts → + New Prompt
  2. Create prompts with the names listed in LANGFUSE_PROMPT_NAMES
  3. Use {{variable}} (double-curly Mustache syntax) for template variables
  4. Set a version to "production" to make it active

Two prompt roles:
  1. HANDLER SYSTEM - persona framing, one template per tier
  2. HANDLER USER   - the request plus routing context
"""

from typing import Any, Dict, List, Optional

from agent_router.handlers import get_profile, is_relationship_tier, personality_for
from agent_router.schemas import HandlerId, Interaction, QueryDescription
from infrastructure.observability import fetch_prompt


LANGFUSE_PROMPT_NAMES = {
    "relationship_system": "router-relationship-handler-system",
    "functional_system":   "router-functional-handler-system",
    "handler_user":        "router-handler-user",
}

# Conversation turns forwarded to the generator from ``context["history"]``
MAX_HISTORY_TURNS = 10


# 1. RELATIONSHIP HANDLER - long-lived partner voice (fallback)


_RELATIONSHIP_SYSTEM_FALLBACK = """\
You are the user's **{handler_name}** ({description}).

Voice: {style} style, {tone} tone, {approach} approach.

How you work:
• You are a long-term partner, not a one-off consultant. Refer back to the
  user's goals and hold them accountable to what they committed to.
• Lead with a clear point of view, then invite the user to push back.
• Keep specialist detail short; a specialist teammate handles deep analysis.
• Format key points as bullet lines starting with "• ".
• End with one question that moves the conversation forward.
"""


# 2. FUNCTIONAL HANDLER - stateless specialist (fallback)


_FUNCTIONAL_SYSTEM_FALLBACK = """\
You are the **{handler_name}**: {description}.

How you work:
• Answer the task directly and precisely; no small talk.
• Show the reasoning behind every number you give.
• Format findings as bullet lines starting with "• ".
• Finish with at most three concrete recommendations.
• If information is missing, state the assumption you made.
"""


# 3. USER - request + routing context (fallback)


_HANDLER_USER_FALLBACK = """\
REQUEST CATEGORY: {category} (confidence {confidence})
SIGNALS: {signals}
USER CONTEXT:
{user_context}

USER MESSAGE:
{query}

Compose your reply:"""


# Prompt builders - fetch from LangFuse, fall back to local


def build_handler_system_prompt(handler: HandlerId) -> str:
    profile = get_profile(handler)
    if is_relationship_tier(handler):
        personality = personality_for(handler)
        return fetch_prompt(
            LANGFUSE_PROMPT_NAMES["relationship_system"],
            fallback=_RELATIONSHIP_SYSTEM_FALLBACK,
            handler_name=profile.name,
            description=profile.description,
            style=personality.style.replace("_", " "),
            tone=personality.tone.replace("_", " "),
            approach=personality.approach.replace("_", " "),
        )
    return fetch_prompt(
        LANGFUSE_PROMPT_NAMES["functional_system"],
        fallback=_FUNCTIONAL_SYSTEM_FALLBACK,
        handler_name=profile.name,
        description=profile.description,
    )


def _format_user_context(context: Dict[str, Any]) -> str:
    lines = [
        f"- {key}: {value}"
        for key, value in context.items()
        if key != "history" and value not in (None, "", [], {})
    ]
    return "\n".join(lines) or "(no user context)"


def build_handler_user_prompt(
    interaction: Interaction, description: Optional[QueryDescription] = None
) -> str:
    if description is None:
        category, confidence, signals = "general", "0.00", "none"
    else:
        category = description.category.value
        confidence = f"{description.confidence:.2f}"
        fired = [name for name, on in description.context_flags.items() if on]
        signals = ", ".join(fired) or "none"
    return fetch_prompt(
        LANGFUSE_PROMPT_NAMES["handler_user"],
        fallback=_HANDLER_USER_FALLBACK,
        category=category,
        confidence=confidence,
        signals=signals,
        user_context=_format_user_context(interaction.context),
        query=interaction.query,
    )


def build_handler_messages(
    handler: HandlerId,
    interaction: Interaction,
    description: Optional[QueryDescription] = None,
) -> List[Dict[str, str]]:
    """System framing, then recent history, then the user turn."""
    messages = [{"role": "system", "content": build_handler_system_prompt(handler)}]
    history = interaction.context.get("history") or []
    for turn in history[-MAX_HISTORY_TURNS:]:
        if isinstance(turn, dict) and turn.get("role") in ("user", "assistant"):
            messages.append({"role": turn["role"], "content": str(turn.get("content", ""))})
    messages.append({"role": "user", "content": build_handler_user_prompt(interaction, description)})
    return messages
