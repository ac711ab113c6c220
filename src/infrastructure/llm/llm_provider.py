"""
Chat LLM provider for handler text generation.

Every handler persona shares one chat model (``HANDLER_MODEL``); the
persona lives in the system prompt, not in the model choice.

``LangChainTextGenerator`` adapts a LangChain chat model to the router's
``TextGenerator`` protocol (``async generate(messages) -> str``).
"""

from typing import Any, Dict, List, Optional

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_core.output_parsers import StrOutputParser
from langchain_openai import ChatOpenAI
from loguru import logger

from infrastructure.config import (
    HANDLER_MODEL,
    HANDLER_PROVIDER,
    LLM_MAX_TOKENS,
    LLM_TEMPERATURE,
    OPENROUTER_BASE_URL,
    get_api_key,
)


def _build_llm(
    model: str,
    provider: str,
    temperature: float = 0,
    streaming: bool = False,
    max_tokens: Optional[int] = None,
    **kwargs: Any,
) -> ChatOpenAI:
    """Internal factory - builds a ChatOpenAI for OpenRouter or OpenAI."""
    llm_kwargs: dict[str, Any] = dict(
        model=model,
        temperature=temperature,
        streaming=streaming,
        max_tokens=max_tokens,
        **kwargs,
    )

    if provider == "openrouter":
        llm_kwargs["openai_api_base"] = OPENROUTER_BASE_URL
        llm_kwargs["openai_api_key"] = get_api_key("openrouter")
    elif provider == "openai":
        llm_kwargs["openai_api_key"] = get_api_key("openai")

    return ChatOpenAI(**llm_kwargs)


def get_handler_llm(temperature: Optional[float] = None, **kwargs: Any) -> ChatOpenAI:
    """LLM that writes handler responses (all personas)."""
    return _build_llm(
        HANDLER_MODEL,
        HANDLER_PROVIDER,
        temperature=LLM_TEMPERATURE if temperature is None else temperature,
        max_tokens=LLM_MAX_TOKENS,
        **kwargs,
    )


_MESSAGE_TYPES = {
    "system": SystemMessage,
    "user": HumanMessage,
    "assistant": AIMessage,
}


def to_langchain_messages(messages: List[Dict[str, str]]) -> List[BaseMessage]:
    """Role/content dicts to LangChain messages; unknown roles are sent as user turns."""
    return [
        _MESSAGE_TYPES.get(m.get("role"), HumanMessage)(content=m.get("content", ""))
        for m in messages
    ]


class LangChainTextGenerator:
    """``TextGenerator`` backed by ``llm | StrOutputParser()``."""

    def __init__(self, llm: Any) -> None:
        self.llm = llm
        self.chain = llm | StrOutputParser()

    @property
    def model_name(self) -> str:
        return getattr(self.llm, "model_name", None) or getattr(self.llm, "model", None) or "unknown"

    async def generate(self, messages: List[Dict[str, str]]) -> str:
        content = await self.chain.ainvoke(to_langchain_messages(messages))
        logger.debug("{} produced {} chars", self.model_name, len(content))
        return content.strip()
