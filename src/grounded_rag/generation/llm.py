"""Chat model and grounded answer generation.

The chat model is reached through ``ChatOpenAI`` in one of two modes:

* ``LLM_BASE_URL`` set (default): any OpenAI-compatible server, such as
  Ollama's ``/v1`` endpoint or vLLM.  Such servers ignore the key, so a
  placeholder is sent when ``OPENAI_API_KEY`` is empty.
* ``LLM_BASE_URL=""``: the OpenAI cloud API with ``OPENAI_API_KEY``.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from grounded_rag.config import settings

logger = logging.getLogger(__name__)

LOCAL_API_KEY = "EMPTY"
BASE_SYSTEM_PROMPT = "You are a helpful AI assistant."
EMPTY_RESPONSE = "I apologize, but I couldn't generate a response."


def endpoint_kwargs() -> dict[str, str]:
    """Connection arguments for the configured provider."""
    if not settings.llm_base_url:
        return {"api_key": settings.openai_api_key}
    return {
        "base_url": settings.llm_base_url,
        "api_key": settings.openai_api_key or LOCAL_API_KEY,
    }


@lru_cache(maxsize=1)
def get_llm() -> ChatOpenAI:
    """Return the process-wide chat model built from settings."""
    endpoint = endpoint_kwargs()
    logger.info(
        "Chat model %s via %s",
        settings.llm_model_name,
        endpoint.get("base_url", "OpenAI cloud"),
    )
    return ChatOpenAI(
        model=settings.llm_model_name,
        temperature=settings.llm_temperature,
        timeout=settings.request_timeout,
        **endpoint,
    )


def build_system_prompt(context: str = "") -> str:
    """Return the system message, embedding *context* when present."""
    if not context.strip():
        return BASE_SYSTEM_PROMPT
    return (
        f"{BASE_SYSTEM_PROMPT} Use the following context to answer questions accurately:\n\n"
        f"{context}\n\n"
        "If the context doesn't contain relevant information for the user's question, say so clearly."
    )


def generate_answer(prompt: str, context: str = "", llm: ChatOpenAI | None = None) -> str:
    """Answer *prompt* grounded in *context*."""
    llm = llm or get_llm()
    logger.info("Generating chat response")
    response = llm.invoke([SystemMessage(content=build_system_prompt(context)), HumanMessage(content=prompt)])
    content = response.content if isinstance(response.content, str) else str(response.content)
    return content or EMPTY_RESPONSE
