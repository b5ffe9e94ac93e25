"""
Model-serving client for the companion — any provider via LiteLLM.

One call per turn: the grounding messages plus the tool schema go out with
``tool_choice="auto"``; the reply comes back as free text and/or tool-call
requests. There is no retry and no fallback model: any provider failure is
raised as UpstreamModelError and ends the turn.
"""

from __future__ import annotations

import os
from typing import Any

import litellm
from litellm import acompletion, completion_cost

from companion.gateway.config import CompanionConfig
from companion.utils.logging import get_logger

logger = get_logger("llm_router")

# Suppress LiteLLM's verbose logging
litellm.suppress_debug_info = True


class UpstreamModelError(Exception):
    """Raised when the model-serving endpoint fails or returns no usable reply."""

    pass


class LLMRouter:
    """
    Thin async wrapper around ``litellm.acompletion``.

    Usage:
        router = LLMRouter(config=config)
        reply = await router.chat(messages=[...], tools=[...])
        reply["content"], reply["tool_calls"]
    """

    PROVIDER_PREFIXES = {
        "anthropic": "anthropic/",
        "openai": "openai/",
        "google": "gemini/",
        "deepseek": "deepseek/",
        "groq": "groq/",
        "mistral": "mistral/",
        "xai": "xai/",
        "together": "together_ai/",
        "ollama": "ollama/",
        "vllm": "openai/",
        "openai_compatible": "openai/",
        "openrouter": "openrouter/",
        "bedrock": "bedrock/",
        "azure": "azure/",
    }

    def __init__(self, config: CompanionConfig, api_key: str = ""):
        self.config = config
        self.api_key = api_key or _load_api_key(config.llm.api_key_name)
        self.model = self._build_model_string(config.llm.provider, config.llm.model)
        logger.info("llm_router_initialized", model=self.model)

    async def chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        tool_choice: str | dict | None = "auto",
    ) -> dict[str, Any]:
        """
        Send one chat completion request.

        Returns:
            {
                "content": str,              # may be empty when tools were called
                "tool_calls": list | None,   # [{"id", "function": {"name", "arguments"}}]
                "model": str,
                "input_tokens": int,
                "output_tokens": int,
                "cost_usd": float,
            }
        """
        call_kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_tokens": self.config.llm.max_tokens,
            "temperature": self.config.llm.temperature,
        }
        if self.api_key:
            call_kwargs["api_key"] = self.api_key
        if self.config.llm.api_base:
            call_kwargs["api_base"] = self.config.llm.api_base
        if tools:
            call_kwargs["tools"] = tools
            if tool_choice:
                call_kwargs["tool_choice"] = tool_choice

        try:
            response = await acompletion(**call_kwargs)
        except Exception as e:
            logger.error("llm_call_failed", model=self.model, error=str(e))
            raise UpstreamModelError("AI service error") from e

        if not getattr(response, "choices", None):
            logger.error("llm_empty_response", model=self.model)
            raise UpstreamModelError("AI service error")

        message = response.choices[0].message
        content = message.content or ""
        usage = getattr(response, "usage", None)
        input_tokens = usage.prompt_tokens if usage else 0
        output_tokens = usage.completion_tokens if usage else 0

        tool_calls = None
        if getattr(message, "tool_calls", None):
            tool_calls = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {
                        "name": tc.function.name,
                        "arguments": tc.function.arguments,  # JSON string
                    },
                }
                for tc in message.tool_calls
            ]

        cost_usd = 0.0
        try:
            cost_usd = completion_cost(completion_response=response)
        except Exception:
            # unknown models have no price table; cost is informational only
            cost_usd = 0.0

        logger.info(
            "llm_call_complete",
            model=self.model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=round(cost_usd, 6),
            tool_calls=len(tool_calls or []),
        )

        return {
            "content": content,
            "tool_calls": tool_calls,
            "model": self.model,
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "cost_usd": cost_usd,
        }

    @classmethod
    def _build_model_string(cls, provider: str, model: str) -> str:
        """Build the LiteLLM model identifier string."""
        prefix = cls.PROVIDER_PREFIXES.get(provider, "")
        if "/" in model and not model.startswith(prefix):
            return model
        if prefix and model.startswith(prefix):
            return model
        return f"{prefix}{model}"


def _load_api_key(key_name: str) -> str:
    """Load the model API key from the environment (.env supported)."""
    from dotenv import load_dotenv

    load_dotenv()

    api_key = os.getenv(key_name) or os.getenv("LLM_API_KEY", "")
    if not api_key:
        logger.warning(
            "no_api_key",
            msg=f"No API key in {key_name} or LLM_API_KEY; relying on provider defaults.",
        )
    return api_key
