from __future__ import annotations

from typing import Any, Dict, List, Optional

from openai import APIConnectionError, APIStatusError, OpenAI, RateLimitError

from app.services.llm.types import (
    Completion,
    LLMProviderError,
    ToolCallRequest,
    classify_retryable_error,
)


class OpenAICompatibleProvider:
    """Chat completions against OpenAI or any OpenAI-compatible gateway."""

    def __init__(self, name: str, *, api_key: str, base_url: Optional[str] = None) -> None:
        if not api_key:
            raise LLMProviderError(f"{name} API key not configured", retryable=False)
        self.name = name
        self._client = OpenAI(api_key=api_key, base_url=base_url or None)

    def complete(
        self,
        *,
        model: str,
        messages: List[Dict[str, Any]],
        timeout_seconds: int,
        temperature: float = 0.5,
        max_tokens: int = 900,
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> Completion:
        kwargs: Dict[str, Any] = {}
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"
        try:
            response = self._client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=timeout_seconds,
                **kwargs,
            )
        except (APIConnectionError, RateLimitError) as exc:
            raise LLMProviderError(str(exc), retryable=True) from exc
        except APIStatusError as exc:
            raise LLMProviderError(str(exc), retryable=exc.status_code >= 500) from exc
        except Exception as exc:
            raise LLMProviderError(str(exc), retryable=classify_retryable_error(exc)) from exc

        if not response.choices:
            raise LLMProviderError("Completion returned no choices", retryable=True)
        message = response.choices[0].message
        tool_calls = [
            ToolCallRequest(
                id=str(call.id),
                name=str(call.function.name),
                arguments=str(call.function.arguments or "{}"),
            )
            for call in (message.tool_calls or [])
            if getattr(call, "function", None) is not None
        ]
        return Completion(text=str(message.content or "").strip(), tool_calls=tool_calls)
