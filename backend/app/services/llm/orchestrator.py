from __future__ import annotations

import time
from typing import Dict, List, Optional, Tuple

from app.config import Settings, get_settings
from app.services.llm.providers.openai_provider import OpenAICompatibleProvider
from app.services.llm.types import (
    LLMOrchestrationError,
    LLMProviderError,
    LLMRequest,
    LLMResponse,
    ModelAttemptTrace,
    classify_retryable_error,
    now_iso,
)

# Provider that serves namespaced model ids such as x-ai/grok-4-fast-reasoning
PRIMARY_PROVIDER = "aiml"


class LLMOrchestrator:
    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._providers: Dict[str, OpenAICompatibleProvider] = {}

    def _provider(self, name: str) -> OpenAICompatibleProvider:
        key = str(name or "").strip().lower()
        if key in self._providers:
            return self._providers[key]
        api_key, base_url = self._settings.provider_credentials(key)
        if not base_url:
            raise LLMProviderError(f"Unsupported LLM provider: {name}", retryable=False)
        instance = OpenAICompatibleProvider(key, api_key=api_key, base_url=base_url)
        self._providers[key] = instance
        return instance

    def _routes_for_request(self, request: LLMRequest) -> List[Tuple[str, str]]:
        routes: List[Tuple[str, str]] = []
        if request.model:
            routes.append((PRIMARY_PROVIDER, request.model))
        for route in self._settings.chat_fallback_routes():
            if route not in routes:
                routes.append(route)
        return routes if routes else [(PRIMARY_PROVIDER, self._settings.chat_default_model)]

    def run_stage(self, request: LLMRequest) -> LLMResponse:
        attempts: List[ModelAttemptTrace] = []
        routes = self._routes_for_request(request)
        max_attempts = max(1, int(self._settings.stage_retry_max_attempts))
        backoff = max(0.0, float(self._settings.stage_retry_backoff_seconds))

        for provider_name, model in routes:
            retry_count = 0
            while retry_count < max_attempts:
                started = now_iso()
                t0 = time.perf_counter()
                try:
                    provider = self._provider(provider_name)
                    completion = provider.complete(
                        model=model,
                        messages=request.messages,
                        timeout_seconds=max(1, int(request.timeout_seconds)),
                        temperature=request.temperature,
                        max_tokens=request.max_tokens,
                        tools=request.tools,
                    )
                    ended = now_iso()
                    attempts.append(
                        ModelAttemptTrace(
                            stage=request.stage.value,
                            provider=provider_name,
                            model=model,
                            latency_ms=int((time.perf_counter() - t0) * 1000),
                            status="success",
                            retry_count=retry_count,
                            started_at=started,
                            ended_at=ended,
                        )
                    )
                    return LLMResponse(
                        text=completion.text,
                        provider=provider_name,
                        model=model,
                        tool_calls=completion.tool_calls,
                        attempts=attempts,
                    )
                except Exception as exc:
                    ended = now_iso()
                    retryable = False
                    if isinstance(exc, LLMProviderError):
                        retryable = bool(exc.retryable)
                    if not retryable:
                        retryable = classify_retryable_error(exc)
                    attempts.append(
                        ModelAttemptTrace(
                            stage=request.stage.value,
                            provider=provider_name,
                            model=model,
                            latency_ms=int((time.perf_counter() - t0) * 1000),
                            status="retryable_error" if retryable else "terminal_error",
                            retry_count=retry_count,
                            error_class=exc.__class__.__name__,
                            error_message=str(exc)[:500],
                            started_at=started,
                            ended_at=ended,
                        )
                    )
                    if retryable and retry_count < max_attempts - 1:
                        if backoff > 0:
                            time.sleep(backoff * (retry_count + 1))
                        retry_count += 1
                        continue
                    break

        raise LLMOrchestrationError(
            f"All model routes failed for stage={request.stage.value}",
            attempts=attempts,
        )
