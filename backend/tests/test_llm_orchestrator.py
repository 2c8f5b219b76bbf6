from app.services.llm.orchestrator import LLMOrchestrator
from app.services.llm.types import (
    Completion,
    LLMOrchestrationError,
    LLMProviderError,
    LLMRequest,
    LLMStage,
    ToolCallRequest,
)


class _FakeProvider:
    def __init__(self, responses):
        self._responses = list(responses)
        self.calls = []

    def complete(self, *, model, messages, timeout_seconds, temperature=0.5, max_tokens=900, tools=None):
        self.calls.append({"model": model, "tools": tools, "timeout_seconds": timeout_seconds})
        if not self._responses:
            return Completion(text="")
        nxt = self._responses.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        if isinstance(nxt, Completion):
            return nxt
        return Completion(text=str(nxt))


def _request(stage=LLMStage.chat_answer, model="x-ai/grok-4-fast-reasoning", **kwargs):
    return LLMRequest(
        stage=stage,
        messages=[{"role": "user", "content": "When is the deadline?"}],
        model=model,
        timeout_seconds=20,
        **kwargs,
    )


def test_routes_put_requested_model_first_then_fallbacks(settings):
    orchestrator = LLMOrchestrator(settings)
    assert orchestrator._routes_for_request(_request(model="gpt-4o")) == [
        ("aiml", "gpt-4o"),
        ("openai", "gpt-4o-mini"),
    ]
    settings.chat_fallback_models = ""
    assert orchestrator._routes_for_request(_request(model=None)) == [
        ("aiml", "x-ai/grok-4-fast-reasoning"),
    ]


def test_orchestrator_falls_back_to_next_provider(settings, monkeypatch):
    orchestrator = LLMOrchestrator(settings)
    routes = [("aiml", "x-ai/grok-4-fast-reasoning"), ("openai", "gpt-4o-mini")]
    monkeypatch.setattr(orchestrator, "_routes_for_request", lambda _request: routes)
    providers = {
        "aiml": _FakeProvider([LLMProviderError("model not found", retryable=False)]),
        "openai": _FakeProvider(["Submissions close on May 3."]),
    }
    monkeypatch.setattr(orchestrator, "_provider", lambda name: providers[name])

    response = orchestrator.run_stage(_request())

    assert response.text == "Submissions close on May 3."
    assert response.provider == "openai"
    assert response.model == "gpt-4o-mini"
    assert len(response.attempts) == 2
    assert response.attempts[0].provider == "aiml"
    assert response.attempts[0].status == "terminal_error"
    assert response.attempts[1].provider == "openai"


def test_orchestrator_retries_retryable_provider_errors(settings, monkeypatch):
    settings.stage_retry_max_attempts = 2
    orchestrator = LLMOrchestrator(settings)
    monkeypatch.setattr(orchestrator, "_routes_for_request", lambda _request: [("aiml", "gpt-4o")])
    provider = _FakeProvider(
        [
            LLMProviderError("timeout", retryable=True),
            "May 3.",
        ]
    )
    monkeypatch.setattr(orchestrator, "_provider", lambda _name: provider)

    response = orchestrator.run_stage(_request(model="gpt-4o"))

    assert response.provider == "aiml"
    assert len(response.attempts) == 2
    assert response.attempts[0].status == "retryable_error"
    assert response.attempts[1].status == "success"
    assert response.attempts[1].retry_count == 1


def test_orchestrator_passes_tools_and_returns_tool_calls(settings, monkeypatch):
    orchestrator = LLMOrchestrator(settings)
    monkeypatch.setattr(orchestrator, "_routes_for_request", lambda _request: [("aiml", "gpt-4o")])
    call = ToolCallRequest(id="call_1", name="search_content", arguments='{"query": "deadline"}')
    provider = _FakeProvider([Completion(text="", tool_calls=[call])])
    monkeypatch.setattr(orchestrator, "_provider", lambda _name: provider)
    tools = [{"type": "function", "function": {"name": "search_content"}}]

    response = orchestrator.run_stage(_request(model="gpt-4o", tools=tools))

    assert response.tool_calls == [call]
    assert provider.calls[0]["tools"] == tools


def test_orchestrator_raises_when_all_routes_fail(settings, monkeypatch):
    orchestrator = LLMOrchestrator(settings)
    monkeypatch.setattr(orchestrator, "_routes_for_request", lambda _request: [("aiml", "gpt-4o")])
    monkeypatch.setattr(
        orchestrator,
        "_provider",
        lambda _name: _FakeProvider([LLMProviderError("invalid request", retryable=False)]),
    )

    try:
        orchestrator.run_stage(_request(stage=LLMStage.tool_synthesis, model="gpt-4o"))
    except LLMOrchestrationError as exc:
        assert exc.attempts
        assert exc.attempts[0].status == "terminal_error"
        assert exc.attempts[0].stage == "tool_synthesis"
    else:  # pragma: no cover
        raise AssertionError("Expected LLMOrchestrationError")


def test_unconfigured_provider_is_a_terminal_attempt(settings):
    settings.chat_fallback_models = ""
    settings.aiml_api_key = ""
    orchestrator = LLMOrchestrator(settings)

    try:
        orchestrator.run_stage(_request(model="gpt-4o"))
    except LLMOrchestrationError as exc:
        assert len(exc.attempts) == 1
        assert exc.attempts[0].error_class == "LLMProviderError"
    else:  # pragma: no cover
        raise AssertionError("Expected LLMOrchestrationError")
