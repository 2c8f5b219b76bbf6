import pytest

from app.models.chat import ChatMessage
from app.models.event import EventStatus
from app.services.chat.orchestrator import ChatOrchestrator, ChatRequest
from app.services.chat.status_messages import CRAWLING_MESSAGE, FAILED_MESSAGE, PENDING_MESSAGE
from app.services.errors import ChatGenerationError, ChatSessionNotFoundError, EventNotFoundError
from app.services.llm.types import (
    LLMOrchestrationError,
    LLMResponse,
    LLMStage,
    ToolCallRequest,
)
from app.services.retrieval.engine import RetrievalEngine


class FakeLLM:
    def __init__(self, responses=None, error=None):
        self.responses = list(responses or [])
        self.error = error
        self.requests = []

    def run_stage(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.responses.pop(0)


def _response(text="", tool_calls=None, model="gpt-4o"):
    return LLMResponse(text=text, provider="aiml", model=model, tool_calls=tool_calls or [])


def _setup(settings, store, embedder, llm, model_id="gpt-4o"):
    event = store.create_event("Chat Jam", "https://chat.test/", model_id=model_id)
    session = store.create_session(event.id)
    orchestrator = ChatOrchestrator(settings, store, RetrievalEngine(settings, store, embedder), llm=llm)
    return event, session, orchestrator


def _messages(store, session_id):
    return (
        store.session.query(ChatMessage)
        .filter(ChatMessage.session_id == session_id)
        .order_by(ChatMessage.id)
        .all()
    )


@pytest.mark.parametrize(
    "status,expected",
    [
        (EventStatus.pending, PENDING_MESSAGE),
        (EventStatus.crawling, CRAWLING_MESSAGE),
        (EventStatus.failed, FAILED_MESSAGE),
    ],
)
def test_no_content_replies_with_status_message_without_llm(settings, store, fake_embedder, status, expected):
    llm = FakeLLM()
    event, session, orchestrator = _setup(settings, store, fake_embedder, llm)
    event.status = status
    store.session.commit()

    reply = orchestrator.respond(ChatRequest(session_id=session.id, event_id=event.id, message="What are the prizes?"))

    assert reply.content == expected
    assert reply.context_chunks == 0
    assert reply.retrieval_strategy == "empty"
    assert llm.requests == []
    stored = _messages(store, session.id)
    assert [m.role for m in stored] == ["user", "assistant"]
    assert stored[1].content == expected


def test_answer_is_grounded_in_retrieved_context(settings, store, fake_embedder):
    llm = FakeLLM([_response("The grand prize is $10,000.")])
    event, session, orchestrator = _setup(settings, store, fake_embedder, llm)
    store.add_chunk(event.id, None, "Grand prize: $10,000 for the winning team.", 0, {})

    reply = orchestrator.respond(ChatRequest(session_id=session.id, event_id=event.id, message="prizes?"))

    assert reply.content == "The grand prize is $10,000."
    assert reply.model == "gpt-4o"
    request = llm.requests[0]
    assert request.stage == LLMStage.chat_answer
    assert request.model == "gpt-4o"
    assert "Grand prize: $10,000 for the winning team." in request.messages[0]["content"]
    assert request.messages[1] == {"role": "user", "content": "prizes?"}
    assert request.tools is not None

    assistant = _messages(store, session.id)[-1]
    assert assistant.role == "assistant"
    assert assistant.message_metadata == {
        "context_chunks": 1,
        "model": "gpt-4o",
        "retrieval_strategy": "recent_chunks",
    }
    assert reply.message_id == assistant.id


def test_requested_short_model_is_resolved(settings, store, fake_embedder):
    llm = FakeLLM([_response("ok", model="anthropic/claude-3.7-sonnet")])
    event, session, orchestrator = _setup(settings, store, fake_embedder, llm)
    store.add_chunk(event.id, None, "Some event content.", 0, {})

    reply = orchestrator.respond(
        ChatRequest(session_id=session.id, event_id=event.id, message="hi", model_id="claude-sonnet")
    )

    assert llm.requests[0].model == "anthropic/claude-3.7-sonnet"
    assert reply.model == "anthropic/claude-3.7-sonnet"


def test_tool_calls_run_locally_then_synthesize(settings, store, fake_embedder):
    tool_calls = [
        ToolCallRequest(id="call_1", name="get_event_info", arguments='{"info_type": "prizes"}'),
        ToolCallRequest(id="call_2", name="mystery_tool", arguments="{}"),
    ]
    llm = FakeLLM([_response("", tool_calls=tool_calls), _response("First place wins $5,000.")])
    event, session, orchestrator = _setup(settings, store, fake_embedder, llm)
    store.add_chunk(event.id, None, "Doors open at 9am.\nFirst place prize: $5,000", 0, {})

    reply = orchestrator.respond(ChatRequest(session_id=session.id, event_id=event.id, message="What can I win?"))

    assert reply.content == "First place wins $5,000."
    assert [r.stage for r in llm.requests] == [LLMStage.chat_answer, LLMStage.tool_synthesis]
    synthesis = llm.requests[1]
    assert synthesis.tools is None
    assert synthesis.model == "gpt-4o"
    tool_text = synthesis.messages[1]["content"]
    assert "Prizes and Awards:" in tool_text
    assert "First place prize: $5,000" in tool_text
    assert "Doors open" not in tool_text
    assert "Unknown tool: mystery_tool" in tool_text


def test_llm_failure_raises_and_keeps_user_message(settings, store, fake_embedder):
    llm = FakeLLM(error=LLMOrchestrationError("All model routes failed for stage=chat_answer"))
    event, session, orchestrator = _setup(settings, store, fake_embedder, llm)
    store.add_chunk(event.id, None, "Some event content.", 0, {})

    with pytest.raises(ChatGenerationError) as exc_info:
        orchestrator.respond(ChatRequest(session_id=session.id, event_id=event.id, message="hello"))

    assert exc_info.value.model == "gpt-4o"
    assert [m.role for m in _messages(store, session.id)] == ["user"]


def test_empty_model_answer_is_a_generation_error(settings, store, fake_embedder):
    llm = FakeLLM([_response("")])
    event, session, orchestrator = _setup(settings, store, fake_embedder, llm)
    store.add_chunk(event.id, None, "Some event content.", 0, {})

    with pytest.raises(ChatGenerationError):
        orchestrator.respond(ChatRequest(session_id=session.id, event_id=event.id, message="hello"))


def test_user_message_recording_can_be_disabled(settings, store, fake_embedder):
    llm = FakeLLM()
    event, session, orchestrator = _setup(settings, store, fake_embedder, llm)

    orchestrator.respond(
        ChatRequest(session_id=session.id, event_id=event.id, message="hi", record_user_message=False)
    )

    assert [m.role for m in _messages(store, session.id)] == ["assistant"]


def test_unknown_event_or_foreign_session_is_rejected(settings, store, fake_embedder):
    llm = FakeLLM()
    event, session, orchestrator = _setup(settings, store, fake_embedder, llm)
    other = store.create_event("Other Jam", "https://other.test/", model_id="gpt-4o")

    with pytest.raises(EventNotFoundError):
        orchestrator.respond(ChatRequest(session_id=session.id, event_id=9999, message="hi"))
    with pytest.raises(ChatSessionNotFoundError):
        orchestrator.respond(ChatRequest(session_id=session.id, event_id=other.id, message="hi"))
