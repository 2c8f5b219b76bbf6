from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.config import Settings
from app.models.event import Event
from app.services.chat.status_messages import status_message
from app.services.chat.tools import TOOL_DEFINITIONS, parse_tool_call, run_tool
from app.services.errors import ChatGenerationError
from app.services.event_store import EventStore
from app.services.llm.catalog import resolve_chat_model
from app.services.llm.orchestrator import LLMOrchestrator
from app.services.llm.types import LLMOrchestrationError, LLMRequest, LLMResponse, LLMStage
from app.services.retrieval.engine import RetrievalEngine, RetrievalResult

logger = logging.getLogger(__name__)

SYSTEM_PROMPT_TEMPLATE = """You are an assistant specialized in answering questions about events, hackathons, and competitions.

You have access to the following information about this specific event:

{context}

Based on this information, answer the user's question accurately and helpfully. If you can't find specific information in the provided context, say so clearly. Cite specific details from the event information when possible.

Be conversational but informative. Focus on practical, actionable information for someone interested in participating in or learning about this event."""

SYNTHESIS_SYSTEM_PROMPT = (
    "You are an assistant. Based on the tool results provided, give a comprehensive "
    "and helpful answer to the user."
)


@dataclass
class ChatRequest:
    session_id: int
    event_id: int
    message: str
    model_id: Optional[str] = None
    record_user_message: bool = True


@dataclass
class ChatReply:
    content: str
    message_id: int
    created_at: datetime
    context_chunks: int
    model: str
    retrieval_strategy: str

    def to_payload(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "message_id": self.message_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class ChatOrchestrator:
    """
    Answers one chat message for an event.

    With no retrievable content the reply is a canned message keyed off the
    event status and no completion call is made. Otherwise the retrieved
    chunks ground a completion call, optionally with a tool round.
    """

    def __init__(
        self,
        settings: Settings,
        store: EventStore,
        retrieval: RetrievalEngine,
        llm: Optional[LLMOrchestrator] = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.retrieval = retrieval
        self.llm = llm or LLMOrchestrator(settings)

    def resolve_model(self, requested: Optional[str], event: Event) -> str:
        return resolve_chat_model(
            requested or event.model_id,
            default=self.settings.chat_default_model,
        )

    def respond(self, request: ChatRequest) -> ChatReply:
        event = self.store.require_event(request.event_id)
        session = self.store.require_session(request.session_id, event.id)
        model = self.resolve_model(request.model_id, event)

        if request.record_user_message:
            self.store.add_message(session.id, "user", request.message)

        result = self.retrieval.retrieve(event.id, request.message, self.settings.chat_context_limit)
        if result.empty:
            logger.info("No content for event %s (status=%s), replying with status message", event.id, event.status)
            content = status_message(event.status)
        else:
            content = self._generate(result.chunks, request.message, model)

        message = self.store.add_message(
            session.id,
            "assistant",
            content,
            self._message_metadata(result, model),
        )
        return ChatReply(
            content=content,
            message_id=message.id,
            created_at=message.created_at,
            context_chunks=len(result.chunks),
            model=model,
            retrieval_strategy=result.strategy,
        )

    @staticmethod
    def _message_metadata(result: RetrievalResult, model: str) -> Dict[str, Any]:
        return {
            "context_chunks": len(result.chunks),
            "model": model,
            "retrieval_strategy": result.strategy,
        }

    def _complete(self, request: LLMRequest) -> LLMResponse:
        try:
            return self.llm.run_stage(request)
        except LLMOrchestrationError as exc:
            logger.error("Completion failed for stage %s: %s", request.stage.value, exc)
            raise ChatGenerationError("Failed to answer this message", model=request.model) from exc

    def _generate(self, context: List[str], question: str, model: str) -> str:
        response = self._complete(
            LLMRequest(
                stage=LLMStage.chat_answer,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT_TEMPLATE.format(context="\n\n".join(context))},
                    {"role": "user", "content": question},
                ],
                model=model,
                tools=TOOL_DEFINITIONS if self.settings.chat_tools_enabled else None,
                temperature=self.settings.chat_temperature,
                max_tokens=self.settings.chat_max_tokens,
                timeout_seconds=self.settings.chat_timeout_seconds,
            )
        )
        if response.tool_calls:
            return self._answer_with_tools(response, context, model)
        if not response.text:
            raise ChatGenerationError("Model returned an empty answer", model=response.model)
        return response.text

    def _answer_with_tools(self, response: LLMResponse, context: List[str], model: str) -> str:
        results = [run_tool(parse_tool_call(call), context) for call in response.tool_calls]
        logger.info("Ran %d tool calls: %s", len(results), [call.name for call in response.tool_calls])
        results_text = "\n\n".join(result.output for result in results)

        synthesis = self._complete(
            LLMRequest(
                stage=LLMStage.tool_synthesis,
                messages=[
                    {"role": "system", "content": SYNTHESIS_SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": f"Based on these tool results, please provide a complete answer:\n\n{results_text}",
                    },
                ],
                model=model,
                temperature=self.settings.chat_temperature,
                max_tokens=self.settings.chat_max_tokens,
                timeout_seconds=self.settings.chat_timeout_seconds,
            )
        )
        if not synthesis.text:
            raise ChatGenerationError("Model returned an empty answer", model=synthesis.model)
        return synthesis.text
