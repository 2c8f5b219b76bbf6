"""Chat API routes - grounded answers and the model catalog."""
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

from app.api.deps import get_app_settings, get_chat_orchestrator
from app.config import Settings
from app.services.chat.orchestrator import ChatOrchestrator, ChatRequest
from app.services.errors import ChatGenerationError, ChatSessionNotFoundError, EventNotFoundError
from app.services.llm.catalog import catalog_payload

router = APIRouter()


class ChatMessageRequest(BaseModel):
    session_id: int
    event_id: int
    message: str = Field(min_length=1, max_length=4000)
    model_id: Optional[str] = None


class ChatMessageResponse(BaseModel):
    content: str
    message_id: int
    created_at: Optional[datetime] = None


@router.post("/chat", response_model=ChatMessageResponse)
def chat(payload: ChatMessageRequest, orchestrator: ChatOrchestrator = Depends(get_chat_orchestrator)):
    try:
        reply = orchestrator.respond(
            ChatRequest(
                session_id=payload.session_id,
                event_id=payload.event_id,
                message=payload.message,
                model_id=payload.model_id,
            )
        )
    except EventNotFoundError:
        raise HTTPException(status_code=404, detail="Event not found")
    except ChatSessionNotFoundError:
        raise HTTPException(status_code=404, detail="Chat session not found")
    except ChatGenerationError:
        raise HTTPException(status_code=502, detail="Failed to answer this message. Please try again.")
    return ChatMessageResponse(content=reply.content, message_id=reply.message_id, created_at=reply.created_at)


@router.get("/models")
def list_models(settings: Settings = Depends(get_app_settings)):
    return catalog_payload(settings.chat_default_model)
