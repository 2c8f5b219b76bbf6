"""Chat model catalog and short-id resolution."""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_CHAT_MODEL = "x-ai/grok-4-fast-reasoning"

# Separator that marks an id as already provider-qualified
NAMESPACE_SEPARATOR = "/"


@dataclass(frozen=True)
class ModelInfo:
    id: str
    label: str
    context_tokens: int
    tier: int
    best_for: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


MODEL_CATALOG: List[ModelInfo] = [
    ModelInfo(
        id="x-ai/grok-4-fast-reasoning",
        label="Grok 4 Fast Reasoning",
        context_tokens=2_000_000,
        tier=3,
        best_for="Default event assistant, fast reasoning over long context",
    ),
    ModelInfo(
        id="deepseek/deepseek-r1",
        label="DeepSeek R1",
        context_tokens=128_000,
        tier=3,
        best_for="Complex reasoning, rules and judging analysis",
    ),
    ModelInfo(
        id="gpt-4o",
        label="GPT-4o",
        context_tokens=128_000,
        tier=3,
        best_for="Fast, balanced chat",
    ),
    ModelInfo(
        id="gpt-4o-mini",
        label="GPT-4o mini",
        context_tokens=128_000,
        tier=2,
        best_for="Cheap quick answers",
    ),
    ModelInfo(
        id="anthropic/claude-3.7-sonnet",
        label="Claude 3.7 Sonnet",
        context_tokens=200_000,
        tier=3,
        best_for="Long-form reasoning, detailed content analysis",
    ),
    ModelInfo(
        id="meta-llama/Meta-Llama-3.1-405B-Instruct-Turbo",
        label="Llama 3.1 405B Instruct Turbo",
        context_tokens=4_000,
        tier=2,
        best_for="High quality open-source reasoning",
    ),
]

SHORT_MODEL_IDS: Dict[str, str] = {
    "grok-4-fast-reasoning": "x-ai/grok-4-fast-reasoning",
    "gpt-4o": "gpt-4o",
    "gpt-4o-mini": "gpt-4o-mini",
    "claude-sonnet": "anthropic/claude-3.7-sonnet",
    "claude-3.7-sonnet": "anthropic/claude-3.7-sonnet",
    "deepseek-r1": "deepseek/deepseek-r1",
    "llama-3.1-405b": "meta-llama/Meta-Llama-3.1-405B-Instruct-Turbo",
}


def resolve_chat_model(model_id: Optional[str], default: str = DEFAULT_CHAT_MODEL) -> str:
    """
    Map a caller-supplied model id to a full provider id.

    Namespaced ids pass through untouched. Known short ids are looked up.
    Anything else resolves to ``default`` with a warning. A missing id also
    resolves to ``default``, without the warning.
    """
    requested = str(model_id or "").strip()
    if not requested:
        return default
    if NAMESPACE_SEPARATOR in requested:
        return requested
    resolved = SHORT_MODEL_IDS.get(requested.lower())
    if resolved:
        return resolved
    logger.warning("Unknown model id %r, using default %s", requested, default)
    return default


def catalog_payload(default: str = DEFAULT_CHAT_MODEL) -> Dict[str, Any]:
    return {
        "default": default,
        "models": [model.to_dict() for model in MODEL_CATALOG],
    }
