from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

import httpx

from app.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class Embedding:
    vector: List[float]
    model: str
    provider: str

    @property
    def dimensions(self) -> int:
        return len(self.vector)


def _vector_from_payload(payload: Any) -> Optional[List[float]]:
    """Read ``data[0].embedding`` from an OpenAI-style response, or None if malformed."""
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if not isinstance(data, list) or not data or not isinstance(data[0], dict):
        return None
    raw = data[0].get("embedding")
    if not isinstance(raw, list) or not raw:
        return None
    try:
        return [float(value) for value in raw]
    except (TypeError, ValueError):
        return None


class EmbeddingProvider:
    """
    Turns text into a vector using the configured provider routes in order.

    ``embed`` never raises. HTTP errors, malformed payloads, timeouts and
    missing credentials are logged and the next route is tried; when every
    route fails the result is None and callers store the chunk without a
    vector.
    """

    def __init__(self, settings: Settings, client: Optional[httpx.Client] = None) -> None:
        self._settings = settings
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=settings.embedding_timeout_seconds)

    def routes(self) -> List[Tuple[str, str]]:
        usable: List[Tuple[str, str]] = []
        for provider, model in self._settings.embedding_model_routes():
            api_key, base_url = self._settings.provider_credentials(provider)
            if not api_key or not base_url:
                logger.debug("Skipping embedding route %s:%s (not configured)", provider, model)
                continue
            usable.append((provider, model))
        return usable

    def embed(self, text: str) -> Optional[Embedding]:
        cleaned = str(text or "").strip()
        if not cleaned:
            return None
        cleaned = cleaned[: max(1, int(self._settings.embedding_max_input_chars))]

        routes = self.routes()
        if not routes:
            logger.warning("No embedding provider configured; storing chunk without a vector")
            return None

        for provider, model in routes:
            vector = self._request(provider, model, cleaned)
            if vector:
                return Embedding(vector=vector, model=model, provider=provider)

        logger.warning("All embedding routes failed (%d tried)", len(routes))
        return None

    def _request(self, provider: str, model: str, text: str) -> Optional[List[float]]:
        api_key, base_url = self._settings.provider_credentials(provider)
        try:
            response = self._client.post(
                f"{base_url.rstrip('/')}/embeddings",
                json={"model": model, "input": text},
                headers={"Authorization": f"Bearer {api_key}"},
                timeout=self._settings.embedding_timeout_seconds,
            )
        except httpx.HTTPError as exc:
            logger.warning("Embedding request to %s failed: %s", provider, exc)
            return None

        if not response.is_success:
            logger.warning(
                "Embedding provider %s returned HTTP %s: %s",
                provider,
                response.status_code,
                response.text[:200],
            )
            return None

        try:
            payload = response.json()
        except ValueError:
            logger.warning("Embedding provider %s returned a non-JSON body", provider)
            return None

        vector = _vector_from_payload(payload)
        if vector is None:
            logger.warning("Embedding provider %s returned a malformed payload", provider)
        return vector

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
