"""Address suggestions from a Nominatim-compatible search endpoint."""
from __future__ import annotations

from typing import List

import structlog
from pydantic import ValidationError

from mapquery.fetch.fetcher import fetch_json
from mapquery.fetch.session import HttpSession
from mapquery.models import Suggestion
from mapquery.observability.metrics import MetricsRegistry
from mapquery.services.errors import GeocodingError

LOGGER = structlog.get_logger(__name__)

DEFAULT_NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"
MIN_QUERY_CHARS = 3


class SuggestionClient:
    """Forward geocoding for the start/destination inputs."""

    def __init__(
        self,
        session: HttpSession,
        *,
        metrics: MetricsRegistry,
        base_url: str = DEFAULT_NOMINATIM_URL,
        min_chars: int = MIN_QUERY_CHARS,
        timeout: float = 30.0,
        max_attempts: int = 4,
        backoff: float = 1.0,
    ) -> None:
        self._session = session
        self._metrics = metrics
        self._base_url = base_url
        self._min_chars = min_chars
        self._timeout = timeout
        self._max_attempts = max_attempts
        self._backoff = backoff

    async def search(self, query: str) -> List[Suggestion]:
        query = query.strip()
        if len(query) < self._min_chars:
            return []
        payload = await fetch_json(
            session=self._session,
            url=self._base_url,
            params={"format": "json", "q": query},
            metrics=self._metrics,
            timeout=self._timeout,
            max_attempts=self._max_attempts,
            backoff=self._backoff,
            error_cls=GeocodingError,
        )
        if not isinstance(payload, list):
            raise GeocodingError("Unexpected suggestion payload")
        suggestions: List[Suggestion] = []
        for item in payload:
            try:
                suggestions.append(Suggestion.model_validate(item))
            except ValidationError as exc:
                LOGGER.debug("suggestion_skipped", errors=exc.error_count())
        return suggestions
