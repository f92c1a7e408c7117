"""Gemini client with Google Maps grounding."""
from __future__ import annotations

import os
from typing import Any, Dict, List, Optional, Protocol

import httpx
import structlog
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from mapquery.models import GroundingChunk, MapsSource, ModelReply, ReviewSnippet, WebSource
from mapquery.normalize.geo import Coordinate
from mapquery.observability.metrics import MetricsRegistry, record_duration
from mapquery.observability.tracing import span
from mapquery.services.errors import ModelError

LOGGER = structlog.get_logger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
EMPTY_ANSWER = "I couldn't find any information about that."

SYSTEM_INSTRUCTION = """
You are an expert geospatial assistant. Your goal is to find places based on user queries and provide their locations.

CRITICAL INSTRUCTION FOR DATA EXTRACTION:
When you find places (restaurants, events, parks, etc.), you MUST include a hidden structured data tag for EACH place in your response.
The format must be exactly: {{DATA:PlaceName|Latitude|Longitude|ShortAddress}}
Example: "I found a great cafe. {{DATA:Blue Bottle Coffee|40.7128|-74.0060|123 Broadway, NY}}"

- Do not put this tag inside a code block. Put it inline or at the end of the sentence describing the place.
- Ensure the coordinates are as accurate as possible.
- Provide a helpful, natural language description of the places as well.
- If using the Google Maps tool, synthesize the information but still include the {{DATA:...}} tags with the coordinates found.
"""


class ModelClient(Protocol):
    async def ask(self, prompt: str, location: Optional[Coordinate] = None) -> ModelReply:
        ...


def _snippets(payload: Dict[str, Any]) -> List[ReviewSnippet]:
    sources = payload.get("place_answer_sources") or {}
    snippets: List[ReviewSnippet] = []
    for item in sources.get("review_snippets") or []:
        text = item.get("review") or item.get("text")
        if text:
            snippets.append(ReviewSnippet(text=text))
    return snippets


def grounding_chunk_from_payload(payload: Dict[str, Any]) -> Optional[GroundingChunk]:
    """Convert a dumped SDK grounding chunk, skipping chunks without a link."""
    web = payload.get("web") or {}
    maps = payload.get("maps") or {}
    chunk = GroundingChunk(
        web=WebSource(uri=web["uri"], title=web.get("title")) if web.get("uri") else None,
        maps=MapsSource(uri=maps["uri"], title=maps.get("title"), review_snippets=_snippets(maps)) if maps.get("uri") else None,
    )
    if chunk.web is None and chunk.maps is None:
        return None
    return chunk


def _generation_config(location: Optional[Coordinate]) -> types.GenerateContentConfig:
    tool_config = None
    if location is not None and location.is_valid:
        tool_config = types.ToolConfig(
            retrieval_config=types.RetrievalConfig(
                lat_lng=types.LatLng(latitude=location.latitude, longitude=location.longitude),
            )
        )
    # responseMimeType/responseSchema are rejected while the Maps tool is enabled.
    return types.GenerateContentConfig(
        system_instruction=SYSTEM_INSTRUCTION,
        tools=[types.Tool(google_maps=types.GoogleMaps())],
        tool_config=tool_config,
    )


class GeminiClient:
    """Sends a user query to Gemini and returns raw tagged text plus citations."""

    def __init__(
        self,
        *,
        metrics: MetricsRegistry,
        model: str = DEFAULT_MODEL,
        api_key: Optional[str] = None,
        client: Optional[genai.Client] = None,
    ) -> None:
        self._metrics = metrics
        self._model = model
        self._client = client or genai.Client(api_key=api_key)

    @classmethod
    def from_settings(cls, settings: Dict[str, object], *, metrics: MetricsRegistry) -> "GeminiClient":
        model_cfg = settings.get("model", {})
        api_key = os.environ.get(str(model_cfg.get("api_key_env", "GEMINI_API_KEY")))
        return cls(metrics=metrics, model=str(model_cfg.get("name", DEFAULT_MODEL)), api_key=api_key)

    async def ask(self, prompt: str, location: Optional[Coordinate] = None) -> ModelReply:
        self._metrics.incr("model_queries")
        try:
            with span(name="model_query"), record_duration(self._metrics, "query_duration_ms"):
                response = await self._client.aio.models.generate_content(
                    model=self._model,
                    contents=prompt,
                    config=_generation_config(location),
                )
        except (genai_errors.APIError, httpx.HTTPError) as exc:
            self._metrics.incr("model_failures")
            LOGGER.error("model_query_failed", error=str(exc))
            raise ModelError(str(exc)) from exc

        text = response.text or EMPTY_ANSWER
        chunks: List[GroundingChunk] = []
        candidates = response.candidates or []
        metadata = candidates[0].grounding_metadata if candidates else None
        if metadata is not None:
            for raw in metadata.grounding_chunks or []:
                chunk = grounding_chunk_from_payload(raw.model_dump(exclude_none=True))
                if chunk is not None:
                    chunks.append(chunk)
        return ModelReply(text=text, grounding_chunks=chunks)
