"""
Transform backends: where rewrites actually come from.

The preview controller only ever sees an async iterator of TransformEvents.
Two implementations produce it:

- OpenAITransformBackend talks to any OpenAI-compatible chat endpoint through
  the `openai` SDK: it streams the rewrite as text deltas, then asks the same
  model for a short JSON change summary.
- RemoteTransformBackend speaks the transform route's wire protocol over
  `httpx`: POST {transform, config}; the reply is either a single JSON object
  {ok, text, changes} or an `application/x-ndjson` event stream.

Usage:
    backend = OpenAITransformBackend(ProviderConfig(api_key="sk-...", model_name="gpt-4o"))
    async for event in backend.events(request):
        ...
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
from openai import AsyncOpenAI, OpenAIError

from agent import stream_events
from agent.stream_events import NDJSONDecoder, TransformEvent
from agent.transform import (
    ANALYSIS_SYSTEM_PROMPT,
    JSON_SYSTEM_PROMPT,
    TEXT_SYSTEM_PROMPT,
    TransformRequest,
    clamp_changes,
    parse_change_list,
    parse_json_rewrite,
)
from workspace.errors import TransformBackendError
from workspace.policy import DEFAULT_POLICY

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o"
REWRITE_MAX_TOKENS = 2048
ANALYSIS_MAX_TOKENS = 256
NDJSON_CONTENT_TYPE = "application/x-ndjson"


@dataclass
class ProviderConfig:
    """Per-provider connection settings."""
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    model_name: str = DEFAULT_MODEL

    def to_payload(self) -> Dict[str, str]:
        payload = {}
        if self.api_key:
            payload["apiKey"] = self.api_key
        if self.base_url:
            payload["baseUrl"] = self.base_url
        if self.model_name:
            payload["modelName"] = self.model_name
        return payload


@dataclass
class TransformResult:
    text: str
    changes: List[str] = field(default_factory=list)


class TransformBackend(ABC):
    """Source of rewrite events for a TransformRequest."""

    max_changes: int = DEFAULT_POLICY.max_changes

    @abstractmethod
    def stream(self, request: TransformRequest) -> AsyncIterator[TransformEvent]:
        """Yield meta, text-delta..., analysis, done (or error, done)."""
        ...

    @abstractmethod
    async def complete(self, request: TransformRequest) -> TransformResult:
        """Produce the whole rewrite in one response."""
        ...

    async def events(self, request: TransformRequest) -> AsyncIterator[TransformEvent]:
        """Event sequence for the request, streaming or not."""
        if request.stream:
            async for event in self.stream(request):
                yield event
            return
        result = await self.complete(request)
        for event in stream_events.single_response_events(result.text, result.changes, mode=request.mode.value):
            yield event


# =============================================================================
# OpenAI-compatible provider
# =============================================================================

class OpenAITransformBackend(TransformBackend):
    def __init__(self, config: ProviderConfig = None, client: Any = None, max_changes: int = None):
        self.config = config or ProviderConfig()
        if max_changes is not None:
            self.max_changes = max_changes
        if client is not None:
            self.client = client
        else:
            client_kwargs = {"api_key": self.config.api_key or os.getenv("OPENAI_API_KEY", "dummy-key")}
            if self.config.base_url:
                client_kwargs["base_url"] = self.config.base_url
            self.client = AsyncOpenAI(**client_kwargs)

    @property
    def model_name(self) -> str:
        return self.config.model_name or DEFAULT_MODEL

    async def stream(self, request: TransformRequest) -> AsyncIterator[TransformEvent]:
        yield stream_events.meta(mode=request.mode.value, modelName=self.model_name)

        pieces: List[str] = []
        try:
            response = await self.client.chat.completions.create(
                model=self.model_name,
                messages=[
                    {"role": "system", "content": TEXT_SYSTEM_PROMPT},
                    {"role": "user", "content": request.build_prompt()},
                ],
                max_tokens=REWRITE_MAX_TOKENS,
                stream=True,
            )
            async with response:
                async for chunk in response:
                    if not chunk.choices:
                        continue
                    delta = chunk.choices[0].delta.content
                    if delta:
                        pieces.append(delta)
                        yield stream_events.text_delta(delta)
        except OpenAIError as e:
            logger.warning("Transform stream failed (%s): %s", self.model_name, e)
            raise TransformBackendError(str(e), status=getattr(e, "status_code", None)) from e

        changes = await self._summarize(request, "".join(pieces))
        yield stream_events.analysis(changes)
        yield stream_events.done()

    async def complete(self, request: TransformRequest) -> TransformResult:
        try:
            response = await self.client.chat.completions.create(
                model=self.model_name,
                messages=[
                    {"role": "system", "content": JSON_SYSTEM_PROMPT},
                    {"role": "user", "content": request.build_prompt()},
                ],
                max_tokens=REWRITE_MAX_TOKENS,
            )
        except OpenAIError as e:
            logger.warning("Transform request failed (%s): %s", self.model_name, e)
            raise TransformBackendError(str(e), status=getattr(e, "status_code", None)) from e

        raw = (response.choices[0].message.content or "") if response.choices else ""
        text, changes = parse_json_rewrite(raw, self.max_changes)
        return TransformResult(text=text, changes=changes)

    async def _summarize(self, request: TransformRequest, rewritten: str) -> List[str]:
        """Best-effort change summary; any failure yields an empty list."""
        try:
            response = await self.client.chat.completions.create(
                model=self.model_name,
                messages=[
                    {"role": "system", "content": ANALYSIS_SYSTEM_PROMPT},
                    {"role": "user", "content": request.build_analysis_prompt(rewritten)},
                ],
                max_tokens=ANALYSIS_MAX_TOKENS,
            )
            raw = response.choices[0].message.content or ""
        except Exception as e:
            logger.debug("Change summary failed: %s", e)
            return []
        return parse_change_list(raw, self.max_changes)


# =============================================================================
# Remote transform route (NDJSON / JSON over HTTP)
# =============================================================================

class RemoteTransformBackend(TransformBackend):
    def __init__(
        self,
        endpoint: str,
        provider: ProviderConfig = None,
        client: httpx.AsyncClient = None,
        timeout: float = 120.0,
    ):
        self.endpoint = endpoint
        self.provider = provider or ProviderConfig()
        self._client = client
        self.timeout = timeout

    def _body(self, request: TransformRequest, stream: bool) -> Dict[str, Any]:
        transform = request.to_payload()
        transform["stream"] = stream
        return {"transform": transform, "config": self.provider.to_payload()}

    def _open_client(self) -> httpx.AsyncClient:
        return self._client or httpx.AsyncClient(timeout=self.timeout)

    async def stream(self, request: TransformRequest) -> AsyncIterator[TransformEvent]:
        client = self._open_client()
        try:
            async with client.stream("POST", self.endpoint, json=self._body(request, True)) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise TransformBackendError(_error_message(response), status=response.status_code)

                if NDJSON_CONTENT_TYPE not in response.headers.get("content-type", ""):
                    await response.aread()
                    result = _result_from_json(response, self.max_changes)
                    for event in stream_events.single_response_events(result.text, result.changes, mode=request.mode.value):
                        yield event
                    return

                decoder = NDJSONDecoder()
                async for chunk in response.aiter_text():
                    for event in decoder.feed(chunk):
                        yield event
                for event in decoder.flush():
                    yield event
        except httpx.HTTPError as e:
            logger.warning("Transform route %s unreachable: %s", self.endpoint, e)
            raise TransformBackendError(str(e) or type(e).__name__) from e
        finally:
            if self._client is None:
                await client.aclose()

    async def complete(self, request: TransformRequest) -> TransformResult:
        client = self._open_client()
        try:
            response = await client.post(self.endpoint, json=self._body(request, False))
        except httpx.HTTPError as e:
            logger.warning("Transform route %s unreachable: %s", self.endpoint, e)
            raise TransformBackendError(str(e) or type(e).__name__) from e
        finally:
            if self._client is None:
                await client.aclose()
        if response.status_code >= 400:
            raise TransformBackendError(_error_message(response), status=response.status_code)
        return _result_from_json(response, self.max_changes)


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and isinstance(data.get("error"), str):
        return data["error"]
    return f"HTTP {response.status_code}"


def _result_from_json(response: httpx.Response, max_changes: int) -> TransformResult:
    try:
        data = response.json()
    except ValueError:
        data = None
    if not isinstance(data, dict) or not data.get("ok") or not isinstance(data.get("text"), str):
        message = data.get("error") if isinstance(data, dict) else None
        raise TransformBackendError(message or f"HTTP {response.status_code}", status=response.status_code)
    return TransformResult(text=data["text"], changes=clamp_changes(data.get("changes"), max_changes))
