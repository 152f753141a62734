"""
Typed transform events and the NDJSON codec used on the wire.

A transform produces, in order: one `meta`, any number of `text-delta`
(append), an `analysis` (replace the change list; latest wins), optionally
`error`, and finally `done`. Each event carries the generation token of the
preview it belongs to so that superseded requests can be ignored.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional

from workspace.policy import DEFAULT_POLICY

logger = logging.getLogger(__name__)

META = "meta"
TEXT_DELTA = "text-delta"
ANALYSIS = "analysis"
ERROR = "error"
DONE = "done"

EVENT_TYPES = (META, TEXT_DELTA, ANALYSIS, ERROR, DONE)


@dataclass
class TransformEvent:
    type: str
    delta: str = ""
    changes: List[str] = field(default_factory=list)
    error: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)
    generation: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type}
        if self.type == TEXT_DELTA:
            data["delta"] = self.delta
        elif self.type == ANALYSIS:
            data["changes"] = list(self.changes)
        elif self.type == ERROR:
            data["error"] = self.error or "Unknown error"
        elif self.type == META:
            data.update(self.meta)
        return data

    def tagged(self, generation: int) -> "TransformEvent":
        self.generation = generation
        return self


def meta(**info: Any) -> TransformEvent:
    return TransformEvent(META, meta=info)


def text_delta(delta: str) -> TransformEvent:
    return TransformEvent(TEXT_DELTA, delta=delta)


def analysis(changes: List[str]) -> TransformEvent:
    return TransformEvent(ANALYSIS, changes=list(changes))


def error(message: str) -> TransformEvent:
    return TransformEvent(ERROR, error=message)


def done() -> TransformEvent:
    return TransformEvent(DONE)


def from_dict(obj: Any, max_changes: int = DEFAULT_POLICY.max_changes) -> Optional[TransformEvent]:
    """Decode one wire record. Unknown or malformed records give None."""
    if not isinstance(obj, dict):
        return None
    kind = obj.get("type")
    if kind == TEXT_DELTA and isinstance(obj.get("delta"), str):
        return text_delta(obj["delta"])
    if kind == ANALYSIS and isinstance(obj.get("changes"), list):
        return analysis([c for c in obj["changes"] if isinstance(c, str)][:max_changes])
    if kind == ERROR and isinstance(obj.get("error"), str):
        return error(obj["error"])
    if kind == DONE:
        return done()
    if kind == META:
        return meta(**{k: v for k, v in obj.items() if k != "type"})
    return None


def encode_ndjson(event: TransformEvent) -> bytes:
    return (json.dumps(event.to_dict(), ensure_ascii=False) + "\n").encode("utf-8")


def decode_line(line: str) -> Optional[TransformEvent]:
    trimmed = line.strip()
    if not trimmed:
        return None
    try:
        obj = json.loads(trimmed)
    except json.JSONDecodeError:
        logger.debug("Skipping malformed stream line: %.80s", trimmed)
        return None
    return from_dict(obj)


class NDJSONDecoder:
    """Incremental newline-delimited JSON decoder for chunked text."""

    def __init__(self):
        self._buffer = ""

    def feed(self, chunk: str) -> List[TransformEvent]:
        self._buffer += chunk
        decoded = []
        while True:
            idx = self._buffer.find("\n")
            if idx == -1:
                break
            line, self._buffer = self._buffer[:idx], self._buffer[idx + 1:]
            event = decode_line(line)
            if event is not None:
                decoded.append(event)
        return decoded

    def flush(self) -> List[TransformEvent]:
        """Decode whatever trails the last newline."""
        rest, self._buffer = self._buffer, ""
        event = decode_line(rest)
        return [event] if event is not None else []


def decode_stream(chunks: Iterable[str]) -> Iterator[TransformEvent]:
    decoder = NDJSONDecoder()
    for chunk in chunks:
        yield from decoder.feed(chunk)
    yield from decoder.flush()


def single_response_events(text: str, changes: List[str], **info: Any) -> List[TransformEvent]:
    """The event sequence equivalent to a one-shot (non-streaming) reply."""
    return [meta(**info), text_delta(text), analysis(changes), done()]
