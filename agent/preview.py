"""
Transform previews: stream a rewrite next to the captured selection, then
apply or discard it.

State machine:

    idle -> loading -> ready | error
    ready -> applied | discarded | loading (regenerate)

The backend runs in a pump task that feeds an asyncio.Queue; the consumer
(run) is the only code that touches preview state. Every preview gets a fresh
generation number and every queued event is tagged with the generation it was
produced for, so events from a superseded or discarded request are dropped
instead of leaking into the current preview.

Usage:
    controller = PreviewController(buffer, OpenAITransformBackend(config))
    preview = await controller.run(request)
    if preview.status is PreviewStatus.READY:
        controller.apply()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from agent import stream_events
from agent.backend import TransformBackend
from agent.stream_events import TransformEvent
from agent.transform import TransformMode, TransformRequest
from workspace.document_buffer import DocumentBuffer
from workspace.errors import ApplyConflict, EmptySelection, PrismError, TransformBackendError
from workspace.policy import DEFAULT_POLICY, EditPolicy
from workspace.reconciler import ApplyResult, CapturedSpan, Reconciler

logger = logging.getLogger(__name__)


class PreviewStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"
    APPLIED = "applied"
    DISCARDED = "discarded"


@dataclass
class TransformPreview:
    span: CapturedSpan
    mode: TransformMode
    generation: int
    file_id: Optional[str] = None
    status: PreviewStatus = PreviewStatus.LOADING
    text: str = ""
    changes: List[str] = field(default_factory=list)
    error: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "span": self.span.to_dict(),
            "mode": self.mode.value,
            "generation": self.generation,
            "file_id": self.file_id,
            "status": self.status.value,
            "text": self.text,
            "changes": list(self.changes),
            "error": self.error,
        }


class PreviewController:
    """Owns at most one live preview for a DocumentBuffer."""

    def __init__(
        self,
        buffer: DocumentBuffer,
        backend: TransformBackend = None,
        reconciler: Reconciler = None,
        policy: EditPolicy = None,
        on_update: Optional[Callable[[TransformPreview], None]] = None,
    ):
        self.buffer = buffer
        self.backend = backend
        self.policy = policy or buffer.policy or DEFAULT_POLICY
        self.reconciler = reconciler or Reconciler(self.policy)
        self.on_update = on_update
        self.generation = 0
        self.preview: Optional[TransformPreview] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def status(self) -> PreviewStatus:
        return self.preview.status if self.preview else PreviewStatus.IDLE

    def capture_selection(self) -> CapturedSpan:
        """Freeze the buffer's current selection."""
        selection = self.buffer.selection
        if selection is None:
            raise EmptySelection()
        return CapturedSpan(selection.start, selection.end, self.buffer.selected_text())

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def begin(self, request: TransformRequest, span: CapturedSpan) -> TransformPreview:
        """
        Validate the request and open a new loading preview.

        Raises ValidationError before any state changes, so a rejected request
        leaves the previous preview (if any) in place.
        """
        request.validate(self.policy)
        self._cancel_task()
        self.generation += 1
        self.preview = TransformPreview(
            span=span,
            mode=request.mode,
            generation=self.generation,
            file_id=self.buffer.active_file_id,
        )
        self._notify()
        return self.preview

    def handle_event(self, event: TransformEvent) -> bool:
        """Fold one event into the live preview. Returns False if it was dropped."""
        preview = self.preview
        if preview is None or event.generation != preview.generation:
            logger.debug("Dropping stale %s event (generation %d)", event.type, event.generation)
            return False
        if preview.status is not PreviewStatus.LOADING:
            return False

        if event.type == stream_events.TEXT_DELTA:
            preview.text += event.delta
        elif event.type == stream_events.ANALYSIS:
            preview.changes = list(event.changes)[:self.policy.max_changes]
        elif event.type == stream_events.ERROR:
            preview.error = event.error or "Unknown error"
        elif event.type == stream_events.META:
            preview.meta.update(event.meta)
        elif event.type == stream_events.DONE:
            self._finish(preview)
        self._notify()
        return True

    async def run(self, request: TransformRequest, span: CapturedSpan = None) -> TransformPreview:
        """Stream a rewrite for `span` (default: the current selection) to completion."""
        if self.backend is None:
            raise PrismError("No transform backend configured")
        span = span or self.capture_selection()
        preview = self.begin(request, span)

        queue: asyncio.Queue = asyncio.Queue()
        task = asyncio.ensure_future(self._pump(request, preview.generation, queue))
        # Sentinel, queued even when the task is cancelled before it starts.
        task.add_done_callback(lambda _: queue.put_nowait(None))
        self._task = task
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                self.handle_event(event)
        finally:
            if not task.done():
                task.cancel()
            if self._task is task:
                self._task = None

        await asyncio.wait([task])
        if not task.cancelled() and task.exception() is not None:
            raise task.exception()

        # Stream ended without a done event.
        if self.preview is preview and preview.status is PreviewStatus.LOADING:
            self._finish(preview)
            self._notify()
        return preview

    async def regenerate(self, request: TransformRequest, span: CapturedSpan) -> TransformPreview:
        """Re-run a transform for a caller-supplied span, replacing the current preview."""
        if self.status not in (PreviewStatus.READY, PreviewStatus.ERROR):
            logger.debug("regenerate from %s state", self.status.value)
        return await self.run(request, span)

    def discard(self) -> bool:
        """Close the preview. Late events for it are ignored from now on."""
        preview = self.preview
        if preview is None:
            return False
        self.generation += 1
        self._cancel_task()
        preview.status = PreviewStatus.DISCARDED
        self._notify()
        self.preview = None
        return True

    def apply(self) -> ApplyResult:
        """
        Write the ready preview text over the reconciled span.

        Raises:
            ApplyConflict: the active file changed, or the captured text can no
                longer be found. The preview stays ready so it can be retried,
                regenerated or discarded.
        """
        preview = self.preview
        if preview is None or preview.status is not PreviewStatus.READY:
            raise PrismError("No ready preview to apply")
        if preview.file_id is not None and preview.file_id != self.buffer.active_file_id:
            raise ApplyConflict(preview.span.original_text, "Active file changed since the rewrite was requested")

        result = self.reconciler.apply(self.buffer, preview.span, preview.text)
        logger.info("Applied %s preview via %s at %d-%d", preview.mode.value, result.strategy, result.start, result.end)
        self.generation += 1
        preview.status = PreviewStatus.APPLIED
        self._notify()
        self.preview = None
        return result

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _pump(self, request: TransformRequest, generation: int, queue: asyncio.Queue) -> None:
        try:
            async for event in self.backend.events(request):
                queue.put_nowait(event.tagged(generation))
        except TransformBackendError as e:
            queue.put_nowait(stream_events.error(str(e)).tagged(generation))
            queue.put_nowait(stream_events.done().tagged(generation))

    def _finish(self, preview: TransformPreview) -> None:
        if preview.error:
            preview.status = PreviewStatus.ERROR
        else:
            preview.text = preview.text.strip()
            preview.status = PreviewStatus.READY

    def _cancel_task(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def _notify(self) -> None:
        if self.on_update is not None and self.preview is not None:
            self.on_update(self.preview)
