"""
Workspace session: one identity's tree, active document and transform preview.

All editing state is owned by a Workspace instance rather than module
globals, so switching identity (user/project) persists the current set and
swaps in the stored one (or a fresh default document) atomically.

Once the save debounce settles, or on an explicit persist(), the project is
written through the WorkspaceStore.
"""

import logging
from pathlib import Path
from typing import Optional, Tuple

from agent.backend import TransformBackend
from agent.preview import PreviewController, TransformPreview
from agent.transform import StyleOptions, TransformMode, TransformRequest
from workspace import events
from workspace.document_buffer import DocumentBuffer
from workspace.events import EventEmitter
from workspace.file_tree import FileTree
from workspace.policy import DEFAULT_POLICY, EditPolicy
from workspace.reconciler import ApplyResult, CapturedSpan
from workspace.store import DEFAULT_PROJECT, DEFAULT_USER, ProjectState, WorkspaceStore, storage_key

logger = logging.getLogger(__name__)


class Workspace:
    def __init__(
        self,
        store: WorkspaceStore = None,
        backend: TransformBackend = None,
        policy: EditPolicy = DEFAULT_POLICY,
        user: str = DEFAULT_USER,
        project: str = DEFAULT_PROJECT,
        emitter: EventEmitter = None,
    ):
        self.store = store
        self.policy = policy
        self.user = user
        self.project = project
        self.tree = FileTree.with_default_document(emitter=emitter)
        self.buffer = DocumentBuffer(self.tree, policy=policy)
        self.previews = PreviewController(self.buffer, backend, policy=policy)
        self._written: Optional[Path] = None
        self.tree.emitter.subscribe(self._on_event)
        self._restore()

    @property
    def identity(self) -> Tuple[str, str]:
        return self.user, self.project

    @property
    def storage_key(self) -> str:
        return storage_key(self.user, self.project)

    @property
    def backend(self) -> Optional[TransformBackend]:
        return self.previews.backend

    @backend.setter
    def backend(self, backend: TransformBackend) -> None:
        self.previews.backend = backend

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def persist(self) -> Optional[Path]:
        """
        Explicit save: settle the save state and write the project now.

        Returns the written path, or None when there is no store or the write failed.
        """
        self._written = None
        # mark_saved emits the settled save state, which writes through _on_event.
        self.buffer.mark_saved()
        return self._written

    def switch_identity(self, user: str, project: str = DEFAULT_PROJECT) -> None:
        """Persist the current project, then load (or start) the one for `user`/`project`."""
        if (user, project) == self.identity:
            return
        self.previews.discard()
        self.persist()
        logger.info("Switching workspace %s -> %s", self.storage_key, storage_key(user, project))
        self.user, self.project = user, project
        self._restore()

    def _restore(self) -> None:
        state = self.store.load(self.user, self.project) if self.store else None
        if state is None:
            self.buffer.reset()
        else:
            state.load_into(self.buffer)

    def _write(self) -> None:
        if self.store is None:
            return
        try:
            self._written = self.store.save(self.user, self.project, ProjectState.from_buffer(self.buffer))
        except OSError as e:
            self._written = None
            logger.warning("Could not persist %s: %s", self.storage_key, e)

    def _on_event(self, event: events.ChangeEvent) -> None:
        if event.kind == events.SAVE_STATE_CHANGED and not event.data.get("dirty"):
            self._write()

    # -------------------------------------------------------------------------
    # Transforms
    # -------------------------------------------------------------------------

    def request_for_selection(
        self,
        mode: TransformMode,
        target_language: str = None,
        style: StyleOptions = None,
        instructions: str = None,
        stream: bool = True,
    ) -> Tuple[TransformRequest, CapturedSpan]:
        """Capture the current selection and build a validated-on-run request for it."""
        span = self.previews.capture_selection()
        request = TransformRequest(
            mode=mode,
            source_text=span.original_text,
            analysis_base_text=span.original_text,
            target_language=target_language,
            style=style or StyleOptions(),
            instructions=instructions,
            stream=stream,
        )
        return request, span

    async def transform(self, mode: TransformMode, **options) -> TransformPreview:
        request, span = self.request_for_selection(mode, **options)
        return await self.previews.run(request, span)

    def apply_preview(self) -> ApplyResult:
        return self.previews.apply()

    def discard_preview(self) -> bool:
        return self.previews.discard()
