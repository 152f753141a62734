"""
Apply-time position reconciliation.

A rewrite is requested against a captured span (start, end, original text),
but by the time it is ready the user may have kept typing, or an earlier
rewrite may have been applied. Writing at the captured offsets blindly could
clobber unrelated text, so the destination is re-derived from the live
content, first success wins:

  1. exact   - content[start:end] still equals the original text
  2. window  - literal search within `window` characters either side of start
  3. global  - literal search over the whole document
  4. spacing - whitespace-tolerant match (see workspace.fuzzy_match)

If nothing matches, ApplyConflict is raised and the buffer is not touched: a
destination is never guessed without textual identity. Lookup only reads the
buffer; the commit is a single replace_range call.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from workspace.document_buffer import DocumentBuffer
from workspace.errors import ApplyConflict
from workspace.fuzzy_match import locate
from workspace.policy import DEFAULT_POLICY, EditPolicy

logger = logging.getLogger(__name__)

EXACT = "exact"
WINDOW = "window"
GLOBAL = "global"
SPACING = "spacing"


@dataclass(frozen=True)
class CapturedSpan:
    """Immutable snapshot of a selection taken when a transform is requested."""
    start: int
    end: int
    original_text: str

    def to_dict(self) -> dict:
        return {"start": self.start, "end": self.end, "original_text": self.original_text}


@dataclass(frozen=True)
class Placement:
    start: int
    end: int
    strategy: str


@dataclass
class ApplyResult:
    """Outcome of a successful apply."""
    strategy: str
    start: int
    end: int
    cursor: int
    file_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "strategy": self.strategy,
            "start": self.start,
            "end": self.end,
            "cursor": self.cursor,
            "file_id": self.file_id,
        }


class Reconciler:
    def __init__(self, policy: EditPolicy = DEFAULT_POLICY):
        self.policy = policy

    def locate(self, content: str, span: CapturedSpan) -> Optional[Placement]:
        """Where the captured text lives in `content` now, or None."""
        needle = span.original_text
        if not needle:
            return None

        if 0 <= span.start <= span.end <= len(content) and content[span.start:span.end] == needle:
            return Placement(span.start, span.end, EXACT)

        window_start = max(0, span.start - self.policy.reconcile_window)
        window_end = min(len(content), span.start + self.policy.reconcile_window)
        index = content.find(needle, window_start, window_end)
        if index != -1:
            return Placement(index, index + len(needle), WINDOW)

        index = content.find(needle)
        if index != -1:
            return Placement(index, index + len(needle), GLOBAL)

        found = locate(
            content,
            needle,
            min_chars=self.policy.fuzzy_min_chars,
            min_tokens=self.policy.fuzzy_min_tokens,
        )
        if found is not None:
            return Placement(found.start, found.end, SPACING)
        return None

    def apply(self, buffer: DocumentBuffer, span: CapturedSpan, replacement: str) -> ApplyResult:
        """
        Commit `replacement` over the reconciled span in the live buffer.

        Raises:
            ApplyConflict: the original text cannot be found; buffer unchanged.
        """
        if not buffer.is_text_active:
            raise ApplyConflict(span.original_text, "Active file is not a text document")

        placement = self.locate(buffer.content, span)
        if placement is None:
            logger.info(
                "Apply conflict: %d-char span captured at %d not found in %d-char document",
                len(span.original_text), span.start, len(buffer.content),
            )
            raise ApplyConflict(span.original_text)

        if placement.strategy != EXACT:
            logger.debug(
                "Reconciled span %d-%d to %d-%d via %s",
                span.start, span.end, placement.start, placement.end, placement.strategy,
            )
        buffer.replace_range(placement.start, placement.end, replacement)
        return ApplyResult(
            strategy=placement.strategy,
            start=placement.start,
            end=placement.start + len(replacement),
            cursor=buffer.cursor,
            file_id=buffer.active_file_id,
        )
