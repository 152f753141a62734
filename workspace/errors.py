"""
Exception types shared by the workspace and the transform pipeline.

Tree guards (orphaning a node, deleting the last document, creating a cycle)
are deliberately NOT represented here: those operations are ignored and
logged, never raised.
"""


class PrismError(Exception):
    """Base class for every error surfaced by this package."""


class ValidationError(PrismError):
    """A transform request was rejected before reaching the backend."""


class EmptySelection(ValidationError):
    def __init__(self):
        super().__init__("Selected text is empty")


class TextTooLong(ValidationError):
    def __init__(self, length: int, limit: int):
        super().__init__(
            f"Selected text is too long ({length} characters, limit {limit}). "
            "Shorten the selection and try again."
        )
        self.length = length
        self.limit = limit


class ApplyConflict(PrismError):
    """The captured span could not be located in the current document.

    The buffer is left untouched; the preview stays ready so the user can
    retry after restoring the text or discard the rewrite.
    """

    def __init__(self, original_text: str, message: str = None):
        super().__init__(
            message or "Document changed since the request; could not apply the rewrite automatically"
        )
        self.original_text = original_text


class TransformBackendError(PrismError):
    """Network or provider failure while producing a rewrite."""

    def __init__(self, message: str, status: int = None):
        super().__init__(message)
        self.status = status
