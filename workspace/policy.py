"""Tunable thresholds for matching, transforms, history and autosave."""

from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class EditPolicy:
    # Half-width of the literal search window around the captured start offset.
    reconcile_window: int = 2000
    # Whitespace-tolerant matching needs a needle at least this long...
    fuzzy_min_chars: int = 16
    # ...that splits into at least this many tokens.
    fuzzy_min_tokens: int = 3
    max_source_chars: int = 4000
    max_changes: int = 12
    history_limit: int = 50
    save_debounce_seconds: float = 0.8

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EditPolicy":
        """Build a policy from a config mapping, ignoring unknown keys."""
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            if key not in known or value is None:
                continue
            kwargs[key] = float(value) if key == "save_debounce_seconds" else int(value)
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


DEFAULT_POLICY = EditPolicy()
