"""Loading provider credentials from ~/.prism/.env and the process environment."""

from __future__ import annotations

import io
import logging
import os
import re
from pathlib import Path
from typing import Iterable, Optional, Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DOTENV_ENCODINGS: tuple[str, ...] = (
    "utf-8",
    "utf-8-sig",
    "cp1252",
    "latin-1",
)

# API keys must survive a round trip through HTTP headers.
SECRET_KEY_RE = re.compile(r"(?:_API_KEY|_TOKEN|_SECRET)$")
HEADER_SAFE_RE = re.compile(r"^[\x20-\x7E]+$")


def decode_env_file(path: Path, encodings: Optional[Iterable[str]] = None) -> Tuple[str, str]:
    """Return (text, encoding) for a .env file, trying each encoding in turn."""
    data = path.read_bytes()
    for encoding in tuple(encodings or DOTENV_ENCODINGS):
        try:
            return data.decode(encoding), encoding
        except UnicodeDecodeError:
            continue
    return data.decode("utf-8", errors="replace"), "utf-8-replace"


def _split_assignment(raw_line: str) -> tuple[str, str] | None:
    line = raw_line.strip()
    if line.startswith("export "):
        line = line[len("export "):]
    if not line or line.startswith("#") or "=" not in line:
        return None
    key, _, value = line.partition("=")
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        value = value[1:-1]
    return key.strip(), value


def unsafe_secret_keys(env_text: str) -> list[str]:
    """Names of secret-looking variables whose values are not printable ASCII."""
    bad = set()
    for raw in env_text.splitlines():
        parsed = _split_assignment(raw)
        if not parsed:
            continue
        key, value = parsed
        if value and SECRET_KEY_RE.search(key) and not HEADER_SAFE_RE.fullmatch(value):
            bad.add(key)
    return sorted(bad)


def load_env_file(path: Path | str, *, override: bool = False) -> bool:
    """Load a .env file into os.environ.

    A missing file is not an error. Secrets that decoded to non-ASCII from a
    UTF-8 file are rejected with ValueError; under a fallback encoding they
    are only warned about, since the bytes are probably mis-encoded.
    """
    path = Path(path).expanduser()
    if not path.exists():
        return False

    text, encoding = decode_env_file(path)
    bad = unsafe_secret_keys(text)
    if bad:
        if encoding in ("utf-8", "utf-8-sig"):
            raise ValueError(
                f"Non-ASCII characters in secret values ({', '.join(bad)}) at {path}. "
                "Re-enter the affected keys."
            )
        logger.warning("Non-ASCII secret values (%s) in %s decoded as %s", ", ".join(bad), path, encoding)
    elif encoding not in ("utf-8", "utf-8-sig"):
        logger.warning("Loaded %s with fallback encoding '%s'; consider saving it as UTF-8.", path, encoding)

    return load_dotenv(stream=io.StringIO(text), override=override)


def provider_env_var(provider_id: str) -> str:
    """`openrouter` -> `OPENROUTER_API_KEY`."""
    return re.sub(r"[^A-Za-z0-9]+", "_", provider_id or "").strip("_").upper() + "_API_KEY"


def resolve_api_key(provider_id: str = None, configured: str = None) -> Optional[str]:
    """Configured key, then <PROVIDER>_API_KEY, then OPENAI_API_KEY."""
    if configured and configured.strip():
        return configured.strip()
    if provider_id:
        value = os.getenv(provider_env_var(provider_id), "").strip()
        if value:
            return value
    return os.getenv("OPENAI_API_KEY", "").strip() or None
