"""
Transform requests: rewrite a captured selection in one of four modes.

A TransformRequest is provider-agnostic. It carries the selected text, the
text used as the baseline for the change summary, style preferences and
free-form instructions; it validates itself before any network call and
renders the prompts every backend sends to the model.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from workspace.errors import EmptySelection, TextTooLong
from workspace.policy import DEFAULT_POLICY, EditPolicy


class TransformMode(str, Enum):
    POLISH = "polish"
    REWRITE = "rewrite"
    EXPAND = "expand"
    TRANSLATE = "translate"


class WritingStyle(str, Enum):
    ACADEMIC = "academic"
    PROFESSIONAL = "professional"
    CREATIVE = "creative"


class ThinkingStyle(str, Enum):
    RIGOROUS = "rigorous"
    DIVERGENT = "divergent"


MODE_INSTRUCTIONS: Dict[TransformMode, str] = {
    TransformMode.POLISH: "Polish the selected text to be fluent, academic, and concise while preserving meaning.",
    TransformMode.REWRITE: "Rewrite the selected text with different wording (academic style) while preserving meaning.",
    TransformMode.EXPAND: (
        "Expand the selected text into a longer, clearer academic paragraph. Add helpful detail, "
        "transitions, and precision while preserving meaning. Do not invent new facts."
    ),
}

TRANSLATE_INSTRUCTIONS: Dict[str, str] = {
    "en": "Translate the selected text into English (academic paper style) while preserving LaTeX and math.",
    "zh-CN": "Translate the selected text into Simplified Chinese while preserving LaTeX and math.",
}

WRITING_STYLE_LINES: Dict[WritingStyle, str] = {
    WritingStyle.ACADEMIC: "Writing style: formal academic paper style.",
    WritingStyle.PROFESSIONAL: "Writing style: professional and formal.",
    WritingStyle.CREATIVE: "Writing style: more varied and expressive, but still suitable for academic writing.",
}

THINKING_STYLE_LINES: Dict[ThinkingStyle, str] = {
    ThinkingStyle.RIGOROUS: "Thinking style: rigorous, precise, and cautious.",
    ThinkingStyle.DIVERGENT: (
        "Thinking style: more exploratory and expansive; add richer elaboration "
        "without introducing new factual claims."
    ),
}

_REWRITE_RULES = """You are an academic writing assistant for LaTeX papers.

Rules:
- Return ONLY the rewritten text, no explanations, no markdown fences.
- Preserve LaTeX commands, math ($...$, \\[...\\]), labels/refs/cites, and environments.
- Do NOT add or remove citations unless explicitly requested.
- Keep the original meaning unless the user requests otherwise."""

TEXT_SYSTEM_PROMPT = _REWRITE_RULES

JSON_SYSTEM_PROMPT = _REWRITE_RULES + """

Output:
- Return a single valid JSON object (no markdown, no code fences).
- Shape: {"text": string, "changes": string[]}
- "text" is the transformed text (preserve LaTeX structure).
- "changes" is 3-8 short bullet points describing what you changed."""

ANALYSIS_SYSTEM_PROMPT = """You are an academic writing assistant for LaTeX papers.

Output:
- Return a single JSON array of short strings (no markdown, no code fences).
- Provide 3-8 bullets describing what changed in the optimized text compared to the original."""


@dataclass
class StyleOptions:
    writing_style: Optional[WritingStyle] = WritingStyle.ACADEMIC
    thinking_style: Optional[ThinkingStyle] = ThinkingStyle.RIGOROUS

    def preference_lines(self) -> List[str]:
        lines = []
        if self.writing_style in WRITING_STYLE_LINES:
            lines.append(WRITING_STYLE_LINES[self.writing_style])
        if self.thinking_style in THINKING_STYLE_LINES:
            lines.append(THINKING_STYLE_LINES[self.thinking_style])
        return lines


@dataclass
class TransformRequest:
    mode: TransformMode
    source_text: str
    analysis_base_text: str = ""
    target_language: Optional[str] = None
    style: StyleOptions = field(default_factory=StyleOptions)
    instructions: Optional[str] = None
    stream: bool = True

    def __post_init__(self):
        self.mode = TransformMode(self.mode)

    def validate(self, policy: EditPolicy = DEFAULT_POLICY) -> None:
        """Raise a ValidationError for blank or oversized source text."""
        if not self.source_text or not self.source_text.strip():
            raise EmptySelection()
        if len(self.source_text) > policy.max_source_chars:
            raise TextTooLong(len(self.source_text), policy.max_source_chars)

    @property
    def analysis_base(self) -> str:
        return self.analysis_base_text.strip() or self.source_text

    def instruction(self) -> str:
        if self.mode == TransformMode.TRANSLATE:
            language = self.target_language if self.target_language in TRANSLATE_INSTRUCTIONS else "zh-CN"
            return TRANSLATE_INSTRUCTIONS[language]
        return MODE_INSTRUCTIONS[self.mode]

    def build_prompt(self) -> str:
        """User prompt: instruction, preferences, user instructions, then the text."""
        blocks = [self.instruction()]
        preferences = self.style.preference_lines()
        if preferences:
            blocks.append("Preferences:\n- " + "\n- ".join(preferences))
        if self.instructions and self.instructions.strip():
            blocks.append(f"User instructions:\n{self.instructions.strip()}")
        blocks.append(f"Text:\n{self.source_text}")
        return "\n\n".join(blocks)

    def build_analysis_prompt(self, rewritten_text: str) -> str:
        return (
            f"Original text:\n{self.analysis_base}\n\n"
            f"Optimized text:\n{rewritten_text}\n\n"
            "Return JSON array:"
        )

    def to_payload(self) -> Dict[str, Any]:
        """Wire shape of the `transform` object sent to a transform route."""
        payload: Dict[str, Any] = {
            "mode": self.mode.value,
            "text": self.source_text,
            "analysisBaseText": self.analysis_base_text or self.source_text,
            "stream": self.stream,
        }
        if self.target_language:
            payload["targetLanguage"] = self.target_language
        if self.style.writing_style:
            payload["writingStyle"] = WritingStyle(self.style.writing_style).value
        if self.style.thinking_style:
            payload["thinkingStyle"] = ThinkingStyle(self.style.thinking_style).value
        if self.instructions and self.instructions.strip():
            payload["instructions"] = self.instructions.strip()
        return payload


# =============================================================================
# Response parsing
# =============================================================================

def _slice_json(raw: str, opener: str, closer: str) -> str:
    start = raw.find(opener)
    end = raw.rfind(closer)
    if start != -1 and end != -1 and end > start:
        return raw[start:end + 1]
    return raw


def clamp_changes(values: Any, limit: int = DEFAULT_POLICY.max_changes) -> List[str]:
    """Keep only string entries, at most `limit` of them."""
    if not isinstance(values, list):
        return []
    return [v for v in values if isinstance(v, str)][:limit]


def parse_change_list(raw: str, limit: int = DEFAULT_POLICY.max_changes) -> List[str]:
    """Extract the JSON array of change bullets from a model reply. [] if unparseable."""
    try:
        parsed = json.loads(_slice_json(raw.strip(), "[", "]"))
    except (json.JSONDecodeError, ValueError):
        return []
    return clamp_changes(parsed, limit)


def parse_json_rewrite(raw: str, limit: int = DEFAULT_POLICY.max_changes) -> tuple:
    """
    Parse a single-shot {"text", "changes"} reply.

    Falls back to the raw reply as the text (and no changes) when the model
    ignored the JSON instruction.
    """
    raw = raw.strip()
    text, changes = raw, []
    try:
        parsed = json.loads(_slice_json(raw, "{", "}"))
    except (json.JSONDecodeError, ValueError):
        return text, changes
    if isinstance(parsed, dict):
        if isinstance(parsed.get("text"), str):
            text = parsed["text"]
        changes = clamp_changes(parsed.get("changes"), limit)
    return text.strip(), changes
