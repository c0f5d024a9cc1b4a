"""
Model name normalization and display colors.

Maps raw vendor model identifiers onto a small set of series names. The
series name is the key into the fixed color palette, so the rule table and
the palette must stay in step.
"""

from typing import Any, Dict, Tuple

UNKNOWN_MODEL = "unknown"
CODEX_MODEL = "codex"

# Ordered: first matching substring wins
SERIES_RULES: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("claude-opus", "opus"), "opus"),
    (("claude-sonnet", "sonnet"), "sonnet"),
    (("claude-haiku", "haiku"), "haiku"),
    (("claude",), "claude"),
    (("gpt-5", "gpt5"), "gpt-5"),
    (("gpt-4o",), "gpt-4o"),
    (("gpt-4",), "gpt-4"),
    (("gpt-3.5", "gpt3"), "gpt-3.5"),
    (("kimi",), "kimi"),
    (("deepseek",), "deepseek"),
    (("gemini",), "gemini"),
    (("qwen",), "qwen"),
    (("yi",), "yi"),
    (("llama",), "llama"),
    (("mistral",), "mistral"),
)

DEFAULT_COLOR = "#8b919a"

# Fixed palette - partial matches are tried in this order
MODEL_COLORS: Dict[str, str] = {
    "opus": "#2563eb",
    "claude-opus": "#2563eb",
    "sonnet": "#6366f1",
    "claude-sonnet": "#6366f1",
    "haiku": "#8b5cf6",
    "claude-haiku": "#8b5cf6",
    "claude": "#ec4899",
    "gpt-5": "#e67e22",
    "gpt-4o": "#f97316",
    "gpt-4": "#f59e0b",
    "gpt-3.5": "#fbbf24",
    "kimi": "#16a34a",
    "kimi-pro": "#22c55e",
    "deepseek": "#a855f7",
    "gemini": "#dc2626",
    "qwen": "#10b981",
    "yi": "#ec4899",
    "llama": "#06b6d4",
    "mistral": "#f59e0b",
    "codex": "#3b82f6",
}


def normalize_model_name(model: Any) -> str:
    """Canonicalize a raw model identifier into its series name.

    Examples:
        claude-sonnet-4-5-20250929 -> sonnet
        gpt-4o-mini -> gpt-4o
        some-vendor-model-v2:latest -> some-vendor

    Args:
        model: Raw model string; anything else yields "unknown"

    Returns:
        Lower-case series name
    """
    if not model or not isinstance(model, str):
        return UNKNOWN_MODEL

    lower_model = model.lower()
    for needles, series in SERIES_RULES:
        if any(needle in lower_model for needle in needles):
            return series

    # Unknown vendor: drop the tag after ':' and keep two '-' segments
    base = lower_model.split(":")[0]
    return "-".join(base.split("-")[:2]) or UNKNOWN_MODEL


def get_model_color(model: str) -> str:
    """Look up the display color for a series name."""
    normalized = model.lower()
    if normalized in MODEL_COLORS:
        return MODEL_COLORS[normalized]

    for key, color in MODEL_COLORS.items():
        if key in normalized:
            return color

    return DEFAULT_COLOR
