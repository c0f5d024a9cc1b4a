"""
Unit tests for model name normalization and display colors.
"""

import pytest

from usage_monitor.core.model_names import (
    DEFAULT_COLOR,
    MODEL_COLORS,
    get_model_color,
    normalize_model_name,
)


RAW_MODEL_NAMES = [
    "claude-opus-4-1-20250805",
    "claude-sonnet-4-5-20250929",
    "claude-3-5-haiku-20241022",
    "claude-instant-1",
    "gpt-5-codex",
    "gpt-4o-mini",
    "gpt-4-turbo",
    "gpt-3.5-turbo",
    "moonshot-kimi-k2",
    "deepseek-chat",
    "gemini-2.5-pro",
    "qwen3-coder-plus",
    "yi-large",
    "meta-llama-3-70b",
    "mistral-large-latest",
    "some-vendor-model-v2:latest",
    "GLM-4.6",
    ":latest",
    ":",
    "",
    None,
    42,
]


class TestNormalizeModelName:
    """Test the ordered series rule table."""

    @pytest.mark.parametrize("raw, expected", [
        ("claude-opus-4-1-20250805", "opus"),
        ("claude-sonnet-4-5-20250929", "sonnet"),
        ("claude-3-5-haiku-20241022", "haiku"),
        ("claude-instant-1", "claude"),
        ("gpt-5-codex", "gpt-5"),
        ("GPT5", "gpt-5"),
        ("gpt-4o-mini", "gpt-4o"),
        ("gpt-4-turbo", "gpt-4"),
        ("gpt-3.5-turbo", "gpt-3.5"),
        ("Kimi-K2-Instruct", "kimi"),
        ("deepseek-chat", "deepseek"),
        ("gemini-2.5-pro", "gemini"),
        ("qwen3-coder-plus", "qwen"),
        ("yi-large", "yi"),
        ("meta-llama-3-70b", "llama"),
        ("mistral-large-latest", "mistral"),
    ])
    def test_known_series(self, raw, expected):
        """Test each rule maps onto its series name."""
        assert normalize_model_name(raw) == expected

    def test_rules_are_case_insensitive(self):
        """Test matching ignores case."""
        assert normalize_model_name("Claude-OPUS-4") == "opus"

    def test_first_matching_rule_wins(self):
        """Test a name matching two tiers takes the earlier one."""
        # Contains both "opus" and "sonnet"; opus is ranked first
        assert normalize_model_name("sonnet-vs-opus") == "opus"
        # gpt-4o is checked before gpt-4
        assert normalize_model_name("gpt-4o-2024-08-06") == "gpt-4o"

    def test_unknown_model_keeps_two_segments(self):
        """Test the fallback strips the tag and keeps two segments."""
        assert normalize_model_name("some-vendor-model-v2:latest") == "some-vendor"
        assert normalize_model_name("GLM-4.6") == "glm-4.6"
        assert normalize_model_name("solo") == "solo"

    @pytest.mark.parametrize("raw", [":latest", ":", ":v2"])
    def test_empty_base_name_is_unknown(self, raw):
        """Test a tag with no model name before it normalizes to unknown."""
        assert normalize_model_name(raw) == "unknown"

    @pytest.mark.parametrize("raw", ["", None, 42, ["claude"], {"model": "opus"}])
    def test_missing_or_non_string_is_unknown(self, raw):
        """Test missing and non-string values normalize to unknown."""
        assert normalize_model_name(raw) == "unknown"

    @pytest.mark.parametrize("raw", RAW_MODEL_NAMES)
    def test_normalization_is_idempotent(self, raw):
        """Test normalizing a series name returns it unchanged."""
        once = normalize_model_name(raw)
        assert normalize_model_name(once) == once


class TestModelColor:
    """Test palette lookup."""

    def test_exact_palette_key(self):
        """Test exact series names use their palette color."""
        assert get_model_color("sonnet") == MODEL_COLORS["sonnet"]
        assert get_model_color("codex") == MODEL_COLORS["codex"]

    def test_partial_palette_key(self):
        """Test names containing a palette key reuse that color."""
        assert get_model_color("kimi-pro-max") == MODEL_COLORS["kimi"]

    def test_unknown_series_uses_default(self):
        """Test unknown series fall back to the default grey."""
        assert get_model_color("glm-4.6") == DEFAULT_COLOR

    def test_every_rule_series_has_a_color(self):
        """Test every normalized series has its own palette entry."""
        for raw in RAW_MODEL_NAMES[:15]:
            assert normalize_model_name(raw) in MODEL_COLORS
