"""
Unit tests for style configuration resolution.

Resolution must never fail: every invalid field falls back to its default.
"""

import pytest

from style_guard.config.style import (
    DEFAULT_MONTHLY_TOKEN_BUDGET,
    DEFAULT_STYLE_CONFIG,
    MAX_CUSTOM_GUIDE_LENGTH,
    MAX_STYLE_EXAMPLES,
    StyleExample,
    StylePreset,
    resolve_style_config,
)
from style_guard.core.pricing import ModelTier


class TestDefaults:
    """Test fallback to defaults."""

    @pytest.mark.parametrize("raw", [
        None,
        {},
        [],
        "settings",
        42,
        {"normalization": None},
        {"normalization": "enabled"},
        {"normalization": [1, 2]},
        {"other_feature": {"enabled": True}},
    ])
    def test_unusable_blob_yields_defaults(self, raw):
        assert resolve_style_config(raw) == DEFAULT_STYLE_CONFIG

    def test_default_values(self):
        config = DEFAULT_STYLE_CONFIG
        assert config.enabled is False
        assert config.style_preset is StylePreset.FORMAL
        assert config.custom_guide is None
        assert config.examples == ()
        assert config.correct_spelling_grammar is True
        assert config.require_review_before_export is True
        assert config.monthly_token_budget == DEFAULT_MONTHLY_TOKEN_BUDGET
        assert config.model_preference is ModelTier.HAIKU


class TestResolution:
    """Test field-by-field resolution."""

    def test_full_valid_settings(self):
        config = resolve_style_config({
            "normalization": {
                "enabled": True,
                "style_preset": "technical",
                "custom_guide": "Use third person.",
                "examples": [{"before": "chain's dodgy", "after": "Chain integrity compromised"}],
                "correct_spelling_grammar": False,
                "require_review_before_export": False,
                "monthly_token_budget": 1000,
                "model_preference": "sonnet",
            }
        })
        assert config.enabled is True
        assert config.style_preset is StylePreset.TECHNICAL
        assert config.custom_guide == "Use third person."
        assert config.examples == (
            StyleExample(before="chain's dodgy", after="Chain integrity compromised"),
        )
        assert config.correct_spelling_grammar is False
        assert config.require_review_before_export is False
        assert config.monthly_token_budget == 1000
        assert config.model_preference is ModelTier.SONNET

    def test_enabled_requires_true(self):
        """Verify only a literal True enables normalization."""
        for value in ("true", 1, "yes", None):
            config = resolve_style_config({"normalization": {"enabled": value}})
            assert config.enabled is False

    def test_unknown_enums_fall_back(self):
        config = resolve_style_config({
            "normalization": {"style_preset": "pirate", "model_preference": "gpt-9"}
        })
        assert config.style_preset is StylePreset.FORMAL
        assert config.model_preference is ModelTier.HAIKU

    @pytest.mark.parametrize("budget", [
        "1000", True, -5, 0, None, float("nan"), float("inf")
    ])
    def test_invalid_budget_falls_back(self, budget):
        config = resolve_style_config({"normalization": {"monthly_token_budget": budget}})
        assert config.monthly_token_budget == DEFAULT_MONTHLY_TOKEN_BUDGET

    def test_huge_integer_budget_kept(self):
        config = resolve_style_config({"normalization": {"monthly_token_budget": 10 ** 400}})
        assert config.monthly_token_budget == 10 ** 400

    def test_float_budget_truncated(self):
        config = resolve_style_config({"normalization": {"monthly_token_budget": 1500.7}})
        assert config.monthly_token_budget == 1500

    def test_custom_guide_capped(self):
        guide = "x" * (MAX_CUSTOM_GUIDE_LENGTH + 500)
        config = resolve_style_config({"normalization": {"custom_guide": guide}})
        assert len(config.custom_guide) == MAX_CUSTOM_GUIDE_LENGTH

    def test_blank_custom_guide_is_none(self):
        config = resolve_style_config({"normalization": {"custom_guide": "   "}})
        assert config.custom_guide is None

    def test_examples_filtered_and_capped(self):
        examples = [{"before": f"b{i}", "after": f"a{i}"} for i in range(15)]
        examples.insert(0, {"before": "only before"})
        examples.insert(1, "not a mapping")
        examples.insert(2, {"before": 1, "after": 2})

        config = resolve_style_config({"normalization": {"examples": examples}})

        assert len(config.examples) == MAX_STYLE_EXAMPLES
        assert config.examples[0] == StyleExample(before="b0", after="a0")

    def test_spelling_flag_defaults_true_unless_false(self):
        config = resolve_style_config({"normalization": {"correct_spelling_grammar": "no"}})
        assert config.correct_spelling_grammar is True
