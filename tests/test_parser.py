"""
Unit tests for response parsing.

Tests fence stripping, field extraction and malformed output handling.
"""

import json

import pytest

from style_guard.core.errors import GatewayError
from style_guard.core.parser import DEFAULT_DIFF_SUMMARY, parse_response, strip_fences


def _payload(**fields) -> str:
    return json.dumps(fields)


class TestStripFences:
    """Test markdown fence removal."""

    def test_json_fence(self):
        assert strip_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_plain_fence(self):
        assert strip_fences('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_no_fence(self):
        assert strip_fences('  {"a": 1}  ') == '{"a": 1}'


class TestParseResponse:
    """Test response validation."""

    def test_valid_response(self):
        """Verify all fields are extracted."""
        parsed = parse_response(_payload(
            normalized_text="  Corrosion observed on chain links.  ",
            diff_summary="Formalised tone",
            no_changes_needed=False
        ))
        assert parsed.normalized_text == "Corrosion observed on chain links."
        assert parsed.diff_summary == "Formalised tone"
        assert parsed.no_changes_needed is False

    def test_fenced_response(self):
        """Verify fenced JSON is accepted."""
        raw = "```json\n" + _payload(normalized_text="Text", no_changes_needed=True) + "\n```"
        parsed = parse_response(raw)
        assert parsed.normalized_text == "Text"
        assert parsed.no_changes_needed is True

    def test_missing_diff_summary_defaults(self):
        parsed = parse_response(_payload(normalized_text="Text"))
        assert parsed.diff_summary == DEFAULT_DIFF_SUMMARY

    def test_no_changes_requires_literal_true(self):
        """Verify truthy non-boolean values do not signal 'no changes'."""
        parsed = parse_response(_payload(normalized_text="Text", no_changes_needed="true"))
        assert parsed.no_changes_needed is False

    @pytest.mark.parametrize("raw", [
        "",
        "   ",
        "not json at all",
        "[1, 2, 3]",
        _payload(diff_summary="no text"),
        _payload(normalized_text="   "),
        _payload(normalized_text=42),
    ])
    def test_malformed_output_is_gateway_error(self, raw):
        """Verify unusable content raises GatewayError."""
        with pytest.raises(GatewayError):
            parse_response(raw)
