"""
Unit tests for regulatory reference protection.

Tests citation extraction, placeholder numbering and restoration.
"""

import pytest

from style_guard.core.protection import ProtectedToken, protect, restore


class TestProtect:
    """Test citation extraction."""

    def test_single_citation_with_section(self):
        """Verify a citation with section marker becomes one placeholder."""
        text = "Chain links show EN 1176-1:2017 §4.2.8.2 corrosion affecting 3 links"
        sanitized, tokens = protect(text)

        assert len(tokens) == 1
        assert tokens[0].placeholder == "[[REF_0]]"
        assert tokens[0].original == "EN 1176-1:2017 §4.2.8.2"
        assert sanitized == "Chain links show [[REF_0]] corrosion affecting 3 links"

    @pytest.mark.parametrize("citation", [
        "BS EN 1176-1:2017",
        "BS EN 1177:2018",
        "EN 16630:2015",
        "EN 1176-7:2020 clause 4.3",
        "BS EN ISO 9001:2015",
        "BS 7188:1998",
        "EN 1176-1 annex A",
    ])
    def test_citation_family(self, citation):
        """Verify each supported citation shape is captured whole."""
        sanitized, tokens = protect(f"Refer to {citation} for details.")
        assert [t.original for t in tokens] == [citation]
        assert sanitized == "Refer to [[REF_0]] for details."

    def test_multiple_citations_numbered_in_order(self):
        """Verify placeholders are numbered left to right."""
        text = "Fails BS EN 1176-1:2017 and BS EN 1177:2018; see EN 16630:2015."
        sanitized, tokens = protect(text)

        assert [t.placeholder for t in tokens] == ["[[REF_0]]", "[[REF_1]]", "[[REF_2]]"]
        assert [t.original for t in tokens] == [
            "BS EN 1176-1:2017", "BS EN 1177:2018", "EN 16630:2015"
        ]
        assert sanitized == "Fails [[REF_0]] and [[REF_1]]; see [[REF_2]]."

    def test_no_citations(self):
        """Verify plain text passes through untouched."""
        text = "Swing seat is cracked and should be replaced."
        sanitized, tokens = protect(text)
        assert sanitized == text
        assert tokens == []

    def test_ignores_embedded_letters(self):
        """Verify 'EN' inside a word is not treated as a citation."""
        text = "Gate was OPEN 12345 times according to the counter."
        sanitized, tokens = protect(text)
        assert tokens == []
        assert sanitized == text

    def test_repr_hides_citation(self):
        """Verify token repr does not expose the citation text."""
        token = ProtectedToken(placeholder="[[REF_0]]", original="BS EN 1176-1:2017")
        assert "1176" not in repr(token)


class TestRestore:
    """Test placeholder restoration."""

    def test_round_trip_identity(self):
        """Verify protect then restore reproduces the original exactly."""
        text = (
            "Non-compliant with BS EN 1176-1:2017 §4.2.8.2 and EN 1177:2018 clause 4.3; "
            "surfacing per BS EN 1177:2018 is worn."
        )
        sanitized, tokens = protect(text)
        assert len(tokens) == 3
        assert restore(sanitized, tokens) == text

    def test_restore_after_rewrite(self):
        """Verify the citation survives a full rewrite of surrounding prose."""
        text = "Chain links show EN 1176-1:2017 §4.2.8.2 corrosion affecting 3 links"
        _, tokens = protect(text)

        rewritten = "Corrosion affecting three chain links, contrary to [[REF_0]]."
        restored = restore(rewritten, tokens)

        assert restored == (
            "Corrosion affecting three chain links, contrary to EN 1176-1:2017 §4.2.8.2."
        )

    def test_reordered_placeholders(self):
        """Verify placeholders are restored by identity, not position."""
        _, tokens = protect("See BS EN 1176-1:2017 then BS EN 1177:2018.")
        restored = restore("[[REF_1]] applies before [[REF_0]].", tokens)
        assert restored == "BS EN 1177:2018 applies before BS EN 1176-1:2017."

    def test_dropped_placeholder_not_guessed(self):
        """Verify a placeholder the model dropped is not re-inserted."""
        _, tokens = protect("See BS EN 1176-1:2017 and BS EN 1177:2018.")
        restored = restore("See [[REF_0]].", tokens)
        assert restored == "See BS EN 1176-1:2017."
        assert "1177" not in restored

    def test_repeated_placeholder_restored_everywhere(self):
        """Verify every copy of a repeated placeholder gets its citation back."""
        _, tokens = protect("Fails BS EN 1176-1:2017 at the chain.")
        restored = restore("Chain fails [[REF_0]]; see [[REF_0]] and replace.", tokens)
        assert restored == (
            "Chain fails BS EN 1176-1:2017; see BS EN 1176-1:2017 and replace."
        )

    def test_unknown_placeholders_stripped(self):
        """Verify stray placeholder-shaped text never leaks out."""
        _, tokens = protect("See BS EN 1176-1:2017.")
        restored = restore("See [[REF_0]] and [[REF_7]].", tokens)
        assert restored == "See BS EN 1176-1:2017 and ."
        assert "[[REF_" not in restored

    def test_idempotent_without_placeholders(self):
        """Verify restore leaves placeholder-free text unchanged."""
        text = "Swing seat is cracked."
        assert restore(text, []) == text
        assert restore(restore(text, []), []) == text
