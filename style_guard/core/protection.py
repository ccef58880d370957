"""
Regulatory reference protection.

Citations such as ``BS EN 1176-1:2017 §4.2.8.2`` are swapped for numbered
placeholders before text is sent to the model and swapped back afterwards,
so the model never sees (and cannot rewrite) the citation characters.

Matching is heuristic: a citation outside the pattern family below is sent
to the model unprotected.
"""

import re
from dataclasses import dataclass
from typing import List, Sequence, Tuple

# Matches, for example:
#   BS EN 1176-1:2017
#   BS EN 1176-1:2017 §4.2.8.2
#   EN 16630:2015
#   EN 1176-7:2020 clause 4.3
#   BS EN ISO 9001:2015, ISO 4892-2, BS 7188:1998
REFERENCE_PATTERN = re.compile(
    r"\b(?:BS\s*EN(?:\s*ISO)?|EN(?:\s*ISO)?|BS|ISO)"
    r"\s*\d{4,5}"
    r"(?:-\d{1,2})?"
    r"(?::\d{4})?"
    r"(?:\s*§\s*\d+(?:\.\d+)*)?"
    r"(?:\s*(?:clause|section|annex)\s*(?:\d+(?:\.\d+)*|[A-Z](?:\.\d+)*)\b)?",
    re.IGNORECASE,
)

PLACEHOLDER_PATTERN = re.compile(r"\[\[REF_\d+\]\]")


def placeholder_for(index: int) -> str:
    return f"[[REF_{index}]]"


@dataclass(frozen=True)
class ProtectedToken:
    """Placeholder and the citation it stands for.

    Lives only for the duration of one normalization call.
    """
    placeholder: str
    original: str

    def __repr__(self) -> str:
        # Keep citation text out of logs and tracebacks
        return f"ProtectedToken(placeholder={self.placeholder!r})"


def protect(text: str) -> Tuple[str, List[ProtectedToken]]:
    """Replace regulatory citations with numbered placeholders.

    Args:
        text: Text that is about to leave the system

    Returns:
        Sanitized text and the placeholder-to-citation tokens, in order
    """
    tokens: List[ProtectedToken] = []

    def _swap(match: "re.Match[str]") -> str:
        token = ProtectedToken(
            placeholder=placeholder_for(len(tokens)),
            original=match.group(0)
        )
        tokens.append(token)
        return token.placeholder

    sanitized = REFERENCE_PATTERN.sub(_swap, text)
    return sanitized, tokens


def restore(text: str, tokens: Sequence[ProtectedToken]) -> str:
    """Put original citations back in place of their placeholders.

    Every copy of a placeholder the model repeated is restored. A placeholder
    the model dropped is not re-inserted, and any remaining placeholder-shaped
    text is removed so none can reach a reader.

    Args:
        text: Text returned by the model
        tokens: Tokens produced by protect() for the same call

    Returns:
        Text with citations restored
    """
    restored = text
    for token in tokens:
        restored = restored.replace(token.placeholder, token.original)

    return PLACEHOLDER_PATTERN.sub("", restored)
