"""
Response parsing for normalization completions.

Extracts the structured suggestion from raw model output. A malformed
response is a gateway failure that is not retried: the exchange succeeded,
only its content is unusable.
"""

import json
import re
from dataclasses import dataclass

from .errors import GatewayError

DEFAULT_DIFF_SUMMARY = "Text normalized to house style"

_OPENING_FENCE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_CLOSING_FENCE = re.compile(r"\s*```\s*$")


@dataclass(frozen=True)
class ParsedResponse:
    """Validated content of one model response."""
    normalized_text: str
    diff_summary: str
    no_changes_needed: bool


def strip_fences(raw: str) -> str:
    """Remove an optional markdown code fence around the payload."""
    cleaned = raw.strip()
    if cleaned.startswith("```"):
        cleaned = _OPENING_FENCE.sub("", cleaned)
        cleaned = _CLOSING_FENCE.sub("", cleaned)
    return cleaned


def parse_response(raw: str) -> ParsedResponse:
    """Parse and validate raw model output.

    Args:
        raw: Text content returned by the completion service

    Returns:
        ParsedResponse with a non-empty normalized text

    Raises:
        GatewayError: If the output is not a JSON object or lacks text
    """
    if not isinstance(raw, str) or not raw.strip():
        raise GatewayError("AI returned empty response")

    try:
        payload = json.loads(strip_fences(raw))
    except ValueError:
        raise GatewayError("AI returned invalid JSON for normalization")

    if not isinstance(payload, dict):
        raise GatewayError("AI response must be a JSON object")

    normalized_text = payload.get("normalized_text")
    normalized_text = normalized_text.strip() if isinstance(normalized_text, str) else ""
    if not normalized_text:
        raise GatewayError("AI returned empty normalized text")

    diff_summary = payload.get("diff_summary")
    if not isinstance(diff_summary, str) or not diff_summary.strip():
        diff_summary = DEFAULT_DIFF_SUMMARY

    return ParsedResponse(
        normalized_text=normalized_text,
        diff_summary=diff_summary.strip(),
        no_changes_needed=payload.get("no_changes_needed") is True
    )
