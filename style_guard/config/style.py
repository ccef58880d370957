"""
Organization style configuration.

Converts the loosely-typed settings blob stored per organization into a
fully-defaulted StyleConfiguration. Resolution never fails: every missing or
invalid field falls back to its default.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Mapping, Optional, Tuple

from ..core.pricing import ModelTier

SETTINGS_KEY = "normalization"

DEFAULT_MONTHLY_TOKEN_BUDGET = 500_000
MAX_CUSTOM_GUIDE_LENGTH = 2000
MAX_STYLE_EXAMPLES = 10


class StylePreset(Enum):
    """Tone presets for normalized text."""
    FORMAL = "formal"
    TECHNICAL = "technical"
    PLAIN_ENGLISH = "plain_english"


@dataclass(frozen=True)
class StyleExample:
    """One before/after pair showing the house style."""
    before: str
    after: str


@dataclass(frozen=True)
class StyleConfiguration:
    """Resolved, organization-specific normalization ruleset."""
    enabled: bool = False
    style_preset: StylePreset = StylePreset.FORMAL
    custom_guide: Optional[str] = None
    examples: Tuple[StyleExample, ...] = ()
    correct_spelling_grammar: bool = True
    require_review_before_export: bool = True
    monthly_token_budget: int = DEFAULT_MONTHLY_TOKEN_BUDGET
    model_preference: ModelTier = ModelTier.HAIKU


DEFAULT_STYLE_CONFIG = StyleConfiguration()


def _enum_or_default(enum_cls, value: Any, default):
    if not isinstance(value, str):
        return default
    try:
        return enum_cls(value)
    except ValueError:
        return default


def _parse_examples(value: Any) -> Tuple[StyleExample, ...]:
    if not isinstance(value, list):
        return ()

    examples: List[StyleExample] = []
    for item in value:
        if not isinstance(item, Mapping):
            continue
        before = item.get("before")
        after = item.get("after")
        if isinstance(before, str) and isinstance(after, str):
            examples.append(StyleExample(before=before, after=after))
        if len(examples) == MAX_STYLE_EXAMPLES:
            break
    return tuple(examples)


def _parse_budget(value: Any) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_MONTHLY_TOKEN_BUDGET
    if isinstance(value, float) and not math.isfinite(value):
        return DEFAULT_MONTHLY_TOKEN_BUDGET
    if value <= 0:
        return DEFAULT_MONTHLY_TOKEN_BUDGET
    return int(value)


def resolve_style_config(raw_settings: Any) -> StyleConfiguration:
    """Resolve an organization settings blob into a StyleConfiguration.

    Reads the ``normalization`` section of the blob. Unknown enum values,
    wrong types and missing keys fall back to defaults silently.

    Args:
        raw_settings: Organization settings blob, typically decoded JSON

    Returns:
        A fully-defaulted StyleConfiguration
    """
    if not isinstance(raw_settings, Mapping):
        return DEFAULT_STYLE_CONFIG

    settings = raw_settings.get(SETTINGS_KEY)
    if not isinstance(settings, Mapping):
        return DEFAULT_STYLE_CONFIG

    custom_guide = settings.get("custom_guide")
    if isinstance(custom_guide, str) and custom_guide.strip():
        custom_guide = custom_guide[:MAX_CUSTOM_GUIDE_LENGTH]
    else:
        custom_guide = None

    return StyleConfiguration(
        enabled=settings.get("enabled") is True,
        style_preset=_enum_or_default(
            StylePreset, settings.get("style_preset"), StylePreset.FORMAL
        ),
        custom_guide=custom_guide,
        examples=_parse_examples(settings.get("examples")),
        correct_spelling_grammar=settings.get("correct_spelling_grammar") is not False,
        require_review_before_export=settings.get("require_review_before_export") is not False,
        monthly_token_budget=_parse_budget(settings.get("monthly_token_budget")),
        model_preference=_enum_or_default(
            ModelTier, settings.get("model_preference"), ModelTier.HAIKU
        ),
    )
