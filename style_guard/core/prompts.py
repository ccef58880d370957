"""
Prompt construction for house-style normalization.

The system prompt is layered: role, absolute rules, tone preset, optional
custom guide, worked examples, spelling policy and the output contract.
"""

from typing import Dict, List, Optional

from ..config.style import MAX_CUSTOM_GUIDE_LENGTH, StyleConfiguration, StylePreset
from ..storage.models import NormalizableField

# Increment whenever prompt wording changes; stored on every suggestion
PROMPT_VERSION = "v1"

MAX_PROMPT_EXAMPLES = 5

PRESET_DESCRIPTIONS: Dict[StylePreset, str] = {
    StylePreset.FORMAL: (
        "Write in formal third-person language suitable for a UK council parks "
        "department inspection report.\n"
        "Use complete sentences, professional terminology, and measured assessments.\n"
        "Avoid colloquialisms, abbreviations, contractions, and subjective language.\n"
        'Example tone: "Corrosion observed on multiple chain links of the suspension '
        'system. Chain link integrity may be compromised."'
    ),
    StylePreset.TECHNICAL: (
        "Write in precise technical language suitable for an engineering assessment report.\n"
        "Use specific measurements, material descriptions, and failure mode terminology "
        "where applicable.\n"
        "Reference specific components by their technical names.\n"
        'Example tone: "Grade 316 stainless steel chain links exhibit surface oxidation '
        'consistent with atmospheric corrosion. Three links show >15% cross-sectional '
        'reduction."'
    ),
    StylePreset.PLAIN_ENGLISH: (
        "Write in clear, straightforward English suitable for a non-technical audience "
        "(e.g. school governors, parish councils).\n"
        "Avoid jargon. Explain what the defect means in practical terms.\n"
        "Use active voice and short sentences.\n"
        'Example tone: "Several chain links are rusty and weakened. The swing may not be '
        'safe to use until the chains are replaced."'
    ),
}

FIELD_CONTEXT: Dict[NormalizableField, str] = {
    NormalizableField.DEFECT_DESCRIPTION:
        "a defect description in a playground safety inspection report",
    NormalizableField.REMEDIAL_ACTION:
        "a recommended remedial action for a playground defect",
    NormalizableField.INSPECTOR_SUMMARY:
        "an inspector's summary of findings for a playground inspection report",
    NormalizableField.CONDITION_OBSERVATION:
        "an asset condition observation from a playground inspection",
}

_ABSOLUTE_RULES = """## ABSOLUTE RULES - NEVER VIOLATE

1. PRESERVE ALL FACTUAL CONTENT
   - Never add defects, findings, or observations not present in the original.
   - Never remove or downplay findings described in the original.
   - Never change the meaning, severity assessment, or technical substance.

2. PROTECTED TOKENS - DO NOT MODIFY
   - Any text in double square brackets like [[REF_0]], [[REF_1]] etc. is a protected reference.
   - Output them EXACTLY as they appear. Do not alter, remove, reformat, or reorder them.
   - They will be automatically restored to their original values after normalization.

3. DO NOT FABRICATE REFERENCES
   - Never add BS EN clause numbers, standards, or citations that were not in the original.
   - If the original mentions a standard vaguely, leave the reference as-is."""

_OUTPUT_FORMAT = """## OUTPUT FORMAT
Respond with ONLY a JSON object. No markdown fences, no preamble, no trailing text.

{
  "normalized_text": "The normalized version of the text",
  "diff_summary": "Brief 1-2 sentence summary of what was changed (e.g. 'Formalised tone, corrected spelling, restructured for clarity')",
  "no_changes_needed": false
}

If the original text already matches the house style perfectly, set no_changes_needed to true and return the original text unchanged as normalized_text."""


def build_system_prompt(style: StyleConfiguration, field_name: NormalizableField) -> str:
    """Build the layered system prompt for one field."""
    sections: List[str] = [
        "You are a professional text editor for a UK playground safety inspection platform.\n\n"
        f"Your task is to normalize {FIELD_CONTEXT[field_name]} to match the "
        "organization's house writing style.",
        _ABSOLUTE_RULES,
        "## WRITING STYLE\n\n" + PRESET_DESCRIPTIONS.get(
            style.style_preset, PRESET_DESCRIPTIONS[StylePreset.FORMAL]
        ),
    ]

    if style.custom_guide:
        sections.append(
            "## ADDITIONAL ORGANIZATION STYLE GUIDE\n"
            + style.custom_guide[:MAX_CUSTOM_GUIDE_LENGTH]
        )

    if style.examples:
        lines = [
            "## HOUSE STYLE EXAMPLES",
            "These show the organization's preferred phrasing. Match this tone and structure:",
        ]
        for example in style.examples[:MAX_PROMPT_EXAMPLES]:
            lines.append("")
            lines.append(f'Before: "{example.before}"')
            lines.append(f'After: "{example.after}"')
        sections.append("\n".join(lines))

    if style.correct_spelling_grammar:
        sections.append(
            "## SPELLING & GRAMMAR\n"
            "Correct spelling, grammar, and punctuation errors. Use British English "
            'spelling (e.g. "colour" not "color", "normalise" not "normalize").'
        )
    else:
        sections.append(
            "## SPELLING & GRAMMAR\n"
            "Preserve the inspector's original spelling and grammar. Only normalize "
            "tone and structure."
        )

    sections.append(_OUTPUT_FORMAT)
    return "\n\n".join(sections)


def build_user_prompt(
    field_name: NormalizableField,
    sanitized_text: str,
    asset_type: Optional[str] = None
) -> str:
    """Build the user message carrying the (already protected) text."""
    prompt = f"Normalize this {field_name.label}"
    if asset_type:
        prompt += f" (asset type: {asset_type.strip()[:100]})"
    return f'{prompt}:\n\n"""{sanitized_text}"""'
