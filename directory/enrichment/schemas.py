"""
Pydantic schema for the enrichment reply.

The model is asked for one JSON object (see prompts.build_enrichment_prompt).
``EnrichmentReply`` coerces it into values the Business model accepts:

  - scores become Decimals with two places, clamped to [0, 1]
  - free-form language names become codes from LANGUAGE_CODES
  - arrays sent as null become []

Only the fields present in the reply end up in ``to_attrs()``, so a
reply that omits a field leaves the stored value untouched.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from directory.enrichment.errors import EnrichmentParseError

LANGUAGE_CODES = ("es", "en", "gl", "pt", "de", "fr", "nl", "it")

LANGUAGE_NAMES = {
    "spanish": "es",
    "english": "en",
    "galician": "gl",
    "galego": "gl",
    "portuguese": "pt",
    "german": "de",
    "french": "fr",
    "dutch": "nl",
    "nederlands": "nl",
    "italian": "it",
    "italiano": "it",
}

SCORE_FIELDS = (
    "local_gem_score",
    "newcomer_friendly_score",
    "speaks_english_confidence",
    "quality_score",
    "category_fit_score",
)

LIST_FIELDS = (
    "languages_taught",
    "integration_tips",
    "cultural_notes",
    "service_specialties",
    "highlights",
    "warnings",
)

TWO_PLACES = Decimal("0.01")


def normalize_language(value) -> Optional[str]:
    if not isinstance(value, str):
        return None
    lowered = value.strip().lower()
    for code in LANGUAGE_CODES:
        if lowered.startswith(code):
            return code
    return LANGUAGE_NAMES.get(lowered)


def parse_score(value) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        score = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not score.is_finite():
        return None
    score = min(max(score, Decimal(0)), Decimal(1))
    return score.quantize(TWO_PLACES)


# ────────────────────────────────────────────────────────────────
# Reply
# ────────────────────────────────────────────────────────────────

class EnrichmentReply(BaseModel):
    model_config = ConfigDict(extra="ignore")

    description: Optional[str] = None
    summary: Optional[str] = None
    local_gem_score: Optional[Decimal] = None
    newcomer_friendly_score: Optional[Decimal] = None
    speaks_english: Optional[bool] = None
    speaks_english_confidence: Optional[Decimal] = None
    languages_spoken: List[str] = []
    languages_taught: List[str] = []
    integration_tips: List[str] = []
    cultural_notes: List[str] = []
    service_specialties: List[str] = []
    highlights: List[str] = []
    warnings: List[str] = []
    sentiment_summary: Optional[str] = None
    review_insights: Optional[dict] = None
    quality_score: Optional[Decimal] = None
    category_fit_score: Optional[Decimal] = None
    suggested_category_slug: Optional[str] = None

    @field_validator(*SCORE_FIELDS, mode="before")
    @classmethod
    def coerce_score(cls, v):
        return parse_score(v)

    @field_validator("languages_spoken", mode="before")
    @classmethod
    def normalize_languages(cls, v):
        if not isinstance(v, list):
            return []
        codes = []
        for lang in v:
            code = normalize_language(lang)
            if code and code not in codes:
                codes.append(code)
        return codes

    @field_validator(*LIST_FIELDS, mode="before")
    @classmethod
    def coerce_string_list(cls, v):
        if not isinstance(v, list):
            return []
        return [str(item).strip() for item in v if item is not None and str(item).strip()]

    @field_validator("speaks_english", mode="before")
    @classmethod
    def coerce_bool(cls, v):
        if isinstance(v, bool) or v is None:
            return v
        if isinstance(v, str):
            lowered = v.strip().lower()
            if lowered in ("true", "yes"):
                return True
            if lowered in ("false", "no"):
                return False
        return None

    @field_validator("review_insights", mode="before")
    @classmethod
    def coerce_insights(cls, v):
        return v if isinstance(v, dict) else None

    @field_validator("description", "summary", "sentiment_summary", "suggested_category_slug", mode="before")
    @classmethod
    def coerce_text(cls, v):
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    @field_validator("summary")
    @classmethod
    def truncate_summary(cls, v):
        return v[:500] if v else v

    @field_validator("suggested_category_slug")
    @classmethod
    def truncate_slug(cls, v):
        return v[:100] if v else v

    def to_attrs(self) -> dict:
        """Business attributes for the fields the reply actually contained."""
        return self.model_dump(exclude_unset=True)


def parse_reply(data) -> EnrichmentReply:
    if not isinstance(data, dict):
        raise EnrichmentParseError('invalid_json', f"Expected a JSON object, got {type(data).__name__}")
    return EnrichmentReply.model_validate(data)
