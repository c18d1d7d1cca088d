"""
Enrichment prompt assembly.

The prompt combines the business record, the region's language and
cultural context, any research bundles (website crawl, web search) and
category hints, and asks for a single JSON object back.
"""

import json
from dataclasses import dataclass
from typing import List, Optional

from directory.models import Business, Category, CategoryTranslation, ResearchBundle

MAX_REVIEWS = 10
MAX_WEBSITE_CHARS = 8000
MAX_HEADINGS = 15
MAX_TESTIMONIALS = 3
MAX_TESTIMONIAL_CHARS = 200
MAX_SEARCH_RESULTS = 3
MAX_SNIPPET_CHARS = 200

# Used when a region has no settings["enrichment_context"]
FALLBACK_CONTEXT = {
    "galicia": {
        "name": "Galicia",
        "country": "Spain",
        "main_language": "Spanish",
        "local_language": "Galician (Galego)",
        "language_code": "es",
        "local_greeting": "Bos días",
        "cultural_examples": [
            "Pulperías are central to Galician social life",
            "The siesta is real - many shops close 2-5pm",
            "Tapas are often free with drinks",
            "Galicians value personal relationships - expect friendly chat",
        ],
        "food_examples": "pulpo, tapas, marisquería",
        "typical_business": "traditional family-run tapas bar",
    },
    "netherlands": {
        "name": "Netherlands",
        "country": "Netherlands",
        "main_language": "Dutch",
        "local_language": None,
        "language_code": "nl",
        "local_greeting": "Hoi or Goedemorgen",
        "cultural_examples": [
            "Dutch directness is normal - it's not rude, just honest",
            "Most shops close early (17:00-18:00) and on Sundays",
            "Appointments are everything - always book ahead",
            "Splitting the bill (going Dutch) is completely normal",
        ],
        "food_examples": "stroopwafels, bitterballen, Indonesian food",
        "typical_business": "local family bakery or brown café (bruin café)",
    },
}

OSM_HINT_LABELS = {
    "cuisine": "Cuisine type",
    "description": "OSM description",
    "operator": "Operator/owner",
    "wheelchair": "Wheelchair accessibility",
    "takeaway": "Takeaway available",
    "delivery": "Delivery available",
    "outdoor_seating": "Outdoor seating",
    "internet_access": "Internet access",
}


@dataclass
class ResearchData:
    website: Optional[dict] = None
    search: Optional[dict] = None

    @property
    def has_data(self) -> bool:
        return self.website is not None or self.search is not None


def load_research(business_id: int) -> ResearchData:
    return ResearchData(
        website=ResearchBundle.load(business_id, ResearchBundle.Kind.WEBSITE),
        search=ResearchBundle.load(business_id, ResearchBundle.Kind.SEARCH),
    )


def region_context(business: Business) -> dict:
    region = business.region
    ctx = (region.settings or {}).get("enrichment_context")
    if isinstance(ctx, dict) and ctx:
        return ctx
    return FALLBACK_CONTEXT.get(region.slug, FALLBACK_CONTEXT["galicia"])


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

def has_reviews(business: Business) -> bool:
    raw = business.raw_data or {}
    text = raw.get("reviews_text")
    if isinstance(text, str) and text:
        return True
    reviews = raw.get("reviews")
    return isinstance(reviews, list) and len(reviews) > 0


def reviews_text(business: Business) -> str:
    raw = business.raw_data or {}
    text = raw.get("reviews_text")
    if isinstance(text, str) and text:
        return text
    reviews = raw.get("reviews")
    if isinstance(reviews, list) and reviews:
        lines = []
        for review in reviews[:MAX_REVIEWS]:
            lang = review.get("language") or "unknown"
            author = review.get("author") or "Anonymous"
            rating = review.get("rating") or "?"
            lines.append(f"[{lang}] {author} ({rating}★): {review.get('text') or ''}")
        return "\n---\n".join(lines)
    return "No reviews available."


def reviews_section(business: Business) -> str:
    if has_reviews(business):
        return f"## CUSTOMER REVIEWS (from Google)\n{reviews_text(business)}\n"
    return (
        "## NO CUSTOMER REVIEWS AVAILABLE\n"
        "This business has no Google reviews yet. This is common for many good local businesses.\n"
        "IMPORTANT: Do NOT mention the absence of reviews in the description, summary, warnings, or highlights.\n"
        "Instead, focus on what you DO know: the business type, location, category, website content, "
        "and any other available information.\n"
        "Write the description as if you're describing a real place based on what it IS, not what data is missing.\n"
        "Leave review_insights as null, sentiment_summary as null, and highlights as an empty array [].\n"
    )


def _schema_value(value) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, list):
        return ", ".join(_schema_value(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False)
    return repr(value)


def format_structured_data(items) -> str:
    if not items:
        return ""
    blocks = []
    for item in items:
        blocks.append("\n".join(
            f"  {key}: {_schema_value(value)}" for key, value in item.items() if value is not None
        ))
    return "\n### Structured Data (schema.org):\n" + "\n---\n".join(blocks) + "\n"


def format_social_proof(proof) -> str:
    if not proof:
        return ""
    testimonials = proof.get("testimonials") or []
    awards = proof.get("awards") or []
    if not testimonials and not awards:
        return ""
    parts = []
    if awards:
        parts.append(f"**Awards/Certifications**: {'; '.join(awards)}")
    if testimonials:
        quoted = "\n".join(f"  > {t[:MAX_TESTIMONIAL_CHARS]}" for t in testimonials[:MAX_TESTIMONIALS])
        parts.append(f"**Customer Testimonials**:\n{quoted}")
    return "\n### Social Proof:\n" + "\n".join(parts) + "\n"


def format_website_research(data: Optional[dict]) -> str:
    if not data:
        return ""
    pages = data.get("pages") or []
    if not pages:
        return ""

    content = "\n\n".join(p.get("content") or "" for p in pages)[:MAX_WEBSITE_CHARS]
    headings: List[str] = []
    for page in pages:
        for heading in page.get("headings") or []:
            if heading not in headings:
                headings.append(heading)
    english_note = (
        "YES - website has English version available!"
        if data.get("has_english_version") else "No English version detected"
    )
    return (
        f"\n## WEBSITE CONTENT ({len(pages)} pages crawled)\n"
        f"**English version available**: {english_note}\n"
        f"**Key sections/headings**: {', '.join(headings[:MAX_HEADINGS])}\n"
        f"{format_structured_data(data.get('structured_data'))}"
        f"{format_social_proof(data.get('social_proof'))}"
        f"\n### Website Text:\n{content}\n"
    )


def format_search_research(data: Optional[dict]) -> str:
    if not data:
        return ""
    queries = data.get("queries") or []
    if not queries:
        return ""
    blocks = []
    for entry in queries:
        lines = [
            f"- [{r.get('title')}]({r.get('url')}): {(r.get('content') or '')[:MAX_SNIPPET_CHARS]}..."
            for r in (entry.get("results") or [])[:MAX_SEARCH_RESULTS]
        ]
        blocks.append(f"**Search: \"{entry.get('query')}\"**\n" + "\n".join(lines) + "\n")
    return "\n## EXTERNAL SOURCES (Web Search Results)\n" + "\n".join(blocks)


def category_hints(business: Business, locale: Optional[str]) -> Optional[str]:
    """Locale-specific category hints win over the category's generic hints."""
    if not business.category_id:
        return None
    if locale:
        translation = CategoryTranslation.objects.filter(
            category_id=business.category_id, locale=locale,
        ).first()
        if translation and translation.enrichment_hints:
            return translation.enrichment_hints
    return business.category.enrichment_hints or None


def format_osm_hints(business: Business) -> str:
    hints = (business.raw_data or {}).get("extracted_hints") or {}
    lines = []
    for key, value in hints.items():
        if key in OSM_HINT_LABELS:
            lines.append(f"- {OSM_HINT_LABELS[key]}: {value}")
        elif key == "brand":
            lines.append(f"- Brand/chain: {value} (likely NOT a local gem)")
        elif key == "cash_only" and value is True:
            lines.append("- Payment: CASH ONLY (add this to warnings!)")
        elif key == "diet_options":
            lines.append(f"- Diet options: {', '.join(value)}")
        elif key == "social_media":
            lines.extend(f"- Social media ({platform}): {url}" for platform, url in value.items())
    if not lines:
        return ""
    return "\n## ADDITIONAL BUSINESS DETAILS (from OpenStreetMap)\n" + "\n".join(lines) + "\n"


def hints_section(business: Business, locale: Optional[str]) -> str:
    hints = category_hints(business, locale)
    category_part = f"\n## CATEGORY-SPECIFIC ANALYSIS INSTRUCTIONS\n{hints}\n" if hints else ""
    return category_part + format_osm_hints(business)


def place_types(business: Business) -> str:
    types = (business.raw_data or {}).get("types")
    if isinstance(types, list) and types:
        return ", ".join(str(t) for t in types[:5])
    return "Not specified"


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

def build_enrichment_prompt(
    business: Business,
    research: ResearchData,
    category_slugs: Optional[List[str]] = None,
) -> str:
    ctx = region_context(business)
    region_name = ctx.get("name") or business.region.name
    country = ctx.get("country") or region_name
    main_lang = ctx.get("main_language") or "the local language"
    local_lang = ctx.get("local_language")
    greeting = ctx.get("local_greeting") or "Hello"
    typical_biz = ctx.get("typical_business") or "family-run local business"
    language_code = ctx.get("language_code") or business.region.default_locale
    cultural_examples = "\n    - ".join(ctx.get("cultural_examples") or [])

    location = region_name if region_name == country else f"{region_name}, {country}"
    category_name = business.category.name if business.category_id else "Unknown"
    city_name = business.city.name if business.city_id else "Unknown"
    rating_line = (
        f"- Rating: {business.rating}/5 ({business.review_count or 0} reviews)" if business.rating else ""
    )
    if category_slugs is None:
        category_slugs = list(Category.objects.order_by("slug").values_list("slug", flat=True))
    taught_example = f'"{main_lang}"' + (f', "{local_lang}"' if local_lang else "")

    return f"""You are an analyst for a directory helping newcomers INTEGRATE into local life in {region_name}.

IMPORTANT PHILOSOPHY:
We're NOT creating an "expat bubble" service. We help newcomers:
- Discover authentic local businesses in {region_name}
- Learn to navigate services with basic {main_lang} (most locals are friendly and patient!)
- Understand and respect local customs and culture
- Connect WITH locals, not avoid them

A {typical_biz} where nobody speaks English but the owner helps you point-and-order
is MORE valuable than a tourist trap with English menus. We celebrate authenticity.

## BUSINESS INFORMATION
- Name: {business.name}
- Category: {category_name}
- City: {city_name}, {location}
- Address: {business.address or "Not provided"}
- Phone: {business.phone or "Not provided"}
- Website: {business.website or "Not provided"}
{rating_line}
- Place Types: {place_types(business)}

{reviews_section(business)}
{format_website_research(research.website)}
{format_search_research(research.search)}
{hints_section(business, language_code)}

## ANALYSIS - Provide JSON with these fields:

```json
{{
  "description": "2-3 sentences in English. Focus on what makes this place valuable - whether that's professional expertise, authentic local character, or both. Don't mention language barriers as negatives. NEVER mention the absence of reviews or that data is limited - write confidently about what the business IS based on its name, category, location, and any available info.",

  "summary": "One sentence (max 100 chars) capturing the essence. Never reference reviews or lack thereof.",

  "local_gem_score": 0.0-1.0,
  "local_gem_reasoning": "How authentically local is this? Family-run? Traditional? Local clientele?",

  "newcomer_friendly_score": 0.0-1.0,
  "newcomer_friendly_reasoning": "Can someone with basic {main_lang} and willingness to try manage here? (High score = easy, but doesn't mean it's 'better')",

  "speaks_english": true/false,
  "speaks_english_confidence": 0.0-1.0,
  "languages_spoken": ["{language_code}", "en", etc.],

  "languages_taught": [{taught_example}, "English", etc.],
  // ONLY for language schools/academies. What languages does this school TEACH?
  // For non-language-school businesses, return an empty array [].

  "integration_tips": [
    "Tip to help newcomers connect with locals",
    "Practical tip that respects local customs"
  ],

  "cultural_notes": [
    "Local cultural context for {region_name}",
    "Local custom to know"
  ],

  "service_specialties": [
    "Specific expertise or specialty mentioned in reviews"
  ],

  "highlights": [
    "What reviewers consistently praise - leave EMPTY [] if no reviews exist"
  ],

  "warnings": [
    "Practical warnings only (cash only, closed Mondays, etc.) - NOT 'staff don't speak English' and NEVER 'no reviews available' or 'unverified'"
  ],

  "sentiment_summary": "Brief overall sentiment from reviews, or null if no reviews",

  "review_insights": {{
    "common_praise": ["Theme 1", "Theme 2"],
    "common_concerns": ["Concern 1 if any - practical issues only"],
    "notable_quotes": ["Best illustrative quote"],
    "reviewer_demographics": "Who reviews this? Locals? Visitors? Mix?"
  }},
  // Set review_insights to null if there are no reviews. Do NOT fabricate review data.

  "quality_score": 0.0-1.0,

  "category_fit_score": 0.0-1.0,
  // How well does this business fit the category "{category_name}"?
  // 0.9-1.0: Perfect fit. 0.5-0.8: Reasonable fit. Below 0.5: Wrong category.

  "suggested_category_slug": null or "slug-string"
  // IMPORTANT: If category_fit_score < 0.5, you MUST set this to the best matching slug from: {", ".join(category_slugs)}
  // If category_fit_score >= 0.5, set to null.
  // If no category fits at all, pick the closest match anyway.
}}
```

## SCORING GUIDELINES

**local_gem_score** (authenticity):
- 0.9-1.0: Truly local institution, family-run, mostly local clientele, traditional
- 0.6-0.8: Local business with good reputation, serves community
- 0.3-0.5: Professional service, not specifically "local character"
- 0.0-0.2: Chain/franchise or primarily tourist-oriented

**newcomer_friendly_score** (accessibility, NOT "better"):
- 0.9-1.0: Easy for non-{main_lang} speakers (but might be less authentic!)
- 0.6-0.8: Manageable with basic {main_lang} and pointing
- 0.3-0.5: Helpful to speak decent {main_lang}
- 0.0-0.2: Really need good {main_lang} (but might be an amazing local gem!)

NOTE: A low newcomer_friendly_score is NOT negative! It means "bring a {main_lang}-speaking friend" or "great opportunity to practice {main_lang}" - we frame this positively.

**integration_tips** should help newcomers CONNECT with locals:
- "The owner loves talking about local specialties - ask for recommendations"
- "This is where locals watch football - great way to make friends"
- "Bring cash and try ordering in {main_lang} - they appreciate the effort"
- NOT "they speak English" or "tourist-friendly"

**cultural_notes** teach local culture in {region_name}:
    - {cultural_examples}
    - Try greeting with '{greeting}'!

Respond ONLY with valid JSON. No markdown code blocks.
"""
