from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q


def default_locales():
    return ['en']


SCORE_VALIDATORS = [MinValueValidator(0), MaxValueValidator(1)]


class Region(models.Model):
    """
    A geographic market the directory covers (e.g. Galicia, Netherlands).

    ``settings`` may carry ``enrichment_context`` (language and cultural
    context for the enrichment prompt) and ``local_media_sites`` (domains
    used for the local-press web search query).
    """

    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=100, unique=True)
    country_code = models.CharField(max_length=2)
    default_locale = models.CharField(max_length=10, default='en')
    supported_locales = models.JSONField(default=default_locales)
    timezone = models.CharField(max_length=64, default='UTC')
    active = models.BooleanField(default=True)
    settings = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class City(models.Model):
    region = models.ForeignKey(Region, on_delete=models.CASCADE, related_name='cities')
    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=100)
    province = models.CharField(max_length=255, blank=True, default='')
    latitude = models.FloatField(null=True, blank=True)
    longitude = models.FloatField(null=True, blank=True)
    description = models.TextField(blank=True, default='')

    class Meta:
        ordering = ['name']
        verbose_name_plural = 'cities'
        constraints = [
            models.UniqueConstraint(fields=['region', 'slug'], name='city_region_slug_unique'),
        ]

    def __str__(self):
        return self.name


class CityTranslation(models.Model):
    city = models.ForeignKey(City, on_delete=models.CASCADE, related_name='translations')
    locale = models.CharField(max_length=10)
    description = models.TextField(blank=True, default='')
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['city', 'locale'], name='city_translation_unique'),
        ]


class Category(models.Model):
    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=100, unique=True)
    description = models.TextField(blank=True, default='')
    enrichment_hints = models.TextField(
        blank=True,
        default='',
        help_text='Category-specific analysis instructions added to the enrichment prompt',
    )

    class Meta:
        ordering = ['name']
        verbose_name_plural = 'categories'

    def __str__(self):
        return self.name


class CategoryTranslation(models.Model):
    category = models.ForeignKey(Category, on_delete=models.CASCADE, related_name='translations')
    locale = models.CharField(max_length=10)
    name = models.CharField(max_length=255, blank=True, default='')
    description = models.TextField(blank=True, default='')
    enrichment_hints = models.TextField(
        blank=True,
        default='',
        help_text='Locale-specific hints; take precedence over the category hints',
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['category', 'locale'], name='category_translation_unique'),
        ]


class Business(models.Model):
    """
    A candidate directory listing moving through the enrichment pipeline.
    """

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        RESEARCHING = 'researching', 'Researching'
        RESEARCHED = 'researched', 'Researched'
        ENRICHED = 'enriched', 'Enriched'
        VERIFIED = 'verified', 'Verified'
        REJECTED = 'rejected', 'Rejected'

    class Source(models.TextChoices):
        OPENSTREETMAP = 'openstreetmap', 'OpenStreetMap'
        GOOGLE_PLACES = 'google_places', 'Google Places'
        DISCOVERY_CRAWL = 'discovery_crawl', 'Discovery Crawl'
        MANUAL = 'manual', 'Manual Entry'

    region = models.ForeignKey(Region, on_delete=models.CASCADE, related_name='businesses')
    city = models.ForeignKey(City, on_delete=models.CASCADE, related_name='businesses')
    category = models.ForeignKey(
        Category,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='businesses',
    )

    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=120)
    address = models.CharField(max_length=500, null=True, blank=True)
    phone = models.CharField(max_length=100, null=True, blank=True)
    email = models.CharField(max_length=255, null=True, blank=True)
    website = models.CharField(max_length=500, null=True, blank=True)
    google_maps_url = models.CharField(max_length=500, null=True, blank=True)
    latitude = models.FloatField(null=True, blank=True)
    longitude = models.FloatField(null=True, blank=True)
    opening_hours = models.JSONField(null=True, blank=True)
    rating = models.DecimalField(max_digits=2, decimal_places=1, null=True, blank=True)
    review_count = models.PositiveIntegerField(default=0)

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
    )
    source = models.CharField(
        max_length=20,
        choices=Source.choices,
        default=Source.MANUAL,
    )
    source_id = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        help_text='Identifier in the source catalog (e.g. OSM "node/123")',
    )
    raw_data = models.JSONField(default=dict, blank=True)

    # Enrichment outputs
    description = models.TextField(null=True, blank=True)
    summary = models.CharField(max_length=500, null=True, blank=True)
    local_gem_score = models.DecimalField(
        max_digits=3, decimal_places=2, null=True, blank=True, validators=SCORE_VALIDATORS,
    )
    newcomer_friendly_score = models.DecimalField(
        max_digits=3, decimal_places=2, null=True, blank=True, validators=SCORE_VALIDATORS,
    )
    speaks_english = models.BooleanField(null=True, blank=True)
    speaks_english_confidence = models.DecimalField(
        max_digits=3, decimal_places=2, null=True, blank=True, validators=SCORE_VALIDATORS,
    )
    languages_spoken = models.JSONField(default=list, blank=True)
    languages_taught = models.JSONField(default=list, blank=True)
    integration_tips = models.JSONField(default=list, blank=True)
    cultural_notes = models.JSONField(default=list, blank=True)
    service_specialties = models.JSONField(default=list, blank=True)
    highlights = models.JSONField(default=list, blank=True)
    warnings = models.JSONField(default=list, blank=True)
    sentiment_summary = models.TextField(null=True, blank=True)
    review_insights = models.JSONField(null=True, blank=True)
    quality_score = models.DecimalField(
        max_digits=3, decimal_places=2, null=True, blank=True, validators=SCORE_VALIDATORS,
    )
    category_fit_score = models.DecimalField(
        max_digits=3, decimal_places=2, null=True, blank=True, validators=SCORE_VALIDATORS,
    )
    suggested_category_slug = models.CharField(max_length=100, null=True, blank=True)
    last_enriched_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']
        verbose_name_plural = 'businesses'
        constraints = [
            models.UniqueConstraint(fields=['city', 'slug'], name='business_city_slug_unique'),
            models.UniqueConstraint(
                fields=['city', 'source', 'source_id'],
                condition=Q(source_id__isnull=False),
                name='business_source_id_unique',
            ),
        ]
        indexes = [
            models.Index(fields=['region', 'status'], name='business_region_status_idx'),
            models.Index(fields=['status', 'last_enriched_at'], name='business_enriched_idx'),
        ]

    def __str__(self):
        return f"{self.name} ({self.status})"

    @property
    def has_website(self) -> bool:
        return bool(self.website and self.website.strip())


class ResearchBundle(models.Model):
    """
    Research gathered before enrichment: one row per (business, kind),
    overwritten on every re-run.
    """

    class Kind(models.TextChoices):
        WEBSITE = 'website', 'Website Crawl'
        SEARCH = 'search', 'Web Search'

    business = models.ForeignKey(Business, on_delete=models.CASCADE, related_name='research')
    kind = models.CharField(max_length=20, choices=Kind.choices)
    data = models.JSONField(default=dict)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['business', 'kind'], name='research_bundle_unique'),
        ]

    @classmethod
    def store(cls, business, kind: str, data: dict) -> 'ResearchBundle':
        bundle, _ = cls.objects.update_or_create(
            business=business,
            kind=kind,
            defaults={'data': data},
        )
        return bundle

    @classmethod
    def load(cls, business_id: int, kind: str):
        bundle = cls.objects.filter(business_id=business_id, kind=kind).first()
        return bundle.data if bundle else None


class BusinessTranslation(models.Model):
    business = models.ForeignKey(Business, on_delete=models.CASCADE, related_name='translations')
    locale = models.CharField(max_length=10)
    description = models.TextField(null=True, blank=True)
    summary = models.TextField(null=True, blank=True)
    highlights = models.JSONField(default=list, blank=True)
    warnings = models.JSONField(default=list, blank=True)
    integration_tips = models.JSONField(default=list, blank=True)
    cultural_notes = models.JSONField(default=list, blank=True)
    content_source = models.CharField(max_length=30, default='ai_generated')
    source_locale = models.CharField(max_length=10, default='en')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['business', 'locale'], name='business_translation_unique'),
        ]

    def __str__(self):
        return f"{self.business_id}:{self.locale}"
