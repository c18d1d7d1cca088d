from django.contrib import admin

from directory.models import (
    Business,
    BusinessTranslation,
    Category,
    CategoryTranslation,
    City,
    CityTranslation,
    Region,
    ResearchBundle,
)
from directory.status import reject
from directory.workers.enrich import EnrichBusinessWorker
from directory.workers.website_crawl import WebsiteCrawlWorker


@admin.register(Region)
class RegionAdmin(admin.ModelAdmin):
    list_display = ('name', 'slug', 'country_code', 'default_locale', 'active')
    list_filter = ('active',)
    prepopulated_fields = {'slug': ('name',)}


class CityTranslationInline(admin.TabularInline):
    model = CityTranslation
    extra = 0


@admin.register(City)
class CityAdmin(admin.ModelAdmin):
    list_display = ('name', 'region', 'province', 'latitude', 'longitude')
    list_filter = ('region',)
    search_fields = ('name',)
    inlines = [CityTranslationInline]


class CategoryTranslationInline(admin.TabularInline):
    model = CategoryTranslation
    extra = 0


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ('name', 'slug')
    search_fields = ('name', 'slug')
    inlines = [CategoryTranslationInline]


class BusinessTranslationInline(admin.StackedInline):
    model = BusinessTranslation
    extra = 0


@admin.register(Business)
class BusinessAdmin(admin.ModelAdmin):
    list_display = ('name', 'city', 'category', 'status', 'source', 'quality_score', 'last_enriched_at')
    list_filter = ('status', 'source', 'region')
    search_fields = ('name', 'website')
    readonly_fields = ('raw_data', 'last_enriched_at', 'created_at', 'updated_at')
    inlines = [BusinessTranslationInline]
    actions = ['queue_research', 'queue_enrichment', 'reject_businesses']

    @admin.action(description="Queue research for selected businesses")
    def queue_research(self, request, queryset):
        queued = sum(
            0 if WebsiteCrawlWorker.enqueue({'business_id': pk}).conflict else 1
            for pk in queryset.values_list('pk', flat=True)
        )
        self.message_user(request, f"Queued research for {queued} business(es)")

    @admin.action(description="Queue enrichment for selected businesses")
    def queue_enrichment(self, request, queryset):
        queued = sum(
            0 if EnrichBusinessWorker.enqueue({'business_id': pk}).conflict else 1
            for pk in queryset.values_list('pk', flat=True)
        )
        self.message_user(request, f"Queued enrichment for {queued} business(es)")

    @admin.action(description="Reject selected businesses")
    def reject_businesses(self, request, queryset):
        rejected = sum(1 for business in queryset if reject(business))
        self.message_user(request, f"Rejected {rejected} business(es)")


@admin.register(ResearchBundle)
class ResearchBundleAdmin(admin.ModelAdmin):
    list_display = ('business', 'kind', 'updated_at')
    list_filter = ('kind',)
    raw_id_fields = ('business',)
