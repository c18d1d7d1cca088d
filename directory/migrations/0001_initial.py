import django.core.validators
import django.db.models.deletion
from django.db import migrations, models

import directory.models


def score_field():
    return models.DecimalField(
        blank=True,
        decimal_places=2,
        max_digits=3,
        null=True,
        validators=[
            django.core.validators.MinValueValidator(0),
            django.core.validators.MaxValueValidator(1),
        ],
    )


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Region',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('slug', models.SlugField(max_length=100, unique=True)),
                ('country_code', models.CharField(max_length=2)),
                ('default_locale', models.CharField(default='en', max_length=10)),
                ('supported_locales', models.JSONField(default=directory.models.default_locales)),
                ('timezone', models.CharField(default='UTC', max_length=64)),
                ('active', models.BooleanField(default=True)),
                ('settings', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='Category',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('slug', models.SlugField(max_length=100, unique=True)),
                ('description', models.TextField(blank=True, default='')),
                ('enrichment_hints', models.TextField(
                    blank=True,
                    default='',
                    help_text='Category-specific analysis instructions added to the enrichment prompt',
                )),
            ],
            options={
                'ordering': ['name'],
                'verbose_name_plural': 'categories',
            },
        ),
        migrations.CreateModel(
            name='City',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('slug', models.SlugField(max_length=100)),
                ('province', models.CharField(blank=True, default='', max_length=255)),
                ('latitude', models.FloatField(blank=True, null=True)),
                ('longitude', models.FloatField(blank=True, null=True)),
                ('description', models.TextField(blank=True, default='')),
                ('region', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='cities',
                    to='directory.region',
                )),
            ],
            options={
                'ordering': ['name'],
                'verbose_name_plural': 'cities',
                'constraints': [
                    models.UniqueConstraint(fields=('region', 'slug'), name='city_region_slug_unique'),
                ],
            },
        ),
        migrations.CreateModel(
            name='CityTranslation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('locale', models.CharField(max_length=10)),
                ('description', models.TextField(blank=True, default='')),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('city', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='translations',
                    to='directory.city',
                )),
            ],
            options={
                'constraints': [
                    models.UniqueConstraint(fields=('city', 'locale'), name='city_translation_unique'),
                ],
            },
        ),
        migrations.CreateModel(
            name='CategoryTranslation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('locale', models.CharField(max_length=10)),
                ('name', models.CharField(blank=True, default='', max_length=255)),
                ('description', models.TextField(blank=True, default='')),
                ('enrichment_hints', models.TextField(
                    blank=True,
                    default='',
                    help_text='Locale-specific hints; take precedence over the category hints',
                )),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('category', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='translations',
                    to='directory.category',
                )),
            ],
            options={
                'constraints': [
                    models.UniqueConstraint(fields=('category', 'locale'), name='category_translation_unique'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Business',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('slug', models.SlugField(max_length=120)),
                ('address', models.CharField(blank=True, max_length=500, null=True)),
                ('phone', models.CharField(blank=True, max_length=100, null=True)),
                ('email', models.CharField(blank=True, max_length=255, null=True)),
                ('website', models.CharField(blank=True, max_length=500, null=True)),
                ('google_maps_url', models.CharField(blank=True, max_length=500, null=True)),
                ('latitude', models.FloatField(blank=True, null=True)),
                ('longitude', models.FloatField(blank=True, null=True)),
                ('opening_hours', models.JSONField(blank=True, null=True)),
                ('rating', models.DecimalField(blank=True, decimal_places=1, max_digits=2, null=True)),
                ('review_count', models.PositiveIntegerField(default=0)),
                ('status', models.CharField(
                    choices=[
                        ('pending', 'Pending'),
                        ('researching', 'Researching'),
                        ('researched', 'Researched'),
                        ('enriched', 'Enriched'),
                        ('verified', 'Verified'),
                        ('rejected', 'Rejected'),
                    ],
                    default='pending',
                    max_length=20,
                )),
                ('source', models.CharField(
                    choices=[
                        ('openstreetmap', 'OpenStreetMap'),
                        ('google_places', 'Google Places'),
                        ('discovery_crawl', 'Discovery Crawl'),
                        ('manual', 'Manual Entry'),
                    ],
                    default='manual',
                    max_length=20,
                )),
                ('source_id', models.CharField(
                    blank=True,
                    help_text='Identifier in the source catalog (e.g. OSM "node/123")',
                    max_length=100,
                    null=True,
                )),
                ('raw_data', models.JSONField(blank=True, default=dict)),
                ('description', models.TextField(blank=True, null=True)),
                ('summary', models.CharField(blank=True, max_length=500, null=True)),
                ('local_gem_score', score_field()),
                ('newcomer_friendly_score', score_field()),
                ('speaks_english', models.BooleanField(blank=True, null=True)),
                ('speaks_english_confidence', score_field()),
                ('languages_spoken', models.JSONField(blank=True, default=list)),
                ('languages_taught', models.JSONField(blank=True, default=list)),
                ('integration_tips', models.JSONField(blank=True, default=list)),
                ('cultural_notes', models.JSONField(blank=True, default=list)),
                ('service_specialties', models.JSONField(blank=True, default=list)),
                ('highlights', models.JSONField(blank=True, default=list)),
                ('warnings', models.JSONField(blank=True, default=list)),
                ('sentiment_summary', models.TextField(blank=True, null=True)),
                ('review_insights', models.JSONField(blank=True, null=True)),
                ('quality_score', score_field()),
                ('category_fit_score', score_field()),
                ('suggested_category_slug', models.CharField(blank=True, max_length=100, null=True)),
                ('last_enriched_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('category', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='businesses',
                    to='directory.category',
                )),
                ('city', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='businesses',
                    to='directory.city',
                )),
                ('region', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='businesses',
                    to='directory.region',
                )),
            ],
            options={
                'ordering': ['name'],
                'verbose_name_plural': 'businesses',
                'indexes': [
                    models.Index(fields=['region', 'status'], name='business_region_status_idx'),
                    models.Index(fields=['status', 'last_enriched_at'], name='business_enriched_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('city', 'slug'), name='business_city_slug_unique'),
                    models.UniqueConstraint(
                        condition=models.Q(source_id__isnull=False),
                        fields=('city', 'source', 'source_id'),
                        name='business_source_id_unique',
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name='ResearchBundle',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('kind', models.CharField(
                    choices=[('website', 'Website Crawl'), ('search', 'Web Search')],
                    max_length=20,
                )),
                ('data', models.JSONField(default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('business', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='research',
                    to='directory.business',
                )),
            ],
            options={
                'constraints': [
                    models.UniqueConstraint(fields=('business', 'kind'), name='research_bundle_unique'),
                ],
            },
        ),
        migrations.CreateModel(
            name='BusinessTranslation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('locale', models.CharField(max_length=10)),
                ('description', models.TextField(blank=True, null=True)),
                ('summary', models.CharField(blank=True, max_length=500, null=True)),
                ('highlights', models.JSONField(blank=True, default=list)),
                ('warnings', models.JSONField(blank=True, default=list)),
                ('integration_tips', models.JSONField(blank=True, default=list)),
                ('cultural_notes', models.JSONField(blank=True, default=list)),
                ('content_source', models.CharField(default='ai_generated', max_length=30)),
                ('source_locale', models.CharField(default='en', max_length=10)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('business', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='translations',
                    to='directory.business',
                )),
            ],
            options={
                'constraints': [
                    models.UniqueConstraint(fields=('business', 'locale'), name='business_translation_unique'),
                ],
            },
        ),
    ]
