"""
Root conftest for the directory pipeline test suite.

Handles:
- Django settings configuration (config.test_settings, in-memory SQLite)
- Shared fixtures for regions, cities, categories and businesses
- Fake AI, search and translation backends
"""

import os
from unittest.mock import MagicMock

import pytest

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.test_settings')


# ---------------------------------------------------------------------------
# Sample data fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def region(db):
    from directory.models import Region
    return Region.objects.create(
        name='Galicia',
        slug='galicia',
        country_code='ES',
        default_locale='en',
        supported_locales=['en', 'es', 'nl'],
        timezone='Europe/Madrid',
        settings={'local_media_sites': ['lavozdegalicia.es', 'farodevigo.es']},
    )


@pytest.fixture
def city(region):
    from directory.models import City
    return City.objects.create(
        region=region,
        name='Vigo',
        slug='vigo',
        province='Pontevedra',
        latitude=42.2406,
        longitude=-8.7207,
    )


@pytest.fixture
def category(db):
    from directory.models import Category
    return Category.objects.create(
        name='Restaurants',
        slug='restaurants',
        enrichment_hints='Look for menu del dia and whether the kitchen closes between services.',
    )


@pytest.fixture
def make_business(region, city, category):
    """Factory for businesses in the default region, city and category."""
    from directory.models import Business

    counter = {'n': 0}

    def _make(**overrides):
        counter['n'] += 1
        values = {
            'region': region,
            'city': city,
            'category': category,
            'name': f"Business {counter['n']:03d}",
            'slug': f"business-{counter['n']:03d}",
            'website': f"https://business{counter['n']}.example.com",
            'source': Business.Source.OPENSTREETMAP,
        }
        values.update(overrides)
        return Business.objects.create(**values)

    return _make


@pytest.fixture
def business(make_business):
    return make_business(
        name='Pulpería Rosalía',
        slug='pulperia-rosalia',
        website='https://pulperiarosalia.es',
        address='Rúa Real 12, 36202 Vigo',
        phone='+34 986 000 000',
    )


# ---------------------------------------------------------------------------
# Fake backends
# ---------------------------------------------------------------------------

@pytest.fixture
def pipeline_config():
    from directory.enrichment.config import PipelineConfig
    return PipelineConfig(environment='test', completion_backend='api', crawl_delay_seconds=0)


@pytest.fixture
def fake_completer():
    """Completer whose ``complete`` returns ``fake_completer.reply``."""
    completer = MagicMock()
    completer.reply = '{}'
    completer.complete.side_effect = lambda prompt, **kwargs: completer.reply
    return completer


class IdentityTranslator:
    """Translator that returns its input unchanged, recording each batch."""

    name = 'identity'

    def __init__(self):
        self.batches = []

    def translate(self, text, locale, source_lang='en'):
        return self.translate_batch([text], locale, source_lang)[0]

    def translate_batch(self, texts, locale, source_lang='en'):
        self.batches.append((list(texts), locale))
        return list(texts)


@pytest.fixture
def identity_translator():
    return IdentityTranslator()
