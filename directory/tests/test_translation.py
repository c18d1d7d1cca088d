"""
Tests for translation backends, field batching and the TranslateWorker.
"""

import os
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.test_settings')

import json
from unittest.mock import patch

import httpx
import pytest

from directory.enrichment.config import PipelineConfig
from directory.enrichment.errors import CompletionError, TranslationError
from directory.enrichment.translation import (
    ClaudeTranslator,
    DeepLTranslator,
    build_translator,
    translate_fields,
)
from directory.models import BusinessTranslation, CategoryTranslation, CityTranslation
from directory.workers.translate import TranslateWorker, collect_fields, translate_entity
from jobs.models import Job
from jobs.workers import DiscardJob


class UpperTranslator:
    name = 'upper'

    def translate(self, text, locale, source_lang='en'):
        return text.upper()

    def translate_batch(self, texts, locale, source_lang='en'):
        return [t.upper() for t in texts]


# =============================================================================
# translate_fields
# =============================================================================

class TestTranslateFields:

    def test_identity_round_trip(self, identity_translator):
        fields = {
            'description': 'A pulpería by the port.',
            'highlights': ['Octopus', 'Albariño'],
            'summary': 'Octopus house',
            'warnings': ['Cash only'],
        }
        assert translate_fields(identity_translator, fields, 'es') == fields

    def test_single_batch_scalars_first(self, identity_translator):
        translate_fields(identity_translator, {'tips': ['a', 'b'], 'summary': 's'}, 'nl')
        assert identity_translator.batches == [(['s', 'a', 'b'], 'nl')]

    def test_list_lengths_preserved(self):
        result = translate_fields(UpperTranslator(), {'highlights': ['a', 'b'], 'warnings': ['c']}, 'es')
        assert result == {'highlights': ['A', 'B'], 'warnings': ['C']}

    def test_nothing_to_translate(self, identity_translator):
        assert translate_fields(identity_translator, {}, 'es') == {}
        assert identity_translator.batches == []

    def test_count_mismatch(self):
        class Short:
            def translate_batch(self, texts, locale, source_lang='en'):
                return texts[:-1]

        with pytest.raises(TranslationError) as exc_info:
            translate_fields(Short(), {'a': 'x', 'b': 'y'}, 'es')
        assert exc_info.value.reason == 'unexpected_response'


# =============================================================================
# DeepL
# =============================================================================

class TestDeepLTranslator:

    def test_no_key_returns_input(self):
        assert DeepLTranslator('').translate_batch(['Hello'], 'es') == ['Hello']

    def test_no_key_in_production(self):
        with pytest.raises(TranslationError) as exc_info:
            DeepLTranslator('', production=True).translate('Hello', 'es')
        assert exc_info.value.reason == 'not_configured'

    def test_free_key_uses_free_host(self):
        assert DeepLTranslator('abc:fx').url == DeepLTranslator.FREE_API_URL
        assert DeepLTranslator('abc').url == DeepLTranslator.API_URL

    @patch('directory.enrichment.translation.httpx.post')
    def test_batch_request(self, mock_post):
        mock_post.return_value = httpx.Response(200, json={
            'translations': [{'text': 'Hola'}, {'text': 'Solo efectivo'}],
        })
        result = DeepLTranslator('key').translate_batch(['Hello', 'Cash only'], 'es', source_lang='en')
        assert result == ['Hola', 'Solo efectivo']

        kwargs = mock_post.call_args[1]
        assert kwargs['json'] == {'text': ['Hello', 'Cash only'], 'target_lang': 'ES', 'source_lang': 'EN'}
        assert kwargs['headers']['Authorization'] == 'DeepL-Auth-Key key'

    @patch('directory.enrichment.translation.httpx.post')
    def test_regional_target(self, mock_post):
        mock_post.return_value = httpx.Response(200, json={'translations': [{'text': 'Olá'}]})
        DeepLTranslator('key').translate('Hello', 'pt', source_lang='pt')
        body = mock_post.call_args[1]['json']
        assert body['target_lang'] == 'PT-PT'
        assert body['source_lang'] == 'PT'

    @patch('directory.enrichment.translation.httpx.post')
    def test_api_error(self, mock_post):
        mock_post.return_value = httpx.Response(403, text='Forbidden')
        with pytest.raises(TranslationError) as exc_info:
            DeepLTranslator('key').translate('Hello', 'es')
        assert exc_info.value.reason == 'api_error'
        assert exc_info.value.transient is False
        assert mock_post.call_count == 1

    @patch('directory.enrichment.translation.httpx.post')
    def test_wrong_count(self, mock_post):
        mock_post.return_value = httpx.Response(200, json={'translations': []})
        with pytest.raises(TranslationError) as exc_info:
            DeepLTranslator('key').translate('Hello', 'es')
        assert exc_info.value.reason == 'unexpected_response'


# =============================================================================
# Claude
# =============================================================================

class TestClaudeTranslator:

    def test_indexed_payload_round_trip(self, fake_completer):
        fake_completer.reply = '```json\n{"0": "Hola", "1": "Adiós"}\n```'
        assert ClaudeTranslator(fake_completer).translate_batch(['Hello', 'Bye'], 'es') == ['Hola', 'Adiós']

        prompt = fake_completer.complete.call_args[0][0]
        assert 'from English to Spanish (es)' in prompt
        assert '{"0": "Hello", "1": "Bye"}' in prompt

    def test_missing_key(self, fake_completer):
        fake_completer.reply = '{"0": "Hola"}'
        with pytest.raises(TranslationError) as exc_info:
            ClaudeTranslator(fake_completer).translate_batch(['Hello', 'Bye'], 'es')
        assert exc_info.value.reason == 'unexpected_response'

    def test_not_json(self, fake_completer):
        fake_completer.reply = 'Hola'
        with pytest.raises(TranslationError) as exc_info:
            ClaudeTranslator(fake_completer).translate('Hello', 'es')
        assert exc_info.value.reason == 'unexpected_response'

    def test_completion_error_keeps_reason(self, fake_completer):
        fake_completer.complete.side_effect = CompletionError('timeout', 'slow')
        with pytest.raises(TranslationError) as exc_info:
            ClaudeTranslator(fake_completer).translate('Hello', 'es')
        assert exc_info.value.reason == 'timeout'
        assert exc_info.value.transient is True


class TestBuildTranslator:

    def test_deepl_default(self):
        translator = build_translator(PipelineConfig(translation_backend='deepl', deepl_api_key='k'))
        assert isinstance(translator, DeepLTranslator)

    def test_claude_requested(self, fake_completer):
        translator = build_translator(PipelineConfig(translation_backend='claude'), completer=fake_completer)
        assert isinstance(translator, ClaudeTranslator)
        assert translator.completer is fake_completer

    @patch('directory.enrichment.config.shutil.which', return_value=None)
    def test_auto_without_cli(self, _which):
        translator = build_translator(PipelineConfig(translation_backend='auto', enable_cli=True))
        assert isinstance(translator, DeepLTranslator)

    @patch('directory.enrichment.config.shutil.which', return_value='/usr/bin/claude')
    def test_auto_with_cli(self, _which):
        translator = build_translator(PipelineConfig(translation_backend='auto', enable_cli=True))
        assert isinstance(translator, ClaudeTranslator)


# =============================================================================
# translate_entity / TranslateWorker
# =============================================================================

@pytest.mark.django_db
class TestTranslateEntity:

    def _enriched(self, business):
        business.description = 'A pulpería by the port.'
        business.summary = 'Octopus house'
        business.highlights = ['Octopus']
        business.warnings = []
        business.save()
        return business

    def test_collect_fields_skips_empty(self, business):
        self._enriched(business)
        fields = collect_fields(business, ('description', 'summary', 'highlights', 'warnings', 'cultural_notes'))
        assert set(fields) == {'description', 'summary', 'highlights'}

    def test_business_upsert(self, business, pipeline_config):
        self._enriched(business)
        assert translate_entity('business', business.pk, 'es', UpperTranslator(), pipeline_config) is True

        row = BusinessTranslation.objects.get(business=business, locale='es')
        assert row.description == 'A PULPERÍA BY THE PORT.'
        assert row.summary == 'OCTOPUS HOUSE'
        assert row.highlights == ['OCTOPUS']
        assert row.warnings == []
        assert row.source_locale == 'en'

        business.summary = 'Octopus and wine'
        business.save()
        translate_entity('business', business.pk, 'es', UpperTranslator(), pipeline_config)
        assert BusinessTranslation.objects.filter(business=business, locale='es').count() == 1
        assert BusinessTranslation.objects.get(business=business, locale='es').summary == 'OCTOPUS AND WINE'

    def test_translation_longer_than_source_summary(self, business, pipeline_config):
        class Verbose(UpperTranslator):
            def translate_batch(self, texts, locale, source_lang='en'):
                return [t * 3 for t in texts]

        self._enriched(business)
        business.summary = 'x' * 500
        business.save()
        translate_entity('business', business.pk, 'nl', Verbose(), pipeline_config)

        row = BusinessTranslation.objects.get(business=business, locale='nl')
        assert len(row.summary) == 1500
        assert BusinessTranslation._meta.get_field('summary').max_length is None

    def test_missing_business_is_noop(self, db, pipeline_config):
        assert translate_entity('business', 424242, 'es', UpperTranslator(), pipeline_config) is False
        assert not BusinessTranslation.objects.exists()

    def test_business_without_content(self, business, pipeline_config):
        assert translate_entity('business', business.pk, 'es', UpperTranslator(), pipeline_config) is False

    def test_category(self, category, pipeline_config):
        category.description = 'Places to eat'
        category.save()
        assert translate_entity('category', category.pk, 'nl', UpperTranslator(), pipeline_config) is True
        row = CategoryTranslation.objects.get(category=category, locale='nl')
        assert row.name == 'RESTAURANTS'
        assert row.description == 'PLACES TO EAT'

    def test_city(self, city, pipeline_config):
        assert translate_entity('city', city.pk, 'es', UpperTranslator(), pipeline_config) is False
        city.description = 'Port city'
        city.save()
        assert translate_entity('city', city.pk, 'es', UpperTranslator(), pipeline_config) is True
        assert CityTranslation.objects.get(city=city, locale='es').description == 'PORT CITY'

    def test_unknown_type(self, pipeline_config):
        with pytest.raises(ValueError):
            translate_entity('region', 1, 'es', UpperTranslator(), pipeline_config)


@pytest.mark.django_db
class TestTranslateWorker:

    def test_perform_with_keyless_deepl(self, business):
        business.description = 'A pulpería by the port.'
        business.save()
        job = Job(args={'type': 'business', 'id': business.pk, 'target_locale': 'nl'})
        TranslateWorker().perform(job)
        # Without a key DeepL hands the text back unchanged
        assert BusinessTranslation.objects.get(business=business, locale='nl').description == 'A pulpería by the port.'

    def test_unknown_type_discards(self, db):
        with pytest.raises(DiscardJob):
            TranslateWorker().perform(Job(args={'type': 'planet', 'id': 1, 'target_locale': 'es'}))

    @patch('directory.workers.translate.translate_entity')
    def test_permanent_error_discards(self, mock_translate):
        mock_translate.side_effect = TranslationError('api_error', 'forbidden', status=403)
        with pytest.raises(DiscardJob):
            TranslateWorker().perform(Job(args={'type': 'business', 'id': 1, 'target_locale': 'es'}))

    @patch('directory.workers.translate.translate_entity')
    def test_transient_error_retried(self, mock_translate):
        mock_translate.side_effect = TranslationError('api_error', 'rate limited', status=429)
        with pytest.raises(TranslationError):
            TranslateWorker().perform(Job(args={'type': 'business', 'id': 1, 'target_locale': 'es'}))

    def test_uniqueness_spans_args(self, db):
        args = {'type': 'business', 'id': 1, 'target_locale': 'es'}
        assert TranslateWorker.enqueue(args).conflict is False
        assert TranslateWorker.enqueue(args).conflict is True
        assert json.dumps(Job.objects.get().args, sort_keys=True) == json.dumps(args, sort_keys=True)
