"""
Tests for the AI completion and web search clients.

No network or subprocess calls are made: the SDK clients, subprocess.run
and httpx are patched.
"""

import os
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.test_settings')

import subprocess
from unittest.mock import MagicMock, patch

import httpx
import pytest

from directory.enrichment.ai_clients import (
    ClaudeAPICompleter,
    ClaudeCLICompleter,
    MOCK_RESPONSE,
    _is_retryable,
    _to_completion_error,
    build_completer,
)
from directory.enrichment.config import PipelineConfig
from directory.enrichment.errors import CompletionError, SearchError
from directory.enrichment.search_tools import (
    DuckDuckGoSearch,
    SearchResponse,
    SearchResult,
    Searcher,
    TavilySearch,
    build_searcher,
    extract_real_url,
    html_to_text,
    parse_results,
    search_multiple,
)


DDG_HTML = """
<html><body>
  <div class="result">
    <a class="result__a" href="//duckduckgo.com/l/?uddg=https%3A%2F%2Fpulperiarosalia.es%2Fcarta&rut=abc">Pulpería Rosalía - Carta</a>
    <a class="result__snippet">Pulpo á feira and empanada in the old town.</a>
  </div>
  <div class="result">
    <a class="result__a" href="https://www.tripadvisor.com/rosalia">Rosalía on Tripadvisor</a>
    <div class="result__snippet">Rated 4.5 by 230 travellers.</div>
  </div>
  <div class="result">
    <span>no link in this one</span>
  </div>
  <div class="result">
    <a class="result__a" href="/relative/only">Dropped</a>
  </div>
</body></html>
"""


class APITimeoutError(Exception):
    pass


class APIConnectionError(Exception):
    pass


class BadRequestError(Exception):
    status_code = 400


class RateLimitError(Exception):
    status_code = 429


# =============================================================================
# Retry and error mapping
# =============================================================================

class TestErrorMapping:

    def test_transient_sdk_errors_are_retryable(self):
        assert _is_retryable(APITimeoutError()) is True
        assert _is_retryable(APIConnectionError()) is True
        assert _is_retryable(RateLimitError()) is True

    def test_client_errors_are_not_retryable(self):
        assert _is_retryable(BadRequestError()) is False
        assert _is_retryable(ValueError('nope')) is False

    def test_reason_mapping(self):
        assert _to_completion_error(APITimeoutError('slow')).reason == 'timeout'
        assert _to_completion_error(APIConnectionError('down')).reason == 'network_error'
        error = _to_completion_error(BadRequestError('bad'))
        assert error.reason == 'api_error'
        assert error.details['status'] == 400
        assert _to_completion_error(KeyError('x')).reason == 'exception'

    def test_rate_limited_api_error_is_transient(self):
        assert _to_completion_error(RateLimitError('slow down')).transient is True
        assert _to_completion_error(BadRequestError('bad')).transient is False


# =============================================================================
# ClaudeAPICompleter
# =============================================================================

class TestClaudeAPICompleter:

    def test_prefers_openrouter(self):
        config = PipelineConfig(openrouter_api_key='or-key', anthropic_api_key='sk-ant')
        completer = ClaudeAPICompleter(config)
        assert completer.use_openrouter is True
        assert completer.model == config.openrouter_model

    def test_anthropic_fallback(self):
        config = PipelineConfig(anthropic_api_key='sk-ant')
        completer = ClaudeAPICompleter(config)
        assert completer.use_openrouter is False
        assert completer.model == config.claude_model

    def test_mock_response_without_key_outside_production(self):
        completer = ClaudeAPICompleter(PipelineConfig(environment='development'))
        assert completer.is_available() is False
        assert completer.complete('prompt') == MOCK_RESPONSE.strip()

    def test_missing_key_in_production_raises(self):
        completer = ClaudeAPICompleter(PipelineConfig(environment='production'))
        with pytest.raises(CompletionError) as exc_info:
            completer.complete('prompt')
        assert exc_info.value.reason == 'not_configured'

    @patch('openai.OpenAI')
    def test_openrouter_call(self, mock_openai):
        response = MagicMock()
        response.choices[0].message.content = '  {"ok": true}  '
        mock_openai.return_value.chat.completions.create.return_value = response

        completer = ClaudeAPICompleter(PipelineConfig(openrouter_api_key='or-key'))
        assert completer.complete('Describe this', max_tokens=3000) == '{"ok": true}'

        kwargs = mock_openai.return_value.chat.completions.create.call_args[1]
        assert kwargs['max_tokens'] == 3000
        assert kwargs['temperature'] == 0
        assert kwargs['messages'] == [{'role': 'user', 'content': 'Describe this'}]
        assert mock_openai.call_args[1]['base_url'] == 'https://openrouter.ai/api/v1'

    @patch('anthropic.Anthropic')
    def test_anthropic_call(self, mock_anthropic):
        message = MagicMock()
        message.content = [MagicMock(text='hello')]
        mock_anthropic.return_value.messages.create.return_value = message

        completer = ClaudeAPICompleter(PipelineConfig(anthropic_api_key='sk-ant'))
        assert completer.complete('hi') == 'hello'

    @patch('anthropic.Anthropic')
    def test_empty_content_is_api_error(self, mock_anthropic):
        message = MagicMock()
        message.content = []
        mock_anthropic.return_value.messages.create.return_value = message

        completer = ClaudeAPICompleter(PipelineConfig(anthropic_api_key='sk-ant'))
        with pytest.raises(CompletionError) as exc_info:
            completer.complete('hi')
        assert exc_info.value.reason == 'api_error'

    @patch('openai.OpenAI')
    def test_sdk_error_is_mapped(self, mock_openai):
        mock_openai.return_value.chat.completions.create.side_effect = BadRequestError('invalid model')

        completer = ClaudeAPICompleter(PipelineConfig(openrouter_api_key='or-key'))
        with pytest.raises(CompletionError) as exc_info:
            completer.complete('hi')
        assert exc_info.value.reason == 'api_error'
        assert exc_info.value.details['status'] == 400
        assert mock_openai.return_value.chat.completions.create.call_count == 1

    @patch('time.sleep')
    @patch('openai.OpenAI')
    def test_transient_error_is_retried(self, mock_openai, _sleep):
        response = MagicMock()
        response.choices[0].message.content = 'second time lucky'
        mock_openai.return_value.chat.completions.create.side_effect = [
            APIConnectionError('reset'),
            response,
        ]

        completer = ClaudeAPICompleter(PipelineConfig(openrouter_api_key='or-key'))
        assert completer.complete('hi') == 'second time lucky'
        assert mock_openai.return_value.chat.completions.create.call_count == 2


# =============================================================================
# ClaudeCLICompleter
# =============================================================================

class TestClaudeCLICompleter:

    def _completer(self):
        return ClaudeCLICompleter(PipelineConfig(enable_cli=True, cli_timeout=30))

    @patch('directory.enrichment.ai_clients.cli_available', return_value=False)
    def test_missing_cli(self, _available):
        with pytest.raises(CompletionError) as exc_info:
            self._completer().complete('hi')
        assert exc_info.value.reason == 'cli_not_available'

    @patch('directory.enrichment.ai_clients.subprocess.run')
    @patch('directory.enrichment.ai_clients.cli_available', return_value=True)
    def test_success_blanks_api_key(self, _available, mock_run):
        mock_run.return_value = subprocess.CompletedProcess(
            args=['claude'], returncode=0, stdout='  {"description": "x"}\n',
        )
        assert self._completer().complete('prompt text') == '{"description": "x"}'

        args, kwargs = mock_run.call_args
        assert args[0] == ['claude', '--print', 'prompt text']
        assert kwargs['env']['ANTHROPIC_API_KEY'] == ''
        assert kwargs['stdin'] == subprocess.DEVNULL
        assert kwargs['timeout'] == 30

    @patch('directory.enrichment.ai_clients.subprocess.run')
    @patch('directory.enrichment.ai_clients.cli_available', return_value=True)
    def test_timeout(self, _available, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd='claude', timeout=5)
        with pytest.raises(CompletionError) as exc_info:
            self._completer().complete('hi', timeout=5)
        assert exc_info.value.reason == 'timeout'

    @patch('directory.enrichment.ai_clients.subprocess.run')
    @patch('directory.enrichment.ai_clients.cli_available', return_value=True)
    def test_nonzero_exit(self, _available, mock_run):
        mock_run.return_value = subprocess.CompletedProcess(
            args=['claude'], returncode=2, stdout='Not logged in',
        )
        with pytest.raises(CompletionError) as exc_info:
            self._completer().complete('hi')
        assert exc_info.value.reason == 'exit_code'
        assert exc_info.value.details['code'] == 2
        assert exc_info.value.details['output'] == 'Not logged in'

    @patch('directory.enrichment.ai_clients.subprocess.run', side_effect=OSError('exec format error'))
    @patch('directory.enrichment.ai_clients.cli_available', return_value=True)
    def test_os_error(self, _available, _run):
        with pytest.raises(CompletionError) as exc_info:
            self._completer().complete('hi')
        assert exc_info.value.reason == 'exception'


# =============================================================================
# build_completer
# =============================================================================

class TestBuildCompleter:

    @patch('directory.enrichment.config.shutil.which', return_value='/usr/local/bin/claude')
    def test_cli_when_enabled_and_on_path(self, _which):
        config = PipelineConfig(completion_backend='auto', enable_cli=True)
        assert isinstance(build_completer(config), ClaudeCLICompleter)

    @patch('directory.enrichment.config.shutil.which', return_value=None)
    def test_cli_requested_but_missing_falls_back(self, _which):
        config = PipelineConfig(completion_backend='cli', enable_cli=True)
        assert isinstance(build_completer(config), ClaudeAPICompleter)

    @patch('directory.enrichment.config.shutil.which', return_value='/usr/local/bin/claude')
    def test_cli_disabled(self, _which):
        config = PipelineConfig(completion_backend='auto', enable_cli=False)
        assert isinstance(build_completer(config), ClaudeAPICompleter)

    @patch('directory.enrichment.config.shutil.which', return_value='/usr/local/bin/claude')
    def test_api_backend_forced(self, _which):
        config = PipelineConfig(completion_backend='api', enable_cli=True)
        assert isinstance(build_completer(config), ClaudeAPICompleter)


# =============================================================================
# DuckDuckGo parsing
# =============================================================================

class TestDuckDuckGoParsing:

    def test_extract_real_url(self):
        href = '//duckduckgo.com/l/?uddg=https%3A%2F%2Fexample.com%2Fpage&rut=x'
        assert extract_real_url(href) == 'https://example.com/page'
        assert extract_real_url('//example.com/a') == 'https://example.com/a'
        assert extract_real_url('http://example.com') == 'http://example.com'
        assert extract_real_url('/relative') is None
        assert extract_real_url(None) is None

    def test_parse_results(self):
        results = parse_results(DDG_HTML, max_results=10)
        assert [r.url for r in results] == [
            'https://pulperiarosalia.es/carta',
            'https://www.tripadvisor.com/rosalia',
        ]
        assert results[0].title == 'Pulpería Rosalía - Carta'
        assert results[0].content == 'Pulpo á feira and empanada in the old town.'

    def test_parse_results_respects_limit(self):
        assert len(parse_results(DDG_HTML, max_results=1)) == 1

    def test_html_to_text_strips_chrome(self):
        html = '<nav>Menu</nav><p>Open  daily</p><script>var x;</script><footer>(c)</footer>'
        assert html_to_text(html) == 'Open daily'


class TestDuckDuckGoSearch:

    @patch('directory.enrichment.search_tools.httpx.post')
    def test_search_without_fetch(self, mock_post):
        mock_post.return_value = httpx.Response(200, text=DDG_HTML)
        response = DuckDuckGoSearch().search('pulperia vigo', max_results=5, fetch_content=False)
        assert response.query == 'pulperia vigo'
        assert len(response.results) == 2
        assert response.results[0].raw_content is None

    @patch('directory.enrichment.search_tools.httpx.get')
    @patch('directory.enrichment.search_tools.httpx.post')
    def test_search_fetches_result_pages(self, mock_post, mock_get):
        mock_post.return_value = httpx.Response(200, text=DDG_HTML)
        mock_get.return_value = httpx.Response(200, text='<p>Full menu</p>')
        response = DuckDuckGoSearch().search('pulperia vigo')
        assert response.results[0].raw_content == 'Full menu'
        assert mock_get.call_count == 2

    @patch('directory.enrichment.search_tools.httpx.post')
    def test_http_error_status(self, mock_post):
        mock_post.return_value = httpx.Response(403, text='blocked')
        with pytest.raises(SearchError) as exc_info:
            DuckDuckGoSearch().search('anything', fetch_content=False)
        assert exc_info.value.reason == 'http_error'
        assert exc_info.value.details['status'] == 403

    @patch('directory.enrichment.search_tools.httpx.post', side_effect=httpx.DecodingError('bad gzip stream'))
    def test_undecodable_body(self, _post):
        with pytest.raises(SearchError) as exc_info:
            DuckDuckGoSearch().search('anything', fetch_content=False)
        assert exc_info.value.reason == 'http_error'
        assert isinstance(exc_info.value.__cause__, httpx.DecodingError)


class TestTavilySearch:

    def test_mock_results_without_key(self):
        response = TavilySearch('').search('vigo restaurants')
        assert len(response.results) == 1
        assert 'Mock result' in response.results[0].title

    def test_missing_key_in_production(self):
        with pytest.raises(SearchError) as exc_info:
            TavilySearch('', production=True).search('vigo restaurants')
        assert exc_info.value.reason == 'not_configured'

    @patch('directory.enrichment.search_tools.httpx.post')
    def test_structured_results(self, mock_post):
        mock_post.return_value = httpx.Response(200, json={
            'query': 'vigo restaurants',
            'answer': None,
            'results': [
                {'title': 'A', 'url': 'https://a.example', 'content': 'aa', 'score': 0.9},
                {'title': 'B', 'url': 'https://b.example', 'content': None},
            ],
        })
        response = TavilySearch('tvly-key').search('vigo restaurants', max_results=2)
        assert [r.url for r in response.results] == ['https://a.example', 'https://b.example']
        assert response.results[0].score == 0.9
        assert response.results[1].content == ''
        assert mock_post.call_args[1]['json']['api_key'] == 'tvly-key'

    @patch('directory.enrichment.search_tools.httpx.post')
    def test_api_error(self, mock_post):
        mock_post.return_value = httpx.Response(401, text='bad key')
        with pytest.raises(SearchError) as exc_info:
            TavilySearch('tvly-key').search('x')
        assert exc_info.value.reason == 'api_error'
        assert exc_info.value.transient is False

    @pytest.mark.parametrize('response', [
        httpx.Response(200, text='<html>maintenance</html>'),
        httpx.Response(200, json=['not', 'an', 'object']),
    ])
    @patch('directory.enrichment.search_tools.httpx.post')
    def test_unexpected_body(self, mock_post, response):
        mock_post.return_value = response
        with pytest.raises(SearchError) as exc_info:
            TavilySearch('tvly-key').search('x')
        assert exc_info.value.reason == 'unexpected_response'

    @patch('directory.enrichment.search_tools.httpx.post')
    def test_non_object_results_skipped(self, mock_post):
        mock_post.return_value = httpx.Response(200, json={'results': ['junk', {'title': 'A', 'url': 'https://a.example'}]})
        response = TavilySearch('tvly-key').search('x')
        assert [r.url for r in response.results] == ['https://a.example']


# =============================================================================
# search_multiple / build_searcher
# =============================================================================

class FlakySearcher(Searcher):
    name = 'flaky'

    def search(self, query, max_results=5, fetch_content=True):
        if 'fail' in query:
            raise SearchError('http_error', 'blocked', status=403)
        return SearchResponse(query=query, results=[SearchResult(title=query, url='https://x.example')])


class TestSearchMultiple:

    def test_failures_are_isolated(self):
        result = search_multiple(FlakySearcher(), ['one', 'fail two', 'three'], stagger=0)
        assert result.total_queries == 3
        assert result.successful == 2
        assert result.failed == 1
        assert [r['query'] for r in result.results] == ['one', 'three']

    def test_no_queries(self):
        result = search_multiple(FlakySearcher(), [], stagger=0)
        assert (result.total_queries, result.successful, result.failed) == (0, 0, 0)

    @patch('directory.enrichment.search_tools.httpx.post')
    def test_adapter_failures_are_counted(self, mock_post):
        mock_post.side_effect = [
            httpx.Response(200, text='not json'),
            httpx.DecodingError('truncated body'),
        ]
        result = search_multiple(TavilySearch('tvly-key'), ['one', 'two'], stagger=0)
        assert (result.total_queries, result.successful, result.failed) == (2, 0, 2)

    def test_build_searcher(self):
        assert isinstance(build_searcher(PipelineConfig(search_backend='tavily')), TavilySearch)
        assert isinstance(build_searcher(PipelineConfig(search_backend='duckduckgo')), DuckDuckGoSearch)
