"""
Tests for the research step: website crawling, web search queries and the
two research workers.
"""

import os
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.test_settings')

from unittest.mock import patch

import pytest
import requests

from directory.enrichment.search_tools import MultiSearchResult, SearchResponse, SearchResult, Searcher
from directory.enrichment.web_search import build_search_queries, run_web_search, to_bundle
from directory.enrichment.website_crawler import (
    CrawlFailed,
    build_bundle,
    crawl_website,
    empty_bundle,
    is_english_url,
    normalize_url,
    parse_page,
    skip_url,
)
from directory.models import Business, ResearchBundle
from directory.workers.web_search import WebSearchWorker
from directory.workers.website_crawl import WebsiteCrawlWorker
from jobs.models import Job


HOME_HTML = """
<html lang="es">
<head>
  <title>Pulpería Rosalía</title>
  <meta name="description" content="Pulpo á feira desde 1962">
  <script type="application/ld+json">
    {"@context": "https://schema.org", "@type": "Restaurant", "name": "Pulpería Rosalía",
     "servesCuisine": ["Galician", "Seafood"], "telephone": "+34 986 000 000"}
  </script>
</head>
<body>
  <nav><a href="/carta">Carta</a></nav>
  <h1>Pulpería Rosalía</h1>
  <h2>Nuestra historia</h2>
  <p>Family run since 1962, right by the port of Vigo.</p>
  <div class="testimonial">The octopus here is the best I have had in Galicia.</div>
  <div class="award-badge">Premio Mejor Pulpería de Vigo 2023</div>
  <a href="/en/">English</a>
  <a href="https://pulperiarosalia.es/carta#top">Menu</a>
  <a href="/wp-admin/">Admin</a>
  <a href="/menu.pdf">PDF menu</a>
  <a href="mailto:hola@pulperiarosalia.es">Email</a>
  <a href="https://www.instagram.com/rosalia">Instagram</a>
  <script>var tracking = true;</script>
</body>
</html>
"""

PAGES = {
    'https://pulperiarosalia.es': HOME_HTML,
    'https://pulperiarosalia.es/carta': '<html lang="es"><body><h2>Carta</h2><p>Pulpo, empanada</p></body></html>',
    'https://pulperiarosalia.es/en': '<html lang="en"><body><h2>Menu</h2><p>Octopus</p></body></html>',
}


class FakeResponse:
    def __init__(self, url, text, status_code=200):
        self.url = url
        self.text = text
        self.status_code = status_code


class FakeSession:
    """requests.Session stand-in serving PAGES by URL."""

    def __init__(self, pages, fail=()):
        self.pages = pages
        self.fail = set(fail)
        self.requested = []

    def get(self, url, **kwargs):
        self.requested.append(url)
        key = url.rstrip('/')
        if key in self.fail:
            raise requests.ConnectionError(f"refused: {url}")
        if key not in self.pages:
            return FakeResponse(url, 'not found', status_code=404)
        return FakeResponse(url, self.pages[key])


# =============================================================================
# Crawler
# =============================================================================

class TestParsePage:

    def test_metadata_and_content(self):
        page = parse_page('https://pulperiarosalia.es', HOME_HTML)
        assert page.title == 'Pulpería Rosalía'
        assert page.description == 'Pulpo á feira desde 1962'
        assert page.language == 'es'
        assert page.headings == ['Pulpería Rosalía', 'Nuestra historia']
        assert 'Family run since 1962' in page.content
        assert 'tracking' not in page.content
        assert 'Carta' not in page.content

    def test_links_are_filtered(self):
        page = parse_page('https://pulperiarosalia.es', HOME_HTML)
        assert 'https://pulperiarosalia.es/carta' in page.links
        assert 'https://pulperiarosalia.es/en/' in page.links
        assert not any('wp-admin' in link or link.endswith('.pdf') for link in page.links)
        assert not any(link.startswith('mailto:') for link in page.links)

    def test_structured_data(self):
        page = parse_page('https://pulperiarosalia.es', HOME_HTML)
        assert page.structured_data == [{
            '@type': 'Restaurant',
            'name': 'Pulpería Rosalía',
            'telephone': '+34 986 000 000',
            'servesCuisine': ['Galician', 'Seafood'],
        }]

    def test_social_proof(self):
        page = parse_page('https://pulperiarosalia.es', HOME_HTML)
        assert page.testimonials == ['The octopus here is the best I have had in Galicia.']
        assert page.awards == ['Premio Mejor Pulpería de Vigo 2023']

    @pytest.mark.parametrize('url,skipped', [
        ('https://x.es/carta', False),
        ('https://x.es/carta-de-vinos/', False),
        ('https://x.es/administracion', False),
        ('https://x.es/500-anos-de-historia', False),
        ('https://x.es/es/cart/', True),
        ('https://x.es/wp-login.php?redirect=1', True),
        ('https://x.es/Admin/', True),
        ('https://x.es/404', True),
    ])
    def test_skip_matches_whole_segments(self, url, skipped):
        assert skip_url(url) is skipped

    def test_url_helpers(self):
        assert normalize_url('pulperiarosalia.es') == 'https://pulperiarosalia.es'
        assert normalize_url('http://x.es') == 'http://x.es'
        assert skip_url('https://x.es/logo.PNG') is True
        assert skip_url('https://x.es/checkout/step1') is True
        assert skip_url('https://x.es/carta') is False
        assert is_english_url('https://x.es/en/menu') is True
        assert is_english_url('https://x.es/carta') is False


class TestCrawlWebsite:

    def test_crawls_same_host_links(self):
        session = FakeSession(PAGES)
        bundle = crawl_website('pulperiarosalia.es', delay=0, session=session)

        assert bundle['pages_crawled'] == 3
        assert bundle['has_english_version'] is True
        assert bundle['metadata']['title'] == 'Pulpería Rosalía'
        assert bundle['metadata']['languages_detected'] == ['es', 'en']
        assert bundle['social_proof']['awards'] == ['Premio Mejor Pulpería de Vigo 2023']
        assert not any('instagram' in url for url in session.requested)
        assert bundle['total_content_length'] == sum(p['content_length'] for p in bundle['pages'])

    def test_max_pages(self):
        bundle = crawl_website('https://pulperiarosalia.es', max_pages=2, delay=0, session=FakeSession(PAGES))
        assert bundle['pages_crawled'] == 2

    def test_secondary_failures_are_skipped(self):
        session = FakeSession(PAGES, fail={'https://pulperiarosalia.es/carta'})
        bundle = crawl_website('https://pulperiarosalia.es', delay=0, session=session)
        assert bundle['pages_crawled'] == 2

    def test_start_page_failure(self):
        with pytest.raises(CrawlFailed):
            crawl_website('https://gone.example', delay=0, session=FakeSession({}))

    def test_empty_bundle(self):
        bundle = empty_bundle('Could not fetch')
        assert bundle['pages'] == []
        assert bundle['error'] == 'Could not fetch'
        assert build_bundle([])['pages_crawled'] == 0


# =============================================================================
# Web search
# =============================================================================

class RecordingSearcher(Searcher):
    name = 'recording'

    def __init__(self):
        self.queries = []

    def search(self, query, max_results=5, fetch_content=True):
        self.queries.append(query)
        return SearchResponse(query=query, results=[
            SearchResult(title='Rosalía review', url='https://reviews.example/rosalia', content='Great pulpo'),
        ])


@pytest.mark.django_db
class TestWebSearch:

    def test_queries_with_local_media(self, business):
        queries = build_search_queries(business)
        assert queries == [
            '"Pulpería Rosalía" Vigo Restaurants reviews opinions',
            '"Pulpería Rosalía" Vigo site:lavozdegalicia.es OR site:farodevigo.es',
        ]

    def test_no_press_query_without_media_sites(self, business, region):
        region.settings = {}
        region.save()
        assert len(build_search_queries(business)) == 1

    def test_run_web_search_bundle(self, business):
        searcher = RecordingSearcher()
        bundle = run_web_search(business, searcher, stagger=0)
        assert bundle['total_queries'] == 2
        assert bundle['successful'] == 2
        assert bundle['failed'] == 0
        assert bundle['queries'][0]['results'][0]['url'] == 'https://reviews.example/rosalia'
        assert sorted(searcher.queries) == sorted(build_search_queries(business))

    def test_to_bundle_of_empty_outcome(self):
        bundle = to_bundle(MultiSearchResult(total_queries=2, successful=0, failed=2))
        assert bundle['queries'] == []
        assert bundle['failed'] == 2


# =============================================================================
# Research workers
# =============================================================================

@pytest.mark.django_db
class TestWebsiteCrawlWorker:

    @patch('directory.workers.website_crawl.crawl_website')
    def test_stores_bundle_and_hands_over(self, mock_crawl, business):
        mock_crawl.return_value = build_bundle([parse_page('https://pulperiarosalia.es', HOME_HTML)])
        WebsiteCrawlWorker().perform(Job(args={'business_id': business.pk}))

        business.refresh_from_db()
        assert business.status == Business.Status.RESEARCHING
        assert ResearchBundle.load(business.pk, ResearchBundle.Kind.WEBSITE)['pages_crawled'] == 1
        assert mock_crawl.call_args[0][0] == 'https://pulperiarosalia.es'
        [job] = Job.objects.filter(worker='WebSearchWorker')
        assert job.args == {'business_id': business.pk}
        assert job.queue == 'research'

    @patch('directory.workers.website_crawl.crawl_website', side_effect=CrawlFailed('Could not fetch'))
    def test_failed_crawl_stores_error_bundle(self, _crawl, business):
        WebsiteCrawlWorker().perform(Job(args={'business_id': business.pk}))
        data = ResearchBundle.load(business.pk, ResearchBundle.Kind.WEBSITE)
        assert data['error'] == 'Could not fetch'
        assert Job.objects.filter(worker='WebSearchWorker').count() == 1

    @patch('directory.workers.website_crawl.crawl_website')
    def test_no_website_skips_crawl(self, mock_crawl, make_business):
        business = make_business(website='  ')
        WebsiteCrawlWorker().perform(Job(args={'business_id': business.pk}))
        mock_crawl.assert_not_called()
        assert ResearchBundle.load(business.pk, ResearchBundle.Kind.WEBSITE) is None
        assert Job.objects.filter(worker='WebSearchWorker').count() == 1

    @patch('directory.workers.website_crawl.crawl_website')
    def test_recrawl_keeps_enriched_status(self, mock_crawl, business):
        mock_crawl.return_value = empty_bundle('x')
        Business.objects.filter(pk=business.pk).update(status=Business.Status.ENRICHED)
        WebsiteCrawlWorker().perform(Job(args={'business_id': business.pk}))
        business.refresh_from_db()
        assert business.status == Business.Status.ENRICHED

    def test_missing_business(self, db):
        WebsiteCrawlWorker().perform(Job(args={'business_id': 999999}))
        assert not Job.objects.exists()


@pytest.mark.django_db
class TestWebSearchWorker:

    @patch('time.sleep')
    @patch('directory.workers.web_search.build_searcher')
    def test_stores_bundle_and_marks_researched(self, mock_build, _sleep, business):
        mock_build.return_value = RecordingSearcher()
        WebSearchWorker().perform(Job(args={'business_id': business.pk}))

        business.refresh_from_db()
        assert business.status == Business.Status.RESEARCHED
        data = ResearchBundle.load(business.pk, ResearchBundle.Kind.SEARCH)
        assert data['successful'] == 2

    def test_missing_business(self, db):
        WebSearchWorker().perform(Job(args={'business_id': 999999}))
        assert not ResearchBundle.objects.exists()
