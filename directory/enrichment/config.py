"""
Pipeline configuration resolved once from Django settings.

Clients take a ``PipelineConfig`` in their constructor instead of reading
settings on every call; tests build one directly.
"""

import shutil
from dataclasses import dataclass, fields


@dataclass
class PipelineConfig:
    environment: str = 'development'
    completion_backend: str = 'auto'
    enable_cli: bool = False
    cli_executable: str = 'claude'
    claude_model: str = 'claude-sonnet-4-20250514'
    openrouter_model: str = 'anthropic/claude-sonnet-4'
    api_timeout: int = 60
    cli_timeout: int = 300
    search_backend: str = 'duckduckgo'
    translation_backend: str = 'auto'
    base_locale: str = 'en'
    research_stagger_seconds: int = 5
    batch_size: int = 100
    discovery_city_threshold: int = 5
    discovery_radius_km: float = 5.0
    crawl_max_pages: int = 20
    crawl_delay_seconds: float = 0.5
    search_max_results: int = 5
    sweep_limit: int = 50
    anthropic_api_key: str = ''
    openrouter_api_key: str = ''
    tavily_api_key: str = ''
    deepl_api_key: str = ''

    @property
    def is_production(self) -> bool:
        return self.environment == 'production'

    @property
    def cli_usable(self) -> bool:
        return self.enable_cli and shutil.which(self.cli_executable) is not None

    @classmethod
    def from_settings(cls, **overrides) -> 'PipelineConfig':
        from django.conf import settings

        pipeline = getattr(settings, 'PIPELINE', {})
        values = {
            'environment': pipeline.get('ENVIRONMENT', 'development'),
            'completion_backend': pipeline.get('COMPLETION_BACKEND', 'auto'),
            'enable_cli': bool(pipeline.get('ENABLE_CLI_ENRICHMENT', False)),
            'cli_executable': pipeline.get('CLI_EXECUTABLE', 'claude'),
            'claude_model': pipeline.get('CLAUDE_MODEL', cls.claude_model),
            'openrouter_model': pipeline.get('OPENROUTER_MODEL', cls.openrouter_model),
            'api_timeout': pipeline.get('API_TIMEOUT', 60),
            'cli_timeout': pipeline.get('CLI_TIMEOUT', 300),
            'search_backend': pipeline.get('SEARCH_BACKEND', 'duckduckgo'),
            'translation_backend': pipeline.get('TRANSLATION_BACKEND', 'auto'),
            'base_locale': pipeline.get('BASE_LOCALE', 'en'),
            'research_stagger_seconds': pipeline.get('RESEARCH_STAGGER_SECONDS', 5),
            'batch_size': pipeline.get('BATCH_SIZE', 100),
            'discovery_city_threshold': pipeline.get('DISCOVERY_CITY_THRESHOLD', 5),
            'discovery_radius_km': pipeline.get('DISCOVERY_RADIUS_KM', 5.0),
            'crawl_max_pages': pipeline.get('CRAWL_MAX_PAGES', 20),
            'crawl_delay_seconds': pipeline.get('CRAWL_DELAY_SECONDS', 0.5),
            'search_max_results': pipeline.get('SEARCH_MAX_RESULTS', 5),
            'sweep_limit': pipeline.get('SWEEP_LIMIT', 50),
            'anthropic_api_key': getattr(settings, 'ANTHROPIC_API_KEY', ''),
            'openrouter_api_key': getattr(settings, 'OPENROUTER_API_KEY', ''),
            'tavily_api_key': getattr(settings, 'TAVILY_API_KEY', ''),
            'deepl_api_key': getattr(settings, 'DEEPL_API_KEY', ''),
        }
        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise TypeError(f"Unknown PipelineConfig fields: {sorted(unknown)}")
        values.update(overrides)
        return cls(**values)
