"""
Django system checks for required configuration.

Runs automatically on `manage.py runserver`, `migrate`, `check` and
before `run_jobs` starts its worker pools.
"""
import os
import shutil

from django.conf import settings
from django.core.checks import Error, Warning, register


@register()
def check_required_settings(app_configs, **kwargs):
    errors = []
    pipeline = settings.PIPELINE
    production = pipeline.get("ENVIRONMENT") == "production"

    cli_usable = (
        pipeline.get("ENABLE_CLI_ENRICHMENT")
        and shutil.which(pipeline.get("CLI_EXECUTABLE", "claude")) is not None
    )
    api_usable = bool(settings.ANTHROPIC_API_KEY or settings.OPENROUTER_API_KEY)

    # E001: production needs a real completion backend (no mock replies)
    if production and not (cli_usable or api_usable):
        errors.append(Error(
            "No AI completion backend available.",
            hint="Set ANTHROPIC_API_KEY / OPENROUTER_API_KEY, or ENABLE_CLI_ENRICHMENT with `claude` on PATH.",
            id="pipeline.E001",
        ))

    # E002: DATABASE_URL required in production
    if production and not os.environ.get("DATABASE_URL"):
        errors.append(Error(
            "DATABASE_URL not set in production.",
            hint="Set DATABASE_URL for PostgreSQL connection (job claiming relies on SKIP LOCKED).",
            id="pipeline.E002",
        ))

    # W001: translations fall back to identity without DeepL or the CLI
    if not settings.DEEPL_API_KEY and not cli_usable:
        errors.append(Warning(
            "No translation backend configured.",
            hint="Set DEEPL_API_KEY, or enable the Claude CLI for translations.",
            id="pipeline.W001",
        ))

    # W002: Tavily selected without a key returns mock results
    if pipeline.get("SEARCH_BACKEND") == "tavily" and not settings.TAVILY_API_KEY:
        errors.append(Warning(
            "SEARCH_BACKEND is 'tavily' but TAVILY_API_KEY is not set.",
            hint="Set TAVILY_API_KEY or switch SEARCH_BACKEND to 'duckduckgo'.",
            id="pipeline.W002",
        ))

    return errors
