"""
AI completion backends.

Two interchangeable ways to get text out of Claude, both exposing
``complete(prompt, max_tokens=None, model=None, timeout=None) -> str``:

  - ClaudeCLICompleter: runs ``claude --print`` (subscription auth, no API cost)
  - ClaudeAPICompleter: OpenRouter preferred (openai SDK), Anthropic fallback

``build_completer`` picks one from the pipeline config. Failures raise
``CompletionError`` with one of the reasons: api_error, network_error,
cli_not_available, exit_code, timeout, exception, not_configured.
"""

import logging
import os
import shutil
import subprocess
import time
from typing import Optional

from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    before_sleep_log,
)

from directory.enrichment.config import PipelineConfig
from directory.enrichment.errors import CompletionError

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MAX_TOKENS = 1024

MOCK_RESPONSE = """
{
  "description": "A local business offering quality services to the community.",
  "summary": "Friendly local establishment with good reviews",
  "speaks_english": false,
  "speaks_english_confidence": 0.3,
  "languages_spoken": ["es", "gl"],
  "highlights": ["Friendly staff", "Good location"],
  "warnings": [],
  "quality_score": 0.5
}
"""


def _is_retryable(exc: BaseException) -> bool:
    """Return True for transient API errors worth retrying."""
    retryable_names = {
        'RateLimitError', 'APIConnectionError', 'APITimeoutError',
        'InternalServerError', 'ConnectionError', 'Timeout',
    }
    for cls in type(exc).__mro__:
        if cls.__name__ in retryable_names:
            return True
    if getattr(exc, 'status_code', None) in (429, 500, 502, 503, 504):
        return True
    return False


def _to_completion_error(exc: Exception) -> CompletionError:
    """Map an SDK exception onto a CompletionError reason."""
    names = {cls.__name__ for cls in type(exc).__mro__}
    if 'APITimeoutError' in names or 'Timeout' in names:
        return CompletionError('timeout', str(exc))
    if 'APIConnectionError' in names or 'ConnectionError' in names:
        return CompletionError('network_error', str(exc))
    status = getattr(exc, 'status_code', None)
    if status is not None:
        return CompletionError(
            'api_error',
            f"API error {status}: {exc}",
            status=status,
            body=getattr(exc, 'body', None),
        )
    return CompletionError('exception', f"{type(exc).__name__}: {exc}")


class Completer:
    """Interface shared by the completion backends."""

    name = ''

    def complete(
        self,
        prompt: str,
        max_tokens: Optional[int] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> str:
        raise NotImplementedError


class ClaudeAPICompleter(Completer):
    """Claude over HTTP. OpenRouter preferred, Anthropic fallback."""

    name = 'api'

    def __init__(self, config: PipelineConfig):
        self.config = config
        if config.openrouter_api_key:
            self.use_openrouter = True
            self.api_key = config.openrouter_api_key
            self.model = config.openrouter_model
        elif config.anthropic_api_key:
            self.use_openrouter = False
            self.api_key = config.anthropic_api_key
            self.model = config.claude_model
        else:
            self.use_openrouter = False
            self.api_key = None
            self.model = None

    def is_available(self) -> bool:
        return self.api_key is not None

    def complete(self, prompt, max_tokens=None, model=None, timeout=None) -> str:
        if not self.api_key:
            if self.config.is_production:
                raise CompletionError('not_configured', 'No OPENROUTER_API_KEY or ANTHROPIC_API_KEY configured')
            logger.warning("No AI API key configured, using mock response")
            return MOCK_RESPONSE.strip()

        try:
            return self._call_api(
                prompt,
                max_tokens or DEFAULT_MAX_TOKENS,
                model or self.model,
                timeout or self.config.api_timeout,
            )
        except CompletionError:
            raise
        except Exception as e:
            error = _to_completion_error(e)
            logger.error(f"AI API call failed after retries: {error}")
            raise error from e

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=60),
        retry=retry_if_exception(_is_retryable),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    def _call_api(self, prompt: str, max_tokens: int, model: str, timeout: float) -> str:
        """Execute API call with tenacity retry on transient errors."""
        if self.use_openrouter:
            import openai

            client = openai.OpenAI(
                base_url=OPENROUTER_BASE_URL,
                api_key=self.api_key,
                timeout=timeout,
            )

            response = client.chat.completions.create(
                model=model,
                max_tokens=max_tokens,
                temperature=0,
                messages=[{"role": "user", "content": prompt}]
            )

            result = response.choices[0].message.content
        else:
            import anthropic

            client = anthropic.Anthropic(api_key=self.api_key, timeout=timeout)

            message = client.messages.create(
                model=model,
                max_tokens=max_tokens,
                temperature=0,
                messages=[{"role": "user", "content": prompt}]
            )

            result = message.content[0].text if message.content else None

        if result is None:
            raise CompletionError('api_error', 'Unexpected response format: no text content')
        return result.strip()


def cli_available(executable: str = 'claude') -> bool:
    return shutil.which(executable) is not None


class ClaudeCLICompleter(Completer):
    """
    Claude via ``claude --print``.

    ANTHROPIC_API_KEY is blanked in the child environment so the CLI uses
    its logged-in subscription instead of billing the API key. stdin is
    closed; on timeout the child is killed.
    """

    name = 'cli'

    def __init__(self, config: PipelineConfig):
        self.config = config
        self.executable = config.cli_executable

    def complete(self, prompt, max_tokens=None, model=None, timeout=None) -> str:
        if not cli_available(self.executable):
            logger.warning(f"{self.executable} CLI not found in PATH")
            raise CompletionError('cli_not_available', f"{self.executable} not found in PATH")

        timeout = timeout or self.config.cli_timeout
        env = {**os.environ, 'ANTHROPIC_API_KEY': ''}
        logger.info(f"ClaudeCLI: starting request (timeout: {timeout}s)")
        started = time.monotonic()

        try:
            proc = subprocess.run(
                [self.executable, '--print', prompt],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                env=env,
                timeout=timeout,
                text=True,
            )
        except subprocess.TimeoutExpired as e:
            logger.error(f"ClaudeCLI: timed out after {timeout}s")
            raise CompletionError('timeout', f"CLI timed out after {timeout}s") from e
        except OSError as e:
            logger.error(f"ClaudeCLI: exception: {e}")
            raise CompletionError('exception', str(e)) from e

        duration = time.monotonic() - started
        output = (proc.stdout or '').strip()
        if proc.returncode != 0:
            logger.error(
                f"ClaudeCLI: failed with exit code {proc.returncode} after {duration:.1f}s: {output[:500]}"
            )
            raise CompletionError(
                'exit_code',
                f"CLI exited with {proc.returncode}",
                code=proc.returncode,
                output=output,
            )

        logger.info(f"ClaudeCLI: completed in {duration:.1f}s ({len(output)} chars)")
        return output


def build_completer(config: Optional[PipelineConfig] = None) -> Completer:
    """Choose the completion backend once, from config.

    ``cli`` and ``auto`` use the CLI when it is enabled and on PATH; a
    requested but missing CLI falls back to the API with a warning.
    """
    config = config or PipelineConfig.from_settings()
    backend = config.completion_backend

    if backend in ('cli', 'auto') and config.cli_usable:
        return ClaudeCLICompleter(config)
    if backend == 'cli':
        logger.warning(
            f"CLI completion requested but {config.cli_executable} is unavailable; using the API backend"
        )
    return ClaudeAPICompleter(config)
