"""
Gemini script generation client.

Sends the narration prompt to the generateContent endpoint. HTTP 503
means the model is overloaded: the call is retried with exponential
backoff (2s, then 4s) up to three attempts in total. Any other error
response fails at once.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from recapper.config import Settings, load_prompt
from recapper.services.ai_clients.base import AIClientConfig, BaseAIClientImpl
from recapper.services.errors import (
    ApiError,
    InvalidApiKeyError,
    MalformedResponseError,
    NetworkError,
    OverloadedError,
    ScriptGenerationError,
)

logger = logging.getLogger(__name__)

DEFAULT_GEMINI_MODEL = "gemini-1.5-flash-latest"
DEFAULT_GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta"

OVERLOADED_STATUS = 503
BACKOFF_MULTIPLIER = 2  # wait = 2 * 2^(attempt-1) = 2^attempt seconds
MAX_BACKOFF_SECONDS = 60
INVALID_KEY_STATUSES = frozenset({401, 403})
UNKNOWN_API_ERROR = "An unknown API error occurred."


class OutcomeKind(str, Enum):
    """Result tag of one generation attempt."""
    SUCCESS = "success"
    OVERLOADED = "overloaded"
    FAILED = "failed"


@dataclass(frozen=True)
class GenerationOutcome:
    """
    Tagged result of a single request.

    Attributes:
        kind: success, overloaded or failed
        text: Script text (success only)
        error: Error to raise (failed only)
    """

    kind: OutcomeKind
    text: str | None = None
    error: ScriptGenerationError | None = None

    @classmethod
    def success(cls, text: str) -> "GenerationOutcome":
        return cls(OutcomeKind.SUCCESS, text=text)

    @classmethod
    def overloaded(cls) -> "GenerationOutcome":
        return cls(OutcomeKind.OVERLOADED)

    @classmethod
    def failed(cls, error: ScriptGenerationError) -> "GenerationOutcome":
        return cls(OutcomeKind.FAILED, error=error)


def _is_overloaded(outcome: GenerationOutcome) -> bool:
    return outcome.kind is OutcomeKind.OVERLOADED


def _last_outcome(retry_state: RetryCallState) -> GenerationOutcome:
    return retry_state.outcome.result()


class GeminiScriptClient(BaseAIClientImpl):
    """
    Async client for the Gemini generateContent API.

    Example:
        async with GeminiScriptClient.from_settings(settings) as client:
            script = await client.generate("a chase scene", api_key)

        # Tests inject a transport and a sleep
        client = GeminiScriptClient(
            config,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            sleep=fake_sleep,
        )
    """

    def __init__(
        self,
        config: AIClientConfig,
        model: str = DEFAULT_GEMINI_MODEL,
        language: str = "Hebrew",
        prompt_template: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize Gemini client.

        Args:
            config: AI client configuration
            model: Gemini model name
            language: Language the script must be written in
            prompt_template: Template with {description} and {language}
                placeholders (built-in script prompt if None)
            http_client: HTTP client to use (created and owned if None)
            sleep: Awaitable sleep used between retries
        """
        super().__init__(config)
        self.model = model
        self.language = language
        self.prompt_template = prompt_template or load_prompt("script", "user")
        self._owns_http_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=config.timeout)
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
    ) -> "GeminiScriptClient":
        """
        Create GeminiScriptClient from application settings.

        Args:
            settings: Application settings
            http_client: Optional pre-built HTTP client

        Returns:
            Configured GeminiScriptClient instance
        """
        config = AIClientConfig(
            base_url=settings.gemini_url,
            timeout=settings.llm_timeout,
            max_retries=settings.script_max_attempts,
        )
        return cls(
            config=config,
            model=settings.gemini_model,
            language=settings.script_language,
            prompt_template=load_prompt("script", "user", settings),
            http_client=http_client,
        )

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_http_client:
            await self.http_client.aclose()

    @property
    def endpoint(self) -> str:
        return f"{self.config.base_url.rstrip('/')}/models/{self.model}:generateContent"

    def build_prompt(self, description: str) -> str:
        """Fill the prompt template."""
        # Descriptions may contain braces, so no str.format()
        return (
            self.prompt_template
            .replace("{description}", description)
            .replace("{language}", self.language)
        )

    async def generate(self, description: str, api_key: str) -> str:
        """
        Generate a narration script.

        Args:
            description: What the video is about
            api_key: Gemini API key for this call

        Returns:
            Script text, trimmed

        Raises:
            OverloadedError: Service still overloaded after the last attempt
            InvalidApiKeyError: Credential rejected
            ApiError: Any other error response
            MalformedResponseError: Success response without script text
            NetworkError: Service unreachable
        """
        prompt = self.build_prompt(description)
        max_attempts = self.config.max_retries

        logger.info(f"Generating script with {self.model}, prompt length: {len(prompt)}")

        retrying = AsyncRetrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=BACKOFF_MULTIPLIER, max=MAX_BACKOFF_SECONDS),
            retry=retry_if_result(_is_overloaded),
            retry_error_callback=_last_outcome,
            before_sleep=self._log_backoff,
            sleep=self._sleep,
        )
        outcome: GenerationOutcome = await retrying(self._attempt, prompt, api_key)

        if outcome.kind is OutcomeKind.OVERLOADED:
            logger.error(f"Gemini API still overloaded after {max_attempts} attempts")
            raise OverloadedError(attempts=max_attempts)

        if outcome.kind is OutcomeKind.FAILED:
            raise outcome.error

        logger.info(f"Script generated: {len(outcome.text)} chars")
        return outcome.text

    def _log_backoff(self, retry_state: RetryCallState) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"Gemini API overloaded. Retrying in {delay:.0f}s "
            f"(attempt {retry_state.attempt_number}/{self.config.max_retries})"
        )

    async def _attempt(self, prompt: str, api_key: str) -> GenerationOutcome:
        """Send one request and tag its result."""
        body = {"contents": [{"parts": [{"text": prompt}]}]}

        try:
            response = await self.http_client.post(
                self.endpoint,
                params={"key": api_key},
                json=body,
                timeout=self.config.timeout,
            )
        except httpx.TimeoutException as e:
            logger.error(f"Gemini request timeout: {e}")
            return GenerationOutcome.failed(
                NetworkError("Request to the Gemini API timed out", original_error=e)
            )
        except httpx.TransportError as e:
            logger.error(f"Cannot connect to Gemini API: {e}")
            return GenerationOutcome.failed(
                NetworkError(f"Cannot connect to the Gemini API: {e}", original_error=e)
            )

        if response.status_code == OVERLOADED_STATUS:
            return GenerationOutcome.overloaded()

        if not response.is_success:
            return GenerationOutcome.failed(self._error_from_response(response))

        try:
            data = response.json()
        except ValueError as e:
            return GenerationOutcome.failed(
                MalformedResponseError("Gemini API returned invalid JSON", original_error=e)
            )

        text = _extract_text(data)
        if not text:
            return GenerationOutcome.failed(
                MalformedResponseError("Failed to extract script from API response.")
            )

        return GenerationOutcome.success(text)

    def _error_from_response(self, response: httpx.Response) -> ApiError:
        """Build a typed error from an error response body."""
        error: dict[str, Any] = {}
        try:
            payload = response.json()
            if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
                error = payload["error"]
        except ValueError:
            pass

        message = error.get("message") or UNKNOWN_API_ERROR
        logger.error(f"Gemini API error: HTTP {response.status_code}: {message}")

        reasons = {
            detail.get("reason", "")
            for detail in error.get("details", [])
            if isinstance(detail, dict)
        }
        if response.status_code in INVALID_KEY_STATUSES or any(
            reason.startswith("API_KEY_") for reason in reasons
        ):
            return InvalidApiKeyError(message, status_code=response.status_code)

        return ApiError(message, status_code=response.status_code)


def _extract_text(data: Any) -> str | None:
    """Return candidates[0].content.parts[0].text trimmed, or None."""
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    if not isinstance(text, str):
        return None
    return text.strip() or None
