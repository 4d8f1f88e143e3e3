"""
Anthropic Messages API client for article generation.

Returns a ClaudeResult for every call; HTTP errors and timeouts are reported
through status/error instead of raising, so a generation job can skip one
item and move on to the next.
"""

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Optional

import httpx

from matchday.config import Settings

logger = logging.getLogger(__name__)

ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MODEL = "claude-3-haiku-20240307"

STATUS_COMPLETED = "COMPLETED"
STATUS_ERROR = "ERROR"
STATUS_TIMEOUT = "TIMEOUT"


@dataclass
class ClaudeResult:
    """Result from a Messages API call."""

    status: str  # COMPLETED, ERROR, TIMEOUT
    text: str
    tokens_in: int
    tokens_out: int
    exec_ms: int
    error: Optional[str] = None
    stop_reason: Optional[str] = None  # end_turn, max_tokens, stop_sequence

    @property
    def ok(self) -> bool:
        return self.status == STATUS_COMPLETED and bool(self.text)


class ClaudeError(Exception):
    """Client misconfigured (no API key)."""


class ClaudeClient:
    """Async client for the Anthropic Messages API."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 2048,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = (api_key or "").strip()
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClaudeClient":
        return cls(
            api_key=settings.ANTHROPIC_API_KEY,
            model=settings.CLAUDE_MODEL,
            max_tokens=settings.CLAUDE_MAX_TOKENS,
            timeout=settings.LLM_TIMEOUT_SECONDS,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers={
                    "Content-Type": "application/json",
                    "x-api-key": self.api_key,
                    "anthropic-version": ANTHROPIC_VERSION,
                },
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def generate(self, prompt: str, max_tokens: Optional[int] = None) -> ClaudeResult:
        """
        Generate text for a single user prompt.

        Args:
            prompt: The prompt to send to the model.
            max_tokens: Override default max tokens.

        Returns:
            ClaudeResult with generated text and usage.
        """
        if not self.api_key:
            raise ClaudeError("ANTHROPIC_API_KEY not configured")

        client = await self._get_client()
        payload = {
            "model": self.model,
            "max_tokens": max_tokens or self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }

        start_time = time.time()

        try:
            response = await client.post(ANTHROPIC_API_URL, json=payload)
        except httpx.TimeoutException:
            elapsed_ms = int((time.time() - start_time) * 1000)
            logger.error(f"Claude API timeout after {elapsed_ms}ms")
            return ClaudeResult(
                status=STATUS_TIMEOUT,
                text="",
                tokens_in=0,
                tokens_out=0,
                exec_ms=elapsed_ms,
                error="Request timed out",
            )
        except httpx.RequestError as e:
            elapsed_ms = int((time.time() - start_time) * 1000)
            logger.error(f"Claude API request failed: {e}")
            return ClaudeResult(
                status=STATUS_ERROR,
                text="",
                tokens_in=0,
                tokens_out=0,
                exec_ms=elapsed_ms,
                error=str(e) or type(e).__name__,
            )

        elapsed_ms = int((time.time() - start_time) * 1000)

        if response.status_code != 200:
            error_text = response.text[:500]
            logger.error(f"Claude API error {response.status_code}: {error_text}")
            return ClaudeResult(
                status=STATUS_ERROR,
                text="",
                tokens_in=0,
                tokens_out=0,
                exec_ms=elapsed_ms,
                error=f"HTTP {response.status_code}: {error_text}",
            )

        data = response.json()
        text = "".join(
            block.get("text", "") for block in data.get("content", []) if block.get("type") == "text"
        )
        usage = data.get("usage", {})
        stop_reason = data.get("stop_reason")

        if stop_reason == "max_tokens":
            logger.warning(
                f"Claude stop_reason=max_tokens (tokens_out={usage.get('output_tokens', 0)}, "
                f"max_tokens={payload['max_tokens']}, text_len={len(text)})"
            )

        return ClaudeResult(
            status=STATUS_COMPLETED,
            text=text,
            tokens_in=usage.get("input_tokens", 0),
            tokens_out=usage.get("output_tokens", 0),
            exec_ms=elapsed_ms,
            stop_reason=stop_reason,
        )


@dataclass
class ArticleSections:
    title: str
    description: str
    content: str
    tags: list[str] = field(default_factory=list)


_SECTION_RE = re.compile(r"---(TITLE|DESCRIPTION|CONTENT|TAGS)---")


def parse_article_sections(text: str) -> Optional[ArticleSections]:
    """
    Parse the ---TITLE--- / ---DESCRIPTION--- / ---CONTENT--- / ---TAGS--- format.

    Returns None unless title and content are both present.
    """
    parts = _SECTION_RE.split(text or "")
    # split() yields [preamble, name1, body1, name2, body2, ...]
    sections = {name: body.strip() for name, body in zip(parts[1::2], parts[2::2])}

    title = sections.get("TITLE", "")
    content = sections.get("CONTENT", "")
    if not title or not content:
        return None

    tags = [tag.strip() for tag in sections.get("TAGS", "").split(",") if tag.strip()]
    return ArticleSections(
        title=title,
        description=sections.get("DESCRIPTION", ""),
        content=content,
        tags=tags,
    )
