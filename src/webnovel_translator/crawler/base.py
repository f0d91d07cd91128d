"""HTTP page fetcher used when the completion provider cannot fetch URLs itself."""

import asyncio
from typing import Optional

import httpx
import structlog
from bs4 import BeautifulSoup

from webnovel_translator.config import CrawlerConfig, get_config
from webnovel_translator.utils.encoding import decode_content, detect_encoding

logger = structlog.get_logger()

# Elements that never carry chapter prose
_NOISE_TAGS = ("script", "style", "noscript", "header", "footer", "nav", "form")

# syosetu serves an age check page to R18 readers without this cookie
AGE_GATE_COOKIES = {"over18": "yes"}
AGE_GATE_MARKER = "年齢確認"


class PageFetcher:
    """HTTP client with encoding support and retry logic."""

    def __init__(self, config: Optional[CrawlerConfig] = None):
        """Initialize the fetcher.

        Args:
            config: Crawler configuration, uses global config if None
        """
        self.config = config or get_config().crawler
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "PageFetcher":
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.timeout_seconds),
            headers={"User-Agent": self.config.user_agent},
            cookies=AGE_GATE_COOKIES,
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, raise if not initialized."""
        if self._client is None:
            raise RuntimeError("Fetcher not initialized. Use 'async with' context manager.")
        return self._client

    async def fetch_raw(self, url: str) -> bytes:
        """Fetch URL content as raw bytes.

        Client errors 403/404/410 are raised immediately, timeouts and
        connection errors are retried.
        """
        last_error: Optional[Exception] = None

        for attempt in range(self.config.max_retries + 1):
            try:
                response = await self.client.get(url)
                response.raise_for_status()
                return response.content

            except httpx.HTTPStatusError as e:
                last_error = e
                logger.warning("http_error", status=e.response.status_code, url=url)
                if e.response.status_code in (403, 404, 410):
                    raise

            except (httpx.TimeoutException, httpx.ConnectError) as e:
                last_error = e
                logger.warning("fetch_retry", attempt=attempt + 1, error=str(e), url=url)

            if attempt < self.config.max_retries:
                delay = self.config.delay_ms / 1000 * (attempt + 1)
                await asyncio.sleep(delay)

        raise last_error or RuntimeError(f"Failed to fetch {url}")

    async def fetch(self, url: str, encoding: Optional[str] = None) -> str:
        """Fetch URL content as decoded string."""
        content = await self.fetch_raw(url)

        if encoding is None:
            encoding = detect_encoding(content)

        return decode_content(content, encoding)

    async def fetch_text(self, url: str) -> str:
        """Fetch a page and return its readable text, truncated to max_page_chars."""
        html = await self.fetch(url)
        if AGE_GATE_MARKER in html:
            logger.warning("age_gate_page", url=url)
        text = extract_page_text(html)
        if len(text) > self.config.max_page_chars:
            logger.debug(
                "page_text_truncated",
                url=url,
                length=len(text),
                limit=self.config.max_page_chars,
            )
            text = text[: self.config.max_page_chars]
        return text


def inline_ruby(soup: BeautifulSoup) -> None:
    """Rewrite <ruby> annotations as "base(reading)" so name readings reach the model."""
    for ruby in soup.find_all("ruby"):
        for rp in ruby.find_all("rp"):
            rp.decompose()
        readings = [rt.extract().get_text(strip=True) for rt in ruby.find_all("rt")]
        base = ruby.get_text(strip=True)
        reading = "".join(readings)
        ruby.replace_with(f"{base}({reading})" if reading else base)
    soup.smooth()


def extract_page_text(html: str) -> str:
    """Strip markup and navigation noise from an HTML page.

    Args:
        html: Page HTML

    Returns:
        Visible text, one block per line, blank lines collapsed
    """
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_NOISE_TAGS):
        tag.decompose()
    inline_ruby(soup)

    lines = [line.strip() for line in soup.get_text("\n").splitlines()]
    return "\n".join(line for line in lines if line)
