# ABOUTME: Content fetcher using the Jina reader endpoint over httpx
# ABOUTME: Returns page markdown and maps HTTP failures to typed fetch errors

import httpx

from echograph.errors import ErrorKind, FetchError
from echograph.utils.logging import get_logger, log_api_call
from echograph.utils.retry import kind_for_status

USER_AGENT = "echograph/0.1 (quote extraction pipeline)"


class JinaReaderFetcher:
    """Fetch pages as markdown through a reader service (``<base_url><page_url>``)."""

    def __init__(
        self,
        base_url: str = "https://r.jina.ai/",
        api_key: str | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url if base_url.endswith("/") else f"{base_url}/"
        headers = {"User-Agent": USER_AGENT, "Accept": "text/plain"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        # Allow for dependency injection
        self.http_client = client or httpx.AsyncClient(headers=headers, timeout=timeout, follow_redirects=True)
        self.logger = get_logger(__name__)

    @log_api_call("jina_reader")
    async def fetch(self, url: str) -> str:
        """Fetch ``url`` as markdown.

        Raises:
            FetchError: RATE_LIMITED for 429, TRANSIENT for 5xx, timeouts and
                transport errors, FATAL for other client errors
        """
        try:
            response = await self.http_client.get(f"{self.base_url}{url}")
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise FetchError(f"Fetching {url} returned {status}", kind=kind_for_status(status)) from e
        except httpx.TimeoutException as e:
            raise FetchError(f"Timed out fetching {url}", kind=ErrorKind.TRANSIENT) from e
        except httpx.TransportError as e:
            raise FetchError(f"Transport error fetching {url}: {e}", kind=ErrorKind.TRANSIENT) from e

        markdown = response.text
        self.logger.debug("Fetched page markdown", url=url, content_length=len(markdown))
        return markdown

    async def close(self) -> None:
        await self.http_client.aclose()
