"""OpenSubtitles REST API client."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from common.config import settings
from common.retry_utils import retry_with_exponential_backoff
from common.schemas import SubtitleFile, SubtitleSearchResult

logger = logging.getLogger(__name__)


class OpenSubtitlesAPIError(Exception):
    """Raised when API request fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class OpenSubtitlesAuthenticationError(OpenSubtitlesAPIError):
    """Raised when the API key is missing or rejected."""

    pass


class OpenSubtitlesRateLimitError(OpenSubtitlesAPIError):
    """Raised when rate limit is exceeded."""

    pass


class OpenSubtitlesClient:
    """
    Client for the OpenSubtitles REST API.

    Authenticates with an API key and user agent header.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize OpenSubtitles client.

        Args:
            transport: Optional httpx transport, used to stub the network
        """
        self.api_url = settings.opensubtitles_api_url.rstrip("/")
        self.api_key = settings.opensubtitles_api_key
        self.user_agent = settings.opensubtitles_user_agent
        self.search_language = settings.opensubtitles_search_language
        self.timeout = settings.opensubtitles_timeout
        self._transport = transport

    def _create_retry_decorator(self):
        """Create retry decorator with configured settings."""
        return retry_with_exponential_backoff(
            max_retries=settings.opensubtitles_max_retries,
            initial_delay=settings.opensubtitles_retry_delay,
            exponential_base=settings.opensubtitles_retry_exponential_base,
            max_delay=settings.opensubtitles_retry_max_delay,
        )

    def _headers(self) -> Dict[str, str]:
        """Build request headers, failing fast without credentials."""
        if not self.api_key or not self.user_agent:
            raise OpenSubtitlesAuthenticationError(
                "Missing OpenSubtitles API configuration"
            )
        return {
            "Api-Key": self.api_key,
            "User-Agent": self.user_agent,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        """Create an HTTP client for one operation."""
        return httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            follow_redirects=True,
        )

    @staticmethod
    def _raise_for_status(response: httpx.Response, operation: str) -> None:
        """
        Map an error response to the client's exception types.

        Raises:
            OpenSubtitlesAuthenticationError: On 401/403
            OpenSubtitlesRateLimitError: On 429
            OpenSubtitlesAPIError: On any other error status
        """
        if response.is_success:
            return

        message = f"OpenSubtitles {operation} failed with HTTP {response.status_code}"
        logger.error(f"{message}: {response.text[:500]}")

        if response.status_code in (401, 403):
            raise OpenSubtitlesAuthenticationError(message, response.status_code)
        if response.status_code == 429:
            raise OpenSubtitlesRateLimitError(message, response.status_code)
        raise OpenSubtitlesAPIError(message, response.status_code)

    @staticmethod
    def _decode_json(response: httpx.Response, operation: str) -> Dict[str, Any]:
        """
        Decode a successful response body as a JSON object.

        Raises:
            OpenSubtitlesAPIError: If the body is not a JSON object
        """
        try:
            payload = response.json()
        except ValueError as e:
            logger.error(
                f"OpenSubtitles {operation} returned a non-JSON body: {response.text[:500]}"
            )
            raise OpenSubtitlesAPIError(
                f"OpenSubtitles {operation} returned invalid JSON", response.status_code
            ) from e

        if not isinstance(payload, dict):
            raise OpenSubtitlesAPIError(
                f"OpenSubtitles {operation} returned unexpected JSON", response.status_code
            )
        return payload

    async def search_subtitles(self, query: str) -> List[SubtitleSearchResult]:
        """
        Search English subtitles by free-text query.

        Args:
            query: Search query (movie name)

        Returns:
            List of subtitle results

        Raises:
            OpenSubtitlesAPIError: If search fails
        """
        headers = self._headers()

        @self._create_retry_decorator()
        async def _do_search() -> Dict[str, Any]:
            async with self._client() as client:
                try:
                    response = await client.get(
                        f"{self.api_url}/subtitles",
                        params={"query": query, "languages": self.search_language},
                        headers=headers,
                    )
                except httpx.HTTPError as e:
                    raise OpenSubtitlesAPIError(f"Search request error: {e}") from e

            self._raise_for_status(response, "search")
            return self._decode_json(response, "search")

        payload = await _do_search()
        results = [self._parse_search_item(item) for item in payload.get("data", [])]
        logger.info(f"🔍 Found {len(results)} subtitles for query '{query}'")
        return results

    @staticmethod
    def _parse_search_item(item: Dict[str, Any]) -> SubtitleSearchResult:
        """Convert one raw search hit into a SubtitleSearchResult."""
        attributes = item.get("attributes") or {}
        feature = attributes.get("feature_details") or {}
        imdb_id = feature.get("imdb_id")

        return SubtitleSearchResult(
            id=str(item.get("id", "")),
            release=attributes.get("release") or "",
            language=attributes.get("language") or "",
            imdb_id=str(imdb_id) if imdb_id else "",
            files=[
                SubtitleFile(
                    file_id=file_info["file_id"],
                    file_name=file_info.get("file_name") or "",
                )
                for file_info in attributes.get("files", [])
                if file_info.get("file_id") is not None
            ],
        )

    async def download_subtitle(self, file_id: int) -> str:
        """
        Download a subtitle file's content.

        The API answers with a temporary link, which is fetched in turn.

        Args:
            file_id: File id from search results

        Returns:
            Raw SRT content

        Raises:
            OpenSubtitlesAPIError: If download fails
        """
        headers = self._headers()

        @self._create_retry_decorator()
        async def _do_download() -> str:
            async with self._client() as client:
                try:
                    response = await client.post(
                        f"{self.api_url}/download",
                        json={"file_id": file_id},
                        headers=headers,
                    )
                    self._raise_for_status(response, "download link")

                    link = self._decode_json(response, "download link").get("link")
                    if not link:
                        raise OpenSubtitlesAPIError("No download link in response")

                    file_response = await client.get(link)
                except httpx.HTTPError as e:
                    raise OpenSubtitlesAPIError(f"Download request error: {e}") from e

            self._raise_for_status(file_response, "file download")
            return file_response.text

        content = await _do_download()
        logger.info(f"✅ Downloaded subtitle file {file_id} ({len(content)} chars)")
        return content


# Global OpenSubtitles client instance
opensubtitles_client = OpenSubtitlesClient()
