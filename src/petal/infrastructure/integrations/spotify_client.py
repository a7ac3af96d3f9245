"""Spotify Web API catalog fetcher."""

import logging
from typing import Any

import httpx

from petal.config.settings import SpotifySettings
from petal.domain.dtos import RemotePage
from petal.domain.entities import ResourceKind
from petal.domain.exceptions import AuthExpired, NetworkError, RemotePayloadError
from petal.domain.ports import ICatalogFetcher
from petal.infrastructure.integrations.spotify_mappers import decode_page
from petal.infrastructure.rate_limiter import RateLimiter, get_spotify_limiter

logger = logging.getLogger(__name__)

# First-page endpoint + extra query params per resource kind. Every later page is
# fetched through the absolute `next` URL Spotify hands back.
_ENDPOINTS: dict[ResourceKind, tuple[str, dict[str, str]]] = {
    ResourceKind.PLAYLISTS: ("/me/playlists", {}),
    ResourceKind.SAVED_TRACKS: ("/me/tracks", {}),
    ResourceKind.SAVED_ALBUMS: ("/me/albums", {}),
    ResourceKind.FOLLOWED_ARTISTS: ("/me/following", {"type": "artist"}),
    ResourceKind.RECENTLY_PLAYED: ("/me/player/recently-played", {}),
}


class SpotifyCatalogClient(ICatalogFetcher):
    """Pages through the current user's Spotify library.

    Hey future me - this client does NOT retry failures. The only retry is the
    rate limiter's 429 handling (Spotify tells us exactly how long to wait). Anything
    else is translated into a SyncFailure and goes straight up to the engine, which
    aborts the whole sync. Never return a half-fetched page!
    """

    # Spotify error messages that mean "this token is no good", seen on 400/403
    _AUTH_ERROR_HINTS = ("token", "scope", "unauthorized")

    # Listen up, future me: the httpx client is created lazily because building an
    # AsyncClient outside a running event loop causes weird loop-binding issues.
    def __init__(
        self,
        settings: SpotifySettings,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        """
        Initialize Spotify catalog client.

        Args:
            settings: Spotify configuration settings
            rate_limiter: Limiter to use, defaults to the shared Spotify limiter
        """
        self.settings = settings
        self._rate_limiter = rate_limiter
        self._client: httpx.AsyncClient | None = None

    @property
    def api_base_url(self) -> str:
        return self.settings.api_base_url.rstrip("/")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.request_timeout)
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch_page(
        self,
        kind: ResourceKind,
        credentials: str,
        cursor: str | None = None,
    ) -> RemotePage[Any]:
        """Fetch and decode one library page.

        Raises:
            AuthExpired: Token rejected
            NetworkError: Transport failure, timeout, 5xx or exhausted 429 retries
            RemotePayloadError: Response body is not a Spotify paging object
        """
        if cursor is None:
            path, extra_params = _ENDPOINTS[kind]
            url = f"{self.api_base_url}{path}"
            params: dict[str, Any] | None = {"limit": self.settings.page_size, **extra_params}
        else:
            # Hey future me - the cursor came from a response body. Never send our
            # bearer token anywhere except the configured API host!
            if not cursor.startswith(self.api_base_url + "/"):
                raise RemotePayloadError(f"Refusing to follow cursor outside the API: {cursor}")
            url = cursor
            params = None

        response = await self._api_request(
            "GET",
            url,
            credentials,
            params=params,
            max_retries=self.settings.max_rate_limit_retries,
        )
        self._raise_for_status(response, url)

        try:
            payload = response.json()
        except ValueError as e:
            raise RemotePayloadError(f"Spotify returned invalid JSON for {url}") from e

        page = decode_page(kind, payload)
        logger.debug(
            "Fetched %d %s from %s (next=%s)",
            len(page.items),
            kind.value,
            url,
            bool(page.next_cursor),
        )
        return page

    # Hey future me - CENTRALIZED API REQUEST with rate limiting!
    # - token bucket before every request
    # - on 429: wait Retry-After (or adaptive backoff) and retry, max_retries times
    # - transport errors become NetworkError, everything else returns the response
    async def _api_request(
        self,
        method: str,
        url: str,
        access_token: str,
        params: dict[str, Any] | None = None,
        max_retries: int = 3,
    ) -> httpx.Response:
        """Make a rate-limited API request with retry on 429.

        Returns:
            httpx.Response (any status except an exhausted 429)

        Raises:
            NetworkError: On transport errors/timeouts or 429 after max_retries
        """
        client = await self._get_client()
        rate_limiter = self._rate_limiter or get_spotify_limiter()
        headers = {"Authorization": f"Bearer {access_token}"}

        attempt = 0
        while True:
            try:
                async with rate_limiter:
                    response = await client.request(method, url, params=params, headers=headers)
            except httpx.TimeoutException as e:
                raise NetworkError(f"Timed out talking to Spotify: {url}") from e
            except httpx.TransportError as e:
                raise NetworkError(f"Could not reach Spotify: {e}") from e

            if response.status_code != 429:
                rate_limiter.reset_backoff()
                return response

            retry_after = self._parse_retry_after(response)
            if attempt >= max_retries:
                raise NetworkError(
                    f"Spotify API rate limited (429) after {max_retries} retries. "
                    f"Retry-After: {retry_after if retry_after is not None else 'not provided'}",
                    status_code=429,
                    retry_after=retry_after,
                )

            attempt += 1
            wait_time = await rate_limiter.handle_rate_limit_response(retry_after)
            logger.warning(
                "Spotify 429 (attempt %d/%d): waited %.1fs, retrying %s",
                attempt,
                max_retries,
                wait_time,
                url,
            )

    @staticmethod
    def _parse_retry_after(response: httpx.Response) -> int | None:
        value = response.headers.get("Retry-After")
        if value is None:
            return None
        try:
            return max(0, int(value))
        except ValueError:
            return None

    def _raise_for_status(self, response: httpx.Response, url: str) -> None:
        status = response.status_code
        if status < 400:
            return

        message = self._error_message(response)

        if status == 401:
            raise AuthExpired(status_code=status)
        if status in (400, 403) and any(
            hint in message.lower() for hint in self._AUTH_ERROR_HINTS
        ):
            raise AuthExpired(
                f"Spotify rejected the access token: {message}", status_code=status
            )
        raise NetworkError(
            f"Spotify API error {status} for {url}: {message}", status_code=status
        )

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        # Spotify error bodies look like {"error": {"status": 401, "message": "..."}}
        try:
            body = response.json()
        except ValueError:
            return response.text[:200]
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict):
                return str(error.get("message") or "")
            if isinstance(error, str):
                return str(body.get("error_description") or error)
        return ""

    async def __aenter__(self) -> "SpotifyCatalogClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
