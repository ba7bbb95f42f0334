"""SSRF-safe single-attempt feed fetcher built on aiohttp."""

import asyncio
import time
from typing import Optional
from urllib.parse import urljoin

import aiohttp
import structlog

from .interfaces import Failure, FailureReason, FetcherInterface, Result, Success
from .url_guard import UrlGuard
from ..config.settings import settings

logger = structlog.get_logger()

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})


class SafeFetcher(FetcherInterface):
    """Fetches one feed URL with per-hop SSRF checks and bounded reads.

    Redirects are followed by hand so every hop is revalidated. There are
    no retries here: a failed attempt is returned as a Failure and the
    next scheduled cycle (or an operator refresh) tries again.
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        guard: Optional[UrlGuard] = None,
        max_redirects: int = None,
        max_response_bytes: int = None,
        connect_timeout: float = None,
        read_timeout: float = None,
        user_agent: str = None,
        chunk_bytes: int = None,
    ):
        self.session = session
        self._owns_session = False
        self.guard = guard or UrlGuard()
        self.max_redirects = (
            settings.fetch_max_redirects if max_redirects is None else max_redirects
        )
        self.max_response_bytes = max_response_bytes or settings.fetch_max_response_bytes
        self.user_agent = user_agent or settings.fetch_user_agent
        self.chunk_bytes = chunk_bytes or settings.fetch_chunk_bytes
        connect_timeout = connect_timeout or settings.fetch_connect_timeout_seconds
        read_timeout = read_timeout or settings.fetch_read_timeout_seconds
        # Wall-clock budget for one hop, so a slow drip cannot outlive it
        self.hop_timeout = connect_timeout + read_timeout
        self.timeout = aiohttp.ClientTimeout(
            total=self.hop_timeout,
            sock_connect=connect_timeout,
            sock_read=read_timeout,
        )

    async def __aenter__(self):
        if self.session is None:
            self.session = self._new_session()
            self._owns_session = True
        return self

    async def __aexit__(self, *args):
        if self._owns_session and self.session:
            await self.session.close()
            self.session = None
            self._owns_session = False

    def _new_session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent},
        )

    async def fetch(self, url: str) -> Result[bytes]:
        """Fetch url and return its body, or a normalized Failure."""
        if self.session is not None:
            return await self._fetch(self.session, url)
        async with self._new_session() as session:
            return await self._fetch(session, url)

    async def _fetch(self, session, url: str) -> Result[bytes]:
        start_time = time.time()
        current_url = (url or "").strip()
        redirects = 0

        while True:
            failure = await self.guard.check(current_url)
            if failure:
                logger.warning("fetch_rejected", url=current_url[:200], reason=failure.reason.value)
                return failure

            deadline = time.monotonic() + self.hop_timeout
            try:
                async with session.get(
                    current_url,
                    allow_redirects=False,
                    timeout=self.timeout,
                    headers={"User-Agent": self.user_agent},
                ) as response:
                    if response.status in REDIRECT_STATUSES:
                        location = response.headers.get("Location")
                        if not location:
                            return Failure(
                                FailureReason.HTTP_ERROR,
                                f"HTTP Error: {response.status} redirect without Location header",
                            )
                        if redirects >= self.max_redirects:
                            return Failure(
                                FailureReason.TOO_MANY_REDIRECTS,
                                f"Too many redirects (limit {self.max_redirects})",
                            )
                        redirects += 1
                        next_url = urljoin(current_url, location.strip())
                        logger.debug("fetch_redirect", source=current_url[:200],
                                     target=next_url[:200], hop=redirects)
                        current_url = next_url
                        continue

                    if not 200 <= response.status < 300:
                        return Failure(
                            FailureReason.HTTP_ERROR,
                            f"HTTP Error: {response.status} {response.reason or ''}".strip(),
                        )

                    body = await self._read_bounded(response, deadline)
                    if body is None:
                        return Failure(
                            FailureReason.RESPONSE_TOO_LARGE,
                            f"Response exceeds maximum size of {self.max_response_bytes} bytes",
                        )

                    elapsed_ms = int((time.time() - start_time) * 1000)
                    logger.info("feed_fetched", url=current_url[:200], bytes=len(body),
                                redirects=redirects, time_ms=elapsed_ms)
                    return Success(body)

            except asyncio.TimeoutError as e:
                return Failure(FailureReason.TIMEOUT, f"Request timed out: {str(e) or 'no response'}")
            except aiohttp.InvalidURL as e:
                return Failure(FailureReason.INVALID_URL, f"Invalid URL: {e}")
            except (aiohttp.ClientError, OSError) as e:
                return Failure(FailureReason.CONNECTION_ERROR, f"Connection failed: {e}")
            except ValueError as e:
                return Failure(FailureReason.INVALID_URL, f"Invalid URL: {e}")

    async def _read_bounded(self, response, deadline: float = None) -> Optional[bytes]:
        """Read the body in chunks; None once it grows past the size cap.

        Raises asyncio.TimeoutError if the body is still arriving at deadline.
        """
        declared = response.content_length
        if declared is not None and declared > self.max_response_bytes:
            return None

        body = bytearray()
        async for chunk in response.content.iter_chunked(self.chunk_bytes):
            body.extend(chunk)
            if len(body) > self.max_response_bytes:
                return None
            if deadline is not None and time.monotonic() > deadline:
                raise asyncio.TimeoutError(
                    f"response not completed within {self.hop_timeout:g}s"
                )
        return bytes(body)
