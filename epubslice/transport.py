from __future__ import annotations

import logging
import socket
import ssl
import time
import urllib.error
import urllib.request
from random import uniform
from typing import Callable, Mapping, Optional

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/15.0 Safari/605.1.15"
)
DEFAULT_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/*,*/*;q=0.8",
    "Accept-Language": "en",
}
DEFAULT_TIMEOUT = 60
DEFAULT_RETRIES = 3
RETRY_STATUS = (429, 500, 502, 503, 504)


class FetchError(RuntimeError):
    def __init__(self, url: str, reason: object) -> None:
        super().__init__(f"Failed to fetch {url}: {reason}")
        self.url = url


class HttpClient:
    """GET with retries on throttling, server errors and transport failures."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        retries: int = DEFAULT_RETRIES,
        headers: Optional[Mapping[str, str]] = None,
        opener: Optional[urllib.request.OpenerDirector] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.timeout = timeout
        self.retries = max(0, int(retries))
        self.headers = dict(DEFAULT_HEADERS if headers is None else headers)
        self.opener = opener or urllib.request.build_opener()
        self._sleep = sleep

    def _backoff(self, attempt: int) -> None:
        self._sleep(min(8.0, 2**attempt) + uniform(0, 0.25))

    def open(self, url: str):
        last_err: Optional[BaseException] = None
        for attempt in range(self.retries + 1):
            request = urllib.request.Request(url, headers=self.headers)
            try:
                return self.opener.open(request, timeout=self.timeout)
            except urllib.error.HTTPError as exc:
                last_err = exc
                if exc.code in RETRY_STATUS and attempt < self.retries:
                    logger.debug("HTTP %s for %s, retrying (%d/%d)", exc.code, url, attempt + 1, self.retries)
                    self._backoff(attempt)
                    continue
                raise FetchError(url, exc) from exc
            except (urllib.error.URLError, socket.timeout, TimeoutError, ssl.SSLError) as exc:
                last_err = exc
                if attempt < self.retries:
                    logger.debug("%s for %s, retrying (%d/%d)", exc, url, attempt + 1, self.retries)
                    self._backoff(attempt)
                    continue
                raise FetchError(url, exc) from exc
        raise FetchError(url, last_err)
