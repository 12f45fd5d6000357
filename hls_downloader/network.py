"""HTTP access shared by playlist, key, and segment fetches."""

from dataclasses import dataclass
from typing import Dict, Optional

import requests
from requests.adapters import HTTPAdapter

from .errors import NetworkError
from .models import (
    DEFAULT_ACCEPT,
    DEFAULT_ACCEPT_ENCODING,
    DEFAULT_ACCEPT_LANGUAGE,
    DEFAULT_TIMEOUT,
    DEFAULT_USER_AGENT,
    url_origin,
)


@dataclass(frozen=True)
class FetchedResource:
    """A fully read response body."""
    url: str
    content: bytes
    declared_length: Optional[int]
    status: int = 200


def parse_content_length(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        parsed = int(value.strip())
    except ValueError:
        return None
    return parsed if parsed >= 0 else None


class HttpClient:
    """GET-only client with the fixed request contract.

    One instance is built per run and shared by every worker; it holds no
    per-request state after construction.
    """

    def __init__(
        self,
        cookie: Optional[str] = None,
        referer: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        pool_size: int = 10,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._cookie = cookie or None
        self._referer = referer or None
        self._timeout = timeout
        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        self._session = session

    @property
    def cookie(self) -> Optional[str]:
        return self._cookie

    @property
    def referer(self) -> Optional[str]:
        return self._referer

    @property
    def timeout(self) -> float:
        return self._timeout

    def build_headers(self, url: str) -> Dict[str, str]:
        headers = {
            "User-Agent": DEFAULT_USER_AGENT,
            "Accept": DEFAULT_ACCEPT,
            "Accept-Encoding": DEFAULT_ACCEPT_ENCODING,
            "Accept-Language": DEFAULT_ACCEPT_LANGUAGE,
            "Connection": "keep-alive",
        }
        if self._cookie:
            headers["Cookie"] = self._cookie
        referer = self._referer or url_origin(url)
        if referer:
            headers["Referer"] = referer
        return headers

    def fetch(self, url: str) -> FetchedResource:
        """GET *url* and read the whole body.

        Raises NetworkError for transport failures, timeouts, and non-2xx
        responses.
        """
        try:
            response = self._session.get(
                url,
                headers=self.build_headers(url),
                timeout=self._timeout,
            )
        except requests.exceptions.RequestException as exc:
            raise NetworkError(f"{url}: {exc}", url=url) from exc

        try:
            if not 200 <= response.status_code < 300:
                raise NetworkError(
                    f"{url}: HTTP {response.status_code}",
                    url=url,
                    status=response.status_code,
                )
            try:
                content = response.content
            except requests.exceptions.RequestException as exc:
                raise NetworkError(f"{url}: {exc}", url=url) from exc
            return FetchedResource(
                url=url,
                content=content,
                declared_length=parse_content_length(response.headers.get("Content-Length")),
                status=response.status_code,
            )
        finally:
            response.close()

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False
