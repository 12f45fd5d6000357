"""Single-flight cache of decryption keys."""

import threading
from concurrent.futures import Future
from typing import Dict, Optional

from .crypto import effective_iv
from .errors import HLSDownloadError, KeyFetchError
from .logger import DownloadLogger
from .models import AES_BLOCK_SIZE, EncryptionKey, KeyReference
from .network import HttpClient


class KeyResolver:
    """Fetches each key identifier at most once per run.

    The first caller for an identifier performs the fetch; concurrent callers
    wait on the same future. Failures are cached as well, so segments that
    depend on an unreachable key fail without further requests.
    """

    def __init__(self, client: HttpClient, logger: Optional[DownloadLogger] = None) -> None:
        self._client = client
        self._logger = logger
        self._lock = threading.Lock()
        self._entries: Dict[str, "Future[bytes]"] = {}
        self.fetch_count = 0

    def _fetch(self, identifier: str) -> bytes:
        try:
            resource = self._client.fetch(identifier)
        except HLSDownloadError as exc:
            raise KeyFetchError(f"Failed to fetch key {identifier}: {exc}") from exc
        raw_key = resource.content
        if len(raw_key) != AES_BLOCK_SIZE:
            raise KeyFetchError(
                f"Key {identifier} is {len(raw_key)} bytes, expected {AES_BLOCK_SIZE}"
            )
        if self._logger:
            self._logger.debug(f"Fetched key {identifier}")
        return raw_key

    def raw_key(self, identifier: str) -> bytes:
        with self._lock:
            entry = self._entries.get(identifier)
            owner = entry is None
            if owner:
                entry = Future()
                self._entries[identifier] = entry
                self.fetch_count += 1

        if owner:
            try:
                entry.set_result(self._fetch(identifier))
            except BaseException as exc:
                entry.set_exception(exc)
        return entry.result()

    def resolve(self, ref: KeyReference) -> EncryptionKey:
        raw_key = self.raw_key(ref.identifier)
        return EncryptionKey(
            identifier=ref.identifier,
            method=ref.method,
            raw_key=raw_key,
            iv=effective_iv(raw_key, ref.iv),
        )

    def cached(self, identifier: str) -> bool:
        with self._lock:
            entry = self._entries.get(identifier)
        return entry is not None and entry.done() and entry.exception() is None
