"""JWKS key resolution — fetches provider public keys and caches them per kid.

Features:
- Per-key TTL cache (each entry expires on its own)
- Single-flight fetches: concurrent callers for the same kid share one request
- Eviction of rotated-out keys when a fresh key set no longer lists them
- Rate-limited refetch for kids that were never seen
- Bounded fetch time; a failed fetch leaves the cache untouched
"""

import asyncio
import functools
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
from jwt import PyJWK

from idtoken_verifier.config import JWT_ALGORITHM
from idtoken_verifier.errors import KeyResolutionFailed, UnknownSigningKey

logger = logging.getLogger("idtoken_verifier.jwks")

Clock = Callable[[], float]


@dataclass(frozen=True, slots=True)
class SigningKey:
    """A provider public key, as published in its key set."""

    key_id: str
    public_key: PyJWK
    algorithm: str | None = None


@dataclass(frozen=True, slots=True)
class CacheEntry:
    key: SigningKey
    fetched_at: float


class KeyCache:
    """In-memory ``kid -> (SigningKey, fetched_at)`` map with a per-entry TTL.

    Reads never mutate the cache. Expired entries are dropped by
    ``evict_stale()``, which runs before a refresh stores its keys and
    whenever the cache grows past ``max_entries``.
    """

    def __init__(
        self,
        ttl: float,
        *,
        max_entries: int = 1000,
        clock: Clock = time.monotonic,
    ) -> None:
        self._ttl = ttl
        self._max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, kid: object) -> bool:
        return kid in self._entries

    def get(self, kid: str) -> SigningKey | None:
        """Return the key for ``kid`` if cached and within its TTL."""
        entry = self._entries.get(kid)
        if entry is None or self._is_expired(entry):
            return None
        return entry.key

    def put(self, key: SigningKey, fetched_at: float) -> None:
        self._entries[key.key_id] = CacheEntry(key=key, fetched_at=fetched_at)
        if len(self._entries) > self._max_entries:
            self.evict_stale()

    def invalidate(self, kid: str) -> bool:
        """Drop ``kid`` from the cache. Returns True if it was present."""
        return self._entries.pop(kid, None) is not None

    def evict_stale(self) -> int:
        """Remove expired entries. Returns how many were removed."""
        stale = [kid for kid, entry in self._entries.items() if self._is_expired(entry)]
        for kid in stale:
            del self._entries[kid]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

    def _is_expired(self, entry: CacheEntry) -> bool:
        return (self._clock() - entry.fetched_at) >= self._ttl


class KeySetSource(Protocol):
    """Anything that can return a provider's JWKS document."""

    async def fetch(self) -> dict[str, Any]: ...


class HttpKeySetSource:
    """Fetches a JWKS document over HTTPS.

    Args:
        jwks_url: URL of the provider's key set.
        http_timeout: HTTP request timeout in seconds (default 5).
    """

    def __init__(
        self,
        jwks_url: str,
        *,
        http_timeout: float = 5.0,
        _transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.jwks_url = jwks_url
        self._http_timeout = http_timeout
        self._transport = _transport

    async def fetch(self) -> dict[str, Any]:
        kwargs: dict = {"timeout": self._http_timeout}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        async with httpx.AsyncClient(**kwargs) as client:
            response = await client.get(self.jwks_url, headers={"Accept": "application/json"})
            response.raise_for_status()
            return response.json()


class JWKSFetcher:
    """Resolves signing keys by kid, fetching the provider key set on a miss.

    Args:
        source: A ``KeySetSource``, or a JWKS URL to fetch over HTTPS.
        algorithms: Allowed signing algorithms; keys for any other algorithm are ignored.
        cache_ttl: How long a fetched key stays valid, in seconds (default 3600).
        min_refetch_interval: Minimum seconds since the last fetch before a
            never-seen kid may trigger another one (default 30).
        http_timeout: Upper bound on a single fetch, in seconds (default 5).
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        source: KeySetSource | str,
        *,
        algorithms: Iterable[str] = (JWT_ALGORITHM,),
        cache_ttl: float = 3600.0,
        min_refetch_interval: float = 30.0,
        http_timeout: float = 5.0,
        clock: Clock = time.monotonic,
        _transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if isinstance(source, str):
            source = HttpKeySetSource(source, http_timeout=http_timeout, _transport=_transport)
        self._source = source
        self._algorithms = frozenset(algorithms)
        self._min_refetch_interval = min_refetch_interval
        self._http_timeout = http_timeout
        self._clock = clock
        self._cache = KeyCache(cache_ttl, clock=clock)
        self._inflight: dict[str, asyncio.Future[SigningKey]] = {}
        self._last_fetch: float | None = None

    @property
    def cache(self) -> KeyCache:
        return self._cache

    async def get_signing_key(self, kid: str) -> SigningKey:
        """Return the signing key for ``kid``, fetching the key set if needed.

        Concurrent calls for the same uncached kid await a single fetch.

        Raises:
            KeyResolutionFailed: The key set could not be fetched in time.
            UnknownSigningKey: The provider's current key set has no such kid.
        """
        key = self._cache.get(kid)
        if key is not None:
            return key

        pending = self._inflight.get(kid)
        if pending is None:
            pending = asyncio.ensure_future(self._resolve(kid))
            self._inflight[kid] = pending
            pending.add_done_callback(functools.partial(self._forget, kid))
        # A cancelled waiter must not cancel the fetch other callers share.
        return await asyncio.shield(pending)

    def invalidate(self, kid: str) -> bool:
        """Force the next request for ``kid`` to refetch the key set."""
        return self._cache.invalidate(kid)

    def clear(self) -> None:
        self._cache.clear()
        self._last_fetch = None

    def _forget(self, kid: str, future: asyncio.Future) -> None:
        if self._inflight.get(kid) is future:
            del self._inflight[kid]
        # Retrieve the outcome so a failure nobody awaited is not reported as unhandled.
        if not future.cancelled():
            future.exception()

    async def _resolve(self, kid: str) -> SigningKey:
        if kid not in self._cache and self._fetched_recently():
            logger.info("Unknown kid=%s within refetch interval, not refetching", kid)
            raise UnknownSigningKey(kid, retryable=True)

        keys = await self._fetch()
        key = keys.get(kid)
        if key is None:
            if self._cache.invalidate(kid):
                logger.info("Signing key kid=%s was rotated out, evicted", kid)
            raise UnknownSigningKey(kid)
        return key

    def _fetched_recently(self) -> bool:
        if self._last_fetch is None:
            return False
        return (self._clock() - self._last_fetch) < self._min_refetch_interval

    async def _fetch(self) -> dict[str, SigningKey]:
        """Fetch the key set and populate the cache. Cache is untouched on failure."""
        try:
            jwks_data = await asyncio.wait_for(self._source.fetch(), timeout=self._http_timeout)
        except TimeoutError:
            logger.warning("Timed out fetching JWKS after %.1fs", self._http_timeout)
            raise KeyResolutionFailed(
                f"Timed out fetching signing keys after {self._http_timeout}s"
            )
        except (httpx.HTTPError, OSError, ValueError) as e:
            logger.warning("Failed to fetch JWKS: %s", e)
            raise KeyResolutionFailed(f"Failed to fetch signing keys: {e}") from e

        raw_keys = jwks_data.get("keys") if isinstance(jwks_data, dict) else None
        if not isinstance(raw_keys, list):
            logger.warning("JWKS response has no 'keys' list")
            raise KeyResolutionFailed("Key set response has no 'keys' list")

        new_keys: dict[str, SigningKey] = {}
        for key_data in raw_keys:
            key = self._parse_key(key_data)
            if key is not None:
                new_keys[key.key_id] = key

        # Sweep before inserting, so a zero TTL cannot drop the keys just fetched.
        self._cache.evict_stale()
        fetched_at = self._clock()
        for key in new_keys.values():
            self._cache.put(key, fetched_at)
        self._last_fetch = fetched_at
        logger.debug("JWKS refreshed: %d keys loaded", len(new_keys))
        return new_keys

    def _parse_key(self, key_data: Any) -> SigningKey | None:
        if not isinstance(key_data, dict):
            return None
        kid = key_data.get("kid")
        if not kid:
            return None
        use = key_data.get("use")
        if use is not None and use != "sig":
            logger.debug("Skipping JWK kid=%s with use=%s", kid, use)
            return None
        try:
            jwk = PyJWK(key_data)
        except Exception:
            logger.warning("Failed to parse JWK with kid=%s", kid)
            return None
        if jwk.algorithm_name not in self._algorithms:
            logger.warning("Ignoring JWK kid=%s with algorithm %s", kid, jwk.algorithm_name)
            return None
        return SigningKey(key_id=kid, public_key=jwk, algorithm=key_data.get("alg"))
