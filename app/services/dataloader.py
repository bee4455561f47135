"""Request-scoped batched loading.

`KeyedBatchLoader` wraps Strawberry's DataLoader with the behaviour the
request handlers rely on:

- loads issued before the event loop next runs are coalesced into one call
  of the batch function, with duplicate keys collapsed;
- keys are compared structurally, so ``{"a": 1, "b": 2}`` and
  ``{"b": 2, "a": 1}`` share one cache slot;
- a batch function may return an exception instance for a single key; that
  key resolves to ``None`` and the error is logged, its siblings are unaffected;
- at most ``max_batch_size`` keys go into one call, and overflow batches run
  one after another.

A loader lives for one request. Build it from the request's session and let
it go out of scope with the request.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Hashable, Iterable, Mapping, Sequence
from typing import Any

from strawberry.dataloader import DataLoader

from app.core.config import settings
from app.core.errors import BatchLoadError
from app.core.observability import metrics
from app.core.telemetry import get_tracer
from app.db.validators import to_jsonable

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

type BatchFn[K, V] = Callable[[list[K]], Awaitable[Sequence[V | BaseException]]]


def canonical_cache_key(key: Any) -> Hashable:
    """Cache identity for a load key.

    Mappings and lists are reduced to canonical JSON (keys sorted at every
    level) so structurally equal keys collide. Hashable scalars are used as-is.
    """
    if isinstance(key, Mapping):
        payload = json.dumps(to_jsonable(dict(key)), sort_keys=True, separators=(",", ":"))
        return ("mapping", payload)
    if isinstance(key, list):
        payload = json.dumps(to_jsonable(key), sort_keys=True, separators=(",", ":"))
        return ("list", payload)
    return key


def group_by_key[K, R](rows: Iterable[R], keys: Sequence[K], key_of: Callable[[R], K]) -> list[list[R]]:
    """Group ``rows`` under the requested keys, ``[]`` where nothing matched."""
    grouped: dict[K, list[R]] = {}
    for row in rows:
        grouped.setdefault(key_of(row), []).append(row)
    return [grouped.get(key, []) for key in keys]


def index_by_key[K, R, D](
    rows: Iterable[R],
    keys: Sequence[K],
    key_of: Callable[[R], K],
    default: D = None,
) -> list[R | D]:
    """One row per requested key, ``default`` for keys with no row."""
    index = {key_of(row): row for row in rows}
    return [index.get(key, default) for key in keys]


class KeyedBatchLoader[K, V]:
    """Batching, deduplicating, caching loader for one request.

    Usage:
        users = KeyedBatchLoader(batch_load_users, name="users")
        a, b = await asyncio.gather(users.load("u1"), users.load("u2"))  # one batch call
        found = await users.load_many_as_map(["u1", "u3"])
    """

    def __init__(
        self,
        batch_fn: BatchFn[K, V],
        *,
        name: str,
        max_batch_size: int | None = None,
        cache_key_fn: Callable[[K], Hashable] = canonical_cache_key,
    ) -> None:
        """Create a loader around ``batch_fn``.

        Args:
            batch_fn: Receives distinct keys, returns one result per key in the
                same order; an exception instance marks a per-key failure
            name: Label used in logs and metrics
            max_batch_size: Keys per batch call (defaults to DATALOADER_MAX_BATCH_SIZE)
            cache_key_fn: Maps a key to its cache identity
        """
        self.name = name
        self._batch_fn = batch_fn
        self._cache_key_fn = cache_key_fn
        # Overflow batches share one AsyncSession, which cannot run statements concurrently.
        self._lock = asyncio.Lock()
        self._loader: DataLoader[K, V | None] = DataLoader(
            load_fn=self._dispatch,
            max_batch_size=max_batch_size or settings.dataloader_max_batch_size,
            cache_key_fn=cache_key_fn,
        )

    async def _dispatch(self, keys: list[K]) -> list[V | None]:
        async with self._lock:
            with tracer.start_as_current_span(f"dataloader.{self.name}") as span:
                span.set_attribute("dataloader.batch_size", len(keys))
                results = list(await self._batch_fn(keys))

        metrics.dataloader_batches_total.labels(loader=self.name).inc()
        metrics.dataloader_batch_size.labels(loader=self.name).observe(len(keys))

        if len(results) != len(keys):
            raise BatchLoadError(
                f"{self.name} batch function returned {len(results)} results for {len(keys)} keys",
                details={"loader": self.name, "keys": len(keys), "results": len(results)},
            )

        values: list[V | None] = []
        for key, result in zip(keys, results, strict=True):
            if isinstance(result, BaseException):
                metrics.dataloader_key_errors_total.labels(loader=self.name).inc()
                logger.error(
                    f"{self.name}: failed to load key {self._describe(key)}: {result}",
                    extra={"loader": self.name, "error_type": type(result).__name__},
                )
                values.append(None)
            else:
                values.append(result)
        return values

    def _describe(self, key: K) -> str:
        return json.dumps(to_jsonable(key), sort_keys=True, default=str)

    def load(self, key: K) -> Awaitable[V | None]:
        """Schedule ``key`` for the current batch and return its pending result.

        Cached keys resolve without calling the batch function again.
        """
        return self._loader.load(key)

    def load_many(self, keys: Iterable[K]) -> Awaitable[list[V | None]]:
        """Load every key; results follow the input order, duplicates included."""
        return self._loader.load_many(keys)

    async def load_many_as_map(self, keys: Iterable[K]) -> dict[Hashable, V]:
        """Load every key and map each to its value, dropping keys that came back empty.

        The map is keyed by cache identity: hashable scalars map to themselves,
        mapping and list keys to their ``canonical_cache_key``.
        """
        keys = list(keys)
        results = await self.load_many(keys)
        return {
            self._cache_key_fn(key): value
            for key, value in zip(keys, results, strict=True)
            if value is not None
        }

    def prime(self, key: K, value: V) -> None:
        """Seed the cache so a later ``load(key)`` skips the batch function."""
        self._loader.prime(key, value)

    def clear(self, key: K) -> None:
        self._loader.clear(key)

    def clear_all(self) -> None:
        self._loader.clear_all()
