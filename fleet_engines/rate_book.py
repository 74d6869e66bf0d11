"""
RateBook and RateBookCache -- explicit, invalidated rate snapshots.

A RateBook is the immutable snapshot of every rate version and override of
one tenant.  Building it costs one query per table, so hosts keep books in a
RateBookCache and drop them when rates change.

Invalidation triggers:
    RateCatalogService and OverrideService call ``invalidate(tenant_id)``
    after every write.  Nothing expires on a timer.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from fleet_kernel.domain.dtos import RateDefinition, RateOverride
from fleet_kernel.logging_config import get_logger
from fleet_engines.override_resolver import OverrideResolver
from fleet_engines.rate_catalog import RateCatalog

logger = get_logger("engines.rate_book")

DEFAULT_TENANT = "default"


@dataclass(frozen=True)
class RateBook:
    """Catalog plus resolver over the same snapshot."""

    catalog: RateCatalog
    resolver: OverrideResolver

    @classmethod
    def from_records(
        cls,
        rates: Iterable[RateDefinition],
        overrides: Iterable[RateOverride] = (),
    ) -> RateBook:
        catalog = RateCatalog(rates)
        return cls(catalog=catalog, resolver=OverrideResolver(catalog, overrides))

    @classmethod
    def empty(cls) -> RateBook:
        return cls.from_records(())


RateBookLoader = Callable[[], RateBook]


class RateBookCache:
    """
    Thread-safe per-tenant cache of RateBooks.

    Contract:
        ``get`` returns the cached book or builds one with ``loader``.  The
        loader runs under the cache lock, so two threads missing at once
        build the book only once.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._books: dict[str, RateBook] = {}

    def get(self, tenant_id: str, loader: RateBookLoader) -> RateBook:
        with self._lock:
            book = self._books.get(tenant_id)
            if book is not None:
                return book
            book = loader()
            self._books[tenant_id] = book
        logger.debug(
            "rate_book_loaded",
            extra={
                "tenant_id": tenant_id,
                "rate_count": len(book.catalog),
                "override_count": len(book.resolver.overrides),
            },
        )
        return book

    def invalidate(self, tenant_id: str) -> None:
        with self._lock:
            dropped = self._books.pop(tenant_id, None) is not None
        if dropped:
            logger.info("rate_book_invalidated", extra={"tenant_id": tenant_id})

    def invalidate_all(self) -> None:
        with self._lock:
            self._books.clear()
        logger.info("rate_book_cache_cleared")

    def __contains__(self, tenant_id: str) -> bool:
        with self._lock:
            return tenant_id in self._books
