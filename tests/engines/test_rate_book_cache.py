"""Tests for RateBook and RateBookCache."""

import threading
from concurrent.futures import ThreadPoolExecutor

from fleet_engines.rate_book import RateBook, RateBookCache


class TestRateBook:

    def test_from_records_shares_catalog(self, lease_rates):
        book = RateBook.from_records(lease_rates)
        assert book.resolver.catalog is book.catalog
        assert len(book.catalog) == 2

    def test_empty(self):
        book = RateBook.empty()
        assert len(book.catalog) == 0
        assert book.resolver.overrides == ()


class TestRateBookCache:

    def test_loader_runs_once_per_tenant(self, rate_book):
        cache = RateBookCache()
        calls = []

        def loader():
            calls.append(1)
            return rate_book

        assert cache.get("t1", loader) is rate_book
        assert cache.get("t1", loader) is rate_book
        assert len(calls) == 1
        assert "t1" in cache
        assert "t2" not in cache

    def test_invalidate_forces_reload(self, rate_book):
        cache = RateBookCache()
        books = iter([rate_book, RateBook.empty()])
        cache.get("t1", lambda: next(books))

        cache.invalidate("t1")
        reloaded = cache.get("t1", lambda: next(books))

        assert len(reloaded.catalog) == 0

    def test_invalidate_is_per_tenant(self, rate_book):
        cache = RateBookCache()
        cache.get("t1", lambda: rate_book)
        cache.get("t2", lambda: rate_book)

        cache.invalidate("t1")

        assert "t1" not in cache
        assert "t2" in cache

    def test_invalidate_all(self, rate_book):
        cache = RateBookCache()
        cache.get("t1", lambda: rate_book)
        cache.invalidate_all()
        assert "t1" not in cache

    def test_invalidate_unknown_tenant_is_quiet(self, captured_logs):
        RateBookCache().invalidate("nobody")
        assert not [r for r in captured_logs() if r["message"] == "rate_book_invalidated"]

    def test_concurrent_misses_build_once(self, rate_book):
        cache = RateBookCache()
        counter = []
        lock = threading.Lock()

        def loader():
            with lock:
                counter.append(1)
            return rate_book

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: cache.get("t1", loader), range(32)))

        assert len(counter) == 1
        assert all(r is rate_book for r in results)
