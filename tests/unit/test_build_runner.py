"""Unit tests for ical_merger.core.build_runner."""

import logging

import pytest

from ical_merger.core.build_runner import build_and_cache
from ical_merger.exceptions import BuildFailure

pytestmark = [pytest.mark.unit, pytest.mark.fast]


class TestBuildAndCache:
    async def test_build_and_cache_when_build_succeeds_then_stores_document(
        self, stub_builder_factory, cache
    ) -> None:
        builder = stub_builder_factory({"a": "DOCA"})

        stored = await build_and_cache(builder, cache, "a", object(), timeout=5)

        assert stored is True
        assert cache.get("a") == "DOCA"
        assert builder.calls == ["a"]

    async def test_build_and_cache_when_build_fails_then_keeps_previous_document(
        self, stub_builder_factory, cache, caplog: pytest.LogCaptureFixture
    ) -> None:
        cache.put("a", "OLD")
        builder = stub_builder_factory({"a": BuildFailure("a", "feed unreachable")})

        with caplog.at_level(logging.ERROR, logger="ical_merger.core.build_runner"):
            stored = await build_and_cache(builder, cache, "a", object(), timeout=5)

        assert stored is False
        assert cache.get("a") == "OLD"
        assert "Failed to build calendar a" in caplog.text

    async def test_build_and_cache_when_unexpected_error_then_contained(
        self, stub_builder_factory, cache
    ) -> None:
        builder = stub_builder_factory({"a": RuntimeError("boom")})

        stored = await build_and_cache(builder, cache, "a", object(), timeout=5)

        assert stored is False
        assert cache.get("a") is None

    async def test_build_and_cache_when_build_exceeds_timeout_then_abandoned(
        self, stub_builder_factory, cache, caplog: pytest.LogCaptureFixture
    ) -> None:
        builder = stub_builder_factory({"a": "LATE"}, delay=5)

        with caplog.at_level(logging.ERROR, logger="ical_merger.core.build_runner"):
            stored = await build_and_cache(builder, cache, "a", object(), timeout=0.01)

        assert stored is False
        assert cache.get("a") is None
        assert "timed out" in caplog.text
