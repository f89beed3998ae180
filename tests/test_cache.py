"""Tests for pyet.cache module."""

from __future__ import annotations

import logging

import pytest

from pyet.cache import TemplateCache, default_cache
from pyet.loader import load_program


def _program(name: str):
    return load_program("def __render(locals, escape, include, rethrow):\n    return ''\n", name)


class TestTemplateCache:
    def test_empty(self):
        cache = TemplateCache()
        assert len(cache) == 0
        assert cache.get("/t/a.pyet") is None
        assert "/t/a.pyet" not in cache

    def test_set_and_get(self):
        cache = TemplateCache()
        program = _program("/t/a.pyet")
        cache.set("/t/a.pyet", program)
        assert cache.get("/t/a.pyet") is program
        assert "/t/a.pyet" in cache
        assert len(cache) == 1

    def test_set_replaces(self):
        cache = TemplateCache()
        cache.set("/t/a.pyet", _program("first"))
        second = _program("second")
        cache.set("/t/a.pyet", second)
        assert cache.get("/t/a.pyet") is second
        assert len(cache) == 1

    def test_reset(self):
        cache = TemplateCache()
        cache.set("/t/a.pyet", _program("a"))
        cache.set("/t/b.pyet", _program("b"))
        cache.reset()
        assert len(cache) == 0
        assert cache.get("/t/a.pyet") is None

    def test_logs_hits_and_misses(self, caplog: pytest.LogCaptureFixture):
        cache = TemplateCache()
        cache.set("/t/a.pyet", _program("a"))
        with caplog.at_level(logging.DEBUG, logger="pyet.cache"):
            cache.get("/t/a.pyet")
            cache.get("/t/b.pyet")
        assert "Cache hit for /t/a.pyet" in caplog.text
        assert "Cache miss for /t/b.pyet" in caplog.text

    def test_instances_are_independent(self):
        cache = TemplateCache()
        cache.set("/t/a.pyet", _program("a"))
        assert "/t/a.pyet" not in default_cache
