"""Tests for the Bluesky adapter and the shared pagination and dead-source rules."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from conftest import make_source, mock_client

from src.ingest.adapters.base import DeadSourceCache
from src.ingest.adapters.bluesky import BlueskyAdapter, extract_bluesky_handle
from src.ingest.errors import SourceNotFound, TransientFetchError


def _iso(minutes_ago: float) -> str:
    ts = datetime.now(timezone.utc) - timedelta(minutes=minutes_ago)
    return ts.isoformat().replace("+00:00", "Z")


def _post(rkey: str, minutes_ago: float, text: str = "update", reason: dict | None = None) -> dict:
    entry = {
        "post": {
            "uri": f"at://did:plc:abc/app.bsky.feed.post/{rkey}",
            "author": {"handle": "isw.bsky.social"},
            "record": {"text": text, "createdAt": _iso(minutes_ago)},
            "indexedAt": _iso(minutes_ago),
        }
    }
    if reason:
        entry["reason"] = reason
    return entry


@pytest.fixture
def source():
    return make_source("isw", locator="https://bsky.app/profile/isw.bsky.social")


@pytest.fixture
def cutoff():
    return datetime.now(timezone.utc) - timedelta(hours=6)


def test_extract_handle_variants():
    assert extract_bluesky_handle("https://bsky.app/profile/isw.bsky.social/rss") == "isw.bsky.social"
    assert extract_bluesky_handle("@isw.bsky.social") == "isw.bsky.social"
    assert extract_bluesky_handle("isw.bsky.social") == "isw.bsky.social"


async def test_paginates_until_cutoff(source, cutoff):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        cursor = request.url.params.get("cursor")
        calls.append(cursor)
        if cursor is None:
            return httpx.Response(200, json={"feed": [_post("a", 5), _post("b", 30)], "cursor": "c1"})
        return httpx.Response(
            200,
            json={"feed": [_post("c", 60), _post("old", 60 * 8), _post("older", 60 * 9)], "cursor": "c2"},
        )

    async with mock_client(handler) as client:
        adapter = BlueskyAdapter(client, dead_sources=DeadSourceCache())
        result = await adapter.fetch(source, cutoff)

    assert result.ok
    assert calls == [None, "c1"]
    assert [item.title for item in result.items] == ["update"] * 3
    assert result.items[0].url == "https://bsky.app/profile/isw.bsky.social/post/a"
    assert all(item.timestamp >= cutoff for item in result.items)


async def test_stops_at_max_pages(source, cutoff):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.params.get("cursor"))
        n = len(calls)
        return httpx.Response(200, json={"feed": [_post(f"p{n}", n)], "cursor": f"c{n}"})

    async with mock_client(handler) as client:
        adapter = BlueskyAdapter(client, max_pages=2)
        result = await adapter.fetch(source, cutoff)

    assert len(calls) == 2
    assert len(result.items) == 2


async def test_media_only_post_gets_placeholder(source, cutoff):
    entry = _post("img", 1, text="")
    entry["post"]["embed"] = {"$type": "app.bsky.embed.images#view", "images": [{"alt": ""}]}

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"feed": [entry]})

    async with mock_client(handler) as client:
        result = await BlueskyAdapter(client).fetch(source, cutoff)

    assert result.items[0].title == "[Image]"


async def test_repost_uses_repost_time(source, cutoff):
    reposted_at = _iso(2)
    entry = _post("rp", 60 * 24 * 3)
    entry["reason"] = {"$type": "app.bsky.feed.defs#reasonRepost", "indexedAt": reposted_at}

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"feed": [entry]})

    async with mock_client(handler) as client:
        result = await BlueskyAdapter(client).fetch(source, cutoff)

    assert len(result.items) == 1


async def test_unknown_actor_marks_source_dead(source, cutoff):
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(400, json={"error": "InvalidRequest", "message": "Profile not found"})

    dead = DeadSourceCache()
    async with mock_client(handler) as client:
        adapter = BlueskyAdapter(client, dead_sources=dead)
        first = await adapter.fetch(source, cutoff)
        second = await adapter.fetch(source, cutoff)

    assert isinstance(first.error, SourceNotFound)
    assert "Profile not found" in str(first.error)
    assert isinstance(second.error, SourceNotFound)
    assert calls == 1
    assert dead.is_dead("isw")
    assert [entry.source_id for entry in dead.entries()] == ["isw"]


async def test_rate_limit_mid_pagination_keeps_partial_items(source, cutoff):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params.get("cursor") is None:
            return httpx.Response(200, json={"feed": [_post("a", 1), _post("b", 2)], "cursor": "c1"})
        return httpx.Response(429)

    async with mock_client(handler) as client:
        result = await BlueskyAdapter(client).fetch(source, cutoff)

    assert isinstance(result.error, TransientFetchError)
    assert result.error.status_code == 429
    assert len(result.items) == 2


async def test_repeated_timeouts_suppress_source(source, cutoff):
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        raise httpx.ReadTimeout("slow", request=request)

    dead = DeadSourceCache()
    async with mock_client(handler) as client:
        adapter = BlueskyAdapter(client, dead_sources=dead)
        for _ in range(3):
            result = await adapter.fetch(source, cutoff)

    assert calls == 2
    assert isinstance(result.error, TransientFetchError)
    assert dead.is_suppressed("isw")
    assert not dead.is_dead("isw")


async def test_invalid_json_is_parse_error(source, cutoff):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>oops</html>")

    async with mock_client(handler) as client:
        result = await BlueskyAdapter(client).fetch(source, cutoff)

    assert not result.ok
    assert result.items == []


def test_dead_source_entries_expire():
    clock = [1000.0]
    dead = DeadSourceCache(not_found_ttl=60, clock=lambda: clock[0])
    dead.mark_not_found(make_source("gone"), "404")

    assert dead.is_dead("gone")
    clock[0] += 61
    assert not dead.is_dead("gone")
    assert dead.entries() == []


def test_timeout_window_resets():
    clock = [0.0]
    dead = DeadSourceCache(timeout_window=100, timeout_threshold=2, clock=lambda: clock[0])
    dead.record_timeout("slow")
    clock[0] = 150
    dead.record_timeout("slow")

    assert not dead.is_suppressed("slow")
