"""Tests for per-source anomaly profiles."""

from conftest import NOW, make_item, make_source

from src.activity.source_activity import calculate_source_activity, effective_ppd


def test_effective_ppd_falls_back_for_unknown_rate():
    assert effective_ppd(make_source(posts_per_day=0)) == 3.0
    assert effective_ppd(None) == 3.0
    assert effective_ppd(make_source(posts_per_day=12)) == 12


def test_busy_source_is_anomalous():
    sources = {"isw": make_source("isw", posts_per_day=4)}
    items = [make_item(f"p{i}", i * 10, source_id="isw") for i in range(6)]

    profile = calculate_source_activity(items, sources, NOW)["isw"]

    # expected 4 * 6 / 24 = 1 post, saw 6
    assert profile.recent_posts == 6
    assert profile.anomaly_ratio == 6.0
    assert profile.is_anomalous is True


def test_high_ratio_with_few_posts_is_not_anomalous():
    sources = {"quiet": make_source("quiet", posts_per_day=1)}
    items = [make_item(f"p{i}", i, source_id="quiet") for i in range(2)]

    profile = calculate_source_activity(items, sources, NOW)["quiet"]

    assert profile.anomaly_ratio == 8.0
    assert profile.is_anomalous is False


def test_ratio_rounded_to_one_decimal():
    sources = {"s": make_source("s", posts_per_day=7)}
    items = [make_item(f"p{i}", i, source_id="s") for i in range(4)]

    profile = calculate_source_activity(items, sources, NOW)["s"]

    # 4 / 1.75 = 2.2857
    assert profile.anomaly_ratio == 2.3
    assert profile.is_anomalous is False


def test_items_outside_window_and_silent_sources_are_skipped():
    sources = {"a": make_source("a"), "b": make_source("b")}
    items = [make_item("old", 60 * 7, source_id="a")]

    assert calculate_source_activity(items, sources, NOW) == {}


def test_unregistered_source_uses_fallback_rate():
    items = [make_item(f"p{i}", i, source_id="ghost") for i in range(3)]

    profile = calculate_source_activity(items, {}, NOW)["ghost"]

    assert profile.posts_per_day == 3.0
    assert profile.anomaly_ratio == 4.0
    assert profile.is_anomalous is True
