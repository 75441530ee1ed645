"""Tests for keyword-based region classification."""

import pytest

from src.ingest.regions import classify_region, detect_region, score_text


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Russian drones hit Kharkiv overnight", "europe-russia"),
        ("Tokyo and Beijing trade warnings over the Senkaku islands", "asia"),
        ("Houthi missile targets Red Sea shipping", "middle-east"),
        ("Maduro orders troops to the Essequibo border", "latam"),
        ("RSF fighters enter El Fasher in Sudan", "africa"),
        ("ICE raids reported in Chicago", "us"),
    ],
)
def test_detects_region_from_keywords(text, expected):
    assert detect_region(text) == expected


def test_no_keywords_means_no_region():
    assert detect_region("Weather update for the weekend") is None
    assert detect_region("") is None


def test_low_confidence_terms_alone_are_not_enough():
    assert score_text("Tensions rise across Europe", "europe-russia").score == 1
    assert detect_region("Tensions rise across Europe") is None


def test_acronyms_are_case_sensitive():
    assert detect_region("ICE agents detained two men") == "us"
    assert detect_region("Thin ice on the lake") is None


def test_foreign_region_wins_a_tie_with_us():
    assert detect_region("Congress approves Ukraine aid package") == "europe-russia"


def test_us_wins_when_it_clearly_outscores():
    assert detect_region("Senate Republicans block Ukraine aid in Congress") == "us"


def test_unmatched_post_keeps_source_region():
    assert classify_region("Morning briefing", "", "middle-east").region == "middle-east"

    placement = classify_region("Morning briefing", "", "all")
    assert placement.region == "all"
    assert placement.source_region is None


def test_override_records_source_region():
    placement = classify_region("Tokyo earthquake shakes Japan", "", "middle-east")

    assert placement.region == "asia"
    assert placement.source_region == "middle-east"


def test_global_source_posts_are_placed_without_override():
    placement = classify_region("Strike reported", "Explosions heard in Kyiv", "all")

    assert placement.region == "europe-russia"
    assert placement.source_region is None


def test_matching_source_region_has_no_override():
    placement = classify_region("Kyiv under attack", "", "europe-russia")

    assert placement.region == "europe-russia"
    assert placement.source_region is None
