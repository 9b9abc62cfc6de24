"""
Coordinate Resolver Tests
=========================
Unit tests for page clamping and placement geometry.
"""

import sys
from pathlib import Path

import pytest

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from core.errors import ConfigurationError, ValidationError
from services.signing.coordinates import (
    LAST_PAGE,
    merge_anchor,
    resolve_page_index,
    resolve_placement,
)

LETTER = (612.0, 792.0)


def letter_pages(index):
    return LETTER


class TestResolvePageIndex:
    """Page selectors clamp into [0, count-1]."""

    @pytest.mark.parametrize("wanted,expected", [
        (1, 0),
        (3, 2),
        (4, 3),
        (5, 3),
        (99, 3),
        (0, 0),
        (-2, 0),
    ])
    def test_clamps_to_nearest_page(self, wanted, expected):
        assert resolve_page_index(4, wanted) == expected

    def test_last_page_sentinel(self):
        assert resolve_page_index(6, LAST_PAGE) == 5
        assert resolve_page_index(1, LAST_PAGE) == 0

    def test_missing_selector_is_first_page(self):
        assert resolve_page_index(3, None) == 0

    def test_empty_pdf_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            resolve_page_index(0, 1)

    @pytest.mark.parametrize("wanted", ["first", "2nd", ""])
    def test_unknown_selector_is_validation_error(self, wanted):
        with pytest.raises(ValidationError, match="page must be"):
            resolve_page_index(4, wanted)

    def test_numeric_string_selector(self):
        assert resolve_page_index(4, "2") == 1


class TestMergeAnchor:
    def test_override_wins_field_by_field(self):
        merged = merge_anchor({"page": 2, "x": 10, "y": 20}, {"x": 99})
        assert merged == {"page": 2, "x": 99, "y": 20}

    def test_none_override_values_are_ignored(self):
        merged = merge_anchor({"page": 2, "x": 10}, {"x": None, "page": None})
        assert merged == {"page": 2, "x": 10}


class TestResolvePlacement:
    def test_defaults(self):
        placement = resolve_placement(2, letter_pages, {"page": 1, "x": 100, "y": 200})
        assert placement.page_index == 0
        assert (placement.width, placement.height) == (150, 50)
        assert placement.origin == "top-left"

    def test_page_defaults_to_last(self):
        placement = resolve_placement(3, letter_pages, {"x": 1, "y": 1})
        assert placement.page_index == 2

    def test_box_is_kept_on_page(self):
        placement = resolve_placement(1, letter_pages, {"page": 1, "x": 10_000, "y": -40})
        assert placement.x == LETTER[0] - 150
        assert placement.y == 0

    def test_override_page_is_clamped(self):
        placement = resolve_placement(2, letter_pages, {"page": 1, "x": 5, "y": 5}, {"page": 40})
        assert placement.page_index == 1

    def test_default_size_is_used_when_unset(self):
        placement = resolve_placement(1, letter_pages, {"page": 1}, default_size=(300, 100))
        assert (placement.width, placement.height) == (300, 100)

    def test_size_is_at_least_one_point(self):
        placement = resolve_placement(1, letter_pages, {"page": 1, "width": -5, "height": 0.2})
        assert placement.width == 1
        assert placement.height == 1

    def test_non_numeric_coordinates_fall_back_to_zero(self):
        placement = resolve_placement(1, letter_pages, {"page": 1, "x": "abc", "y": float("nan")})
        assert (placement.x, placement.y) == (0, 0)
