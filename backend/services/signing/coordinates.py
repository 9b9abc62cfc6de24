"""
Coordinate Resolver
===================
Clamps requested placements into the geometry of a loaded PDF.

Device-reported or hand-edited coordinates can point past the last page or
off the page edge; everything drawn by the signing pipeline goes through
here first.
"""

import math
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Tuple, Union

from core.errors import ConfigurationError, ValidationError
from core.logger import logger

LAST_PAGE = "last"
TOP_LEFT = "top-left"
BOTTOM_LEFT = "bottom-left"
ORIGINS = (TOP_LEFT, BOTTOM_LEFT)

DEFAULT_WIDTH = 150
DEFAULT_HEIGHT = 50

PageSelector = Union[int, str, None]


@dataclass(frozen=True)
class ResolvedPlacement:
    """Final draw geometry, page index zero-based."""
    page_index: int
    x: float
    y: float
    width: float
    height: float
    origin: str = TOP_LEFT


def resolve_page_index(page_count: int, wanted: PageSelector, label: str = "page") -> int:
    """
    Resolve a 1-based page number (or ``"last"``) to a zero-based index.

    Out-of-range requests are clamped to the nearest valid page and logged.
    """
    if page_count < 1:
        raise ConfigurationError(f"{label}: PDF has no pages")
    if wanted == LAST_PAGE:
        return page_count - 1

    if wanted is None:
        requested = 1
    else:
        try:
            requested = int(wanted)
        except (TypeError, ValueError):
            raise ValidationError(f"{label}: page must be a number or \"last\", got {wanted!r}")
    index = min(max(0, requested - 1), page_count - 1)
    if index != requested - 1:
        logger.warning(
            f"[PDF] {label}: requested p{requested}, but PDF has {page_count} page(s). Using p{index + 1}."
        )
    return index


def merge_anchor(
    template_anchor: Optional[Mapping[str, Any]],
    override: Optional[Mapping[str, Any]],
) -> dict:
    """Template defaults with caller overrides applied field by field."""
    merged = dict(template_anchor or {})
    for key, value in (override or {}).items():
        if value is not None:
            merged[key] = value
    return merged


def _finite(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if math.isfinite(value) else None


def resolve_placement(
    page_count: int,
    page_size: Callable[[int], Tuple[float, float]],
    template_anchor: Optional[Mapping[str, Any]],
    override: Optional[Mapping[str, Any]] = None,
    label: str = "signature",
    default_size: Tuple[float, float] = (DEFAULT_WIDTH, DEFAULT_HEIGHT),
) -> ResolvedPlacement:
    """
    Resolve merged anchor attributes into on-page geometry.

    Args:
        page_count: Number of pages in the loaded PDF
        page_size: Callable returning (width, height) for a zero-based page index
        template_anchor: Template defaults (page, x, y, width, height, origin)
        override: Caller-supplied values, each one wins over the template
        label: Used in clamp warnings
        default_size: (width, height) when neither side sets one

    Returns:
        ResolvedPlacement with the item's box kept inside the page
    """
    merged = merge_anchor(template_anchor, override)

    page = merged.get("page")
    if page is None:
        page = LAST_PAGE
    page_index = resolve_page_index(page_count, page, label)
    page_width, page_height = page_size(page_index)

    width = max(1.0, _finite(merged.get("width")) or float(default_size[0]))
    height = max(1.0, _finite(merged.get("height")) or float(default_size[1]))
    origin = merged.get("origin") or TOP_LEFT

    x = _finite(merged.get("x")) or 0.0
    y = _finite(merged.get("y")) or 0.0
    x = max(0.0, min(x, page_width - width))
    y = max(0.0, min(y, page_height - height))

    return ResolvedPlacement(
        page_index=page_index,
        x=x,
        y=y,
        width=width,
        height=height,
        origin=origin,
    )
