"""
Layout Engine: Default placement, reconciliation and grid/pixel conversion for widget layout.

The grid canvas owns drag/resize and collision handling. This module only
decides where a new widget lands, keeps the layout list consistent with the
live widget set, and persists whatever final geometry the canvas reports.
"""

import logging
from collections import namedtuple
from dataclasses import replace
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from mission_control.models import LayoutEntry, WidgetType

logger = logging.getLogger(__name__)

# Grid geometry (react-grid-layout compatible: 48 columns, 10px rows)
GRID_COLS = 48
GRID_ROW_HEIGHT_PX = 10
GRID_COL_WIDTH_PX = 24
GRID_MARGIN_PX = 2

# Smallest panel the canvas can show, in grid units; stored entries are widened to it
MIN_WIDGET_COLS = 4
MIN_WIDGET_ROWS = 6

# Default widget sizes in grid units (w, h)
WIDGET_DEFAULT_SIZES = {
    WidgetType.READOUT: (8, 16),
    WidgetType.COMMAND_ISSUER: (17, 40),
    WidgetType.CHART: (14, 24),
}
GENERIC_WIDGET_SIZE = (20, 20)

# Canonical starting position for the first widget of each type
WIDGET_CANONICAL_POSITIONS = {
    WidgetType.READOUT: (0, 0),
    WidgetType.COMMAND_ISSUER: (10, 0),
    WidgetType.CHART: (0, 20),
}

# Overflow grid for additional same-type widgets, below the canonical area
OVERFLOW_COLUMNS = 2
OVERFLOW_CELL_W = 24
OVERFLOW_CELL_H = 42
OVERFLOW_Y0 = 48

Placement = namedtuple("Placement", ["x", "y", "width", "height"])


def default_size(widget_type: Optional[WidgetType]) -> Tuple[int, int]:
    return WIDGET_DEFAULT_SIZES.get(widget_type, GENERIC_WIDGET_SIZE)


def default_placement(
    widget_type: Optional[WidgetType], existing_count: int, same_type_count: int = 0
) -> Placement:
    """Compute where a newly added widget lands.

    The first widget of a known type goes to its canonical position. Any
    further instance (or an unknown type) is spread over the overflow grid,
    indexed by its ordinal among the existing widgets.
    """
    w, h = default_size(widget_type)
    if same_type_count == 0 and widget_type in WIDGET_CANONICAL_POSITIONS:
        x, y = WIDGET_CANONICAL_POSITIONS[widget_type]
        return Placement(x, y, w, h)
    ordinal = max(0, existing_count)
    x = (ordinal % OVERFLOW_COLUMNS) * OVERFLOW_CELL_W
    y = OVERFLOW_Y0 + (ordinal // OVERFLOW_COLUMNS) * OVERFLOW_CELL_H
    return Placement(x, y, w, h)


def place_new_entry(
    widget_id: str,
    widget_type: Optional[WidgetType],
    existing: Sequence[LayoutEntry],
    existing_types: Mapping[str, WidgetType],
) -> LayoutEntry:
    """Build a default layout entry that does not coincide with any existing one.

    After removals the ordinal can repeat, so the overflow ordinal is bumped
    until the footprint is free.
    """
    same_type_count = sum(1 for e in existing if existing_types.get(e.widget_id) == widget_type)
    taken = {(e.x, e.y, e.width, e.height) for e in existing}
    ordinal = len(existing)
    placement = default_placement(widget_type, ordinal, same_type_count)
    while tuple(placement) in taken:
        ordinal += 1
        placement = default_placement(widget_type, ordinal, same_type_count=1)
    return LayoutEntry(widget_id, placement.x, placement.y, placement.width, placement.height)


def reconcile(
    entries: Iterable[LayoutEntry],
    widget_ids: Sequence[str],
    widget_types: Optional[Mapping[str, WidgetType]] = None,
) -> List[LayoutEntry]:
    """Align a layout list with the live widget ids.

    Entries whose widget no longer exists are dropped. Widgets without an
    entry get a default one, and entries smaller than the minimum panel are
    widened to it. Output follows the order of ``widget_ids``;
    when an id is reported twice, the first entry wins.
    """
    widget_types = widget_types or {}
    by_id: Dict[str, LayoutEntry] = {}
    dropped = 0
    live = set(widget_ids)
    for entry in entries:
        if entry.widget_id not in live:
            dropped += 1
            continue
        by_id.setdefault(entry.widget_id, entry)
    if dropped:
        logger.debug("Dropped %d orphaned layout entries", dropped)

    result: List[LayoutEntry] = []
    for wid in widget_ids:
        entry = by_id.get(wid)
        if entry is None:
            entry = place_new_entry(wid, widget_types.get(wid), result, widget_types)
            logger.debug("Synthesized default layout for %s at (%d, %d)", wid, entry.x, entry.y)
        elif entry.width < MIN_WIDGET_COLS or entry.height < MIN_WIDGET_ROWS:
            entry = replace(
                entry,
                width=max(entry.width, MIN_WIDGET_COLS),
                height=max(entry.height, MIN_WIDGET_ROWS),
            )
            logger.debug("Widened %s to the minimum panel size", wid)
        result.append(entry)
    return result


def serialize_layout(entries: Iterable[LayoutEntry]) -> List[dict]:
    return [e.to_dict() for e in entries]


def grid_to_pixels(entry: LayoutEntry) -> Tuple[int, int, int, int]:
    """Convert grid units to canvas pixels (x, y, w, h)."""
    return (
        entry.x * GRID_COL_WIDTH_PX,
        entry.y * GRID_ROW_HEIGHT_PX,
        entry.width * GRID_COL_WIDTH_PX - GRID_MARGIN_PX,
        entry.height * GRID_ROW_HEIGHT_PX - GRID_MARGIN_PX,
    )


def pixels_to_grid(x: float, y: float, w: float, h: float) -> Tuple[int, int, int, int]:
    """Snap canvas pixels to grid units, clamped to the grid width."""
    gx = max(0, round(x / GRID_COL_WIDTH_PX))
    gy = max(0, round(y / GRID_ROW_HEIGHT_PX))
    gw = max(MIN_WIDGET_COLS, round((w + GRID_MARGIN_PX) / GRID_COL_WIDTH_PX))
    gh = max(MIN_WIDGET_ROWS, round((h + GRID_MARGIN_PX) / GRID_ROW_HEIGHT_PX))
    gw = min(gw, GRID_COLS)
    gx = min(gx, GRID_COLS - gw)
    return gx, gy, gw, gh
