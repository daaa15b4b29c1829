"""
Persistence: Screen file serialization and restore

A screen file is a JSON object with exactly two keys:
    {"layout": [LayoutEntry...], "components": [WidgetInstance...]}

Loading never touches the store until the document has parsed and passed
shape checks; only then is it applied through ConfigStore.replace_all.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

from mission_control.config_store import ConfigStore
from mission_control.errors import ParseError, ShapeError
from mission_control.layout_engine import serialize_layout
from mission_control.models import ConfigSnapshot, LayoutEntry, WidgetInstance

logger = logging.getLogger(__name__)

DOCUMENT_KEYS = ("layout", "components")


def screen_document(snapshot: ConfigSnapshot) -> Dict[str, Any]:
    """The JSON-shaped screen document for a snapshot (settings are not included)."""
    return {
        "layout": serialize_layout(snapshot.layout),
        "components": [w.to_dict() for w in snapshot.widgets],
    }


def serialize(snapshot: ConfigSnapshot) -> bytes:
    """Encode a snapshot as a UTF-8 JSON screen document."""
    return json.dumps(screen_document(snapshot), indent=2).encode("utf-8")


def parse_document(document: Any) -> ConfigSnapshot:
    """Check a decoded screen document and build a settings-less snapshot.

    Raises ShapeError when the top level is not exactly {layout, components}
    or when an entry inside them is malformed.
    """
    if not isinstance(document, dict):
        raise ShapeError("Screen file must contain a JSON object")
    for key in DOCUMENT_KEYS:
        if key not in document:
            raise ShapeError(f"Screen file is missing '{key}'")
    extra = sorted(set(document) - set(DOCUMENT_KEYS))
    if extra:
        raise ShapeError(f"Screen file has unexpected keys: {', '.join(extra)}")
    layout, components = document["layout"], document["components"]
    if not isinstance(layout, list):
        raise ShapeError("'layout' must be a list")
    if not isinstance(components, list):
        raise ShapeError("'components' must be a list")

    widgets = tuple(WidgetInstance.from_dict(c) for c in components)
    entries = tuple(LayoutEntry.from_dict(e) for e in layout)
    return ConfigSnapshot(None, widgets, entries)


def deserialize(data: Union[bytes, str]) -> ConfigSnapshot:
    """Decode a screen file.

    Raises ParseError for bytes that are not JSON and ShapeError for JSON
    that is not a complete screen document.
    """
    try:
        text = data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else data
        document = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ParseError(f"Screen file is not valid JSON: {e}")
    return parse_document(document)


def save_file(store: ConfigStore, path: Union[str, Path]) -> None:
    """Write the store's widgets and layout to a screen file. Raises OSError on I/O failure."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(serialize(store.snapshot()))
    logger.info("Saved screen to %s", path)


def load_file(store: ConfigStore, path: Union[str, Path]) -> ConfigSnapshot:
    """Read a screen file and apply it to the store.

    Raises OSError, ParseError or ShapeError; on any of them the store is
    left exactly as it was.
    """
    path = Path(path)
    try:
        snapshot = deserialize(path.read_bytes())
        store.replace_all(snapshot)
    except (ParseError, ShapeError) as e:
        logger.warning("Rejected screen file %s: %s", path, e)
        raise
    logger.info("Loaded screen from %s", path)
    return snapshot


def load_stored_dashboard(store: ConfigStore, record: Any) -> ConfigSnapshot:
    """Apply a dashboard record returned by HTTPClient.list_dashboards.

    The record carries the screen document as a JSON string under
    ``jsonConfig``. Raises ParseError or ShapeError with the store unchanged.
    """
    if not isinstance(record, dict) or not isinstance(record.get("jsonConfig"), str):
        raise ShapeError("Stored dashboard has no 'jsonConfig' document")
    name = record.get("name", "")
    try:
        snapshot = deserialize(record["jsonConfig"])
        store.replace_all(snapshot)
    except (ParseError, ShapeError) as e:
        logger.warning("Rejected stored dashboard %r: %s", name, e)
        raise
    logger.info("Loaded stored dashboard %r", name)
    return snapshot
