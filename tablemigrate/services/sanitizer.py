"""Conversion of cell values into primitives the table API accepts on insert.

The API accepts booleans, numbers, strings, and lists of those. Everything
else is flattened to its most meaningful text.
"""

import json
import logging
from typing import Any, Optional

from ..models.record import (
    Absent,
    AttachmentList,
    CellValue,
    ListValue,
    MonetaryAmount,
    PersonReference,
    Scalar,
    StructuredReference,
    UnrecognizedValue,
)

logger = logging.getLogger(__name__)

FENCE = "```"


def clean_text(text: str) -> str:
    """Remove code fences at either end of a string and trim whitespace."""
    if text.startswith(FENCE):
        text = text[len(FENCE):]
    if text.endswith(FENCE):
        text = text[:-len(FENCE)]
    return text.strip()


def _first_text(*candidates: Any) -> Optional[str]:
    for candidate in candidates:
        if candidate:
            return str(candidate)
    return None


def _sanitize_raw(raw: Any) -> Any:
    if isinstance(raw, dict):
        text = _first_text(raw.get("name"), raw.get("url"), raw.get("displayText"), raw.get("text"))
        if text is not None:
            return text
        logger.warning(f"Converting unknown object type to string: {json.dumps(raw, default=str)[:100]}")
        return str(raw)
    if isinstance(raw, list):
        return [item for item in (_sanitize_raw(i) for i in raw) if item is not None]
    if raw is None:
        return None
    if isinstance(raw, (bool, int, float)):
        return raw
    if isinstance(raw, str):
        return clean_text(raw)
    logger.warning(f"Converting unknown value type to string: {type(raw).__name__}")
    return str(raw)


def sanitize_value(value: CellValue) -> Any:
    """
    Convert a cell value into an API-acceptable primitive.

    Args:
        value: Tagged cell value

    Returns:
        bool, number, string, list of those, or None when the cell is absent
    """
    if isinstance(value, Absent):
        return None

    if isinstance(value, Scalar):
        if isinstance(value.value, str):
            return clean_text(value.value)
        return value.value

    if isinstance(value, ListValue):
        sanitized = (sanitize_value(item) for item in value.items)
        flattened = []
        for item in sanitized:
            if item is None:
                continue
            # Nested lists are not accepted on insert
            if isinstance(item, list):
                flattened.extend(item)
            else:
                flattened.append(item)
        return flattened

    if isinstance(value, AttachmentList):
        return [a.url or a.name for a in value.attachments if a.url or a.name]

    if isinstance(value, MonetaryAmount):
        amount = value.amount
        if isinstance(amount, (int, float)) and not isinstance(amount, bool):
            return amount
        return 0

    if isinstance(value, PersonReference):
        return _first_text(value.email, value.name) or ""

    if isinstance(value, StructuredReference):
        return _first_text(value.name, value.url, value.display_text) or ""

    if isinstance(value, UnrecognizedValue):
        return _sanitize_raw(value.raw)

    logger.warning(f"Converting unexpected cell value to string: {value!r}")
    return str(value)
