"""Load the restaurant CSV that the client attaches to every chat request."""

from __future__ import annotations

import ast
import logging
from pathlib import Path
from typing import Any, Dict, List, Union

import pandas as pd

logger = logging.getLogger(__name__)

LIST_COLUMNS = {"foodType": "Food Type", "foodMenu": "Food Menu", "reviews": "Reviews"}


def _parse_list(raw: str) -> List[str]:
    if not raw:
        return []
    value = ast.literal_eval(raw)
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"expected a list literal, got {type(value).__name__}")
    return [str(item) for item in value]


def _parse_stars(raw: str) -> float:
    try:
        return float(raw)
    except (TypeError, ValueError):
        return 0.0


def parse_row(row: Dict[str, Any]) -> Dict[str, Any]:
    """Turn one CSV row into a wire-format restaurant record.

    When any list column fails to parse, every list column of the row is kept
    as a single-element list of its raw text.
    """
    record: Dict[str, Any] = {
        "restaurant": str(row.get("Restaurant") or "").strip(),
        "location": str(row.get("Location") or "").strip(),
        "stars": _parse_stars(row.get("Stars")),
    }
    raw_values = {key: str(row.get(column) or "") for key, column in LIST_COLUMNS.items()}
    try:
        record.update({key: _parse_list(raw) for key, raw in raw_values.items()})
    except (ValueError, SyntaxError, TypeError) as exc:
        logger.warning("Error parsing row for %r: %s", record["restaurant"], exc)
        record.update({key: [raw] if raw else [] for key, raw in raw_values.items()})
    return record


def load_restaurants(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """Read the CSV at ``path``; rows without a restaurant name are dropped."""
    frame = pd.read_csv(path, dtype=str, keep_default_na=False, skip_blank_lines=True)
    records = [parse_row(row) for row in frame.to_dict(orient="records")]
    records = [record for record in records if record["restaurant"]]
    logger.info("Loaded %d restaurants from %s", len(records), path)
    return records
