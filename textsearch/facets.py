"""Facet aggregation over the full candidate set of a search."""

import logging
import math
from collections import Counter
from typing import Any

from .backends import ScoredRow
from .exceptions import QueryError

logger = logging.getLogger(__name__)

FACET_DEFAULTS = {"type": "terms", "size": 10, "min_count": 1}


def _as_number(value: Any) -> float | int | None:
    """Numeric view of a field value, None when it has none."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int | float):
        return value
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _int_setting(settings: dict[str, Any], name: str, field: str) -> int:
    value = settings[name]
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise QueryError(f"Facet {field!r}: {name} must be a non-negative integer")
    return value


class FacetEngine:
    """Computes terms, range and histogram facets.

    Facets are computed from the same candidate rows as the hits, before
    pagination, so every bucket count is bounded by the result total.
    """

    def aggregate(
        self, rows: list[ScoredRow], requests: dict[str, Any]
    ) -> dict[str, Any]:
        """Compute every requested facet.

        Args:
            rows: Unpaginated candidate rows
            requests: ``{field: "terms" | {"type": ..., ...}}``

        Returns:
            Facet results keyed by field
        """
        return {
            field: self.aggregate_facet(rows, field, config)
            for field, config in requests.items()
        }

    def aggregate_facet(self, rows: list[ScoredRow], field: str, config: Any) -> Any:
        if isinstance(config, str):
            config = {"type": config}
        elif config is None:
            config = {}
        elif not isinstance(config, dict):
            raise QueryError(f"Facet {field!r}: invalid definition {config!r}")
        settings = {**FACET_DEFAULTS, **config}

        values = [row.document.content.get(field) for row in rows]
        facet_type = settings["type"]
        if facet_type == "terms":
            return self.terms_facet(field, values, settings)
        if facet_type == "range":
            return self.range_facet(field, values, settings)
        if facet_type == "histogram":
            return self.histogram_facet(field, values, settings)

        logger.debug(f"Unknown facet type {facet_type!r} for {field}")
        return []

    def terms_facet(
        self, field: str, values: list[Any], settings: dict[str, Any]
    ) -> list[dict[str, Any]]:
        size = _int_setting(settings, "size", field)
        min_count = _int_setting(settings, "min_count", field)

        # Lists and mappings never form buckets; a document counts at most once.
        counter = Counter(
            value for value in values if isinstance(value, str | int | float)
        )
        items = [(v, c) for v, c in counter.items() if c >= min_count]
        items.sort(key=lambda x: (-x[1], str(x[0])))
        return [{"value": value, "count": count} for value, count in items[:size]]

    def range_facet(
        self, field: str, values: list[Any], settings: dict[str, Any]
    ) -> dict[str, Any]:
        numbers = [n for n in (_as_number(v) for v in values) if n is not None]

        ranges = []
        for bucket in settings.get("ranges") or []:
            if not isinstance(bucket, dict):
                raise QueryError(f"Facet {field!r}: range must be a mapping")
            low = _as_number(bucket.get("from"))
            high = _as_number(bucket.get("to"))
            count = sum(
                1
                for n in numbers
                if (low is None or n >= low) and (high is None or n < high)
            )
            ranges.append(
                {"from": bucket.get("from"), "to": bucket.get("to"), "count": count}
            )

        return {
            "min": min(numbers) if numbers else None,
            "max": max(numbers) if numbers else None,
            "ranges": ranges,
        }

    def histogram_facet(
        self, field: str, values: list[Any], settings: dict[str, Any]
    ) -> list[dict[str, Any]]:
        interval = _as_number(settings.get("interval", 1))
        if interval is None or interval <= 0:
            raise QueryError(f"Facet {field!r}: interval must be a positive number")

        buckets: Counter = Counter()
        for value in values:
            number = _as_number(value)
            if number is not None:
                buckets[math.floor(number / interval) * interval] += 1

        return [
            {"key": key, "from": key, "to": key + interval, "count": count}
            for key, count in sorted(buckets.items())
        ]
