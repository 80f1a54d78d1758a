"""Shared helpers for listing and normalising RBAC objects."""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, Optional

DEFAULT_PAGE_SIZE = 500


def safe_paginate(
    list_func: Callable[..., Any], *, page_size: int = DEFAULT_PAGE_SIZE, **kwargs: Any
) -> Iterator[Any]:
    """Iterate through a Kubernetes list call following ``metadata._continue`` tokens."""

    token: Optional[str] = None
    while True:
        call_kwargs = dict(kwargs, limit=page_size)
        if token:
            call_kwargs["_continue"] = token
        response = list_func(**call_kwargs)
        for item in response.items or []:
            yield item
        metadata = getattr(response, "metadata", None)
        token = getattr(metadata, "_continue", None) if metadata is not None else None
        if not token:
            return


def metadata_field(obj: Dict[str, Any], name: str) -> str:
    """Return ``obj.metadata[name]`` as a string, empty when absent."""

    metadata = obj.get("metadata") or {}
    value = metadata.get(name)
    return str(value) if value is not None else ""


def parse_csv_set(value: Optional[str]) -> Optional[frozenset]:
    """Split a comma or whitespace separated list; ``None`` when nothing remains."""

    if not value:
        return None
    items = {part.strip() for part in value.replace(",", " ").split()}
    items.discard("")
    return frozenset(items) or None


def utc_timestamp() -> str:
    """Return the current UTC time as an ISO-8601 string with second precision."""

    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def canonical_json(data: Any) -> str:
    """Serialise *data* with sorted keys so equal inputs always produce equal bytes."""

    return json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False) + "\n"


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "canonical_json",
    "metadata_field",
    "parse_csv_set",
    "safe_paginate",
    "utc_timestamp",
]
