"""Conversion of PostgREST failures into store errors."""

from collections.abc import Callable
from typing import TypeVar

from postgrest.exceptions import APIError

from date_nights.domain.errors import StoreError

T = TypeVar("T")


def run_query(query: Callable[[], T]) -> T:
    """Run a PostgREST request, raising ``StoreError`` if it is rejected."""
    try:
        return query()
    except APIError as exc:
        raise StoreError(exc.message or str(exc), code=exc.code) from exc
