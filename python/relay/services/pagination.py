"""Cursor pagination shared by every list endpoint.

Query parameters:
    limit: page size (default 50)
    after_id: return rows after this id (forward)
    before_id: return rows before this id (backward); ignored when after_id is set

The parsed window always asks the store for one row more than `limit`
(`take = ±(limit + 1)`) so a further page can be detected without a second
query. The sign of `take` carries the direction.

`limit` is parsed like a leading-integer prefix ("25", "25abc" -> 25). Input
with no leading digits yields NaN, which flows through to `take` unchanged;
stores reject a non-finite or out-of-range window (see ensure_finite_window).
"""

import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from relay.errors import ApiErrorCode, InvalidRequestError

T = TypeVar("T")

DEFAULT_LIMIT = 50

# Largest window a store accepts: a signed 32-bit bound holds on every backend
MAX_WINDOW = 2**31 - 1

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


@dataclass(frozen=True)
class PageCursor:
    """Internal identifier of the row the window starts from (excluded)."""

    id: Any


@dataclass(frozen=True)
class PaginationParams:
    """A bounded, directional fetch window.

    Attributes:
        limit: Requested page size (may be NaN, see module docstring).
        cursor: Row to page from, or None for the start of the collection.
        skip: 1 when a cursor is set (the cursor row itself is excluded), else 0.
        take: limit + 1, negated for backward pagination.
    """

    limit: int | float
    cursor: PageCursor | None
    skip: int
    take: int | float

    @property
    def is_backward(self) -> bool:
        return self.take < 0


def parse_limit(raw: str | None, default_limit: int = DEFAULT_LIMIT) -> int | float:
    """Parse the `limit` query parameter.

    Missing or empty -> default. Otherwise the leading integer, or NaN when
    there is none.
    """
    if not raw:
        return default_limit
    match = _LEADING_INT.match(raw)
    if match is None:
        return math.nan
    try:
        return int(match.group(1))
    except ValueError:
        # Past the interpreter's int conversion digit limit
        return math.nan


def parse_pagination_params(
    query: Mapping[str, str],
    id_to_internal: Callable[[str], Any],
    default_limit: int = DEFAULT_LIMIT,
) -> PaginationParams:
    """Translate raw query parameters into a fetch window.

    `id_to_internal` maps an external id to the store's identifier. Its
    exceptions propagate to the caller unchanged.
    """
    limit = parse_limit(query.get("limit"), default_limit)
    after_id = query.get("after_id")
    before_id = query.get("before_id")

    if after_id:
        return PaginationParams(
            limit=limit,
            cursor=PageCursor(id=id_to_internal(after_id)),
            skip=1,
            take=limit + 1,
        )

    if before_id:
        return PaginationParams(
            limit=limit,
            cursor=PageCursor(id=id_to_internal(before_id)),
            skip=1,
            take=-(limit + 1),
        )

    return PaginationParams(limit=limit, cursor=None, skip=0, take=limit + 1)


def ensure_finite_window(params: PaginationParams) -> None:
    """Reject a window the store cannot execute.

    Raises:
        InvalidRequestError: If limit or take is NaN or infinite, or its
            magnitude exceeds MAX_WINDOW.
    """
    for value in (params.limit, params.take):
        if isinstance(value, float) and not math.isfinite(value):
            raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "Invalid limit")
        if abs(value) > MAX_WINDOW:
            raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "Invalid limit")


def paginated_response(
    items: Sequence[T],
    limit: int | float,
    get_id: Callable[[T], str],
) -> dict[str, Any]:
    """Reconstruct a page from the rows fetched with a `limit + 1` window.

    Returns:
        {"data", "has_more"} plus "first_id"/"last_id" when data is non-empty.
    """
    has_more = len(items) > limit
    data = list(items[:limit]) if has_more else list(items)

    page: dict[str, Any] = {"data": data, "has_more": has_more}
    if data:
        page["first_id"] = get_id(data[0])
        page["last_id"] = get_id(data[-1])
    return page
