# api_utils.py
import json
from typing import Any, Callable, Iterable, Sequence

from fastapi import Query
from fastapi.responses import JSONResponse
from tortoise.queryset import QuerySet

from services.errors import ValidationError

DEFAULT_PAGE = (0, 9)


# ---------- React-Admin list params ----------
def parse_range(range_param: str) -> tuple[int, int]:
    """'[start,end]' (inclusive) -> (skip, limit); malformed input falls back to the first page."""
    try:
        start, end = (int(v) for v in json.loads(range_param))
    except (TypeError, ValueError):
        start, end = DEFAULT_PAGE
    start = max(start, 0)
    return start, max(end - start + 1, 1)


def parse_sort(sort_param: str, allowed_fields: Iterable[str], default: str = "id") -> tuple[str, ...]:
    """'["name","DESC"]' -> ("-name", "id"); unknown fields sort by `default`."""
    try:
        field, order = json.loads(sort_param)
    except (TypeError, ValueError):
        field, order = default, "ASC"
    if not isinstance(field, str) or field not in set(allowed_fields):
        field = default
    prefix = "-" if str(order).upper() == "DESC" else ""
    # stable pages when the sort column has duplicates
    return (f"{prefix}{field}",) if field == "id" else (f"{prefix}{field}", "id")


def parse_filter(filter_param: str | None) -> dict:
    try:
        parsed = json.loads(filter_param or "{}")
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


# ---------- responses ----------
def _dump(obj: Any, to_pydantic: Callable[[Any], Any]) -> Any:
    # pydantic v2 keeps datetimes/enums JSON-safe
    return json.loads(to_pydantic(obj).model_dump_json())


async def paginate_and_respond(
    qs: QuerySet,
    resource: str,
    skip: int,
    limit: int,
    order: Sequence[str],
    to_pydantic: Callable[[Any], Any],
) -> JSONResponse:
    total = await qs.count()
    items = await qs.order_by(*order).offset(skip).limit(limit)
    end_real = skip + max(len(items) - 1, 0)
    return JSONResponse(
        status_code=200,
        content=[_dump(it, to_pydantic) for it in items],
        headers={
            "Content-Range": f"{resource} {skip}-{end_real}/{total}",
            "X-Total-Count": str(total),
        },
    )


def respond_item(model_obj: Any, to_pydantic: Callable[[Any], Any], status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=_dump(model_obj, to_pydantic))


def validation_error_response(exc: ValidationError) -> JSONResponse:
    """Field-level message for the form that submitted the data."""
    return JSONResponse(status_code=422, content={"detail": exc.message, "field": exc.field})


class RAListParams:
    def __init__(
        self,
        range: str = Query("[0,9]"),
        sort: str = Query('["name","ASC"]'),
        filter: str = Query("{}"),
    ):
        self.skip, self.limit = parse_range(range)
        self.filters = parse_filter(filter)
        self.sort = sort
