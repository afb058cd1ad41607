from __future__ import annotations

import datetime as dt
from typing import Any, List, Optional, Tuple

from werkzeug.datastructures import MultiDict
from werkzeug.exceptions import BadRequest

from models import (
	DEFAULT_LIMIT,
	DEFAULT_SORT_BY,
	DEFAULT_SORT_DIR,
	MAX_LIMIT,
	MIN_LIMIT,
	SORT_DIRECTIONS,
	SORT_FIELDS,
	Cursor,
	SalesQuery,
)


# page * limit stays within a few million rows
MAX_PAGE = 10_000


class ValidationError(BadRequest):
	"""Client input rejected before any SQL is built."""

	def __init__(self, message: str) -> None:
		super().__init__(description=message)


def _parse_int(value: Any, field: str, *, minimum: Optional[int] = None, maximum: Optional[int] = None) -> int:
	try:
		parsed = int(str(value).strip())
	except (TypeError, ValueError):
		raise ValidationError(f"{field} must be an integer")
	if minimum is not None and parsed < minimum:
		raise ValidationError(f"{field} must be >= {minimum}")
	if maximum is not None and parsed > maximum:
		raise ValidationError(f"{field} must be <= {maximum}")
	return parsed


def _parse_date(value: Any, field: str) -> dt.date:
	if not value or not isinstance(value, str):
		raise ValidationError(f"{field} must be a date string (YYYY-MM-DD)")
	try:
		return dt.date.fromisoformat(value.strip())
	except ValueError:
		raise ValidationError(f"{field} must be a date string (YYYY-MM-DD)")


def _clean(value: Any) -> Optional[str]:
	if value is None:
		return None
	text = str(value).strip()
	return text or None


def _parse_tags(args: MultiDict) -> Tuple[str, ...]:
	tags: List[str] = []
	for raw in args.getlist("tags"):
		for part in str(raw).split(","):
			part = part.strip()
			if part and part not in tags:
				tags.append(part)
	return tuple(tags)


def parse_sales_query(args: Any) -> SalesQuery:
	"""Validate ``GET /api/sales`` query args into a ``SalesQuery``.

	Accepts a werkzeug ``MultiDict`` (``request.args``) or a plain mapping.
	Raises ``ValidationError`` with a human-readable message on bad input.
	"""
	if not isinstance(args, MultiDict):
		args = MultiDict(args or {})

	sort_by = _clean(args.get("sort_by")) or DEFAULT_SORT_BY
	if sort_by not in SORT_FIELDS:
		raise ValidationError(f"Invalid sort_by. Allowed: {', '.join(SORT_FIELDS)}")

	sort_dir = (_clean(args.get("sort_dir")) or DEFAULT_SORT_DIR).lower()
	if sort_dir not in SORT_DIRECTIONS:
		raise ValidationError("Invalid sort_dir (asc|desc)")

	limit = DEFAULT_LIMIT
	if _clean(args.get("limit")):
		limit = _parse_int(args.get("limit"), "limit", minimum=MIN_LIMIT, maximum=MAX_LIMIT)

	page = None
	if _clean(args.get("page")):
		page = _parse_int(args.get("page"), "page", minimum=1, maximum=MAX_PAGE)

	age_min = _parse_int(args["age_min"], "age_min", minimum=0) if _clean(args.get("age_min")) else None
	age_max = _parse_int(args["age_max"], "age_max", minimum=0) if _clean(args.get("age_max")) else None

	date_from = _parse_date(args["date_from"], "date_from") if _clean(args.get("date_from")) else None
	date_to = _parse_date(args["date_to"], "date_to") if _clean(args.get("date_to")) else None

	cursor = None
	cursor_date = _clean(args.get("cursor_date"))
	cursor_id = _clean(args.get("cursor_id"))
	if cursor_date or cursor_id:
		if not (cursor_date and cursor_id):
			raise ValidationError("cursor_date and cursor_id must be supplied together")
		cursor = Cursor(
			last_date=_parse_date(cursor_date, "cursor_date"),
			last_id=_parse_int(cursor_id, "cursor_id"),
		)

	return SalesQuery(
		text_search=_clean(args.get("q")),
		region=_clean(args.get("region")),
		gender=_clean(args.get("gender")),
		category=_clean(args.get("category")),
		payment=_clean(args.get("payment")),
		age_min=age_min,
		age_max=age_max,
		date_from=date_from,
		date_to=date_to,
		tags=_parse_tags(args),
		sort_by=sort_by,
		sort_dir=sort_dir,
		limit=limit,
		cursor=cursor,
		page=page,
		want_total_count=(_clean(args.get("count")) or "").lower() == "true",
	)
