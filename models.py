from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


SORT_FIELDS = ("date", "quantity", "customer_name", "total_amount")
SORT_DIRECTIONS = ("asc", "desc")

DEFAULT_SORT_BY = "date"
DEFAULT_SORT_DIR = "desc"
DEFAULT_LIMIT = 10
MIN_LIMIT = 1
MAX_LIMIT = 100


def _as_date(value: Any) -> dt.date:
	if isinstance(value, dt.datetime):
		return value.date()
	if isinstance(value, dt.date):
		return value
	return dt.date.fromisoformat(str(value))


@dataclass(frozen=True)
class Cursor:
	"""Position of the last row of a page in (date, id) order."""

	last_date: dt.date
	last_id: int

	@classmethod
	def from_row(cls, row: Dict[str, Any]) -> "Cursor":
		return cls(last_date=_as_date(row["date"]), last_id=int(row["id"]))

	@classmethod
	def from_dict(cls, payload: Dict[str, Any]) -> "Cursor":
		return cls(last_date=_as_date(payload["last_date"]), last_id=int(payload["last_id"]))

	def to_dict(self) -> Dict[str, Any]:
		return {"last_date": self.last_date.isoformat(), "last_id": self.last_id}


@dataclass(frozen=True)
class SalesQuery:
	"""Validated filter, sort and pagination request for the sales table.

	Instances are produced by ``validation.parse_sales_query``; the query
	builder trusts every field (limit already clamped, sort values already
	checked against the allow-list).
	"""

	text_search: Optional[str] = None
	region: Optional[str] = None
	gender: Optional[str] = None
	category: Optional[str] = None
	payment: Optional[str] = None
	age_min: Optional[int] = None
	age_max: Optional[int] = None
	date_from: Optional[dt.date] = None
	date_to: Optional[dt.date] = None
	tags: Tuple[str, ...] = ()
	sort_by: str = DEFAULT_SORT_BY
	sort_dir: str = DEFAULT_SORT_DIR
	limit: int = DEFAULT_LIMIT
	cursor: Optional[Cursor] = None
	page: Optional[int] = None
	want_total_count: bool = False

	@property
	def uses_keyset(self) -> bool:
		# (date, id) is the only composite key a cursor can describe
		return self.cursor is not None and self.sort_by == "date"

	@property
	def uses_offset(self) -> bool:
		return self.page is not None and not self.uses_keyset

	@property
	def descending(self) -> bool:
		return self.sort_dir != "asc"


@dataclass
class PageMeta:
	limit: int
	cursor: Optional[Cursor] = None
	page: Optional[int] = None
	total_items: Optional[int] = None
	warning: Optional[str] = None

	def to_dict(self) -> Dict[str, Any]:
		payload: Dict[str, Any] = {"limit": self.limit}
		if self.cursor is not None:
			payload["cursor"] = self.cursor.to_dict()
		if self.page is not None:
			payload["page"] = self.page
		if self.total_items is not None:
			payload["total_items"] = self.total_items
		if self.warning:
			payload["warning"] = self.warning
		return payload


@dataclass
class ResultPage:
	rows: List[Dict[str, Any]] = field(default_factory=list)
	meta: PageMeta = field(default_factory=lambda: PageMeta(limit=DEFAULT_LIMIT))
