"""Parameterized SQL for filtered, sorted and paginated reads of ``sales``.

Filters are collected as a list of predicate values and turned into SQL by
``render_where``. Placeholders use the pyformat style understood by MySQLdb
(``%(p1)s``) and are numbered by a single ``ParamBinder`` in render order, so
the parameter mapping always has exactly one entry per distinct placeholder.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from models import SalesQuery


SALES_TABLE = "sales"
TIE_BREAK_COLUMN = "id"
KEYSET_COLUMN = "date"

# Closed mapping from public sort names to physical columns. Never interpolate
# anything that did not come out of this dict.
SORT_COLUMN_MAP: Dict[str, str] = {
	"date": "date",
	"quantity": "quantity",
	"customer_name": "customer_name",
	"total_amount": "final_amount",
}

SEARCH_COLUMNS = ("customer_name", "phone")


@dataclass(frozen=True)
class ILikeEither:
	columns: Tuple[str, ...]
	term: str


@dataclass(frozen=True)
class Equals:
	column: str
	value: Any


@dataclass(frozen=True)
class Range:
	column: str
	lower: Any = None
	upper: Any = None


@dataclass(frozen=True)
class Overlap:
	column: str
	values: Tuple[str, ...]


@dataclass(frozen=True)
class KeysetAfter:
	column: str
	last_value: Any
	last_id: int
	descending: bool


Predicate = Union[ILikeEither, Equals, Range, Overlap, KeysetAfter]


@dataclass(frozen=True)
class Statement:
	sql: str
	params: Dict[str, Any]


class ParamBinder:
	def __init__(self) -> None:
		self.params: Dict[str, Any] = {}

	def bind(self, value: Any) -> str:
		name = f"p{len(self.params) + 1}"
		self.params[name] = value
		return f"%({name})s"


def escape_like(term: str) -> str:
	return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def resolve_sort(sort_by: Optional[str], sort_dir: Optional[str]) -> Tuple[str, str]:
	column = SORT_COLUMN_MAP.get(sort_by or "", SORT_COLUMN_MAP["date"])
	direction = "ASC" if (sort_dir or "").lower() == "asc" else "DESC"
	return column, direction


def build_predicates(query: SalesQuery) -> List[Predicate]:
	"""Base filter predicates, in the fixed order they are rendered."""
	predicates: List[Predicate] = []
	if query.text_search:
		predicates.append(ILikeEither(SEARCH_COLUMNS, query.text_search))
	if query.region:
		predicates.append(Equals("customer_region", query.region))
	if query.gender:
		predicates.append(Equals("gender", query.gender))
	if query.category:
		predicates.append(Equals("category", query.category))
	if query.payment:
		predicates.append(Equals("payment_method", query.payment))
	if query.age_min is not None or query.age_max is not None:
		predicates.append(Range("age", query.age_min, query.age_max))
	if query.date_from is not None or query.date_to is not None:
		predicates.append(Range("date", query.date_from, query.date_to))
	tags = tuple(t for t in query.tags if t)
	if tags:
		predicates.append(Overlap("tags", tags))
	return predicates


def render_predicate(predicate: Predicate, binder: ParamBinder) -> List[str]:
	if isinstance(predicate, ILikeEither):
		# one parameter shared by every column of the disjunction
		placeholder = binder.bind(f"%{escape_like(predicate.term.lower())}%")
		either = " OR ".join(f"LOWER({col}) LIKE {placeholder}" for col in predicate.columns)
		return [f"({either})"]
	if isinstance(predicate, Equals):
		return [f"{predicate.column} = {binder.bind(predicate.value)}"]
	if isinstance(predicate, Range):
		clauses = []
		if predicate.lower is not None:
			clauses.append(f"{predicate.column} >= {binder.bind(predicate.lower)}")
		if predicate.upper is not None:
			clauses.append(f"{predicate.column} <= {binder.bind(predicate.upper)}")
		return clauses
	if isinstance(predicate, Overlap):
		placeholder = binder.bind(json.dumps(list(predicate.values)))
		return [f"JSON_OVERLAPS({predicate.column}, CAST({placeholder} AS JSON))"]
	if isinstance(predicate, KeysetAfter):
		op = "<" if predicate.descending else ">"
		value = binder.bind(predicate.last_value)
		last_id = binder.bind(predicate.last_id)
		col = predicate.column
		return [f"({col} {op} {value} OR ({col} = {value} AND {TIE_BREAK_COLUMN} {op} {last_id}))"]
	raise TypeError(f"Unsupported predicate: {predicate!r}")


def render_where(predicates: Sequence[Predicate], binder: ParamBinder) -> str:
	clauses: List[str] = []
	for predicate in predicates:
		clauses.extend(render_predicate(predicate, binder))
	if not clauses:
		return ""
	return " WHERE " + " AND ".join(clauses)


def build_count_statement(query: SalesQuery) -> Statement:
	binder = ParamBinder()
	where = render_where(build_predicates(query), binder)
	return Statement(f"SELECT COUNT(*) AS total FROM {SALES_TABLE}{where}", binder.params)


def build_page_statement(query: SalesQuery) -> Statement:
	predicates = build_predicates(query)
	if query.uses_keyset:
		assert query.cursor is not None
		predicates.append(
			KeysetAfter(
				KEYSET_COLUMN,
				query.cursor.last_date,
				query.cursor.last_id,
				descending=query.descending,
			)
		)

	binder = ParamBinder()
	where = render_where(predicates, binder)
	column, direction = resolve_sort(query.sort_by, query.sort_dir)
	# id follows the primary direction so (key, id) stays monotonic
	order = f" ORDER BY {column} {direction}, {TIE_BREAK_COLUMN} {direction}"
	sql = f"SELECT * FROM {SALES_TABLE}{where}{order} LIMIT {binder.bind(query.limit)}"
	if query.uses_offset:
		assert query.page is not None
		sql += f" OFFSET {int((query.page - 1) * query.limit)}"
	return Statement(sql, binder.params)
