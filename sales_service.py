from __future__ import annotations

import datetime as dt
import json
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import MySQLdb

from models import Cursor, PageMeta, ResultPage, SalesQuery
from query_builder import SALES_TABLE, Statement, build_count_statement, build_page_statement


logger = logging.getLogger(__name__)

OFFSET_WARNING = "Offset pagination used. Prefer keyset cursor for deep paging."
FILTER_OPTION_LIMIT = 100

FILTER_OPTION_QUERIES: Dict[str, str] = {
	"region": (
		f"SELECT DISTINCT customer_region AS value FROM {SALES_TABLE} "
		f"WHERE customer_region IS NOT NULL ORDER BY value LIMIT {FILTER_OPTION_LIMIT}"
	),
	"gender": (
		f"SELECT DISTINCT gender AS value FROM {SALES_TABLE} "
		f"WHERE gender IS NOT NULL ORDER BY value LIMIT {FILTER_OPTION_LIMIT}"
	),
	"category": (
		f"SELECT DISTINCT category AS value FROM {SALES_TABLE} "
		f"WHERE category IS NOT NULL ORDER BY value LIMIT {FILTER_OPTION_LIMIT}"
	),
	"payment": (
		f"SELECT DISTINCT payment_method AS value FROM {SALES_TABLE} "
		f"WHERE payment_method IS NOT NULL ORDER BY value LIMIT {FILTER_OPTION_LIMIT}"
	),
	"tags": (
		f"SELECT DISTINCT jt.tag AS value FROM {SALES_TABLE}, "
		"JSON_TABLE(tags, '$[*]' COLUMNS (tag VARCHAR(100) PATH '$')) AS jt "
		f"WHERE jt.tag IS NOT NULL ORDER BY value LIMIT {FILTER_OPTION_LIMIT}"
	),
}


class DatabaseError(Exception):
	"""A query against the sales table failed. Never retried here."""


def _fetchone_dict(cursor) -> Optional[Dict[str, Any]]:
	row = cursor.fetchone()
	if row is None:
		return None
	if isinstance(row, dict):
		return row
	desc = [col[0] for col in cursor.description]
	return dict(zip(desc, row))


def _fetchall_dict(cursor) -> List[Dict[str, Any]]:
	rows = cursor.fetchall() or []
	if rows and isinstance(rows[0], dict):
		return list(rows)
	desc = [col[0] for col in cursor.description]
	return [dict(zip(desc, r)) for r in rows]


def _execute(cursor, statement: Statement) -> None:
	logger.debug("sales query: %s params=%s", statement.sql, statement.params)
	cursor.execute(statement.sql, statement.params or None)


def serialize_row(row: Dict[str, Any]) -> Dict[str, Any]:
	"""Make a raw DB row JSON/XML friendly."""
	out: Dict[str, Any] = {}
	for key, value in row.items():
		if isinstance(value, (dt.date, dt.datetime)):
			value = value.isoformat()
		elif isinstance(value, Decimal):
			value = float(value)
		elif key == "tags":
			if isinstance(value, (bytes, bytearray)):
				value = value.decode("utf-8")
			if isinstance(value, str):
				value = json.loads(value) if value else []
			elif value is None:
				value = []
			else:
				value = list(value)
		out[key] = value
	return out


def result_to_dict(page: ResultPage) -> Dict[str, Any]:
	return {"meta": page.meta.to_dict(), "data": [serialize_row(r) for r in page.rows]}


def query_sales(conn, query: SalesQuery) -> ResultPage:
	"""Run the optional count and the page query for ``query``.

	The two statements are separate round trips without a shared snapshot, so
	under concurrent writes ``total_items`` may disagree with the page.
	"""
	meta = PageMeta(limit=query.limit)
	cur = conn.cursor()
	try:
		if query.want_total_count:
			_execute(cur, build_count_statement(query))
			counted = _fetchone_dict(cur) or {}
			meta.total_items = int(counted.get("total") or 0)

		_execute(cur, build_page_statement(query))
		rows = _fetchall_dict(cur)
	except MySQLdb.Error as exc:
		raise DatabaseError(f"sales query failed: {exc}") from exc
	finally:
		cur.close()

	if query.uses_offset:
		meta.page = query.page
		meta.warning = OFFSET_WARNING
	elif rows and query.sort_by == "date":
		# computed for every date-ordered keyset page, the first one included
		meta.cursor = Cursor.from_row(rows[-1])

	return ResultPage(rows=rows, meta=meta)


def fetch_filter_options(conn) -> Dict[str, List[str]]:
	options: Dict[str, List[str]] = {}
	cur = conn.cursor()
	try:
		for key, sql in FILTER_OPTION_QUERIES.items():
			cur.execute(sql)
			values = [r.get("value") for r in _fetchall_dict(cur)]
			options[key] = [str(v) for v in values if v is not None]
	except MySQLdb.Error as exc:
		raise DatabaseError(f"filter options query failed: {exc}") from exc
	finally:
		cur.close()
	return options


def ping(conn) -> bool:
	cur = conn.cursor()
	try:
		cur.execute("SELECT 1")
		cur.fetchone()
		return True
	except MySQLdb.Error:
		logger.warning("Database ping failed", exc_info=True)
		return False
	finally:
		cur.close()
