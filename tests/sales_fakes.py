"""In-memory stand-in for a MySQLdb connection over the ``sales`` table.

It understands just enough of the SQL produced by ``query_builder`` (equality
filters, tag overlap, the keyset clause, ORDER BY, LIMIT and OFFSET) to
exercise pagination end to end without a database.
"""

import datetime as dt
import json
import re

_ORDER_RE = re.compile(r"ORDER BY (\w+) (ASC|DESC), id (ASC|DESC)")
_KEYSET_RE = re.compile(
	r"\(date ([<>]) %\((\w+)\)s OR \(date = %\((\w+)\)s AND id ([<>]) %\((\w+)\)s\)\)"
)
_LIMIT_RE = re.compile(r"LIMIT %\((\w+)\)s")
_OFFSET_RE = re.compile(r"OFFSET (\d+)")
_EQUALS_RE = re.compile(r"\b(customer_region|gender|category|payment_method) = %\((\w+)\)s")
_OVERLAP_RE = re.compile(r"JSON_OVERLAPS\(tags, CAST\(%\((\w+)\)s AS JSON\)\)")


def make_row(row_id, date, **extra):
	row = {
		"id": row_id,
		"date": dt.date.fromisoformat(date) if isinstance(date, str) else date,
		"customer_name": f"Customer {row_id}",
		"phone": f"555-{row_id:04d}",
		"customer_region": "North",
		"gender": "Female",
		"age": 30,
		"category": "Electronics",
		"tags": [],
		"quantity": 1,
		"final_amount": 10.0,
		"payment_method": "Card",
	}
	row.update(extra)
	return row


class FakeCursor:
	def __init__(self, connection):
		self.connection = connection
		self.description = None
		self._result = []
		self.closed = False

	def execute(self, sql, params=None):
		params = params or {}
		self.connection.executed.append((sql, dict(params)))
		if self.connection.error is not None:
			raise self.connection.error
		rows = self._filter(sql, params)
		if sql.startswith("SELECT COUNT(*)"):
			self._result = [{"total": len(rows)}]
			return 1
		if sql == "SELECT 1":
			self._result = [{"1": 1}]
			return 1
		if sql.startswith("SELECT DISTINCT"):
			self._result = self.connection.distinct_results.pop(0) if self.connection.distinct_results else []
			return len(self._result)
		rows = self._order(sql, rows)
		offset = _OFFSET_RE.search(sql)
		if offset:
			rows = rows[int(offset.group(1)):]
		limit = _LIMIT_RE.search(sql)
		if limit:
			rows = rows[: int(params[limit.group(1)])]
		self._result = [dict(r) for r in rows]
		return len(self._result)

	def _filter(self, sql, params):
		rows = list(self.connection.rows)
		for column, name in _EQUALS_RE.findall(sql):
			rows = [r for r in rows if r.get(column) == params[name]]
		overlap = _OVERLAP_RE.search(sql)
		if overlap:
			wanted = set(json.loads(params[overlap.group(1)]))
			rows = [r for r in rows if wanted & set(r.get("tags") or [])]
		keyset = _KEYSET_RE.search(sql)
		if keyset:
			op, date_name, _, _, id_name = keyset.groups()
			last = (params[date_name], params[id_name])
			if op == "<":
				rows = [r for r in rows if (r["date"], r["id"]) < last]
			else:
				rows = [r for r in rows if (r["date"], r["id"]) > last]
		return rows

	def _order(self, sql, rows):
		match = _ORDER_RE.search(sql)
		if not match:
			return rows
		column, direction, _ = match.groups()
		return sorted(rows, key=lambda r: (r[column], r["id"]), reverse=direction == "DESC")

	def fetchone(self):
		return self._result[0] if self._result else None

	def fetchall(self):
		return list(self._result)

	def close(self):
		self.closed = True


class FakeConnection:
	def __init__(self, rows=(), *, error=None, distinct_results=None):
		self.rows = list(rows)
		self.error = error
		self.distinct_results = list(distinct_results or [])
		self.executed = []
		self.cursors = []

	def cursor(self):
		cur = FakeCursor(self)
		self.cursors.append(cur)
		return cur
