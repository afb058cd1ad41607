from __future__ import annotations

import os
from typing import Any, Dict, Optional

import dicttoxml
import MySQLdb
from flask import Flask, Response, current_app, jsonify, make_response, request
from flask_mysqldb import MySQL
from werkzeug.exceptions import BadRequest, HTTPException, NotFound

from config import Config
from sales_service import DatabaseError, fetch_filter_options, ping, query_sales, result_to_dict
from validation import parse_sales_query


mysql = MySQL()


def _get_format() -> str:
	fmt = (request.args.get("format") or "json").strip().lower()
	if fmt not in {"json", "xml"}:
		raise BadRequest("format must be 'json' or 'xml'")
	return fmt


def _to_xml(payload: Any, root: str = "response") -> bytes:
	# dicttoxml wraps lists; make output predictable
	return dicttoxml.dicttoxml(payload, custom_root=root, attr_type=False)


def api_response(payload: Any, status: int = 200, *, root: str = "response") -> Response:
	try:
		fmt = _get_format()
	except BadRequest:
		# an invalid format must still be able to report itself
		fmt = "json"
	if fmt == "xml":
		xml_bytes = _to_xml(payload, root=root)
		resp = make_response(xml_bytes, status)
		resp.headers["Content-Type"] = "application/xml; charset=utf-8"
		return resp
	return make_response(jsonify(payload), status)


def error_response(message: str, status: int, *, details: Optional[Dict[str, Any]] = None) -> Response:
	payload: Dict[str, Any] = {"error": message, "status": status}
	if details:
		payload["details"] = details
	return api_response(payload, status=status, root="error")


def _db_connection():
	try:
		return mysql.connection
	except MySQLdb.Error as exc:
		raise DatabaseError(f"could not connect: {exc}") from exc


def _handle_db_error(exc: Exception) -> Response:
	current_app.logger.error("Database error: %s", exc, exc_info=exc)
	return error_response("Database error", 500)


def create_app(overrides: Optional[Dict[str, Any]] = None) -> Flask:
	app = Flask(__name__)
	app.config.from_object(Config)

	# Ensure env vars always take precedence (Config class attributes are evaluated at import time).
	def _env(name: str, default: Any) -> Any:
		value = os.getenv(name)
		if value is None:
			return default
		return value

	app.config["MYSQL_USER"] = _env("MYSQL_USER", app.config.get("MYSQL_USER"))
	app.config["MYSQL_PASSWORD"] = _env("MYSQL_PASSWORD", app.config.get("MYSQL_PASSWORD"))
	app.config["MYSQL_HOST"] = _env("MYSQL_HOST", app.config.get("MYSQL_HOST"))
	app.config["MYSQL_DB"] = _env("MYSQL_DB", app.config.get("MYSQL_DB"))
	app.config["MYSQL_PORT"] = int(_env("MYSQL_PORT", app.config.get("MYSQL_PORT", 3306)))
	app.config["LOG_LEVEL"] = _env("LOG_LEVEL", app.config.get("LOG_LEVEL", "INFO"))

	# flask-mysqldb expects these keys
	app.config.setdefault("MYSQL_CURSORCLASS", "DictCursor")

	if overrides:
		app.config.update(overrides)

	app.logger.setLevel(str(app.config["LOG_LEVEL"]).upper())

	mysql.init_app(app)

	@app.before_request
	def _check_format() -> None:
		_get_format()

	@app.get("/health")
	def health() -> Response:
		try:
			db_ok = ping(_db_connection())
		except DatabaseError as e:
			app.logger.warning("Database ping failed: %s", e)
			db_ok = False
		return api_response({"status": "ok", "db": db_ok})

	# -------------------------
	# Sales listing
	# -------------------------
	@app.get("/api/sales")
	def list_sales() -> Response:
		# validation runs before any connection is touched
		query = parse_sales_query(request.args)
		if query.uses_offset:
			app.logger.debug("Offset pagination requested: page=%s limit=%s", query.page, query.limit)
		try:
			page = query_sales(_db_connection(), query)
		except DatabaseError as e:
			return _handle_db_error(e)
		return api_response(result_to_dict(page))

	@app.get("/api/filters")
	def list_filters() -> Response:
		try:
			options = fetch_filter_options(_db_connection())
		except DatabaseError as e:
			return _handle_db_error(e)
		return api_response(options, root="filters")

	# -------------------------
	# Consistent JSON/XML errors
	# -------------------------
	@app.errorhandler(BadRequest)
	def _bad_request(err: BadRequest):
		return error_response(str(err.description or "Bad request"), 400)

	@app.errorhandler(NotFound)
	def _not_found(err: NotFound):
		return error_response("Not found", 404)

	@app.errorhandler(HTTPException)
	def _http_error(err: HTTPException):
		return error_response(err.name, err.code or 500)

	@app.errorhandler(Exception)
	def _unhandled(err: Exception):
		app.logger.exception("Unhandled error: %s", err)
		return error_response("Internal server error", 500)

	return app


app = create_app()


if __name__ == "__main__":
	port = int(os.getenv("PORT", 5000))
	app.run(host="0.0.0.0", port=port, debug=True)
