"""Dashboard pagination state as an immutable value and a pure reducer.

Every user action is an ``Action`` value. ``reduce(state, action)`` returns a
new ``DashboardState`` and never mutates its input. Actions that require a
network fetch bump ``generation``; the fetch result is fed back as
``FetchSucceeded``/``FetchFailed`` tagged with the generation it was issued
for, and results for anything but the current generation are dropped. That
keeps a slow early response from overwriting a later one.

Params use the wire names of ``GET /api/sales`` (``sort_by``, ``cursor_date``,
``page`` ...) so they can be sent as-is by the client.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from models import DEFAULT_LIMIT, DEFAULT_SORT_BY, DEFAULT_SORT_DIR, Cursor


CURSOR_KEYS = ("cursor_date", "cursor_id")
POSITION_KEYS = CURSOR_KEYS + ("page",)


def default_params() -> Mapping[str, Any]:
	return MappingProxyType({"limit": DEFAULT_LIMIT, "sort_by": DEFAULT_SORT_BY, "sort_dir": DEFAULT_SORT_DIR})


class Status(str, enum.Enum):
	IDLE = "idle"
	LOADING = "loading"
	LOADED = "loaded"
	ERRORED = "errored"


@dataclass(frozen=True)
class DashboardState:
	params: Mapping[str, Any] = field(default_factory=default_params)
	cursor_history: Tuple[Optional[Cursor], ...] = ()
	data: Tuple[Dict[str, Any], ...] = ()
	meta: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
	status: Status = Status.IDLE
	error: Optional[str] = None
	generation: int = 0

	@property
	def prev_exists(self) -> bool:
		return len(self.cursor_history) > 0

	@property
	def next_exists(self) -> bool:
		return bool(self.meta.get("cursor"))

	@property
	def active_cursor(self) -> Optional[Cursor]:
		if self.params.get("cursor_date") is None or self.params.get("cursor_id") is None:
			return None
		return Cursor.from_dict({"last_date": self.params["cursor_date"], "last_id": self.params["cursor_id"]})


@dataclass(frozen=True)
class Reload:
	"""Fetch again with the current params (initial load or retry)."""


@dataclass(frozen=True)
class ApplyFilters:
	filters: Mapping[str, Any]


@dataclass(frozen=True)
class ResetFilters:
	pass


@dataclass(frozen=True)
class GoNextCursor:
	pass


@dataclass(frozen=True)
class GoPrevCursor:
	pass


@dataclass(frozen=True)
class GoToPage:
	page: int


@dataclass(frozen=True)
class FetchSucceeded:
	generation: int
	data: Tuple[Dict[str, Any], ...]
	meta: Mapping[str, Any]


@dataclass(frozen=True)
class FetchFailed:
	generation: int
	message: str


Action = Union[Reload, ApplyFilters, ResetFilters, GoNextCursor, GoPrevCursor, GoToPage, FetchSucceeded, FetchFailed]


def _is_blank(value: Any) -> bool:
	if value is None:
		return True
	if isinstance(value, str):
		return not value.strip()
	if isinstance(value, (list, tuple, set, frozenset)):
		return len(value) == 0
	return False


def _with_params(params: Mapping[str, Any], *, drop: Tuple[str, ...] = (), **updates: Any) -> Mapping[str, Any]:
	merged = {k: v for k, v in params.items() if k not in drop}
	for key, value in updates.items():
		if _is_blank(value):
			merged.pop(key, None)
		else:
			merged[key] = value
	return MappingProxyType(merged)


def _cursor_params(cursor: Optional[Cursor]) -> Dict[str, Any]:
	if cursor is None:
		return {"cursor_date": None, "cursor_id": None}
	return {"cursor_date": cursor.last_date.isoformat(), "cursor_id": cursor.last_id}


def _loading(state: DashboardState, **changes: Any) -> DashboardState:
	return replace(state, status=Status.LOADING, error=None, generation=state.generation + 1, **changes)


def reduce(state: DashboardState, action: Action) -> DashboardState:
	if isinstance(action, Reload):
		return _loading(state)

	if isinstance(action, ApplyFilters):
		filters = {k: v for k, v in action.filters.items() if k not in POSITION_KEYS}
		params = _with_params(state.params, drop=POSITION_KEYS, **filters)
		# the old meta.cursor belongs to the previous result set
		return _loading(state, params=params, cursor_history=(), meta=MappingProxyType({}))

	if isinstance(action, ResetFilters):
		return _loading(state, params=default_params(), cursor_history=(), meta=MappingProxyType({}))

	if isinstance(action, GoNextCursor):
		next_cursor = state.meta.get("cursor")
		if state.status is not Status.LOADED or not next_cursor:
			return state
		history = state.cursor_history + (state.active_cursor,)
		params = _with_params(state.params, drop=("page",), **_cursor_params(Cursor.from_dict(next_cursor)))
		return _loading(state, params=params, cursor_history=history)

	if isinstance(action, GoPrevCursor):
		if not state.cursor_history:
			return state
		previous = state.cursor_history[-1]
		params = _with_params(state.params, drop=("page",), **_cursor_params(previous))
		return _loading(state, params=params, cursor_history=state.cursor_history[:-1])

	if isinstance(action, GoToPage):
		if action.page < 1:
			return state
		params = _with_params(state.params, drop=CURSOR_KEYS, page=action.page)
		# offset and keyset histories are not interchangeable
		return _loading(state, params=params, cursor_history=(), meta=MappingProxyType({}))

	if isinstance(action, FetchSucceeded):
		if action.generation != state.generation:
			return state
		return replace(
			state,
			status=Status.LOADED,
			data=tuple(action.data),
			meta=MappingProxyType(dict(action.meta)),
			error=None,
		)

	if isinstance(action, FetchFailed):
		if action.generation != state.generation:
			return state
		# data is discarded on error; params survive so a Reload retries
		return replace(state, status=Status.ERRORED, data=(), meta=MappingProxyType({}), error=action.message)

	raise TypeError(f"Unknown action: {action!r}")
