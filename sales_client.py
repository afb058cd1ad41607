"""HTTP client for the sales API and the controller that drives pagination.

The controller is meant to run on a single asyncio loop: actions are applied
synchronously through ``pagination.reduce`` and only the network call
suspends. Overlapping fetches are allowed; the reducer drops whichever
response no longer matches the current generation.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

import httpx

from config import Config
from pagination import (
	Action,
	ApplyFilters,
	DashboardState,
	FetchFailed,
	FetchSucceeded,
	GoNextCursor,
	GoPrevCursor,
	GoToPage,
	Reload,
	ResetFilters,
	reduce,
)


logger = logging.getLogger(__name__)

SEARCH_DEBOUNCE_SECONDS = 0.3


class SalesApiError(Exception):
	def __init__(self, message: str, status_code: Optional[int] = None) -> None:
		super().__init__(message)
		self.status_code = status_code


def to_query_params(params: Mapping[str, Any]) -> Dict[str, str]:
	"""Serialize dashboard params; lists become comma-separated values."""
	out: Dict[str, str] = {}
	for key, value in params.items():
		if value is None:
			continue
		if isinstance(value, (list, tuple, set, frozenset)):
			items = [str(v).strip() for v in value if str(v).strip()]
			if items:
				out[key] = ",".join(items)
			continue
		if isinstance(value, bool):
			out[key] = "true" if value else "false"
			continue
		text = str(value)
		if text == "":
			continue
		out[key] = text
	return out


class SalesApiClient:
	def __init__(
		self,
		base_url: Optional[str] = None,
		*,
		transport: Optional[httpx.AsyncBaseTransport] = None,
		headers: Optional[Dict[str, str]] = None,
	) -> None:
		self.base_url = (base_url or Config.SALES_API_BASE).rstrip("/")
		self.client = httpx.AsyncClient(base_url=self.base_url, transport=transport, headers=headers or {})

	async def close(self) -> None:
		await self.client.aclose()

	async def __aenter__(self) -> "SalesApiClient":
		return self

	async def __aexit__(self, *exc_info: Any) -> None:
		await self.close()

	async def _get_json(self, path: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
		try:
			resp = await self.client.get(path, params=params)
		except httpx.HTTPError as exc:
			raise SalesApiError(f"Request to {path} failed: {exc}") from exc
		if resp.status_code >= 400:
			try:
				body = resp.json()
			except ValueError:
				body = {}
			message = body.get("error") if isinstance(body, dict) else None
			raise SalesApiError(message or f"Request to {path} failed with {resp.status_code}", resp.status_code)
		try:
			body = resp.json()
		except ValueError as exc:
			raise SalesApiError(f"Response from {path} is not valid JSON", resp.status_code) from exc
		if not isinstance(body, dict):
			raise SalesApiError(f"Response from {path} is not a JSON object", resp.status_code)
		return body

	async def fetch_sales(self, params: Mapping[str, Any]) -> Dict[str, Any]:
		# total count is always useful for the summary widgets
		query = {"count": "true"}
		query.update(to_query_params(params))
		payload = await self._get_json("/sales", query)
		if not isinstance(payload.get("data", []), list) or not isinstance(payload.get("meta", {}), dict):
			raise SalesApiError("Malformed sales response")
		return payload

	async def fetch_filters(self) -> Dict[str, List[str]]:
		return await self._get_json("/filters")


class SalesDashboardController:
	def __init__(
		self,
		client: SalesApiClient,
		*,
		state: Optional[DashboardState] = None,
		search_debounce: float = SEARCH_DEBOUNCE_SECONDS,
		on_change: Optional[Callable[[DashboardState], None]] = None,
	) -> None:
		self.client = client
		self.search_debounce = search_debounce
		self.on_change = on_change
		self._state = state or DashboardState()
		self._pending_search: Optional[asyncio.Task] = None

	@property
	def state(self) -> DashboardState:
		return self._state

	def _apply(self, action: Action) -> DashboardState:
		new_state = reduce(self._state, action)
		if new_state is not self._state:
			self._state = new_state
			if self.on_change is not None:
				self.on_change(new_state)
		return new_state

	async def dispatch(self, action: Action) -> DashboardState:
		previous = self._state
		current = self._apply(action)
		if current.generation != previous.generation:
			await self._fetch(current)
		return self._state

	async def _fetch(self, state: DashboardState) -> None:
		generation = state.generation
		try:
			payload = await self.client.fetch_sales(state.params)
		except SalesApiError as exc:
			logger.warning("Sales fetch failed: %s", exc)
			self._apply(FetchFailed(generation, str(exc)))
			return
		if generation != self._state.generation:
			logger.debug("Discarding stale sales response (generation %s, current %s)", generation, self._state.generation)
			return
		self._apply(FetchSucceeded(generation, tuple(payload.get("data") or ()), payload.get("meta") or {}))

	async def load(self) -> DashboardState:
		return await self.dispatch(Reload())

	async def apply_filters(self, **filters: Any) -> DashboardState:
		return await self.dispatch(ApplyFilters(filters))

	async def reset_filters(self) -> DashboardState:
		return await self.dispatch(ResetFilters())

	async def go_next_cursor(self) -> DashboardState:
		return await self.dispatch(GoNextCursor())

	async def go_prev_cursor(self) -> DashboardState:
		return await self.dispatch(GoPrevCursor())

	async def go_to_page(self, page: int) -> DashboardState:
		return await self.dispatch(GoToPage(page))

	def search(self, term: str) -> asyncio.Task:
		"""Debounced free-text search; only the last term in the window is applied."""
		if self._pending_search is not None and not self._pending_search.done():
			self._pending_search.cancel()
		self._pending_search = asyncio.ensure_future(self._debounced_search(term))
		return self._pending_search

	async def _debounced_search(self, term: str) -> DashboardState:
		await asyncio.sleep(self.search_debounce)
		return await self.dispatch(ApplyFilters({"q": term}))
