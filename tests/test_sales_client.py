import asyncio
import unittest

import httpx

from pagination import Status
from sales_client import SalesApiClient, SalesApiError, SalesDashboardController, to_query_params


BASE = "http://sales.test/api"


def page_payload(ids, cursor=None):
	meta = {"limit": 2}
	if cursor:
		meta["cursor"] = cursor
	return {"meta": meta, "data": [{"id": i} for i in ids]}


class QueryParamTests(unittest.TestCase):
	def test_serialization(self):
		self.assertEqual(
			to_query_params(
				{
					"q": "",
					"region": None,
					"tags": ["a", " ", "b"],
					"empty": [],
					"limit": 10,
					"count": True,
					"cursor_id": 0,
				}
			),
			{"tags": "a,b", "limit": "10", "count": "true", "cursor_id": "0"},
		)


class ClientTests(unittest.IsolatedAsyncioTestCase):
	async def test_fetch_sales_sends_count_and_params(self):
		seen = []

		def handler(request):
			seen.append(request)
			return httpx.Response(200, json=page_payload([1]))

		async with SalesApiClient(BASE, transport=httpx.MockTransport(handler)) as client:
			payload = await client.fetch_sales({"limit": 2, "tags": ["x", "y"], "q": None})
		self.assertEqual(payload["data"], [{"id": 1}])
		self.assertEqual(seen[0].url.path, "/api/sales")
		self.assertEqual(dict(seen[0].url.params), {"count": "true", "limit": "2", "tags": "x,y"})

	async def test_error_body_becomes_exception(self):
		transport = httpx.MockTransport(lambda request: httpx.Response(400, json={"error": "limit must be <= 100"}))
		async with SalesApiClient(BASE, transport=transport) as client:
			with self.assertRaises(SalesApiError) as ctx:
				await client.fetch_sales({"limit": 500})
		self.assertEqual(str(ctx.exception), "limit must be <= 100")
		self.assertEqual(ctx.exception.status_code, 400)

	async def test_transport_error_wrapped(self):
		def handler(request):
			raise httpx.ConnectError("refused", request=request)

		async with SalesApiClient(BASE, transport=httpx.MockTransport(handler)) as client:
			with self.assertRaises(SalesApiError):
				await client.fetch_filters()

	async def test_fetch_filters(self):
		options = {"region": ["North"], "gender": [], "category": [], "payment": [], "tags": ["gift"]}
		transport = httpx.MockTransport(lambda request: httpx.Response(200, json=options))
		async with SalesApiClient(BASE, transport=transport) as client:
			self.assertEqual(await client.fetch_filters(), options)


class ControllerTests(unittest.IsolatedAsyncioTestCase):
	async def asyncSetUp(self):
		self.requests = []
		self.responses = {}

		def handler(request):
			self.requests.append(dict(request.url.params))
			key = request.url.params.get("cursor_id")
			return httpx.Response(200, json=self.responses[key])

		self.client = SalesApiClient(BASE, transport=httpx.MockTransport(handler))
		self.controller = SalesDashboardController(self.client, search_debounce=0.01)

	async def asyncTearDown(self):
		await self.client.close()

	async def test_cursor_navigation(self):
		self.responses = {
			None: page_payload([5, 4], {"last_date": "2024-01-03", "last_id": 4}),
			"4": page_payload([3, 2], {"last_date": "2024-01-01", "last_id": 2}),
			"2": page_payload([]),
		}
		state = await self.controller.load()
		self.assertEqual(state.status, Status.LOADED)
		self.assertEqual([r["id"] for r in state.data], [5, 4])

		state = await self.controller.go_next_cursor()
		self.assertEqual([r["id"] for r in state.data], [3, 2])
		self.assertTrue(state.prev_exists)
		self.assertEqual(self.requests[-1]["cursor_date"], "2024-01-03")

		state = await self.controller.go_prev_cursor()
		self.assertEqual([r["id"] for r in state.data], [5, 4])
		self.assertNotIn("cursor_id", self.requests[-1])
		self.assertEqual(len(self.requests), 3)

	async def test_guarded_actions_do_not_fetch(self):
		self.responses = {None: page_payload([])}
		await self.controller.load()
		await self.controller.go_next_cursor()
		await self.controller.go_prev_cursor()
		self.assertEqual(len(self.requests), 1)

	async def test_error_state(self):
		transport = httpx.MockTransport(lambda request: httpx.Response(500, json={"error": "Database error"}))
		async with SalesApiClient(BASE, transport=transport) as client:
			controller = SalesDashboardController(client)
			with self.assertLogs("sales_client", level="WARNING"):
				state = await controller.apply_filters(region="North")
		self.assertEqual(state.status, Status.ERRORED)
		self.assertEqual(state.error, "Database error")
		self.assertEqual(state.params["region"], "North")

	async def test_debounced_search_applies_last_term(self):
		self.responses = {None: page_payload([1])}
		self.controller.search("a")
		self.controller.search("al")
		task = self.controller.search("ali")
		state = await task
		self.assertEqual(len(self.requests), 1)
		self.assertEqual(self.requests[0]["q"], "ali")
		self.assertEqual(state.params["q"], "ali")

	async def test_on_change_notified(self):
		self.responses = {None: page_payload([1])}
		statuses = []
		self.controller.on_change = lambda s: statuses.append(s.status)
		await self.controller.load()
		self.assertEqual(statuses, [Status.LOADING, Status.LOADED])


class MalformedResponseTests(unittest.IsolatedAsyncioTestCase):
	async def _load_with(self, response):
		transport = httpx.MockTransport(lambda request: response)
		async with SalesApiClient(BASE, transport=transport) as client:
			controller = SalesDashboardController(client)
			with self.assertLogs("sales_client", level="WARNING"):
				return await controller.load()

	async def test_non_json_body_errors(self):
		state = await self._load_with(httpx.Response(200, text="<html>proxy</html>"))
		self.assertEqual(state.status, Status.ERRORED)
		self.assertIn("not valid JSON", state.error)

	async def test_non_object_body_errors(self):
		state = await self._load_with(httpx.Response(200, json=[1, 2, 3]))
		self.assertEqual(state.status, Status.ERRORED)
		self.assertIn("not a JSON object", state.error)

	async def test_wrong_shape_errors(self):
		state = await self._load_with(httpx.Response(200, json={"data": "rows", "meta": {}}))
		self.assertEqual(state.status, Status.ERRORED)
		self.assertEqual(state.error, "Malformed sales response")


class StaleResponseTests(unittest.IsolatedAsyncioTestCase):
	async def test_slow_earlier_response_is_discarded(self):
		release_slow = asyncio.Event()

		async def handler(request):
			if request.url.params.get("region") == "North":
				await release_slow.wait()
				return httpx.Response(200, json=page_payload([111]))
			return httpx.Response(200, json=page_payload([222]))

		async with SalesApiClient(BASE, transport=httpx.MockTransport(handler)) as client:
			controller = SalesDashboardController(client)
			slow = asyncio.ensure_future(controller.apply_filters(region="North"))
			await asyncio.sleep(0)
			fast = await controller.apply_filters(region="South")
			self.assertEqual([r["id"] for r in fast.data], [222])

			release_slow.set()
			final = await slow
		self.assertEqual(final.params["region"], "South")
		self.assertEqual([r["id"] for r in final.data], [222])
		self.assertEqual(final.status, Status.LOADED)


if __name__ == "__main__":
	unittest.main()
