import asyncio

import aiohttp
import pytest

from release_grouping.errors import AuthError, CatalogResponseError, TransientFetchError
from release_grouping.storefront.client import PageCache, StorefrontClient, parse_connection
from release_grouping.storefront.models import CatalogMode


def _node(id, title="Pink Floyd - The Wall", product_type="LP", artist="Pink Floyd", album="The Wall"):
    return {
        "id": id,
        "handle": id.rsplit("/", 1)[-1],
        "title": title,
        "vendor": "Harvest",
        "productType": product_type,
        "tags": ["Rock"],
        "availableForSale": True,
        "priceRange": {
            "minVariantPrice": {"amount": "12.0", "currencyCode": "GBP"},
            "maxVariantPrice": {"amount": "12.0", "currencyCode": "GBP"},
        },
        "featuredImage": {"url": "https://cdn.example/wall.jpg", "altText": None},
        "artist": {"value": artist} if artist else None,
        "title_metafield": {"value": album} if album else None,
        "media_condition": {"value": "Near Mint (NM or M-)"},
        "sleeve_condition": None,
        "style_genre": {"value": "  "},
    }


def _connection(nodes, has_next_page=False, end_cursor=None):
    return {
        "edges": [{"node": n} for n in nodes],
        "pageInfo": {"hasNextPage": has_next_page, "endCursor": end_cursor},
    }


class FakeClient(StorefrontClient):
    def __init__(self, responses, **kwargs):
        kwargs.setdefault("store_url", "shop.example")
        kwargs.setdefault("token", "token")
        kwargs.setdefault("retry_delay", 0)
        super().__init__(**kwargs)
        self.responses = list(responses)
        self.payloads = []

    async def _post(self, payload):
        self.payloads.append(payload)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def test_endpoint_strips_scheme():
    client = FakeClient([], store_url="https://shop.example/", api_version="2025-01")
    assert client.endpoint == "https://shop.example/api/2025-01/graphql.json"


def test_missing_token_raises_auth_error():
    client = FakeClient([], token="")
    with pytest.raises(AuthError):
        asyncio.run(client.query("{ shop { name } }"))
    assert client.payloads == []


def test_rejected_token_raises_auth_error():
    client = FakeClient([(401, {})])
    with pytest.raises(AuthError):
        asyncio.run(client.fetch_page(CatalogMode.COLLECTION, "vinyl"))


def test_http_error_is_transient():
    client = FakeClient([(502, {})])
    with pytest.raises(TransientFetchError):
        asyncio.run(client.fetch_page(CatalogMode.COLLECTION, "vinyl"))


def test_network_error_is_transient():
    client = FakeClient([aiohttp.ClientConnectionError("reset")])
    with pytest.raises(TransientFetchError):
        asyncio.run(client.fetch_page(CatalogMode.COLLECTION, "vinyl"))


def test_graphql_errors():
    client = FakeClient([(200, {"errors": [{"message": "Field 'x' doesn't exist"}]})])
    with pytest.raises(CatalogResponseError) as exc:
        asyncio.run(client.query("{ x }"))
    assert "doesn't exist" in str(exc.value)
    assert exc.value.errors[0]["message"] == "Field 'x' doesn't exist"


def test_collection_page_parsed_into_records():
    body = {"data": {"collection": {"products": _connection([_node("gid://shopify/Product/1")], True, "c1")}}}
    client = FakeClient([(200, body)])

    page = asyncio.run(client.fetch_page(CatalogMode.COLLECTION, "vinyl", [{"productType": "LP"}]))

    assert page.has_next_page
    assert page.end_cursor == "c1"
    record = page.records[0]
    assert record.artist == "Pink Floyd"
    assert record.album_title == "The Wall"
    assert record.media_condition == "Near Mint (NM or M-)"
    assert record.sleeve_condition is None
    assert record.style_genre is None
    assert record.min_price.amount == 12.0

    variables = client.payloads[0]["variables"]
    assert variables["handle"] == "vinyl"
    assert variables["filters"] == [{"productType": "LP"}]
    assert variables["first"] == 250
    assert "after" not in variables


def test_search_passes_cursor_and_drops_filters():
    body = {"data": {"products": _connection([])}}
    client = FakeClient([(200, body)])

    asyncio.run(client.fetch_page(CatalogMode.SEARCH, "wall", [{"productType": "LP"}], "c9", 500))

    variables = client.payloads[0]["variables"]
    assert variables == {"query": "wall", "first": 250, "after": "c9"}


def test_missing_collection_is_an_empty_page():
    client = FakeClient([(200, {"data": {"collection": None}})])
    page = asyncio.run(client.fetch_page(CatalogMode.COLLECTION, "nope"))
    assert page.records == []
    assert not page.has_next_page


def test_pages_are_cached():
    body = {"data": {"products": _connection([_node("gid://shopify/Product/1")])}}
    client = FakeClient([(200, body)])

    first = asyncio.run(client.fetch_page(CatalogMode.SEARCH, "wall"))
    second = asyncio.run(client.fetch_page(CatalogMode.SEARCH, "wall"))

    assert first is second
    assert len(client.payloads) == 1


def test_retries_transient_failures():
    body = {"data": {"products": _connection([])}}
    client = FakeClient([(503, {}), (200, body)], retries=1)

    page = asyncio.run(client.fetch_page(CatalogMode.SEARCH, "wall"))

    assert page.records == []
    assert len(client.payloads) == 2


def test_auth_error_is_not_retried():
    client = FakeClient([(403, {}), (200, {})], retries=3)
    with pytest.raises(AuthError):
        asyncio.run(client.fetch_page(CatalogMode.SEARCH, "wall"))
    assert len(client.payloads) == 1


def test_parse_connection_skips_nodes_without_id():
    page = parse_connection(_connection([{"title": "broken"}, _node("gid://shopify/Product/2")]))
    assert [r.id for r in page.records] == ["gid://shopify/Product/2"]


def test_page_cache_evicts_least_recently_used():
    cache = PageCache(max_size=2)
    cache.set(("a",), "A")
    cache.set(("b",), "B")
    cache.get(("a",))
    cache.set(("c",), "C")

    assert len(cache) == 2
    assert cache.get(("b",)) is None
    assert cache.get(("a",)) == "A"
