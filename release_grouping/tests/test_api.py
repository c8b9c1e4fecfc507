from fastapi.testclient import TestClient

from release_grouping.api.routes.groups import get_client, get_options
from release_grouping.config import GroupingOptions
from release_grouping.errors import AuthError
from release_grouping.main import app
from release_grouping.storefront.models import CatalogPage, Record


def _rec(id, artist="Pink Floyd", album="The Wall", product_type="LP"):
    return Record(id=id, handle=id, title=f"{artist} - {album}", product_type=product_type, artist=artist, album_title=album)


class OnePageCatalog:
    def __init__(self, records, error=None):
        self.records = records
        self.error = error
        self.calls = []

    async def fetch_page(self, mode, query_or_handle, filters=None, cursor=None, page_size=250):
        self.calls.append((mode, query_or_handle, filters))
        if self.error is not None:
            raise self.error
        return CatalogPage(records=self.records)


def _client_for(catalog):
    app.dependency_overrides[get_client] = lambda: catalog
    app.dependency_overrides[get_options] = lambda: GroupingOptions(page_delay_ms=0, render_yield_ms=0)
    return TestClient(app)


def teardown_function():
    app.dependency_overrides.clear()


def test_root_and_health():
    client = TestClient(app)
    assert client.get("/").json()["status"] == "running"
    assert client.get("/health").json() == {"status": "healthy"}
    assert "token_configured" in client.get("/health/storefront").json()


def test_grouped_collection():
    catalog = OnePageCatalog([_rec("a"), _rec("b", product_type="2xLP"), _rec("c", artist=None)])
    client = _client_for(catalog)

    response = client.get("/groups/collections/vinyl?filter.p.product_type=Vinyl+LPs")

    assert response.status_code == 200
    body = response.json()
    assert body["mode"] == "collection"
    assert body["status"] == "complete"
    assert body["total"] == 2
    group, single = body["items"]
    assert group["copies_label"] == "2 copies available"
    assert group["url"] == "/collections/vinyl/products/a"
    assert single["id"] == "c"
    assert catalog.calls[0][2] == [{"productType": "Vinyl LPs"}]


def test_grouped_search():
    client = _client_for(OnePageCatalog([_rec("a")]))

    body = client.get("/groups/search", params={"q": "wall"}).json()

    assert body["mode"] == "search"
    assert [card["id"] for card in body["items"]] == ["a"]


def test_search_requires_terms():
    client = _client_for(OnePageCatalog([]))
    assert client.get("/groups/search").status_code == 422


def test_auth_failure_returns_fallback():
    client = _client_for(OnePageCatalog([], error=AuthError("Storefront API token not configured")))

    response = client.get("/groups/collections/vinyl")

    assert response.status_code == 503
    body = response.json()
    assert body["fallback"] is True
    assert body["items"] == []


def test_more_from():
    catalog = OnePageCatalog([_rec("a"), _rec("b"), _rec("c", album="Animals")])
    client = _client_for(catalog)

    response = client.get("/groups/more-from", params={"type": "artist", "value": "Pink Floyd", "exclude": "c"})

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["items"][0]["member_ids"] == ["b"]
    assert catalog.calls[0][1] == "title:*Pink Floyd* OR vendor:*Pink Floyd*"


def test_more_from_rejects_unknown_type():
    client = _client_for(OnePageCatalog([]))
    assert client.get("/groups/more-from", params={"type": "decade", "value": "1970s"}).status_code == 422


def test_more_from_auth_failure():
    client = _client_for(OnePageCatalog([], error=AuthError("no token")))
    response = client.get("/groups/more-from", params={"type": "label", "value": "Harvest"})
    assert response.status_code == 503
