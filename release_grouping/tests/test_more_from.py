import asyncio

import pytest

from release_grouping.errors import TransientFetchError
from release_grouping.services.grouping import ItemKind
from release_grouping.services.more_from import MoreFromService, build_search_query
from release_grouping.storefront.models import CatalogMode, CatalogPage, Record


def _rec(id, artist="Can", album="Tago Mago", product_type="LP"):
    return Record(id=id, handle=id, title=f"{artist} - {album}", product_type=product_type, artist=artist, album_title=album)


class PagedSearch:
    def __init__(self, pages, fail_at=None):
        self.pages = pages
        self.fail_at = fail_at
        self.calls = []

    async def fetch_page(self, mode, query_or_handle, filters=None, cursor=None, page_size=250):
        index = 0 if cursor is None else int(cursor)
        self.calls.append((mode, query_or_handle, cursor, page_size))
        if index == self.fail_at:
            raise TransientFetchError("timeout")
        has_next_page = index + 1 < len(self.pages)
        return CatalogPage(records=self.pages[index], has_next_page=has_next_page, end_cursor=str(index + 1) if has_next_page else None)


def test_build_search_query():
    assert build_search_query("artist", " Can ") == "title:*Can* OR vendor:*Can*"
    assert build_search_query("label", "Harvest") == "vendor:*Harvest*"
    assert build_search_query("genre", "Krautrock") == "tag:Krautrock"
    assert build_search_query("other", "x") == "x"


def test_fetch_grouped_excludes_current_product():
    client = PagedSearch([[_rec("1"), _rec("2"), _rec("3", album="Ege Bamyasi")], [_rec("4")]])
    service = MoreFromService(client)

    items = asyncio.run(service.fetch_grouped("artist", "Can", exclude_id="1"))

    assert [item.kind for item in items] == [ItemKind.GROUP, ItemKind.SINGLE]
    assert items[0].record_ids == ["2", "4"]
    assert items[1].record.id == "3"
    mode, query, cursor, page_size = client.calls[0]
    assert mode == CatalogMode.SEARCH
    assert query == "title:*Can* OR vendor:*Can*"
    assert page_size == 100
    assert [c[2] for c in client.calls] == [None, "1"]


def test_fetch_stops_at_limit():
    pages = [[_rec(f"{p}{i}", album=f"Album {p}{i}") for i in range(3)] for p in "abcd"]
    client = PagedSearch(pages)

    records = asyncio.run(MoreFromService(client, limit=5, page_size=3).fetch("label", "Harvest"))

    assert len(records) == 5
    assert len(client.calls) == 2


def test_no_results():
    assert asyncio.run(MoreFromService(PagedSearch([[]])).fetch_grouped("genre", "Polka")) == []


def test_later_page_failure_keeps_earlier_records():
    client = PagedSearch([[_rec("1")], [_rec("2")]], fail_at=1)
    records = asyncio.run(MoreFromService(client).fetch("artist", "Can"))
    assert [r.id for r in records] == ["1"]


def test_first_page_failure_raises():
    with pytest.raises(TransientFetchError):
        asyncio.run(MoreFromService(PagedSearch([[_rec("1")]], fail_at=0)).fetch("artist", "Can"))
