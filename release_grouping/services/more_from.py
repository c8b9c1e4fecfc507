import logging
from typing import List

from release_grouping.errors import AuthError, TransientFetchError
from release_grouping.services.grouping import RenderItem, group_records
from release_grouping.storefront.client import StorefrontClient
from release_grouping.storefront.models import CatalogMode, Record

logger = logging.getLogger(__name__)

MORE_FROM_PAGE_SIZE = 100
MORE_FROM_LIMIT = 200


def build_search_query(search_type: str, value: str) -> str:
    """
    Storefront search can't query metafields, so artist/label/genre are
    matched against title, vendor and tags instead.
    """
    value = (value or "").strip()
    if search_type == "artist":
        return f"title:*{value}* OR vendor:*{value}*"
    if search_type == "label":
        return f"vendor:*{value}*"
    if search_type == "genre":
        return f"tag:{value}"
    return value


class MoreFromService:
    """Grouped "more from this artist / label / genre" listing for a product page."""

    def __init__(self, client: StorefrontClient, limit: int = MORE_FROM_LIMIT, page_size: int = MORE_FROM_PAGE_SIZE):
        self.client = client
        self.limit = limit
        self.page_size = page_size

    async def fetch(self, search_type: str, value: str, exclude_id: str | None = None) -> List[Record]:
        query = build_search_query(search_type, value)
        logger.info(f"Fetching more-from {search_type}: {value!r} (query: {query!r})")

        records: List[Record] = []
        cursor = None
        has_next_page = True
        while has_next_page and len(records) < self.limit:
            try:
                page = await self.client.fetch_page(CatalogMode.SEARCH, query, None, cursor, self.page_size)
            except AuthError:
                raise
            except TransientFetchError as e:
                if not records:
                    raise
                logger.warning(f"More-from fetch stopped early after {len(records)} records: {e}")
                break

            records.extend(r for r in page.records if r.id != exclude_id)
            has_next_page = page.has_next_page and bool(page.end_cursor)
            cursor = page.end_cursor

        return records[:self.limit]

    async def fetch_grouped(self, search_type: str, value: str, exclude_id: str | None = None) -> List[RenderItem]:
        records = await self.fetch(search_type, value, exclude_id)
        if not records:
            logger.info("More-from: no products found")
            return []
        items = group_records(records)
        groups = sum(1 for i in items if i.is_group)
        logger.info(f"More-from: {len(records)} records -> {groups} groups, {len(items) - groups} singles")
        return items
