import asyncio
import json
import logging
from collections import OrderedDict
from typing import Any, Optional

import aiohttp

from release_grouping.config import MAX_PAGE_SIZE, settings
from release_grouping.errors import AuthError, CatalogResponseError, TransientFetchError
from release_grouping.storefront import queries
from release_grouping.storefront.models import CatalogMode, CatalogPage, Record

logger = logging.getLogger(__name__)

TOKEN_MISSING = (
    "Storefront API token not configured. Set SHOPIFY_STOREFRONT_TOKEN "
    "(Shopify Admin > Apps > Develop apps > Storefront API)."
)


class PageCache:
    """Bounded LRU of fetched pages, keyed on the full query identity."""

    def __init__(self, max_size: int = 64):
        self.max_size = max(1, int(max_size))
        self._pages: OrderedDict = OrderedDict()

    @staticmethod
    def key(mode: CatalogMode, query_or_handle: str, filters: list, cursor: str | None, page_size: int) -> tuple:
        return (mode.value, query_or_handle, json.dumps(filters or [], sort_keys=True), cursor, page_size)

    def get(self, key: tuple) -> Optional[CatalogPage]:
        if key not in self._pages:
            return None
        page = self._pages.pop(key)
        self._pages[key] = page
        return page

    def set(self, key: tuple, page: CatalogPage) -> None:
        self._pages.pop(key, None)
        self._pages[key] = page
        while len(self._pages) > self.max_size:
            self._pages.popitem(last=False)

    def clear(self) -> None:
        self._pages.clear()

    def __len__(self) -> int:
        return len(self._pages)


class StorefrontClient:
    def __init__(
        self,
        store_url: str | None = None,
        token: str | None = None,
        api_version: str | None = None,
        cache: PageCache | None = None,
        retries: int | None = None,
        retry_delay: float | None = None,
    ):
        # Use provided params or fall back to settings
        self.store_url = (store_url or settings.SHOPIFY_STORE_URL).rstrip("/")
        self.token = token if token is not None else settings.SHOPIFY_STOREFRONT_TOKEN
        self.api_version = api_version or settings.STOREFRONT_API_VERSION
        self.cache = cache if cache is not None else PageCache(settings.PAGE_CACHE_SIZE)
        self.retries = settings.FETCH_RETRIES if retries is None else retries
        self.retry_delay = settings.FETCH_RETRY_DELAY_S if retry_delay is None else retry_delay
        self.timeout_s = settings.STOREFRONT_TIMEOUT_S

        if not self.token:
            logger.error(TOKEN_MISSING)

    @property
    def endpoint(self) -> str:
        host = self.store_url
        if host.startswith("https://") or host.startswith("http://"):
            host = host.split("://", 1)[1]
        return f"https://{host}/api/{self.api_version}/graphql.json"

    async def _post(self, payload: dict) -> tuple[int, dict]:
        headers = {
            "Content-Type": "application/json",
            "X-Shopify-Storefront-Access-Token": self.token or "",
        }
        timeout = aiohttp.ClientTimeout(total=self.timeout_s)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(self.endpoint, json=payload, headers=headers) as resp:
                if resp.status >= 400:
                    text = await resp.text()
                    logger.error(f"Storefront POST Error {resp.status}: {text[:500]}")
                    return resp.status, {}
                return resp.status, await resp.json()

    async def query(self, graphql_query: str, variables: dict | None = None) -> dict:
        """
        Execute a GraphQL query and return its `data` object.
        Raises AuthError when no token is configured or the shop rejects it,
        TransientFetchError for anything network/HTTP/GraphQL related.
        """
        if not self.token:
            raise AuthError(TOKEN_MISSING)

        payload = {"query": graphql_query, "variables": variables or {}}
        try:
            status, body = await self._post(payload)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientFetchError(f"Storefront request failed: {e}") from e

        if status in (401, 403):
            raise AuthError(f"Storefront API rejected the access token (HTTP {status})")
        if status >= 400:
            raise TransientFetchError(f"Storefront API returned HTTP {status}")

        errors = body.get("errors")
        if errors:
            logger.error("GraphQL Errors: %s", errors)
            first = errors[0].get("message") if isinstance(errors[0], dict) else str(errors[0])
            raise CatalogResponseError(first or "GraphQL error", errors)

        return body.get("data") or {}

    async def get_collection(self, handle: str, filters: list | None = None, cursor: str | None = None, limit: int = 24) -> dict:
        variables: dict[str, Any] = {"handle": handle, "filters": filters or [], "first": limit}
        if cursor:
            variables["after"] = cursor
        return await self.query(queries.GET_COLLECTION, variables)

    async def search_products(self, search: str, cursor: str | None = None, limit: int = 24) -> dict:
        variables: dict[str, Any] = {"query": search, "first": limit}
        if cursor:
            variables["after"] = cursor
        return await self.query(queries.SEARCH_PRODUCTS, variables)

    async def fetch_page(
        self,
        mode: CatalogMode,
        query_or_handle: str,
        filters: list | None = None,
        cursor: str | None = None,
        page_size: int = MAX_PAGE_SIZE,
    ) -> CatalogPage:
        """
        Fetch one page of products as Records.
        Search mode ignores `filters`; the caller filters client-side.
        """
        page_size = max(1, min(int(page_size), MAX_PAGE_SIZE))
        if mode == CatalogMode.SEARCH:
            filters = []

        cache_key = PageCache.key(mode, query_or_handle, filters or [], cursor, page_size)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug("Page cache hit for %s %r (cursor=%s)", mode.value, query_or_handle, cursor)
            return cached

        max_attempts = 1 + max(0, self.retries)
        retry_delay = self.retry_delay
        for attempt in range(max_attempts):
            try:
                if mode == CatalogMode.SEARCH:
                    data = await self.search_products(query_or_handle, cursor, page_size)
                    connection = data.get("products")
                else:
                    data = await self.get_collection(query_or_handle, filters, cursor, page_size)
                    connection = (data.get("collection") or {}).get("products")
                break
            except AuthError:
                raise
            except TransientFetchError as e:
                if attempt < max_attempts - 1:
                    logger.warning(f"Page fetch failed on attempt {attempt + 1}: {e}; retrying in {retry_delay} seconds...")
                    await asyncio.sleep(retry_delay)
                    retry_delay *= 2  # Exponential backoff
                else:
                    raise

        page = parse_connection(connection)
        self.cache.set(cache_key, page)
        return page


def parse_connection(connection: dict | None) -> CatalogPage:
    """Turn a products connection (edges + pageInfo) into a CatalogPage."""
    if not connection:
        return CatalogPage()

    records = []
    for edge in connection.get("edges") or []:
        node = edge.get("node")
        if not node or not node.get("id"):
            continue
        records.append(Record.from_node(node))

    page_info = connection.get("pageInfo") or {}
    return CatalogPage(
        records=records,
        has_next_page=bool(page_info.get("hasNextPage")),
        end_cursor=page_info.get("endCursor"),
    )
