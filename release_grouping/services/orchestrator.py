import asyncio
import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional
from urllib.parse import parse_qs, urlsplit

from release_grouping.config import GroupingOptions
from release_grouping.errors import AuthError, GroupingError, TransientFetchError
from release_grouping.services.facets import FacetParams, parse_facet_params, to_catalog_filters, to_predicate
from release_grouping.services.grouping import GroupingEngine, RenderItem
from release_grouping.services.ranking import RelevanceRanker
from release_grouping.services.renderer import ProgressiveRenderer
from release_grouping.services.sinks import Announcer, ResultsSink, SafeAnnouncer
from release_grouping.storefront.client import StorefrontClient
from release_grouping.storefront.models import CatalogMode, Record

logger = logging.getLogger(__name__)

_COLLECTION_PATH_RE = re.compile(r"/collections/([^/?#]+)")


class SessionStatus(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    GROUPING = "grouping"
    RENDERING = "rendering"
    COMPLETE = "complete"
    INTERRUPTED = "interrupted"
    FAILED = "failed"


@dataclass
class RunResult:
    status: SessionStatus
    records_fetched: int = 0
    items_rendered: int = 0
    pages: int = 0
    partial: bool = False
    error: Optional[str] = None
    items: Optional[List[RenderItem]] = None


def search_terms_from_url(url: str) -> str:
    values = parse_qs(urlsplit(url).query).get("q") or [""]
    return values[0].strip()


def collection_handle_from_url(url: str) -> Optional[str]:
    match = _COLLECTION_PATH_RE.search(urlsplit(url).path)
    return match.group(1) if match else None


class GroupingOrchestrator:
    """
    Drives fetch -> filter/rank -> group -> render for one results container.

    Only one run owns the sink at a time. A filter change bumps the run
    generation, so an in-flight run notices it has been superseded at its
    next suspension point and stops without touching the sink.
    """

    def __init__(
        self,
        client: StorefrontClient,
        sink: ResultsSink,
        mode: CatalogMode,
        query_or_handle: str,
        url: str = "",
        options: GroupingOptions | None = None,
        announcer: Announcer | None = None,
        renderer: ProgressiveRenderer | None = None,
        ranker: RelevanceRanker | None = None,
    ):
        self.client = client
        self.sink = sink
        self.mode = mode
        self.query_or_handle = query_or_handle
        self.url = url
        self.options = options or GroupingOptions()
        self.announcer = SafeAnnouncer(announcer)
        self.renderer = renderer or ProgressiveRenderer(options=self.options)
        self.ranker = ranker or RelevanceRanker()
        self.engine = GroupingEngine()

        self.is_enhancing = False
        self.status = SessionStatus.IDLE
        self.generation = 0
        self._debounce_token = 0
        self.last_result: Optional[RunResult] = None

    @classmethod
    def for_url(cls, url: str, client: StorefrontClient, sink: ResultsSink, collection_handle: str | None = None, **kwargs) -> "GroupingOrchestrator":
        """Search mode when the URL carries `q`, collection mode otherwise."""
        terms = search_terms_from_url(url)
        if terms:
            return cls(client, sink, CatalogMode.SEARCH, terms, url=url, **kwargs)
        handle = collection_handle or collection_handle_from_url(url)
        if not handle:
            raise ValueError(f"No collection handle or search terms in {url!r}")
        return cls(client, sink, CatalogMode.COLLECTION, handle, url=url, **kwargs)

    @property
    def is_search(self) -> bool:
        return self.mode == CatalogMode.SEARCH

    def _is_current(self, generation: int) -> Callable[[], bool]:
        return lambda: generation == self.generation

    async def enhance(self, url: str | None = None) -> Optional[RunResult]:
        if self.is_enhancing:
            logger.warning("Enhancement already in progress")
            return None
        return await self._start(url)

    async def _start(self, url: str | None) -> RunResult:
        # a new generation supersedes whatever run is in flight
        if url is not None:
            self.url = url
        self.is_enhancing = True
        self.generation += 1
        generation = self.generation

        try:
            result = await self._run(generation)
        finally:
            if generation == self.generation:
                self.is_enhancing = False

        if generation == self.generation:
            self.last_result = result
        return result

    async def on_filter_change(self, url: str) -> Optional[RunResult]:
        """
        Facet UI changed. Hides the stale results at once, waits out the
        debounce window and re-runs from the new URL, superseding any run
        started meanwhile. Returns None when a later change superseded this one.
        """
        if self.is_enhancing:
            logger.info("Interrupting current enhancement for filter update")
            self.status = SessionStatus.INTERRUPTED
        self.is_enhancing = False
        self.generation += 1
        self.url = url
        self.sink.hide()

        self._debounce_token += 1
        token = self._debounce_token
        await asyncio.sleep(self.options.filter_debounce_ms / 1000)
        if token != self._debounce_token:
            return None

        if self.is_enhancing:
            logger.info("Superseding enhancement started during filter debounce")
            self.status = SessionStatus.INTERRUPTED
        self.announcer.announce_loading("Loading and grouping products...")
        return await self._start(url)

    def _prepare(self, facets: FacetParams) -> tuple[list, Optional[Callable[[Record], bool]]]:
        # the search connection takes no ProductFilter list; filter after fetching instead
        if self.is_search:
            return [], to_predicate(facets) if facets.is_active else None
        return to_catalog_filters(facets), None

    def _fail(self, generation: int, message: str, result: RunResult) -> RunResult:
        result.status = SessionStatus.FAILED
        result.error = message
        if generation == self.generation:
            self.status = SessionStatus.FAILED
            self.sink.show_fallback()
            self.announcer.announce_error("Unable to group products. Showing standard results.")
        return result

    async def _run(self, generation: int) -> RunResult:
        started = time.monotonic()
        is_current = self._is_current(generation)
        result = RunResult(status=SessionStatus.FETCHING, items=[])

        self.engine.reset()
        facets = parse_facet_params(self.url)
        filters, predicate = self._prepare(facets)
        logger.info(f"Starting progressive enhancement for {self.mode.value}: {self.query_or_handle!r} (filters: {filters})")

        self.status = SessionStatus.FETCHING
        self.sink.clear()

        cursor = None
        has_next_page = True
        first_render = True

        async def render(items: List[RenderItem]) -> None:
            nonlocal first_render
            if not items:
                return
            self.status = SessionStatus.RENDERING
            batch = self.options.initial_render_batch if first_render else self.options.steady_render_batch
            first_render = False
            result.items.extend(items)
            result.items_rendered += await self.renderer.render(self.sink, items, batch, is_current)

        try:
            while has_next_page and result.records_fetched < self.options.max_products_per_run:
                if not is_current():
                    result.status = SessionStatus.INTERRUPTED
                    return result
                self.status = SessionStatus.FETCHING
                try:
                    page = await self.client.fetch_page(self.mode, self.query_or_handle, filters, cursor, self.options.page_size)
                except AuthError:
                    raise
                except TransientFetchError as e:
                    if result.pages == 0:
                        raise
                    logger.warning(f"Page {result.pages + 1} failed, keeping {result.records_fetched} records already fetched: {e}")
                    result.partial = True
                    break

                if not is_current():
                    result.status = SessionStatus.INTERRUPTED
                    return result

                result.pages += 1
                records = page.records
                if predicate is not None:
                    records = [r for r in records if predicate(r)]
                if self.is_search:
                    records = self.ranker.rank(records, self.query_or_handle)
                remaining = self.options.max_products_per_run - result.records_fetched
                records = records[:remaining]
                result.records_fetched += len(records)
                logger.debug(f"Page {result.pages}: {len(records)} records (total {result.records_fetched})")

                self.status = SessionStatus.GROUPING
                await render(self.engine.process_batch(records))
                if not is_current():
                    result.status = SessionStatus.INTERRUPTED
                    return result

                has_next_page = page.has_next_page and bool(page.end_cursor)
                cursor = page.end_cursor
                if has_next_page:
                    await asyncio.sleep(self.options.page_delay_ms / 1000)

            if not is_current():
                result.status = SessionStatus.INTERRUPTED
                return result
            self.status = SessionStatus.GROUPING
            await render(self.engine.flush())
            if not is_current():
                result.status = SessionStatus.INTERRUPTED
                return result

        except AuthError as e:
            logger.error(f"Grouping aborted, storefront auth failed: {e}")
            return self._fail(generation, str(e), result)
        except TransientFetchError as e:
            logger.error(f"Grouping aborted, no page could be fetched: {e}")
            return self._fail(generation, str(e), result)
        except GroupingError as e:
            logger.critical(f"Grouping failed: {e}")
            return self._fail(generation, str(e), result)
        except Exception as e:
            logger.exception("Grouping failed unexpectedly: %s", e)
            return self._fail(generation, str(e), result)

        self.status = SessionStatus.COMPLETE
        result.status = SessionStatus.COMPLETE
        self.sink.show()
        if result.items_rendered > 0:
            self.sink.hide_pagination()
        elif result.records_fetched > 0:
            logger.critical(f"Fetched {result.records_fetched} records but rendered none")

        self.announcer.announce_success(f"Products loaded: {result.items_rendered} items displayed.")
        self.announcer.record_metric("grouping.records_fetched", result.records_fetched)
        self.announcer.record_metric("grouping.items_rendered", result.items_rendered)
        self.announcer.record_metric("grouping.duration_ms", round((time.monotonic() - started) * 1000))
        logger.info(
            f"Enhancement complete: {result.records_fetched} records, {result.items_rendered} items, "
            f"{result.pages} pages" + (" (partial)" if result.partial else "")
        )
        return result
