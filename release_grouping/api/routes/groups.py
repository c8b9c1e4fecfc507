from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from release_grouping.config import GroupingOptions
from release_grouping.errors import AuthError, TransientFetchError
from release_grouping.services.cards import DisplayOptions, build_card
from release_grouping.services.more_from import MoreFromService
from release_grouping.services.orchestrator import GroupingOrchestrator, RunResult, SessionStatus
from release_grouping.services.renderer import ProgressiveRenderer
from release_grouping.services.sinks import ListSink
from release_grouping.storefront.client import StorefrontClient
from release_grouping.storefront.models import CatalogMode

router = APIRouter()

_client: StorefrontClient | None = None


def get_client() -> StorefrontClient:
    # one client per process so its page cache is shared between requests
    global _client
    if _client is None:
        _client = StorefrontClient()
    return _client


def get_options() -> GroupingOptions:
    return GroupingOptions.from_settings()


def _response(mode: CatalogMode, result: RunResult, sink: ListSink) -> JSONResponse:
    body = {
        "mode": mode.value,
        "status": result.status.value,
        "partial": result.partial,
        "records_fetched": result.records_fetched,
        "total": sink.get_current_count(),
        "items": sink.cards,
    }
    if result.status == SessionStatus.FAILED:
        body["fallback"] = True
        body["error"] = result.error
        return JSONResponse(body, status_code=503)
    return JSONResponse(body)


async def _run(request: Request, mode: CatalogMode, query_or_handle: str, client: StorefrontClient, options: GroupingOptions) -> JSONResponse:
    sink = ListSink()
    display = DisplayOptions(collection_handle=query_or_handle if mode == CatalogMode.COLLECTION else "")
    orchestrator = GroupingOrchestrator(
        client,
        sink,
        mode,
        query_or_handle,
        url=str(request.url),
        options=options,
        renderer=ProgressiveRenderer(options=options, display=display),
    )
    result = await orchestrator.enhance()
    return _response(mode, result, sink)


@router.get("/collections/{handle}")
async def grouped_collection(
    handle: str,
    request: Request,
    client: StorefrontClient = Depends(get_client),
    options: GroupingOptions = Depends(get_options),
):
    return await _run(request, CatalogMode.COLLECTION, handle, client, options)


@router.get("/search")
async def grouped_search(
    request: Request,
    q: str = Query(..., min_length=1),
    client: StorefrontClient = Depends(get_client),
    options: GroupingOptions = Depends(get_options),
):
    return await _run(request, CatalogMode.SEARCH, q.strip(), client, options)


@router.get("/more-from")
async def more_from(
    type: str = Query(..., pattern="^(artist|label|genre)$"),
    value: str = Query(..., min_length=1),
    exclude: str | None = None,
    client: StorefrontClient = Depends(get_client),
):
    service = MoreFromService(client)
    try:
        items = await service.fetch_grouped(type, value, exclude)
    except AuthError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except TransientFetchError as e:
        raise HTTPException(status_code=502, detail=str(e))

    cards = [build_card(item) for item in items]
    return {"type": type, "value": value, "total": len(cards), "items": cards}
