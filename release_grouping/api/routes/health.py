from fastapi import APIRouter

from release_grouping.config import settings

router = APIRouter()


@router.get("/storefront")
def storefront_health():
    return {
        "store_url": settings.SHOPIFY_STORE_URL,
        "api_version": settings.STOREFRONT_API_VERSION,
        "token_configured": bool(settings.SHOPIFY_STOREFRONT_TOKEN),
    }
