from dataclasses import dataclass

from pydantic_settings import BaseSettings

MAX_PAGE_SIZE = 250  # Storefront API ceiling for `first`


class Settings(BaseSettings):
    SHOPIFY_STORE_URL: str = ""
    SHOPIFY_STOREFRONT_TOKEN: str | None = None
    STOREFRONT_API_VERSION: str = "2025-01"
    STOREFRONT_TIMEOUT_S: float = 30.0

    MAX_PRODUCTS_PER_RUN: int = 5000
    PAGE_SIZE: int = MAX_PAGE_SIZE
    INITIAL_RENDER_BATCH: int = 50
    STEADY_RENDER_BATCH: int = 20
    RENDER_CONCURRENCY: int = 20
    FILTER_DEBOUNCE_MS: int = 300
    PAGE_DELAY_MS: int = 50
    RENDER_YIELD_MS: int = 10

    # 0 keeps the baseline behaviour: a failed page ends pagination
    FETCH_RETRIES: int = 0
    FETCH_RETRY_DELAY_S: float = 1.0
    PAGE_CACHE_SIZE: int = 64

    class Config:
        env_file = ".env"


settings = Settings()


@dataclass(frozen=True)
class GroupingOptions:
    max_products_per_run: int = 5000
    page_size: int = MAX_PAGE_SIZE
    initial_render_batch: int = 50
    steady_render_batch: int = 20
    render_concurrency: int = 20
    filter_debounce_ms: int = 300
    page_delay_ms: int = 50
    render_yield_ms: int = 10

    def __post_init__(self):
        if self.page_size > MAX_PAGE_SIZE:
            object.__setattr__(self, "page_size", MAX_PAGE_SIZE)
        for name in ("page_size", "initial_render_batch", "steady_render_batch", "render_concurrency"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1")

    @classmethod
    def from_settings(cls, s: Settings | None = None) -> "GroupingOptions":
        s = s or settings
        return cls(
            max_products_per_run=s.MAX_PRODUCTS_PER_RUN,
            page_size=s.PAGE_SIZE,
            initial_render_batch=s.INITIAL_RENDER_BATCH,
            steady_render_batch=s.STEADY_RENDER_BATCH,
            render_concurrency=s.RENDER_CONCURRENCY,
            filter_debounce_ms=s.FILTER_DEBOUNCE_MS,
            page_delay_ms=s.PAGE_DELAY_MS,
            render_yield_ms=s.RENDER_YIELD_MS,
        )
