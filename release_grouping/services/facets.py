import logging
from dataclasses import dataclass, fields
from typing import Callable, List, Optional, Union
from urllib.parse import parse_qsl, unquote, urlencode, urlsplit

from release_grouping.storefront.models import Record

logger = logging.getLogger(__name__)

FacetValue = Union[str, List[str], None]

METAFIELD_NAMESPACE = "custom"

# URL parameter names, primary first, fallbacks after
PRODUCT_TYPE_KEYS = ("filter.p.product_type",)
PRICE_MIN_KEY = "filter.v.price.gte"
PRICE_MAX_KEY = "filter.v.price.lte"
STYLE_GENRE_KEYS = (
    "filter.p.m.custom.computed_style_genre",
    "filter.p.m.custom.style_genre",
    "filter.v.option.style_genre",
)
MEDIA_CONDITION_KEYS = ("filter.p.m.custom.media_condition", "filter.v.option.media_condition")
SLEEVE_CONDITION_KEYS = ("filter.p.m.custom.sleeve_condition", "filter.v.option.sleeve_condition")

# Facet label -> tokens any of which must appear in the lowercased productType.
# Handles the store's naming variants ("2xLP", "LP Album", "7\" Single" ...).
PRODUCT_TYPE_TOKENS: dict[str, tuple[str, ...]] = {
    "vinyl lps": ("lp",),
    "lp albums": ("lp",),
    "cd albums": ("cd",),
    '7" singles': ("7",),
    '12" singles': ("12",),
    '10" vinyl': ("10",),
    "cassette albums": ("cassette",),
    "dvd & blu-ray": ("dvd", "blu"),
    "dvd and blu-ray": ("dvd", "blu"),
}


def as_list(value: FacetValue) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


@dataclass
class FacetParams:
    product_type: FacetValue = None
    price_min: Optional[str] = None
    price_max: Optional[str] = None
    style_genre: FacetValue = None
    media_condition: FacetValue = None
    sleeve_condition: FacetValue = None

    @property
    def is_active(self) -> bool:
        return any(getattr(self, f.name) for f in fields(self))

    def to_dict(self) -> dict:
        return {
            "productType": self.product_type,
            "priceMin": self.price_min,
            "priceMax": self.price_max,
            "styleGenre": self.style_genre,
            "mediaCondition": self.media_condition,
            "sleeveCondition": self.sleeve_condition,
        }


def _split_values(values: list[str]) -> FacetValue:
    combined: list[str] = []
    for val in values:
        if "," in val:
            combined.extend(v for v in val.split(","))
        else:
            combined.append(val)
    combined = [v for v in combined if v != ""]
    if not combined:
        return None
    return combined[0] if len(combined) == 1 else combined


def _get_all(params: list[tuple[str, str]], key: str) -> FacetValue:
    values = [v for k, v in params if k == key]
    if not values:
        decoded = unquote(key)
        if decoded != key:
            values = [v for k, v in params if k == decoded]
    return _split_values(values)


def _get_with_fallback(params: list[tuple[str, str]], keys: tuple[str, ...]) -> FacetValue:
    for key in keys:
        value = _get_all(params, key)
        if value:
            return value
    return None


def _get_first(params: list[tuple[str, str]], key: str) -> Optional[str]:
    for k, v in params:
        if k == key and v != "":
            return v
    return None


def parse_facet_params(url: str) -> FacetParams:
    """
    Extract facet filters from a URL (or a bare query string).

    Handles both repeated keys (?filter.p.product_type=CD+Albums&filter.p.product_type=LP+Albums)
    and comma-joined values (?filter.p.product_type=CD+Albums,LP+Albums).
    """
    query = urlsplit(url).query if ("?" in url or "://" in url) else url.lstrip("?")
    params = parse_qsl(query, keep_blank_values=True)

    return FacetParams(
        product_type=_get_with_fallback(params, PRODUCT_TYPE_KEYS),
        price_min=_get_first(params, PRICE_MIN_KEY),
        price_max=_get_first(params, PRICE_MAX_KEY),
        style_genre=_get_with_fallback(params, STYLE_GENRE_KEYS),
        media_condition=_get_with_fallback(params, MEDIA_CONDITION_KEYS),
        sleeve_condition=_get_with_fallback(params, SLEEVE_CONDITION_KEYS),
    )


def _to_float(value: Optional[str]) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-numeric price bound %r", value)
        return None


def _metafield_filter(key: str, value: str) -> dict:
    return {"productMetafield": {"namespace": METAFIELD_NAMESPACE, "key": key, "value": value}}


def to_catalog_filters(params: FacetParams) -> list[dict]:
    """
    Build Storefront `ProductFilter` inputs, one entry per selected value.
    The API ORs entries of the same kind and ANDs different kinds.
    """
    filters: list[dict] = []

    for product_type in as_list(params.product_type):
        filters.append({"productType": product_type})

    price_min = _to_float(params.price_min)
    price_max = _to_float(params.price_max)
    if price_min is not None or price_max is not None:
        price: dict = {}
        if price_min is not None:
            price["min"] = price_min
        if price_max is not None:
            price["max"] = price_max
        filters.append({"price": price})

    for genre in as_list(params.style_genre):
        filters.append(_metafield_filter("computed_style_genre", genre))
    for condition in as_list(params.media_condition):
        filters.append(_metafield_filter("media_condition", condition))
    for condition in as_list(params.sleeve_condition):
        filters.append(_metafield_filter("sleeve_condition", condition))

    return filters


def product_type_matches(facet_value: str, product_type: str) -> bool:
    wanted = facet_value.lower().strip()
    actual = (product_type or "").lower()
    tokens = PRODUCT_TYPE_TOKENS.get(wanted)
    if tokens is None and "dvd" in wanted and "blu" in wanted:
        tokens = ("dvd", "blu")
    if tokens is not None:
        return any(t in actual for t in tokens)
    return wanted in actual


def _text_matches(facet_values: list[str], actual: Optional[str]) -> bool:
    actual = (actual or "").lower().strip()
    for value in facet_values:
        wanted = value.lower().strip()
        if actual == wanted or wanted in actual:
            return True
    return False


def to_predicate(params: FacetParams) -> Callable[[Record], bool]:
    """
    In-memory equivalent of the catalog filters, for search mode.
    Every active category must match; any value within a category suffices.
    """
    product_types = as_list(params.product_type)
    genres = as_list(params.style_genre)
    media = as_list(params.media_condition)
    sleeves = as_list(params.sleeve_condition)
    price_min = _to_float(params.price_min)
    price_max = _to_float(params.price_max)

    def predicate(record: Record) -> bool:
        if product_types and not any(product_type_matches(t, record.product_type) for t in product_types):
            return False
        if genres and not _text_matches(genres, record.style_genre):
            return False
        if media and not _text_matches(media, record.media_condition):
            return False
        if sleeves and not _text_matches(sleeves, record.sleeve_condition):
            return False
        if price_min is not None or price_max is not None:
            price = record.min_price
            # records without a price are not excluded
            if price is not None:
                if price_min is not None and price.amount < price_min:
                    return False
                if price_max is not None and price.amount > price_max:
                    return False
        return True

    return predicate


def to_query_params(params: FacetParams) -> str:
    """Canonical `filter.*` query string for the given facets (comma-joined lists)."""
    pairs: list[tuple[str, str]] = []
    if params.product_type:
        pairs.append((PRODUCT_TYPE_KEYS[0], ",".join(as_list(params.product_type))))
    if params.price_min:
        pairs.append((PRICE_MIN_KEY, params.price_min))
    if params.price_max:
        pairs.append((PRICE_MAX_KEY, params.price_max))
    if params.style_genre:
        pairs.append((STYLE_GENRE_KEYS[0], ",".join(as_list(params.style_genre))))
    if params.media_condition:
        pairs.append((MEDIA_CONDITION_KEYS[0], ",".join(as_list(params.media_condition))))
    if params.sleeve_condition:
        pairs.append((SLEEVE_CONDITION_KEYS[0], ",".join(as_list(params.sleeve_condition))))
    return urlencode(pairs)
