import math
import re
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from release_grouping.services.grouping import RenderItem
from release_grouping.storefront.models import Money, Record

CURRENCY_SYMBOLS = {"GBP": "£", "USD": "$", "EUR": "€", "CAD": "CA$", "AUD": "A$", "JPY": "¥"}

# " - (LP)", "(2xCD)", "(Vinyl Box Set)" ...
_FORMAT_SUFFIX_RE = re.compile(
    r'(?: - )?\s?\((?:LP|CD|7"?|12"?|10"?|EP|DVD|Blu-ray|Cassette|VHS|[23]xLP|[23]xCD|2xCassette'
    r"|LP Box|CD Box|Box Set|Vinyl Box Set|CD Box Set)\)",
    re.IGNORECASE,
)
# "(Near Mint (NM or M-))", "(Very Good Plus (VG+))" ...
_CONDITION_SUFFIX_RE = re.compile(
    r"\s*\((?:Mint|Near Mint|Very Good Plus|Very Good|Good Plus|Good|Fair|Poor) \([^)]*\)\)",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class DisplayOptions:
    collection_handle: str = ""
    card_size: str = "medium"
    enable_compare: bool = False


class CardRenderer(Protocol):
    async def __call__(self, item: RenderItem, options: DisplayOptions) -> Any: ...


def format_price(price: Optional[Money]) -> str:
    if price is None:
        return ""
    symbol = CURRENCY_SYMBOLS.get(price.currency_code, f"{price.currency_code} ")
    return f"{symbol}{price.amount:,.2f}"


def display_title(record: Record) -> str:
    """
    "Artist - Album" from the metafields, falling back to splitting the
    product title, with format and grading suffixes removed.
    """
    artist = (record.artist or "").strip()
    album = (record.album_title or "").strip()
    if not artist or not album:
        parts = (record.title or "").split(" - ")
        if len(parts) >= 2:
            artist, album = parts[0].strip(), parts[1].strip()
        else:
            artist, album = record.vendor or "", record.title or ""

    if artist and album:
        title = f"{artist} - {album}"
    else:
        title = album or record.title or ""

    title = _FORMAT_SUFFIX_RE.sub("", title)
    title = _CONDITION_SUFFIX_RE.sub("", title)
    return re.sub(r"\s{2,}", " ", title).strip()


def lowest_price(item: RenderItem) -> Optional[Money]:
    """Main record's price, lowered by any cheaper (non-zero) copy in a group."""
    lowest = item.record.min_price
    if not item.is_group:
        return lowest
    for member in item.member_records:
        price = member.min_price
        if price is None or price.amount <= 0:
            continue
        if lowest is None or price.amount < lowest.amount:
            lowest = price
    return lowest


def product_url(record: Record, options: DisplayOptions) -> str:
    if options.collection_handle:
        return f"/collections/{options.collection_handle}/products/{record.handle}"
    return f"/products/{record.handle}"


def build_card(item: RenderItem, options: DisplayOptions | None = None) -> dict:
    options = options or DisplayOptions()
    record = item.record
    price = lowest_price(item)
    compare_at = record.compare_at_price
    on_sale = bool(compare_at and price and compare_at.amount > price.amount)

    card = {
        "kind": item.kind.value,
        "id": record.id,
        "handle": record.handle,
        "url": product_url(record, options),
        "title": display_title(record),
        "format": item.format,
        "price": format_price(price),
        "price_from": item.is_group,
        "compare_at_price": format_price(compare_at) if on_sale else "",
        "on_sale": on_sale,
        "image": record.featured_image.url if record.featured_image else "",
        "image_alt": (record.featured_image.alt_text if record.featured_image else None) or record.title,
        "available": record.available_for_sale,
        "card_size": options.card_size,
        "original_index": None if math.isinf(item.original_index) else int(item.original_index),
    }
    if item.is_group:
        card["copies"] = item.copies
        card["copies_label"] = f"{item.copies} copies available"
        card["member_ids"] = [r.id for r in item.member_records]
        card["member_handles"] = [r.handle for r in item.member_records]
    return card


async def render_card(item: RenderItem, options: DisplayOptions) -> dict:
    """Default card renderer: a JSON-ready dict, deterministic for a given item."""
    return build_card(item, options)
