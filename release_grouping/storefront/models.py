from enum import Enum
from typing import List, Optional

from pydantic import BaseModel


class CatalogMode(str, Enum):
    COLLECTION = "collection"
    SEARCH = "search"


class Money(BaseModel):
    amount: float = 0.0
    currency_code: str = "GBP"

    @classmethod
    def from_node(cls, node: dict | None) -> Optional["Money"]:
        if not node or node.get("amount") in (None, ""):
            return None
        try:
            amount = float(node["amount"])
        except (TypeError, ValueError):
            return None
        return cls(amount=amount, currency_code=node.get("currencyCode") or "GBP")


class PriceRange(BaseModel):
    min_price: Optional[Money] = None
    max_price: Optional[Money] = None

    @classmethod
    def from_node(cls, node: dict | None) -> Optional["PriceRange"]:
        if not node:
            return None
        return cls(
            min_price=Money.from_node(node.get("minVariantPrice")),
            max_price=Money.from_node(node.get("maxVariantPrice")),
        )


class Image(BaseModel):
    url: str
    alt_text: Optional[str] = None


class SelectedOption(BaseModel):
    name: str
    value: str


class Variant(BaseModel):
    id: str
    title: Optional[str] = None
    available_for_sale: bool = True
    price: Optional[Money] = None
    compare_at_price: Optional[Money] = None
    selected_options: List[SelectedOption] = []


def _metafield(node: dict, alias: str) -> Optional[str]:
    field = node.get(alias)
    if not field:
        return None
    value = field.get("value")
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class Record(BaseModel):
    """One catalog product as returned by the Storefront API."""

    id: str
    handle: str = ""
    title: str = ""
    vendor: str = ""
    product_type: str = ""
    tags: List[str] = []
    price_range: Optional[PriceRange] = None
    compare_at_price_range: Optional[PriceRange] = None
    featured_image: Optional[Image] = None
    available_for_sale: bool = True
    variants: List[Variant] = []

    artist: Optional[str] = None
    album_title: Optional[str] = None
    media_condition: Optional[str] = None
    sleeve_condition: Optional[str] = None
    style_genre: Optional[str] = None

    @property
    def min_price(self) -> Optional[Money]:
        if self.price_range is None:
            return None
        return self.price_range.min_price

    @property
    def compare_at_price(self) -> Optional[Money]:
        if self.compare_at_price_range is None:
            return None
        return self.compare_at_price_range.min_price

    @classmethod
    def from_node(cls, node: dict) -> "Record":
        """
        Build a Record from a GraphQL product node.
        Metafields arrive under the aliases used in `queries.PRODUCT_FIELDS`.
        """
        image = node.get("featuredImage")
        variants = []
        for edge in (node.get("variants") or {}).get("edges", []):
            v = edge.get("node") or {}
            if not v.get("id"):
                continue
            variants.append(
                Variant(
                    id=v["id"],
                    title=v.get("title"),
                    available_for_sale=v.get("availableForSale") is not False,
                    price=Money.from_node(v.get("priceV2")),
                    compare_at_price=Money.from_node(v.get("compareAtPriceV2")),
                    selected_options=[
                        SelectedOption(name=o.get("name", ""), value=o.get("value", ""))
                        for o in v.get("selectedOptions") or []
                    ],
                )
            )

        return cls(
            id=node["id"],
            handle=node.get("handle") or "",
            title=node.get("title") or "",
            vendor=node.get("vendor") or "",
            product_type=node.get("productType") or "",
            tags=list(node.get("tags") or []),
            price_range=PriceRange.from_node(node.get("priceRange")),
            compare_at_price_range=PriceRange.from_node(node.get("compareAtPriceRange")),
            featured_image=Image(url=image["url"], alt_text=image.get("altText")) if image and image.get("url") else None,
            available_for_sale=node.get("availableForSale") is not False,
            variants=variants,
            artist=_metafield(node, "artist"),
            album_title=_metafield(node, "title_metafield"),
            media_condition=_metafield(node, "media_condition"),
            sleeve_condition=_metafield(node, "sleeve_condition"),
            style_genre=_metafield(node, "style_genre"),
        )


class CatalogPage(BaseModel):
    records: List[Record] = []
    has_next_page: bool = False
    end_cursor: Optional[str] = None
