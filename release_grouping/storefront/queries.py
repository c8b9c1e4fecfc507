# Storefront API GraphQL documents.
# Metafield aliases here are what `Record.from_node` reads.

PRODUCT_FIELDS = """
    id
    handle
    title
    productType
    vendor
    tags
    priceRange {
      minVariantPrice { amount currencyCode }
      maxVariantPrice { amount currencyCode }
    }
    featuredImage { url altText width height }
    availableForSale
    compareAtPriceRange {
      minVariantPrice { amount currencyCode }
    }
    variants(first: 10) {
      edges {
        node {
          id
          title
          availableForSale
          priceV2 { amount currencyCode }
          compareAtPriceV2 { amount currencyCode }
          selectedOptions { name value }
        }
      }
    }
    media_condition: metafield(namespace: "custom", key: "media_condition") { value }
    sleeve_condition: metafield(namespace: "custom", key: "sleeve_condition") { value }
    style_genre: metafield(namespace: "custom", key: "computed_style_genre") { value }
    artist: metafield(namespace: "custom", key: "artist") { value }
    title_metafield: metafield(namespace: "custom", key: "title") { value }
"""

PAGE_INFO = """
    pageInfo {
      hasNextPage
      endCursor
    }
"""

GET_COLLECTION = (
    """
query GetCollection($handle: String!, $filters: [ProductFilter!], $first: Int!, $after: String) {
  collection(handle: $handle) {
    id
    handle
    products(first: $first, after: $after, filters: $filters) {
      edges { cursor node {"""
    + PRODUCT_FIELDS
    + """} }"""
    + PAGE_INFO
    + """
    }
  }
}
"""
)

# The root `products` connection takes a query string but no ProductFilter list.
SEARCH_PRODUCTS = (
    """
query SearchProducts($query: String!, $first: Int!, $after: String) {
  products(first: $first, after: $after, query: $query) {
    edges { cursor node {"""
    + PRODUCT_FIELDS
    + """} }"""
    + PAGE_INFO
    + """
  }
}
"""
)
