import asyncio, sys, os

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.append(ROOT)

from release_grouping.services.orchestrator import GroupingOrchestrator
from release_grouping.services.sinks import ListSink
from release_grouping.storefront.client import StorefrontClient

# Usage: python scripts/preview_grouping.py "https://shop.example/collections/vinyl?filter.p.product_type=Vinyl+LPs"
#        python scripts/preview_grouping.py "https://shop.example/search?q=miles+davis"

async def main(url):
    sink = ListSink()
    orchestrator = GroupingOrchestrator.for_url(url, StorefrontClient(), sink)
    result = await orchestrator.enhance()

    print(f"=== {orchestrator.mode.value.upper()}: {orchestrator.query_or_handle} ===")
    print(f"status={result.status.value} records={result.records_fetched} items={result.items_rendered} partial={result.partial}")
    if result.error:
        print(f"error: {result.error}")

    for card in sink.cards:
        suffix = f"  [{card['copies_label']}]" if card["kind"] == "group" else ""
        print(f"{card['format'] or '-':>8}  {card['price']:>10}  {card['title']}{suffix}")

if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("usage: preview_grouping.py <collection or search URL>")
        sys.exit(1)
    asyncio.run(main(sys.argv[1]))
