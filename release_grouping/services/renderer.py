import asyncio
import logging
from typing import Any, Callable, List, Optional, Sequence

from release_grouping.config import GroupingOptions
from release_grouping.errors import GroupInvariantViolation, RenderItemError
from release_grouping.services.cards import CardRenderer, DisplayOptions, render_card
from release_grouping.services.grouping import RenderItem
from release_grouping.services.sinks import ResultsSink

logger = logging.getLogger(__name__)


class ProgressiveRenderer:
    """
    Turns RenderItems into cards chunk by chunk and appends each chunk to the
    sink in one call, yielding to the event loop between chunks.
    """

    def __init__(
        self,
        card_renderer: CardRenderer | None = None,
        options: GroupingOptions | None = None,
        display: DisplayOptions | None = None,
        strict: bool = False,
    ):
        self.card_renderer = card_renderer or render_card
        self.options = options or GroupingOptions()
        self.display = display or DisplayOptions()
        # strict: raise on sink/append mismatch instead of only logging it
        self.strict = strict

    async def _build(self, item: RenderItem, semaphore: asyncio.Semaphore) -> Any:
        async with semaphore:
            try:
                card = await self.card_renderer(item, self.display)
            except Exception as e:
                raise RenderItemError(f"Card for {item.record.id} failed: {e}") from e
            if card is None:
                raise RenderItemError(f"Card renderer returned nothing for {item.record.id}")
            return card

    async def render(
        self,
        sink: ResultsSink,
        items: Sequence[RenderItem],
        batch_size: int,
        is_current: Optional[Callable[[], bool]] = None,
    ) -> int:
        """
        Render `items` into `sink`. Returns the number of cards appended.
        `is_current` lets a superseded run stop before touching the sink again.
        """
        if not items:
            return 0

        batch_size = max(1, int(batch_size))
        chunks = [items[i:i + batch_size] for i in range(0, len(items), batch_size)]
        semaphore = asyncio.Semaphore(self.options.render_concurrency)
        appended = 0

        for index, chunk in enumerate(chunks):
            results = await asyncio.gather(*(self._build(item, semaphore) for item in chunk), return_exceptions=True)

            cards: List[Any] = []
            for result in results:
                if isinstance(result, RenderItemError):
                    logger.error(f"Skipping card: {result}")
                    continue
                if isinstance(result, BaseException):
                    raise result
                cards.append(result)

            if is_current is not None and not is_current():
                logger.debug("Render superseded before chunk %s/%s, stopping", index + 1, len(chunks))
                return appended

            before = sink.get_current_count()
            if cards:
                sink.append_batch(cards)
            after = sink.get_current_count()

            if after - before != len(cards):
                message = f"Sink grew by {after - before} but {len(cards)} cards were appended"
                if self.strict:
                    raise GroupInvariantViolation(message)
                logger.critical(message)
            appended += len(cards)
            logger.debug(f"Chunk {index + 1}/{len(chunks)}: appended {len(cards)} cards, sink now has {after}")

            if index < len(chunks) - 1:
                await asyncio.sleep(self.options.render_yield_ms / 1000)

        return appended
