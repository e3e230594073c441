"""Dual-channel scheduler.

Implements a fixed pool of worker slots over two FIFO queues:
- Normal and Long channels, each slot homed on exactly one of them
- Slots pop from their home queue first and steal from the other when
  it is empty, so neither channel starves and no slot idles needlessly
- Optional rebalancing of home channels by live queue depth
- Total concurrency is fixed: Nn + Nl == N at every instant
"""

import asyncio
from collections import deque
from typing import Awaitable, Callable, Deque, Dict, Iterable, List, Optional, Tuple

import structlog

from pretackler.models.work import Channel, ItemOutcome, OutcomeStatus, WorkItem
from pretackler.observability.metrics import CHANNEL_WORKERS, ITEMS_PROCESSED, QUEUE_DEPTH
from pretackler.utils.exceptions import ConfigError

logger = structlog.get_logger()

Handler = Callable[[WorkItem, int], Awaitable[ItemOutcome]]


def validate_allocation(
    total_concurrency: int,
    long_channel_enabled: bool,
    long_workers: Optional[int] = None,
) -> Dict[Channel, int]:
    """Split total concurrency across channels.

    Enabling the Long channel never changes the total: the split always
    sums to total_concurrency, the single-channel baseline.

    Raises:
        ConfigError: total < 1 or an explicit long share leaves a side empty
    """
    if total_concurrency < 1:
        raise ConfigError(f"total concurrency must be >= 1, got {total_concurrency}")

    if not long_channel_enabled:
        if long_workers:
            raise ConfigError("long_workers set while the long channel is disabled")
        return {Channel.NORMAL: total_concurrency, Channel.LONG: 0}

    if long_workers is None:
        long_share = total_concurrency // 2
    else:
        if total_concurrency >= 2 and not 1 <= long_workers <= total_concurrency - 1:
            raise ConfigError(
                f"long_workers must be between 1 and {total_concurrency - 1}, "
                f"got {long_workers}"
            )
        if total_concurrency < 2 and long_workers > total_concurrency:
            raise ConfigError(
                f"long_workers={long_workers} exceeds total concurrency "
                f"{total_concurrency}"
            )
        long_share = long_workers

    split = {
        Channel.NORMAL: total_concurrency - long_share,
        Channel.LONG: long_share,
    }
    assert sum(split.values()) == total_concurrency
    return split


class ChannelQueues:
    """Two FIFO queues addressed by channel."""

    def __init__(self) -> None:
        self._queues: Dict[Channel, Deque[WorkItem]] = {c: deque() for c in Channel}

    def push(self, item: WorkItem) -> None:
        self._queues[item.channel].append(item)

    def depth(self, channel: Channel) -> int:
        return len(self._queues[channel])

    def __len__(self) -> int:
        return sum(len(q) for q in self._queues.values())

    def pop(self, preferred: Channel) -> Optional[Tuple[WorkItem, bool]]:
        """Pop from preferred, falling back to the other channel.

        Returns:
            (item, stolen) or None when both queues are empty
        """
        for channel, stolen in ((preferred, False), (preferred.other, True)):
            queue = self._queues[channel]
            if queue:
                return queue.popleft(), stolen
        return None


class DualChannelScheduler:
    """Runs work items through N slots split across two channels.

    Usage:
        scheduler = DualChannelScheduler(8, worker.process)
        outcomes = await scheduler.run_items(items)
    """

    def __init__(
        self,
        total_concurrency: int,
        handler: Handler,
        long_channel_enabled: bool = True,
        long_workers: Optional[int] = None,
        rebalance: bool = True,
    ):
        split = validate_allocation(total_concurrency, long_channel_enabled, long_workers)

        self.total_concurrency = total_concurrency
        self.handler = handler
        self.long_channel_enabled = long_channel_enabled
        self.rebalance_enabled = rebalance and long_channel_enabled
        self.outcomes: List[ItemOutcome] = []
        self.stolen_count = 0

        self._homes: List[Channel] = (
            [Channel.NORMAL] * split[Channel.NORMAL] + [Channel.LONG] * split[Channel.LONG]
        )
        self._queues = ChannelQueues()
        self._cond = asyncio.Condition()
        self._closed = False
        self._in_flight = 0
        self._dispatched = 0

        logger.info(
            "scheduler_initialized",
            total_concurrency=total_concurrency,
            normal_workers=split[Channel.NORMAL],
            long_workers=split[Channel.LONG],
            long_channel_enabled=long_channel_enabled,
            rebalance=self.rebalance_enabled,
        )

    def allocation(self) -> Dict[Channel, int]:
        """Current home-channel counts; always sums to total concurrency."""
        counts = {c: 0 for c in Channel}
        for home in self._homes:
            counts[home] += 1
        assert sum(counts.values()) == self.total_concurrency
        return counts

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def queue_depth(self, channel: Channel) -> int:
        return self._queues.depth(channel)

    async def submit(self, items: Iterable[WorkItem]) -> int:
        """Enqueue items in enumeration order."""
        count = 0
        async with self._cond:
            if self._closed:
                raise RuntimeError("cannot submit to a closed scheduler")
            for item in items:
                if item.channel is Channel.LONG and not self.long_channel_enabled:
                    raise ValueError(f"{item.path} routed to disabled long channel")
                self._queues.push(item)
                count += 1
            self._rebalance()
            self._update_gauges()
            self._cond.notify_all()
        return count

    async def close(self) -> None:
        """Mark input complete; slots exit once the queues drain."""
        async with self._cond:
            self._closed = True
            self._cond.notify_all()

    async def run(self) -> List[ItemOutcome]:
        """Run all slots until input is closed and every item is terminal.

        On cancellation every slot is cancelled and awaited, so in-flight
        writers run their cleanup before the cancellation propagates.
        """
        tasks = [
            asyncio.create_task(self._slot(slot_id), name=f"slot-{slot_id}")
            for slot_id in range(self.total_concurrency)
        ]
        logger.info("workers_started", num_workers=len(tasks))
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.warning(
                "scheduler_cancelled",
                completed=len(self.outcomes),
                pending=len(self._queues),
            )
            raise

        logger.info(
            "scheduler_drained",
            dispatched=self._dispatched,
            completed=len(self.outcomes),
            stolen=self.stolen_count,
        )
        return self.outcomes

    async def run_items(self, items: Iterable[WorkItem]) -> List[ItemOutcome]:
        """Submit a fixed batch, close input, and run to completion."""
        await self.submit(items)
        await self.close()
        return await self.run()

    async def _slot(self, slot_id: int) -> None:
        while True:
            async with self._cond:
                while True:
                    picked = self._queues.pop(self._homes[slot_id])
                    if picked is not None:
                        break
                    if self._closed:
                        return
                    await self._cond.wait()
                self._in_flight += 1
                self._dispatched += 1
                self._rebalance()
                self._update_gauges()

            item, stolen = picked
            if stolen:
                self.stolen_count += 1
                logger.debug(
                    "work_stolen",
                    slot=slot_id,
                    home=self._homes[slot_id].value,
                    channel=item.channel.value,
                    file=str(item.path),
                )

            try:
                outcome = await self.handler(item, slot_id)
            except Exception as e:
                logger.error(
                    "slot_handler_error",
                    slot=slot_id,
                    file=str(item.path),
                    error=str(e),
                    exc_info=True,
                )
                ITEMS_PROCESSED.labels(
                    channel=item.channel.value, status=OutcomeStatus.FAILED.value
                ).inc()
                outcome = ItemOutcome(
                    path=item.path,
                    status=OutcomeStatus.FAILED,
                    channel=item.channel,
                    output_path=item.output_path,
                    reason=f"unexpected error: {type(e).__name__}: {e}",
                )
            finally:
                async with self._cond:
                    self._in_flight -= 1
                    self._cond.notify_all()

            self.outcomes.append(outcome)

            async with self._cond:
                self._rebalance()
                self._update_gauges()

    def _rebalance(self) -> None:
        """Re-home slots in proportion to live queue depth.

        Only acts while both queues are non-empty; each side keeps at least
        one slot. Flipping homes in place keeps the total unchanged.
        """
        if not self.rebalance_enabled or self.total_concurrency < 2:
            return
        normal_depth = self._queues.depth(Channel.NORMAL)
        long_depth = self._queues.depth(Channel.LONG)
        if normal_depth == 0 or long_depth == 0:
            return

        n = self.total_concurrency
        target_long = round(n * long_depth / (normal_depth + long_depth))
        target_long = min(max(target_long, 1), n - 1)

        current_long = self._homes.count(Channel.LONG)
        if target_long == current_long:
            return

        if target_long > current_long:
            source, dest, moves = Channel.NORMAL, Channel.LONG, target_long - current_long
        else:
            source, dest, moves = Channel.LONG, Channel.NORMAL, current_long - target_long

        for index in reversed(range(n)):
            if moves == 0:
                break
            if self._homes[index] is source:
                self._homes[index] = dest
                moves -= 1

        logger.debug(
            "allocation_rebalanced",
            normal_depth=normal_depth,
            long_depth=long_depth,
            normal_workers=n - target_long,
            long_workers=target_long,
        )

    def _update_gauges(self) -> None:
        for channel, count in self.allocation().items():
            CHANNEL_WORKERS.labels(channel=channel.value).set(count)
            QUEUE_DEPTH.labels(channel=channel.value).set(self._queues.depth(channel))
