"""
Round-robin fairness for the pending queue.

Contributors take turns: starting with the participant after the one whose
video played last, each round takes at most one item from every participant
that still has pending items. Each contributor's own items keep their
relative order.
"""
from collections import deque
from typing import Sequence

from karaoke.models.room import QueueItem, RoundRobinState
from karaoke.utils.logging_config import get_logger

logger = get_logger(__name__)


def schedule(
    queue: Sequence[QueueItem],
    participants: Sequence[str],
    last_served: int = RoundRobinState.NONE_SERVED,
) -> list[QueueItem]:
    """Return the pending queue reordered so contributors alternate"""
    buckets: dict[str, deque[QueueItem]] = {}
    for item in queue:
        buckets.setdefault(item.added_by, deque()).append(item)

    if len(buckets) < 2 or not participants:
        return list(queue)

    count = len(participants)
    start = (last_served + 1) % count if last_served >= 0 else 0
    rotation = [participants[(start + offset) % count] for offset in range(count)]

    ordered: list[QueueItem] = []
    while True:
        served = False
        for name in rotation:
            pending = buckets.get(name)
            if pending:
                ordered.append(pending.popleft())
                served = True
        if not served:
            break

    if len(ordered) < len(queue):
        # Contributors missing from the participant list, should not happen
        known = set(participants)
        leftovers = [item for item in queue if item.added_by not in known]
        logger.warning(
            "Round-robin drained items from unknown contributors",
            extra={"count": len(leftovers), "contributors": sorted({i.added_by for i in leftovers})},
        )
        ordered.extend(leftovers)

    return ordered


def apply(queue: list[QueueItem], state: RoundRobinState) -> None:
    """Reorder ``queue`` in place from the room's round-robin state"""
    queue[:] = schedule(queue, state.participants, state.last_served)
