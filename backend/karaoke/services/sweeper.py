import asyncio
from typing import Awaitable, Callable, Optional

from karaoke.services.room_store import RoomStore
from karaoke.utils.logging_config import sweeper_logger

EvictCallback = Callable[[str], Awaitable[None]]


class CleanupSweeper:
    """Background task that evicts expired rooms every ``interval`` seconds"""

    def __init__(
        self,
        store: RoomStore,
        interval: float,
        on_evict: Optional[EvictCallback] = None,
    ):
        self.store = store
        self.interval = interval
        self.on_evict = on_evict
        self._task: Optional[asyncio.Task] = None

    async def sweep_once(self) -> list[str]:
        evicted = self.store.sweep()
        if self.on_evict:
            for room_id in evicted:
                try:
                    await self.on_evict(room_id)
                except Exception as e:
                    sweeper_logger.error(
                        "Eviction callback failed",
                        extra={"room_id": room_id, "error": str(e), "error_type": type(e).__name__},
                    )
        return evicted

    async def run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.sweep_once()
            except Exception as e:
                sweeper_logger.error(
                    "Error in cleanup sweep",
                    extra={"error": str(e), "error_type": type(e).__name__},
                )

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self.run())
            sweeper_logger.info("Cleanup sweeper started", extra={"interval": self.interval})

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        sweeper_logger.info("Cleanup sweeper stopped")
