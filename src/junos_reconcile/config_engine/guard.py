"""Read guard serializing configuration reads against writers.

One guard per device target. Pass the same guard to every engine driving
that device; engines built without one get a private guard.
"""
import asyncio


class ReadGuard:
    """Async mutex held while a configuration dump is read and reconstructed."""

    def __init__(self, name: str = ""):
        self.name = name
        self._lock = asyncio.Lock()

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    async def __aenter__(self) -> "ReadGuard":
        await self._lock.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        self._lock.release()
        return False

    def __repr__(self) -> str:
        state = "locked" if self.locked else "unlocked"
        return f"ReadGuard({self.name!r}, {state})"
