from __future__ import annotations
import asyncio
from typing import Generic, TypeVar
A = TypeVar('A')

class Channel(Generic[A]):
    """Async hand-off channel with a bounded buffer.

    ``enter_do`` pairs two ``Channel(maxsize=1)`` to pass control between the
    task that wants a resource and the task holding it open.

    Args:
        maxsize: Maximum number of items to buffer (0 = unbounded)

    Example:
        ```python
        channel = Channel[str](maxsize=1)

        # Producer
        await channel.send("message")

        # Consumer
        message = await channel.receive()
        ```
    """
    def __init__(self, maxsize: int = 0):
        self._q: asyncio.Queue[A] = asyncio.Queue(maxsize=maxsize)
    async def send(self, a: A) -> None:
        """Send an item, waiting for buffer space if needed."""
        await self._q.put(a)
    def offer(self, a: A) -> bool:
        """Send without waiting. Returns False when the buffer is full."""
        try: self._q.put_nowait(a)
        except asyncio.QueueFull: return False
        return True
    async def receive(self) -> A:
        """Receive an item, waiting until one is sent."""
        return await self._q.get()
