"""Ordered hand-off of datafeed packets to a consumer thread.

A :class:`PacketChannel` registers itself as a session callback, detaches
every packet (copying borrowed sample memory) and queues it. A consumer on
another thread then iterates the channel and sees packets in delivery order.
With ``maxsize=1`` at most one packet is in flight: the event loop blocks
until the consumer has taken the previous one.

Example:
    >>> channel = PacketChannel().attach(session)
    >>> session.start()
    >>> session.loop.start_thread()
    >>> for device, packet in channel:
    ...     handle(packet)
"""

import queue
from typing import TYPE_CHECKING, Iterator, Optional

from sigrokpy.datafeed.packets import Datafeed, detach
from sigrokpy.device import Device

if TYPE_CHECKING:
    from sigrokpy.acquisition.session import Session

Item = tuple[Device, Datafeed]


class PacketChannel:
    """Queue of detached packets closed when the session returns to idle.

    Args:
        maxsize: Queue bound; 0 means unbounded.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: queue.Queue[Optional[Item]] = queue.Queue(maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def attach(self, session: "Session") -> "PacketChannel":
        """Register on ``session``; the channel closes when the run ends."""
        session.callback_add(self._on_packet)
        session.stopped_callback_add(self.close)
        return self

    def _on_packet(self, device: Device, packet: Datafeed) -> None:
        if not self._closed:
            self._queue.put((device, detach(packet)))

    def close(self) -> None:
        """Stop accepting packets and wake the consumer. Idempotent."""
        if not self._closed:
            self._closed = True
            self._queue.put(None)

    def get(self, timeout: Optional[float] = None) -> Optional[Item]:
        """Return the next packet, or None once the channel is closed and drained.

        Raises:
            queue.Empty: If nothing arrives within ``timeout`` seconds.
        """
        item = self._queue.get(timeout=timeout)
        if item is None:
            # Leave the end marker for any other consumer.
            self._queue.put(None)
        return item

    def __iter__(self) -> Iterator[Item]:
        while True:
            item = self.get()
            if item is None:
                return
            yield item
