"""
Single-producer progress channel.

A long-running operation publishes InProgress items and finishes with exactly
one Done item carrying the final result. Consumers either drain the channel
by iteration or block on wait().
"""

import queue
import threading
from dataclasses import dataclass
from typing import Iterator, Optional, Union

from .types import ProgressEvent, ServiceResult


@dataclass(frozen=True)
class InProgress:
    """A non-terminal progress update."""
    event: ProgressEvent


@dataclass(frozen=True)
class Done:
    """The terminal item of a channel. Exactly one per channel."""
    result: ServiceResult
    event: ProgressEvent


ChannelItem = Union[InProgress, Done]


class ChannelClosedError(RuntimeError):
    """Raised when publishing to a channel that already carries its Done item."""
    pass


class ProgressChannel:
    """
    Thread-safe progress stream with an explicit terminal item.
    
    Example:
        >>> channel = supervisor.ensure_ready_in_background()
        >>> for item in channel:
        ...     if isinstance(item, Done):
        ...         print(item.result.success)
        ...     else:
        ...         print(item.event.status)
    """
    
    def __init__(self):
        self._queue: "queue.Queue[ChannelItem]" = queue.Queue()
        self._lock = threading.Lock()
        self._closed = False
        self._drained = False
    
    @property
    def closed(self) -> bool:
        return self._closed
    
    def publish(self, event: ProgressEvent) -> None:
        """
        Publish a non-terminal event.
        
        Raises:
            ValueError: If the event is marked completed (use close())
            ChannelClosedError: If the channel is already closed
        """
        if event.completed:
            raise ValueError("Terminal events must be sent with close()")
        with self._lock:
            if self._closed:
                raise ChannelClosedError("Progress channel is closed")
            self._queue.put(InProgress(event))
    
    __call__ = publish
    
    def close(self, result: ServiceResult, event: ProgressEvent) -> None:
        """
        Publish the terminal item.
        
        Raises:
            ChannelClosedError: If the channel is already closed
        """
        with self._lock:
            if self._closed:
                raise ChannelClosedError("Progress channel is already closed")
            self._closed = True
            self._queue.put(Done(result=result, event=event))
    
    def get(self, timeout: Optional[float] = None) -> ChannelItem:
        """
        Take the next item, blocking up to timeout seconds.
        
        Raises:
            queue.Empty: If no item arrived in time
        """
        return self._queue.get(timeout=timeout)
    
    def __iter__(self) -> Iterator[ChannelItem]:
        """Yield items until and including the Done item."""
        if self._drained:
            return
        while True:
            item = self._queue.get()
            yield item
            if isinstance(item, Done):
                self._drained = True
                return
    
    def wait(self, timeout: Optional[float] = None) -> ServiceResult:
        """
        Discard progress items and return the final result.
        
        Raises:
            queue.Empty: If the operation did not finish within timeout
        """
        while True:
            item = self.get(timeout=timeout)
            if isinstance(item, Done):
                self._drained = True
                return item.result
