"""
Wind Loader
===========

Fetches and decodes wind rasters off the simulation thread.

Each background request is stamped with a generation token. Results come
back as messages on a queue and are only applied if their generation is
still the one the consumer wants; superseded or cancelled requests are
dropped silently.
"""

import logging
import queue
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Hashable, Optional
from urllib.parse import urlparse

import requests

from ..errors import DecodeError, FetchError
from .field import WindField, WindFieldDescriptor
from .raster import decode_raster

logger = logging.getLogger(__name__)


DEFAULT_TIMEOUT = 30.0  # seconds


def fetch_bytes(source_url: str, timeout: float = DEFAULT_TIMEOUT) -> bytes:
    """
    Fetch raw raster bytes.

    Args:
        source_url: http(s) URL, file:// URL or filesystem path
        timeout: Network timeout (seconds)

    Returns:
        Raw bytes

    Raises:
        FetchError: On any network or storage failure
    """
    parsed = urlparse(source_url)

    if parsed.scheme in ('http', 'https'):
        try:
            response = requests.get(source_url, timeout=timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise FetchError(f"Failed to fetch {source_url}: {e}") from e
        return response.content

    path = Path(parsed.path) if parsed.scheme == 'file' else Path(source_url)
    try:
        return path.read_bytes()
    except OSError as e:
        raise FetchError(f"Failed to read {path}: {e}") from e


def load_field(descriptor: WindFieldDescriptor) -> WindField:
    """Fetch, decode and build the wind field for a descriptor."""
    raw = fetch_bytes(descriptor.source_url)
    raster = decode_raster(raw)
    logger.debug(f"Decoded wind raster {descriptor.time} "
                 f"({raster.width}x{raster.height}, {raster.channels} channels)")
    return WindField.from_raster(descriptor.time, raster)


@dataclass
class SlotResult:
    """Outcome of a background request that is still wanted."""
    key: Hashable
    value: Any = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class RequestSlot:
    """
    Holds the single background request a consumer currently wants.

    Submitting a new request supersedes the previous one. Completions are
    delivered as (generation, key, future) messages and drained by poll()
    on the consumer's thread, so the consumer never shares mutable state
    with workers.
    """

    def __init__(self, executor: Executor):
        self._executor = executor
        self._generation = 0
        self._wanted: Optional[Hashable] = None
        self._future: Optional[Future] = None
        self._inbox: 'queue.Queue[tuple]' = queue.Queue()

    @property
    def wanted(self) -> Optional[Hashable]:
        """Key of the request whose result will be accepted."""
        return self._wanted

    @property
    def pending(self) -> bool:
        return self._wanted is not None

    def submit(self, key: Hashable, fn: Callable[..., Any], *args) -> int:
        """
        Start a background request, superseding any outstanding one.

        Returns:
            The generation stamped on the request
        """
        self.cancel()
        return self._track(key, self._executor.submit(fn, *args))

    def take_over(self, other: 'RequestSlot') -> bool:
        """
        Move another slot's outstanding request into this one.

        The request keeps running; only the slot that accepts its result
        changes. Any request this slot had outstanding is cancelled.

        Returns:
            True if there was a request to take over
        """
        if other._future is None:
            return False
        key, future = other._wanted, other._future
        other._release()
        self.cancel()
        self._track(key, future)
        return True

    def _track(self, key: Hashable, future: Future) -> int:
        generation = self._generation
        self._wanted = key
        self._future = future
        future.add_done_callback(
            lambda f, g=generation, k=key: self._inbox.put((g, k, f))
        )
        return generation

    def _release(self):
        self._generation += 1
        self._wanted = None
        self._future = None

    def cancel(self):
        """Invalidate the outstanding request, if any."""
        if self._future is not None:
            self._future.cancel()
        self._release()

    def poll(self, block: bool = False, timeout: Optional[float] = None) -> Optional[SlotResult]:
        """
        Drain completions and return the wanted one, if it has arrived.

        Args:
            block: Wait for the wanted request to complete
            timeout: Maximum wait when blocking (seconds)

        Returns:
            SlotResult for the wanted request, or None
        """
        while True:
            wait = block and self._wanted is not None
            try:
                generation, key, future = self._inbox.get(block=wait, timeout=timeout if wait else None)
            except queue.Empty:
                return None

            if generation != self._generation or future.cancelled():
                logger.debug(f"Discarding superseded load for {key}")
                continue

            self._wanted = None
            self._future = None
            try:
                return SlotResult(key=key, value=future.result())
            except (DecodeError, FetchError) as e:
                return SlotResult(key=key, error=e)
