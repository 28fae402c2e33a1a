"""
Wind Timeline
=============

Keeps the current and next wind fields for the simulated time and blends
them temporally.

Fields are loaded in the background as their time approaches. The
timeline never blocks a tick on a pending load: until the next field
arrives, samples come from the current field alone, and until the first
field arrives there is no wind at all.
"""

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Callable, Iterable, List, Optional, Set, Tuple

from ..geo import LngLat, WindSpeed
from .field import WindField, WindFieldDescriptor
from .loader import RequestSlot, SlotResult, load_field

logger = logging.getLogger(__name__)


def prepare_descriptors(descriptors: Iterable[WindFieldDescriptor]) -> List[WindFieldDescriptor]:
    """Sort descriptors by time, keeping the first of any duplicate time."""
    unique = {}
    for descriptor in descriptors:
        unique.setdefault(descriptor.time, descriptor)
    return [unique[t] for t in sorted(unique)]


def select_wind_context(
    course_time: int,
    current: Optional[WindFieldDescriptor],
    upcoming: List[WindFieldDescriptor],
) -> Tuple[Optional[WindFieldDescriptor], List[WindFieldDescriptor]]:
    """
    Pick the current descriptor and the remaining upcoming ones.

    Args:
        course_time: Simulated time (unix ms)
        current: Descriptor currently in use, if any
        upcoming: Time-ordered descriptors not yet in use

    Returns:
        (current, upcoming) after applying the selection policy
    """
    if not upcoming:
        return current, []

    if course_time < upcoming[0].time:
        # Before every upcoming field: adopt the earliest only when nothing
        # is in use yet
        if current is None:
            return upcoming[0], upcoming[1:]
        return current, upcoming

    # Last descriptor at or before course_time becomes current
    split = len(upcoming)
    for i, descriptor in enumerate(upcoming):
        if descriptor.time > course_time:
            split = i
            break

    return upcoming[split - 1], upcoming[split:]


class WindTimeline:
    """
    Current/next wind field manager.

    At most two decoded fields are held: the current one and the next
    upcoming one.
    """

    def __init__(self,
                 descriptors: Iterable[WindFieldDescriptor] = (),
                 loader: Callable[[WindFieldDescriptor], WindField] = load_field,
                 executor: Optional[Executor] = None):
        """
        Initialize wind timeline.

        Args:
            descriptors: Wind field descriptors covering the race
            loader: Fetch-and-decode function run in the background
            executor: Executor for background loads (one is created if omitted)
        """
        self._loader = loader
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=2, thread_name_prefix='wind-loader'
        )

        self.upcoming: List[WindFieldDescriptor] = prepare_descriptors(descriptors)
        self.current_descriptor: Optional[WindFieldDescriptor] = None
        self.current_field: Optional[WindField] = None
        self.next_field: Optional[WindField] = None

        self._current_slot = RequestSlot(self._executor)
        self._next_slot = RequestSlot(self._executor)
        self._last_course_time: Optional[int] = None
        # Times of fields whose load failed; not requested again
        self._failed: Set[int] = set()

    @property
    def next_descriptor(self) -> Optional[WindFieldDescriptor]:
        return self.upcoming[0] if self.upcoming else None

    @property
    def is_ready(self) -> bool:
        """True once a current field is available for sampling."""
        return self.current_field is not None

    def advance(self, course_time: int,
                descriptors: Optional[Iterable[WindFieldDescriptor]] = None,
                wait: bool = False) -> bool:
        """
        Move the timeline to a simulated time.

        Args:
            course_time: Simulated time (unix ms), non-decreasing across calls
            descriptors: Replacement upcoming descriptor list, if any
            wait: Block until the wanted fields have loaded

        Returns:
            True if the current descriptor changed

        Raises:
            ValueError: If course_time goes backwards
        """
        if self._last_course_time is not None and course_time < self._last_course_time:
            raise ValueError(
                f"Wind timeline cannot rewind from {self._last_course_time} to {course_time}"
            )
        self._last_course_time = course_time

        if descriptors is not None:
            self.upcoming = prepare_descriptors(descriptors)

        previous = self.current_descriptor
        self.current_descriptor, self.upcoming = select_wind_context(
            course_time, self.current_descriptor, self.upcoming
        )
        changed = self.current_descriptor != previous

        if changed:
            self._on_current_changed()
        self._ensure_next_requested()

        if wait:
            self._wait_for_loads()
        else:
            self.poll()

        return changed

    def _on_current_changed(self):
        """Promote the pre-loaded next field or start loading the new current."""
        descriptor = self.current_descriptor
        logger.debug(f"Wind context moved to {descriptor.time if descriptor else None}")

        if descriptor is None:
            self._current_slot.cancel()
            self.current_field = None
            return

        if self.next_field is not None and self.next_field.time == descriptor.time:
            self.current_field = self.next_field
            self.next_field = None
            self._current_slot.cancel()
            return

        # Previous current field stays in use until the new one arrives
        if self._next_slot.wanted == descriptor and self._current_slot.take_over(self._next_slot):
            logger.debug(f"Wind field {descriptor.time} already loading, keeping request")
            return

        if descriptor.time in self._failed:
            self._current_slot.cancel()
        elif self._current_slot.wanted != descriptor:
            self._current_slot.submit(descriptor, self._loader, descriptor)

    def _ensure_next_requested(self):
        descriptor = self.next_descriptor
        if descriptor is None:
            self._next_slot.cancel()
            self.next_field = None
            return

        if self.next_field is not None and self.next_field.time == descriptor.time:
            return
        if self.next_field is not None and self.next_field.time < descriptor.time:
            self.next_field = None

        if descriptor.time in self._failed:
            self._next_slot.cancel()
        elif self._next_slot.wanted != descriptor:
            self._next_slot.submit(descriptor, self._loader, descriptor)

    def poll(self):
        """Apply completed background loads."""
        result = self._current_slot.poll()
        if result is not None:
            self._apply_current(result)

        result = self._next_slot.poll()
        if result is not None:
            self._apply_next(result)

    def _wait_for_loads(self):
        if self._current_slot.pending:
            result = self._current_slot.poll(block=True)
            if result is not None:
                self._apply_current(result)
        if self._next_slot.pending:
            result = self._next_slot.poll(block=True)
            if result is not None:
                self._apply_next(result)

    def _apply_current(self, result: SlotResult):
        if not result.ok:
            self._failed.add(result.key.time)
            logger.warning(f"Wind field {result.key.time} unavailable, "
                           f"keeping previous field: {result.error}")
            return
        self.current_field = result.value
        logger.info(f"Wind field {result.key.time} is now current")

    def _apply_next(self, result: SlotResult):
        if not result.ok:
            self._failed.add(result.key.time)
            logger.warning(f"Next wind field {result.key.time} unavailable: {result.error}")
            return
        self.next_field = result.value
        logger.debug(f"Wind field {result.key.time} pre-loaded")

    def interpolation_factor(self, course_time: int) -> float:
        """Blend factor between current and next field, in [0, 1]."""
        if self.current_field is None or self.next_field is None:
            return 0.0

        duration = self.next_field.time - self.current_field.time
        if duration <= 0:
            return 0.0

        elapsed = course_time - self.current_field.time
        return max(0.0, min(1.0, elapsed / duration))

    def sample_at(self, position: LngLat, course_time: int) -> Optional[WindSpeed]:
        """
        Wind at a position and simulated time.

        Returns:
            Blended WindSpeed, or None if no field is loaded or the
            position is out of bounds
        """
        if self.current_field is None:
            return None

        current = self.current_field.sample_at(position)
        if current is None:
            return None

        factor = self.interpolation_factor(course_time)
        if self.next_field is not None and factor > 0:
            upcoming = self.next_field.sample_at(position)
            if upcoming is not None:
                return WindSpeed(
                    u=current.u + (upcoming.u - current.u) * factor,
                    v=current.v + (upcoming.v - current.v) * factor,
                )

        return current

    def cancel(self):
        """Drop every in-flight load; late completions are ignored."""
        self._current_slot.cancel()
        self._next_slot.cancel()

    def close(self):
        """Cancel loads and release the executor if this timeline owns it."""
        self.cancel()
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)
