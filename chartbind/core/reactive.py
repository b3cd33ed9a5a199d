"""
Explicit change tracking for bindings.

Three small building blocks replace implicit observable tracking:
- Signal: change notifications, connected explicitly
- TrackedPromise: an asyncio awaitable whose state can be read synchronously
- Memo: a single cached value keyed by an input fingerprint
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

from chartbind_spec import PromiseState

logger = logging.getLogger(__name__)

_MISSING = object()


class Signal:
    """
    Change notification with explicitly connected callbacks.

    Emitting while the same signal is already emitting is a no-op, so cycles
    (binding -> marker -> sibling -> marker) terminate.
    """

    def __init__(self):
        self._callbacks: list[Callable[..., Any]] = []
        self._emitting = False

    def connect(self, callback: Callable[..., Any]) -> None:
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def disconnect(self, callback: Callable[..., Any]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def emit(self, *args: Any) -> None:
        if self._emitting:
            return
        self._emitting = True
        try:
            for callback in list(self._callbacks):
                callback(*args)
        finally:
            self._emitting = False

    def __len__(self) -> int:
        return len(self._callbacks)


class TrackedPromise:
    """
    Wraps an awaitable and exposes its state synchronously.

    Usage:
        promise = TrackedPromise(source.query(q))
        promise.state          # PromiseState.PENDING
        await promise.wait()   # never raises
        promise.case(fulfilled=lambda rows: ..., rejected=lambda e: ...)
    """

    def __init__(self, awaitable: Awaitable[Any] | None = None, label: str = ""):
        self.label = label
        self._value: Any = None
        self._error: BaseException | None = None
        self._state = PromiseState.PENDING
        self._future: asyncio.Future | None = None
        if awaitable is not None:
            self._future = asyncio.ensure_future(awaitable)
            self._future.add_done_callback(self._settle)

    @classmethod
    def resolved(cls, value: Any = None, label: str = "") -> "TrackedPromise":
        """An already fulfilled promise. Needs no running event loop."""
        promise = cls(label=label)
        promise._state = PromiseState.FULFILLED
        promise._value = value
        return promise

    @classmethod
    def rejected(cls, error: BaseException, label: str = "") -> "TrackedPromise":
        """An already rejected promise. Needs no running event loop."""
        promise = cls(label=label)
        promise._state = PromiseState.REJECTED
        promise._error = error
        return promise

    def _settle(self, future: asyncio.Future) -> None:
        if future.cancelled():
            self._error = asyncio.CancelledError()
            self._state = PromiseState.REJECTED
        elif future.exception() is not None:
            self._error = future.exception()
            self._state = PromiseState.REJECTED
        else:
            self._value = future.result()
            self._state = PromiseState.FULFILLED

    @property
    def state(self) -> PromiseState:
        return self._state

    @property
    def value(self) -> Any:
        return self._value

    @property
    def error(self) -> BaseException | None:
        return self._error

    def case(
        self,
        pending: Callable[[], Any] | None = None,
        fulfilled: Callable[[Any], Any] | None = None,
        rejected: Callable[[BaseException], Any] | None = None,
    ) -> Any:
        """Dispatch on the current state. Missing handlers return None."""
        if self._state is PromiseState.FULFILLED:
            return fulfilled(self._value) if fulfilled else None
        if self._state is PromiseState.REJECTED:
            return rejected(self._error) if rejected else None
        return pending() if pending else None

    async def wait(self) -> "TrackedPromise":
        """Wait until settled. Errors are kept on the promise, not raised."""
        if self._future is not None and not self._future.done():
            try:
                await asyncio.shield(self._future)
            except asyncio.CancelledError:
                if not self._future.done():
                    raise
            except Exception:
                pass
        if self._future is not None and self._state is PromiseState.PENDING:
            self._settle(self._future)
        return self

    def __repr__(self) -> str:
        return f"TrackedPromise({self.label or '?'}, {self._state.value})"


class Memo:
    """Caches one value, recomputed whenever the input fingerprint changes."""

    def __init__(self, compute: Callable[[], Any]):
        self._compute = compute
        self._key: Any = _MISSING
        self._value: Any = None
        self._computing = False

    def get(self, key: Any) -> Any:
        if key != self._key:
            if self._computing:
                raise RecursionError(f"Cyclic dependency while computing {self._compute!r}")
            self._computing = True
            try:
                self._value = self._compute()
            finally:
                self._computing = False
            self._key = key
        return self._value

    def invalidate(self) -> None:
        self._key = _MISSING
        self._value = None

    @property
    def is_cached(self) -> bool:
        return self._key is not _MISSING
