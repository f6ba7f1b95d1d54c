"""Cancellable snapshot subscription shared by every storage backend."""

import threading
from typing import Any, Callable, Iterable, Optional

import structlog

from envelope_finance.models.ledger import RecordKind, Snapshot


logger = structlog.get_logger(__name__)


class Subscription:
    """
    Handle for a live view of one collection.

    Backends push complete record lists through deliver() and failures
    through fail(). Each delivery becomes a Snapshot with a sequence number
    one higher than the last. A delivery tagged with a revision no newer
    than one already delivered is dropped, so a slow publisher never
    overwrites fresher data. After cancel() returns, neither callback is
    invoked again.
    """

    def __init__(
        self,
        kind: RecordKind,
        account_id: str,
        on_snapshot: Callable[[Snapshot], None],
        on_error: Optional[Callable[[Exception], None]] = None,
        on_cancel: Optional[Callable[[], None]] = None,
    ):
        self.kind = kind
        self.account_id = account_id
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._on_cancel = on_cancel
        self._lock = threading.RLock()
        self._active = True
        self._sequence = 0
        self._revision: Optional[int] = None
        self._latest: Optional[Snapshot] = None

    @property
    def active(self) -> bool:
        with self._lock:
            return self._active

    @property
    def latest(self) -> Optional[Snapshot]:
        """Last snapshot delivered, if any."""
        with self._lock:
            return self._latest

    def deliver(
        self,
        records: Iterable[Any],
        revision: Optional[int] = None,
    ) -> Optional[Snapshot]:
        """Publish a new snapshot. Returns None when cancelled or stale."""
        with self._lock:
            if not self._active:
                return None
            if revision is not None:
                if self._revision is not None and revision <= self._revision:
                    logger.debug(
                        "stale_snapshot_dropped",
                        kind=self.kind.value,
                        revision=revision,
                        latest_revision=self._revision,
                    )
                    return None
                self._revision = revision
            self._sequence += 1
            snapshot = Snapshot(
                kind=self.kind,
                account_id=self.account_id,
                records=tuple(records),
                sequence=self._sequence,
            )
            self._latest = snapshot
            self._on_snapshot(snapshot)
            return snapshot

    def fail(self, error: Exception) -> None:
        with self._lock:
            if not self._active:
                return
            if self._on_error is None:
                logger.warning(
                    "subscription_error_unhandled",
                    kind=self.kind.value,
                    error=str(error),
                )
                return
            self._on_error(error)

    def cancel(self) -> None:
        """
        Stop delivery. Safe to call more than once, including from inside
        a callback.
        """
        with self._lock:
            if not self._active:
                return
            self._active = False
            self._on_snapshot = lambda snapshot: None
            self._on_error = None
            release, self._on_cancel = self._on_cancel, None
        # Outside the lock: the release hook may wait on a poller thread
        # that is itself blocked on this lock.
        if release is not None:
            release()
        logger.debug("subscription_cancelled", kind=self.kind.value)
