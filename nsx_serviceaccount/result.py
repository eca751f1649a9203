"""Results returned by a reconcile to the dispatcher."""

from dataclasses import dataclass
from datetime import timedelta

__all__ = [
    "Result",
    "RESULT_NORMAL",
    "RESULT_REQUEUE",
    "RESULT_REQUEUE_AFTER_5MINS",
]


@dataclass(frozen=True)
class Result:
    """Tells the dispatcher whether and when a key is reconciled again.

    With neither field set the key is done until the next change event.
    """

    requeue: bool = False
    """Retry the key with the dispatcher's backoff."""

    requeue_after: timedelta | None = None
    """Retry the key no sooner than this duration."""

    @classmethod
    def after(cls, delay: timedelta) -> "Result":
        return cls(requeue_after=delay)


RESULT_NORMAL = Result()
RESULT_REQUEUE = Result(requeue=True)
RESULT_REQUEUE_AFTER_5MINS = Result.after(timedelta(minutes=5))
