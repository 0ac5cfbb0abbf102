"""
Wall-clock limits for outbound calls

httpx and the Cloudinary SDK apply their timeouts to each connect, read and
write separately, so a peer that trickles bytes can hold a call open
indefinitely. ``call_with_deadline`` bounds the whole call instead: the call
runs on a daemon thread and the caller stops waiting once ``seconds`` have
passed. The abandoned thread finishes (or fails) on its own.
"""

import logging
import threading
from typing import Any, Callable, Dict

logger = logging.getLogger(__name__)


class DeadlineExceeded(Exception):
    """The call did not finish within its wall-clock limit."""

    def __init__(self, seconds: float):
        super().__init__(f"call exceeded {seconds:g} seconds")
        self.seconds = seconds


def call_with_deadline(seconds: float, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """
    Run ``fn(*args, **kwargs)`` and wait at most ``seconds`` for it.

    Args:
        seconds: Total time the caller is willing to wait
        fn: Blocking call to run

    Returns:
        Whatever ``fn`` returned

    Raises:
        DeadlineExceeded: ``fn`` was still running at the deadline
        Exception: whatever ``fn`` raised, re-raised in the caller
    """
    outcome: Dict[str, Any] = {}
    finished = threading.Event()

    def run() -> None:
        try:
            outcome["value"] = fn(*args, **kwargs)
        except BaseException as e:
            outcome["error"] = e
        finally:
            finished.set()

    worker = threading.Thread(
        target=run,
        name=f"deadline-{getattr(fn, '__name__', 'call')}",
        daemon=True,
    )
    worker.start()

    if not finished.wait(seconds):
        logger.warning(f"{worker.name} abandoned after {seconds:g} seconds")
        raise DeadlineExceeded(seconds)

    if "error" in outcome:
        raise outcome["error"]
    return outcome["value"]
