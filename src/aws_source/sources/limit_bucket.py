"""Token bucket that limits API usage the same way EC2 throttling does."""

from typing import Optional
import logging
import threading
import time

from opentelemetry import trace

logger = logging.getLogger(__name__)

DEFAULT_REFILL_DURATION = 1.0  # seconds

# Waits longer than this are recorded on the current span
SLOW_WAIT_SECONDS = 0.3


class LimitBucket:
    """
    Limits calls to an API using a token bucket.

    See https://docs.aws.amazon.com/AWSEC2/latest/APIReference/throttling.html

    Args:
        max_capacity: Maximum number of tokens the bucket can hold
        refill_rate: Tokens added every refill_duration
        refill_duration: Seconds between refills
    """

    def __init__(self, max_capacity: int, refill_rate: int, refill_duration: float = DEFAULT_REFILL_DURATION):
        if max_capacity <= 0 or refill_rate <= 0:
            raise ValueError("max_capacity and refill_rate must be positive")
        self.max_capacity = max_capacity
        self.refill_rate = refill_rate
        self.refill_duration = refill_duration

        self._tokens = 0
        self._cond = threading.Condition()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def tokens(self) -> int:
        with self._cond:
            return self._tokens

    def start(self):
        """Start refilling in a background thread."""
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="limit-bucket", daemon=True)
        self._thread.start()

    def stop(self):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.refill_duration * 2)
            self._thread = None

    def _run(self):
        while not self._stop.wait(self.refill_duration):
            self.refill()

    def refill(self) -> bool:
        """
        Add refill_rate tokens without going over capacity.

        Returns:
            True if the bucket is full after refilling
        """
        with self._cond:
            delta = self.max_capacity - self._tokens
            if delta <= self.refill_rate:
                new_tokens = delta
                full = True
            else:
                new_tokens = self.refill_rate
                full = False
            self._tokens += new_tokens
            if new_tokens:
                self._cond.notify(new_tokens)
        return full

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until a token is available and take it.

        Args:
            timeout: Maximum seconds to wait, None waits forever

        Returns:
            True if a token was taken, False on timeout
        """
        start = time.monotonic()

        with self._cond:
            got = self._cond.wait_for(lambda: self._tokens > 0, timeout=timeout)
            if not got:
                return False
            self._tokens -= 1

        waited = time.monotonic() - start
        if waited > SLOW_WAIT_SECONDS:
            span = trace.get_current_span()
            span.add_event(
                "waited for late limit",
                attributes={"om.aws.rateLimit.waitTimeMilliseconds": int(waited * 1000)},
            )
            logger.debug(f"Waited {waited:.2f}s for rate limit token")

        return True
