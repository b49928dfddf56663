"""
Polling for content identifiers assigned after an upload.

The storage backend pins an object to IPFS some time after the write
returns and then records the CID in the object's metadata. CidPoller
bridges that gap: it re-reads metadata with exponential backoff until
the CID shows up, the time budget runs out, or the client disconnects.

The loop sleeps with asyncio, so a waiting request only suspends its own
task and the server keeps answering everyone else.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Iterator, Optional, Protocol

from .models import PollResult, PollStatus, extract_cid

logger = logging.getLogger(__name__)

DEFAULT_INITIAL_DELAY = 0.5
DEFAULT_MAX_DELAY = 4.0


class MetadataReader(Protocol):
    """Anything that can read an object's user metadata."""

    async def get_object_metadata(self, bucket: str, key: str) -> dict[str, str]:
        ...


def backoff_delays(
    initial: float = DEFAULT_INITIAL_DELAY,
    maximum: float = DEFAULT_MAX_DELAY,
) -> Iterator[float]:
    """Yield 0.5, 1, 2, 4, 4, ... (doubling from initial, capped at maximum)."""
    delay = min(initial, maximum)
    while True:
        yield delay
        delay = min(delay * 2, maximum)


class CidPoller:
    """
    Waits for a CID to appear in an object's metadata.

    clock and sleep are injectable so tests can run the backoff schedule
    without real waiting.
    """

    def __init__(
        self,
        storage: MetadataReader,
        initial_delay: float = DEFAULT_INITIAL_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if initial_delay <= 0 or max_delay <= 0:
            raise ValueError("Backoff delays must be positive")

        self._storage = storage
        self._initial_delay = initial_delay
        self._max_delay = max_delay
        self._clock = clock
        self._sleep = sleep

    async def poll(
        self,
        bucket: str,
        key: str,
        max_wait_seconds: float,
        max_attempts: Optional[int] = None,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> PollResult:
        """
        Wait for the CID of bucket/key.

        Returns FOUND with the trimmed CID, TIMED_OUT once max_wait_seconds
        have elapsed or max_attempts lookups were made, or CANCELLED when
        is_disconnected() reports the client has gone. Lookup failures are
        never raised; they count as "no CID yet".

        The loop runs under asyncio.wait_for with half a backoff interval of
        headroom, so a storage call that hangs still returns before
        max_wait_seconds plus one interval.
        """
        if not bucket or not key:
            raise ValueError("bucket and key are required")
        if max_wait_seconds <= 0:
            raise ValueError("max_wait_seconds must be positive")
        if max_attempts is not None and max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        started = self._clock()
        state = {"attempts": 0}

        try:
            return await asyncio.wait_for(
                self._poll_loop(
                    bucket, key, max_wait_seconds, max_attempts,
                    is_disconnected, started, state,
                ),
                timeout=max_wait_seconds + self._max_delay / 2,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "CID poll hit hard timeout",
                extra={"bucket": bucket, "key": key, "attempts": state["attempts"]}
            )
            return PollResult(
                status=PollStatus.TIMED_OUT,
                attempts=state["attempts"],
                elapsed_seconds=self._clock() - started,
            )

    async def _poll_loop(
        self,
        bucket: str,
        key: str,
        max_wait_seconds: float,
        max_attempts: Optional[int],
        is_disconnected: Optional[Callable[[], Awaitable[bool]]],
        started: float,
        state: dict,
    ) -> PollResult:
        delays = backoff_delays(self._initial_delay, self._max_delay)

        while True:
            state["attempts"] += 1
            attempts = state["attempts"]

            cid = await self._lookup(bucket, key)
            elapsed = self._clock() - started

            if cid:
                logger.info(
                    "CID available",
                    extra={"key": key, "attempts": attempts, "elapsed_seconds": round(elapsed, 3)}
                )
                return PollResult(
                    status=PollStatus.FOUND,
                    cid=cid,
                    attempts=attempts,
                    elapsed_seconds=elapsed,
                )

            if elapsed >= max_wait_seconds or (max_attempts is not None and attempts >= max_attempts):
                logger.info(
                    "CID not available within budget",
                    extra={"key": key, "attempts": attempts, "elapsed_seconds": round(elapsed, 3)}
                )
                return PollResult(
                    status=PollStatus.TIMED_OUT,
                    attempts=attempts,
                    elapsed_seconds=elapsed,
                )

            # Never sleep past the deadline; the last lookup lands on it.
            await self._sleep(min(next(delays), max_wait_seconds - elapsed))

            if is_disconnected is not None and await is_disconnected():
                logger.info(
                    "Client disconnected, stopped polling",
                    extra={"key": key, "attempts": attempts}
                )
                return PollResult(
                    status=PollStatus.CANCELLED,
                    attempts=attempts,
                    elapsed_seconds=self._clock() - started,
                )

    async def _lookup(self, bucket: str, key: str) -> Optional[str]:
        """One metadata read. Any failure means "not yet"."""
        try:
            metadata = await self._storage.get_object_metadata(bucket, key)
        except Exception as e:
            logger.debug(
                "Metadata lookup failed, will retry",
                extra={"bucket": bucket, "key": key, "error": str(e)}
            )
            return None

        return extract_cid(metadata)
