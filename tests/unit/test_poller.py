"""
Unit tests for the CID poller.

A fake clock replaces both time.monotonic and asyncio.sleep, so the
backoff schedule is checked exactly and no test waits for real.
"""

import asyncio
import itertools

import pytest

from src.core.uploads.models import PollStatus
from src.core.uploads.poller import CidPoller, backoff_delays


def make_poller(storage, clock, **kwargs) -> CidPoller:
    return CidPoller(storage, clock=clock, sleep=clock.sleep, **kwargs)


# ---------------------------------------------------------------------------
# Backoff Schedule
# ---------------------------------------------------------------------------

class TestBackoffDelays:

    def test_doubles_from_half_a_second_and_caps_at_four(self):
        delays = list(itertools.islice(backoff_delays(), 7))
        assert delays == [0.5, 1.0, 2.0, 4.0, 4.0, 4.0, 4.0]

    def test_initial_above_maximum_is_capped(self):
        delays = list(itertools.islice(backoff_delays(initial=10, maximum=3), 3))
        assert delays == [3, 3, 3]


# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------

class TestCidPoller:

    @pytest.mark.asyncio
    async def test_cid_on_first_lookup_returns_without_sleeping(self, make_storage, fake_clock):
        storage = make_storage(script=[{"cid": "bafyready"}])
        poller = make_poller(storage, fake_clock)

        result = await poller.poll("uploads", "photo.png", max_wait_seconds=30)

        assert result.status is PollStatus.FOUND
        assert result.cid == "bafyready"
        assert result.attempts == 1
        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_cid_on_third_lookup_is_trimmed_after_backoff(self, make_storage, fake_clock):
        storage = make_storage(script=[{}, {}, {"cid": " bafy123 "}])
        poller = make_poller(storage, fake_clock)

        result = await poller.poll("uploads", "photo.png", max_wait_seconds=30)

        assert result.found
        assert result.cid == "bafy123"
        assert result.attempts == 3
        assert fake_clock.sleeps == [0.5, 1.0]
        assert result.elapsed_seconds == pytest.approx(1.5)

    @pytest.mark.asyncio
    async def test_missing_cid_times_out_within_one_interval_of_budget(self, make_storage, fake_clock):
        storage = make_storage(script=[{}])
        poller = make_poller(storage, fake_clock)

        result = await poller.poll("uploads", "photo.png", max_wait_seconds=30)

        assert result.status is PollStatus.TIMED_OUT
        assert result.cid is None
        assert 30 <= result.elapsed_seconds < 30 + 4.0
        assert fake_clock.sleeps[:6] == [0.5, 1.0, 2.0, 4.0, 4.0, 4.0]
        assert max(fake_clock.sleeps) == 4.0

    @pytest.mark.asyncio
    async def test_attempt_cap_stops_before_time_budget(self, make_storage, fake_clock):
        storage = make_storage(script=[{}])
        poller = make_poller(storage, fake_clock)

        result = await poller.poll("uploads", "photo.png", max_wait_seconds=30, max_attempts=3)

        assert result.status is PollStatus.TIMED_OUT
        assert result.attempts == 3
        assert len(storage.metadata_calls) == 3
        assert fake_clock.sleeps == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_lookup_errors_are_retried(self, make_storage, fake_clock, missing_object_error):
        storage = make_storage(script=[missing_object_error, RuntimeError("boom"), {"CID": "bafyupper"}])
        poller = make_poller(storage, fake_clock)

        result = await poller.poll("uploads", "photo.png", max_wait_seconds=30)

        assert result.cid == "bafyupper"
        assert result.attempts == 3

    @pytest.mark.asyncio
    async def test_blank_cid_counts_as_missing(self, make_storage, fake_clock):
        storage = make_storage(script=[{"cid": "   "}, {"Cid": "bafymixed"}])
        poller = make_poller(storage, fake_clock)

        result = await poller.poll("uploads", "photo.png", max_wait_seconds=30)

        assert result.cid == "bafymixed"
        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_disconnected_client_stops_polling(self, make_storage, fake_clock):
        storage = make_storage(script=[{}])
        poller = make_poller(storage, fake_clock)

        async def disconnected() -> bool:
            return True

        result = await poller.poll(
            "uploads", "photo.png", max_wait_seconds=30, is_disconnected=disconnected,
        )

        assert result.status is PollStatus.CANCELLED
        assert result.attempts == 1
        assert len(storage.metadata_calls) == 1

    @pytest.mark.asyncio
    async def test_hanging_lookup_is_cut_off_by_hard_timeout(self):
        class HangingStorage:
            async def get_object_metadata(self, bucket, key):
                await asyncio.sleep(3600)

        poller = CidPoller(HangingStorage(), initial_delay=0.2, max_delay=0.2)

        result = await poller.poll("uploads", "photo.png", max_wait_seconds=0.2)

        assert result.status is PollStatus.TIMED_OUT
        assert result.attempts == 1
        assert 0.2 <= result.elapsed_seconds < 0.2 + 0.2

    @pytest.mark.asyncio
    async def test_rejects_empty_bucket_or_key(self, make_storage, fake_clock):
        poller = make_poller(make_storage(), fake_clock)

        with pytest.raises(ValueError, match="required"):
            await poller.poll("", "photo.png", max_wait_seconds=1)
        with pytest.raises(ValueError, match="required"):
            await poller.poll("uploads", "", max_wait_seconds=1)

    def test_rejects_non_positive_delays(self, make_storage):
        with pytest.raises(ValueError, match="positive"):
            CidPoller(make_storage(), initial_delay=0)

    @pytest.mark.asyncio
    async def test_concurrent_polls_do_not_block_each_other(self, make_storage):
        """A slow poll must not delay a poll whose CID is ready."""
        storage = make_storage(resolver=lambda key: {"cid": "bafyfast"} if key == "fast" else {})
        poller = CidPoller(storage, initial_delay=0.01, max_delay=0.02)

        slow = asyncio.create_task(poller.poll("uploads", "slow", max_wait_seconds=0.5))
        fast = await poller.poll("uploads", "fast", max_wait_seconds=0.5)

        assert fast.cid == "bafyfast"
        assert not slow.done()
        assert (await slow).status is PollStatus.TIMED_OUT
