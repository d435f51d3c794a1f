"""
Unit tests for RetryPolicy chains and backoff.
"""

import asyncio
import pytest

from logship.shipper import (
    DeliveryFailed,
    DeliverySucceeded,
    InFlightRegistry,
    OutcomeBus,
    RetryPolicy,
    UnexpectedStatusError,
)


class FlakyAttempt:
    """Attempt that fails the first N sends, then succeeds."""

    def __init__(self, fail_first_n: int = 1, delay: float = 0.0):
        self._fail = fail_first_n
        self._delay = delay
        self.sent = []
        self.active = 0
        self.max_active = 0

    async def send(self, payload):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            self.sent.append(payload)
            if self._delay:
                await asyncio.sleep(self._delay)
            if self._fail > 0:
                self._fail -= 1
                raise UnexpectedStatusError(500)
            return 202
        finally:
            self.active -= 1


def make_policy(attempt, **kw):
    registry = InFlightRegistry()
    bus = OutcomeBus()
    events = []
    bus.subscribe(events.append)
    return RetryPolicy(attempt, registry, bus, **kw), registry, events


@pytest.mark.asyncio
async def test_retries_then_succeeds():
    attempt = FlakyAttempt(fail_first_n=2)
    policy, registry, events = make_policy(attempt, retries=3)

    await policy.attempt({"message": "x"})

    assert len(attempt.sent) == 3
    assert [type(e) for e in events] == [DeliveryFailed, DeliveryFailed, DeliverySucceeded]
    assert [e.attempt for e in events] == [0, 1, 2]
    assert not any(e.terminal for e in events if isinstance(e, DeliveryFailed))
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_exhausts_retries():
    attempt = FlakyAttempt(fail_first_n=100)
    policy, registry, events = make_policy(attempt, retries=2)

    await policy.attempt({"message": "x"})

    assert len(attempt.sent) == 3
    assert all(isinstance(e, DeliveryFailed) for e in events)
    assert [e.terminal for e in events] == [False, False, True]
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_no_retries_by_default():
    attempt = FlakyAttempt(fail_first_n=1)
    policy, _, events = make_policy(attempt)

    await policy.attempt({"message": "x"})

    assert len(attempt.sent) == 1
    assert len(events) == 1 and events[0].terminal


@pytest.mark.asyncio
async def test_attempts_in_a_chain_are_sequential():
    """Each retry starts only after the previous failure was observed."""
    attempt = FlakyAttempt(fail_first_n=3, delay=0.01)
    policy, _, _ = make_policy(attempt, retries=5)

    await policy.attempt({"message": "x"})

    assert attempt.max_active == 1
    assert len(attempt.sent) == 4


@pytest.mark.asyncio
async def test_one_registry_entry_per_chain():
    """Retries reuse the chain's entry; they never add new ones."""
    attempt = FlakyAttempt(fail_first_n=2, delay=0.01)
    policy, registry, _ = make_policy(attempt, retries=5)

    task = policy.attempt({"message": "x"})
    sizes = []
    while not task.done():
        sizes.append(len(registry))
        await asyncio.sleep(0.005)

    assert set(sizes) == {1}
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_batch_success_emits_one_event_per_record():
    attempt = FlakyAttempt(fail_first_n=0)
    policy, _, events = make_policy(attempt)
    batch = [{"message": f"m{i}"} for i in range(4)]

    await policy.attempt(batch)

    assert len(attempt.sent) == 1
    assert [e.record for e in events] == batch


@pytest.mark.asyncio
async def test_failed_batch_event_reports_size():
    attempt = FlakyAttempt(fail_first_n=1)
    policy, _, events = make_policy(attempt)

    await policy.attempt([{"message": "a"}, {"message": "b"}])

    assert events[0].size == 2


@pytest.mark.asyncio
async def test_backoff_delays_retry():
    attempt = FlakyAttempt(fail_first_n=1)
    policy, _, _ = make_policy(attempt, retries=1, initial_backoff_ms=100)

    loop = asyncio.get_running_loop()
    t0 = loop.time()
    await policy.attempt({"message": "x"})

    assert loop.time() - t0 >= 0.09
    assert len(attempt.sent) == 2


def test_backoff_curve_monotonic_with_cap():
    """Exponential backoff with max cap."""
    rp = RetryPolicy(
        None, None, None, initial_backoff_ms=50, max_backoff_ms=200, backoff_multiplier=2.0
    )
    vals = [rp.next_backoff_ms(i) for i in range(1, 10)]
    # 50, 100, 200, 200, 200...
    assert vals[:3] == [50, 100, 200]
    assert all(v <= 200 for v in vals)


def test_backoff_with_jitter():
    """With jitter, values should be 50-100% of calculated."""
    rp = RetryPolicy(None, None, None, initial_backoff_ms=100, max_backoff_ms=1000, jitter=True)
    vals = [rp.next_backoff_ms(1) for _ in range(20)]
    assert all(50 <= v <= 100 for v in vals)


def test_zero_backoff_means_immediate_retry():
    rp = RetryPolicy(None, None, None)
    assert rp.next_backoff_ms(1) == 0
    assert rp.next_backoff_ms(5) == 0


@pytest.mark.asyncio
async def test_chain_numbering_is_per_policy():
    first, _, _ = make_policy(FlakyAttempt(fail_first_n=0))
    second, _, _ = make_policy(FlakyAttempt(fail_first_n=0))

    a1 = first.attempt({"message": "a"})
    a2 = first.attempt({"message": "b"})
    b1 = second.attempt({"message": "c"})
    await asyncio.gather(a1, a2, b1)

    assert [a1.get_name(), a2.get_name()] == ["logship-chain-1", "logship-chain-2"]
    assert b1.get_name() == "logship-chain-1"


@pytest.mark.asyncio
async def test_slow_async_observer_does_not_gate_retry():
    attempt = FlakyAttempt(fail_first_n=1)
    policy, registry, _ = make_policy(attempt, retries=1)
    gate = asyncio.Event()

    async def blocked(event):
        await gate.wait()

    policy._bus.subscribe(blocked)
    await policy.attempt({"message": "x"})

    # chain finished both attempts while the observers are still waiting
    assert len(attempt.sent) == 2
    assert policy._bus.registry.observers == 2
    gate.set()
    await policy._bus.registry.wait()
    assert policy._bus.registry.idle
