"""
Concurrency tests.

The fake provider yields on every call, so without the channel lock
concurrent redemptions interleave between decide() and commit().
"""

import asyncio
import random

import pytest

from app.core.errors import ExternalCallFailed
from app.services.admission_service import AdmissionEngine
from app.services.interfaces.types import AdmissionRequest, ChangeType

from conftest import CHANNEL, make_redemption


@pytest.mark.asyncio
async def test_concurrent_redemptions_never_exceed_capacity(orchestrator, provider, ledger):
    provider.set_pool(CHANNEL, 2, [])
    provider.delays["install"] = 0.01

    outcomes = await asyncio.gather(*[
        orchestrator.handle(make_redemption(emote_id, redemption_id=f"r-{i}"))
        for i, emote_id in enumerate(["A", "B", "C", "D", "E"])
    ])

    assert all(o.success for o in outcomes)
    assert provider.max_seen[CHANNEL] <= 2

    entries = ledger.entries(CHANNEL)
    adds = [e for e in entries if e.change_type is ChangeType.ADD]
    removals = [e for e in entries if e.change_type is not ChangeType.ADD]
    assert len(adds) == 5
    assert len(removals) == len(adds) - len(provider.installed(CHANNEL))
    # Every removal is immediately followed by its install
    for i, entry in enumerate(entries):
        if entry.change_type is not ChangeType.ADD:
            assert entries[i + 1].change_type is ChangeType.ADD


@pytest.mark.asyncio
async def test_last_free_slot_is_taken_once(orchestrator, provider):
    provider.set_pool(CHANNEL, 1, [])

    first, second = await asyncio.gather(
        orchestrator.handle(make_redemption("A", redemption_id="r-1")),
        orchestrator.handle(make_redemption("B", redemption_id="r-2")),
    )

    assert first.success and second.success
    evictions = [o.result.evicted_id for o in (first, second)]
    assert evictions.count(None) == 1
    assert provider.max_seen[CHANNEL] == 1


@pytest.mark.asyncio
async def test_unserialized_engine_overflows(provider, ledger):
    """Without the channel lock both requests see the same free slot."""
    provider.set_pool(CHANNEL, 1, [])
    engine = AdmissionEngine(provider, ledger, rng=random.Random(3), call_timeout=1.0)

    async def redeem(item_id):
        request = AdmissionRequest(channel_id=CHANNEL, item_id=item_id, requested_by="viewer")
        decision = await engine.decide(request)
        return await engine.commit(decision, request)

    results = await asyncio.gather(redeem("A"), redeem("B"), return_exceptions=True)

    failures = [r for r in results if isinstance(r, ExternalCallFailed)]
    assert len(failures) == 1
    assert failures[0].phase == "install"


@pytest.mark.asyncio
async def test_other_channels_are_not_blocked(orchestrator, provider, locks):
    other = "99999999"
    provider.set_pool(other, 1, [])

    async with locks.hold(CHANNEL, timeout=1.0):
        outcome = await asyncio.wait_for(
            orchestrator.handle(make_redemption("A", channel_id=other)),
            timeout=0.5,
        )

    assert outcome.success
    assert provider.installed(other) == ["A"]


@pytest.mark.asyncio
async def test_same_emote_redeemed_twice_concurrently(orchestrator, provider):
    provider.set_pool(CHANNEL, 3, [])

    outcomes = await asyncio.gather(
        orchestrator.handle(make_redemption("A", redemption_id="r-1")),
        orchestrator.handle(make_redemption("A", redemption_id="r-2")),
    )

    assert sorted(o.success for o in outcomes) == [False, True]
    assert provider.installed(CHANNEL) == ["A"]
