"""
Tests for AdmissionEngine.commit(): evict-then-install ordering, ledger
writes, partial commits and provider timeouts.
"""

import random

import pytest

from app.core.errors import (
    AdmissionTimeout,
    ExternalCallFailed,
    ItemBlocked,
    LedgerWriteFailed,
    PartialCommit,
    ResourceClientError,
    ResourceTimeout,
)
from app.services.admission_service import AdmissionEngine
from app.services.interfaces.types import AdmissionRequest, ChangeType, Decision
from app.services.ledger_service import InMemoryLedger

from conftest import CHANNEL


class PickLast(random.Random):
    def choice(self, seq):
        return seq[-1]


def request_for(item_id: str, slots: int = 1) -> AdmissionRequest:
    return AdmissionRequest(channel_id=CHANNEL, item_id=item_id, requested_by="viewer", slots=slots)


def ledger_rows(ledger) -> list[tuple[str, ChangeType]]:
    return [(e.item_id, e.change_type) for e in ledger.entries(CHANNEL)]


async def decide_and_commit(engine, item_id: str, slots: int = 1):
    request = request_for(item_id, slots)
    decision = await engine.decide(request)
    return decision, await engine.commit(decision, request)


@pytest.mark.asyncio
async def test_previous_emote_rotated_out(engine, provider, ledger):
    provider.set_pool(CHANNEL, 1, ["A"])
    await ledger.append(CHANNEL, "A", ChangeType.ADD)

    decision, result = await decide_and_commit(engine, "B")

    assert decision.eviction_target == "A"
    assert result.evicted_id == "A"
    assert result.evicted.name == "peepoHappy"
    assert result.installed.name == "catJAM"
    assert provider.installed(CHANNEL) == ["B"]
    assert ledger_rows(ledger) == [
        ("A", ChangeType.ADD),
        ("A", ChangeType.REMOVED_PREVIOUS),
        ("B", ChangeType.ADD),
    ]


@pytest.mark.asyncio
async def test_random_eviction_when_no_history(provider, ledger):
    provider.set_pool(CHANNEL, 2, ["A", "B"])
    engine = AdmissionEngine(provider, ledger, rng=PickLast(), call_timeout=1.0)

    _, result = await decide_and_commit(engine, "C")

    assert result.evicted_id == "B"
    assert result.classification is ChangeType.REMOVED_RANDOM
    assert sorted(provider.installed(CHANNEL)) == ["A", "C"]
    assert ledger_rows(ledger) == [
        ("B", ChangeType.REMOVED_RANDOM),
        ("C", ChangeType.ADD),
    ]


@pytest.mark.asyncio
async def test_free_slot_installs_only(engine, provider, ledger):
    provider.set_pool(CHANNEL, 2, ["A"])

    _, result = await decide_and_commit(engine, "B")

    assert result.evicted_id is None
    assert result.evicted is None
    assert [c[0] for c in provider.mutations] == ["install"]
    assert ledger_rows(ledger) == [("B", ChangeType.ADD)]


@pytest.mark.asyncio
async def test_evict_runs_before_install(engine, provider, ledger):
    provider.set_pool(CHANNEL, 1, ["A"])
    await ledger.append(CHANNEL, "A", ChangeType.ADD)

    await decide_and_commit(engine, "B")

    assert provider.mutations == [("evict", CHANNEL, "A"), ("install", CHANNEL, "B")]


@pytest.mark.asyncio
async def test_names_fall_back_to_snapshot_without_echo(engine, provider, ledger):
    provider.echo = False
    provider.set_pool(CHANNEL, 1, ["A"])
    await ledger.append(CHANNEL, "A", ChangeType.ADD)

    _, result = await decide_and_commit(engine, "B")

    assert result.evicted.name == "peepoHappy"
    assert result.installed.name == "catJAM"


@pytest.mark.asyncio
async def test_failed_eviction_skips_install(engine, provider, ledger):
    provider.set_pool(CHANNEL, 1, ["A"])
    await ledger.append(CHANNEL, "A", ChangeType.ADD)
    provider.failures["evict"] = ResourceClientError("upstream 500", status_code=500)

    request = request_for("B")
    decision = await engine.decide(request)
    with pytest.raises(ExternalCallFailed) as exc:
        await engine.commit(decision, request)

    assert exc.value.phase == "evict"
    assert [c[0] for c in provider.mutations] == ["evict"]
    assert ledger_rows(ledger) == [("A", ChangeType.ADD)]


@pytest.mark.asyncio
async def test_failed_install_after_eviction_is_partial(engine, provider, ledger):
    provider.set_pool(CHANNEL, 1, ["A"])
    await ledger.append(CHANNEL, "A", ChangeType.ADD)
    provider.failures["install"] = ResourceClientError("upstream 500", status_code=500)

    request = request_for("B")
    decision = await engine.decide(request)
    with pytest.raises(PartialCommit) as exc:
        await engine.commit(decision, request)

    assert exc.value.evicted_id == "A"
    assert isinstance(exc.value.cause, ExternalCallFailed)
    assert exc.value.message.startswith("removed peepoHappy but failed to add new emote")
    assert provider.installed(CHANNEL) == []
    # Only the eviction was recorded
    assert ledger_rows(ledger) == [
        ("A", ChangeType.ADD),
        ("A", ChangeType.REMOVED_PREVIOUS),
    ]


@pytest.mark.asyncio
async def test_failed_install_without_eviction(engine, provider, ledger):
    provider.set_pool(CHANNEL, 2, ["A"])
    provider.failures["install"] = ResourceClientError("bad request", status_code=400)

    request = request_for("B")
    decision = await engine.decide(request)
    with pytest.raises(ExternalCallFailed) as exc:
        await engine.commit(decision, request)

    assert exc.value.phase == "install"
    assert ledger_rows(ledger) == []


@pytest.mark.asyncio
async def test_install_timeout_after_eviction(provider, ledger):
    engine = AdmissionEngine(provider, ledger, rng=random.Random(1), call_timeout=0.05)
    provider.set_pool(CHANNEL, 1, ["A"])
    await ledger.append(CHANNEL, "A", ChangeType.ADD)
    provider.delays["install"] = 0.5

    request = request_for("B")
    decision = await engine.decide(request)
    with pytest.raises(PartialCommit) as exc:
        await engine.commit(decision, request)

    assert isinstance(exc.value.cause, AdmissionTimeout)
    assert exc.value.cause.phase == "install"
    assert exc.value.cause.retryable


@pytest.mark.asyncio
async def test_fetch_timeout(provider, ledger):
    engine = AdmissionEngine(provider, ledger, call_timeout=0.05)
    provider.set_pool(CHANNEL, 1, ["A"])
    provider.delays["fetch_pool"] = 0.5

    with pytest.raises(AdmissionTimeout) as exc:
        await engine.decide(request_for("B"))

    assert exc.value.phase == "fetch"


@pytest.mark.asyncio
async def test_adapter_timeout_maps_to_admission_timeout(engine, provider):
    provider.set_pool(CHANNEL, 2, ["A"])
    provider.failures["install"] = ResourceTimeout("read timed out")

    request = request_for("B")
    decision = await engine.decide(request)
    with pytest.raises(AdmissionTimeout) as exc:
        await engine.commit(decision, request)

    assert exc.value.phase == "install"


@pytest.mark.asyncio
async def test_commit_of_rejection_raises_reason(engine, provider):
    reason = ItemBlocked("B")

    with pytest.raises(ItemBlocked):
        await engine.commit(Decision.reject(reason), request_for("B"))

    assert provider.calls == []


@pytest.mark.asyncio
async def test_remove_blocked_evicts_installed_emote(engine, provider, ledger):
    provider.set_pool(CHANNEL, 2, ["A", "B"])
    await ledger.block(CHANNEL, "A")

    assert await engine.remove_blocked(CHANNEL, "A") is True

    assert provider.installed(CHANNEL) == ["B"]
    [entry] = ledger.entries(CHANNEL)
    assert entry.change_type is ChangeType.REMOVED_BLOCKED
    assert entry.blocked is True


@pytest.mark.asyncio
async def test_remove_blocked_is_noop_when_not_installed(engine, provider, ledger):
    provider.set_pool(CHANNEL, 2, ["B"])

    assert await engine.remove_blocked(CHANNEL, "A") is False

    assert provider.mutations == []
    assert ledger.entries(CHANNEL) == []


class FailingAppendLedger(InMemoryLedger):
    def __init__(self, fail_on: ChangeType):
        super().__init__()
        self.fail_on = fail_on

    async def append(self, channel_id, item_id, change_type):
        if change_type is self.fail_on:
            raise RuntimeError("db connection lost")
        return await super().append(channel_id, item_id, change_type)


@pytest.mark.asyncio
async def test_install_runs_even_if_eviction_record_fails(provider):
    ledger = FailingAppendLedger(ChangeType.REMOVED_PREVIOUS)
    await ledger.append(CHANNEL, "A", ChangeType.ADD)
    provider.set_pool(CHANNEL, 1, ["A"])
    engine = AdmissionEngine(provider, ledger, call_timeout=1.0)

    request = request_for("B")
    decision = await engine.decide(request)
    with pytest.raises(LedgerWriteFailed) as exc:
        await engine.commit(decision, request)

    assert provider.mutations == [("evict", CHANNEL, "A"), ("install", CHANNEL, "B")]
    assert provider.installed(CHANNEL) == ["B"]
    assert exc.value.result.evicted_id == "A"
    assert exc.value.result.installed.name == "catJAM"
    assert isinstance(exc.value.cause, RuntimeError)


@pytest.mark.asyncio
async def test_partial_commit_wins_over_record_failure(provider):
    ledger = FailingAppendLedger(ChangeType.REMOVED_PREVIOUS)
    await ledger.append(CHANNEL, "A", ChangeType.ADD)
    provider.set_pool(CHANNEL, 1, ["A"])
    provider.failures["install"] = ResourceClientError("upstream 500", status_code=500)
    engine = AdmissionEngine(provider, ledger, call_timeout=1.0)

    request = request_for("B")
    decision = await engine.decide(request)
    with pytest.raises(PartialCommit):
        await engine.commit(decision, request)
