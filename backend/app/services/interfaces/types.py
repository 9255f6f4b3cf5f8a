"""
Value types shared by the admission engine and its collaborators.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from app.core.errors import AdmissionError


class ChangeType(str, enum.Enum):
    ADD = "add"
    REMOVED_PREVIOUS = "removed_previous"
    REMOVED_RANDOM = "removed_random"
    REMOVED_BLOCKED = "removed_blocked"


class Verdict(str, enum.Enum):
    ADMIT = "admit"
    REJECT = "reject"


class RedemptionState(str, enum.Enum):
    RECEIVED = "received"
    DECIDED = "decided"
    EVICTING = "evicting"
    EVICTED = "evicted"
    INSTALLING = "installing"
    INSTALLED = "installed"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass(frozen=True)
class PoolItem:
    id: str
    name: str


@dataclass(frozen=True)
class PoolSnapshot:
    """A channel's emote set as the provider reports it right now."""

    channel_id: str
    capacity: int
    items: tuple[PoolItem, ...] = ()

    @property
    def is_full(self) -> bool:
        return len(self.items) >= self.capacity

    def get(self, item_id: str) -> Optional[PoolItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def contains(self, item_id: str) -> bool:
        return self.get(item_id) is not None

    def find_by_name(self, name: str) -> Optional[PoolItem]:
        for item in self.items:
            if item.name == name:
                return item
        return None


@dataclass(frozen=True)
class AdmissionRequest:
    channel_id: str
    item_id: str
    requested_by: str
    slots: int = 1

    def __post_init__(self):
        if self.slots < 1:
            raise ValueError(f"slots must be positive, got {self.slots}")


@dataclass(frozen=True)
class LedgerEntry:
    channel_id: str
    item_id: str
    change_type: ChangeType
    blocked: bool = False
    id: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class Decision:
    """
    Outcome of AdmissionEngine.decide().

    ADMIT carries the requested item's metadata, the snapshot it was decided
    against and an optional eviction target. REJECT carries the reason.
    """

    verdict: Verdict
    classification: ChangeType = ChangeType.ADD
    item: Optional[PoolItem] = None
    snapshot: Optional[PoolSnapshot] = None
    eviction_target: Optional[str] = None
    reason: Optional["AdmissionError"] = None

    @classmethod
    def admit(
        cls,
        item: PoolItem,
        snapshot: PoolSnapshot,
        eviction_target: Optional[str] = None,
        classification: ChangeType = ChangeType.ADD,
    ) -> "Decision":
        return cls(
            verdict=Verdict.ADMIT,
            classification=classification,
            item=item,
            snapshot=snapshot,
            eviction_target=eviction_target,
        )

    @classmethod
    def reject(cls, reason: "AdmissionError", item: Optional[PoolItem] = None) -> "Decision":
        return cls(verdict=Verdict.REJECT, item=item, reason=reason)

    @property
    def admitted(self) -> bool:
        return self.verdict is Verdict.ADMIT


@dataclass(frozen=True)
class CommitResult:
    installed: Optional[PoolItem]
    evicted: Optional[PoolItem] = None
    evicted_id: Optional[str] = None
    classification: ChangeType = ChangeType.ADD


@dataclass(frozen=True)
class RedemptionRef:
    """Identifies the upstream redemption whose status we report back."""

    redemption_id: str
    reward_id: str
    channel_id: str


@dataclass
class RedemptionOutcome:
    success: bool
    state: RedemptionState
    message: str
    result: Optional[CommitResult] = None
    error: Optional["AdmissionError"] = None
    history: list[RedemptionState] = field(default_factory=list)
    cancel_deferred: bool = False
