"""
Error taxonomy for emote admission.

Every failure a redemption can end in is an AdmissionError. The orchestrator
turns each of them into a chat message and a failed upstream status; none of
them is fatal to the process.

Provider adapters do not raise AdmissionErrors for transport problems.
They raise ResourceClientError / ResourceTimeout and the engine tags them
with the phase (fetch, evict, install) they happened in.
"""

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from app.services.interfaces.types import CommitResult


class AdmissionError(Exception):
    """Base class for every reason a redemption can fail."""

    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ItemBlocked(AdmissionError):
    def __init__(self, item_id: str):
        super().__init__("Emote is blocked")
        self.item_id = item_id


class DuplicateItem(AdmissionError):
    def __init__(self, name: str):
        super().__init__(f'Emote code "{name}" already added')
        self.name = name


class ItemNotFound(AdmissionError):
    def __init__(self, item_id: str):
        super().__init__(f"Emote {item_id} not found")
        self.item_id = item_id


class InvalidEmoteReference(AdmissionError):
    def __init__(self, user_input: str):
        super().__init__("no emote link found")
        self.user_input = user_input


class InconsistentPoolState(AdmissionError):
    def __init__(self, channel_id: str, capacity: int):
        super().__init__(
            "emotes limit reached and can't find amount of emotes added to choose random"
        )
        self.channel_id = channel_id
        self.capacity = capacity


class ExternalCallFailed(AdmissionError):
    """A provider call failed. `phase` is one of fetch, evict, install."""

    def __init__(self, phase: str, detail: str):
        super().__init__(f"{phase} failed: {detail}")
        self.phase = phase
        self.detail = detail


class AdmissionTimeout(AdmissionError):
    """A bounded wait expired. `phase` is fetch, evict, install or lock."""

    retryable = True

    def __init__(self, phase: str, seconds: float):
        super().__init__(f"{phase} timed out after {seconds:g}s")
        self.phase = phase
        self.seconds = seconds


class PartialCommit(AdmissionError):
    """
    The eviction went through but the install did not.

    The channel is now one emote short. Callers may retry the install half
    only; the eviction must not be repeated.
    """

    def __init__(self, evicted_id: str, evicted_name: Optional[str], cause: AdmissionError):
        removed = evicted_name or evicted_id
        super().__init__(f"removed {removed} but failed to add new emote: {cause.message}")
        self.evicted_id = evicted_id
        self.evicted_name = evicted_name
        self.cause = cause


class LedgerWriteFailed(AdmissionError):
    """
    The provider changes went through but at least one ledger row could not
    be written. The emote is installed; `result` describes what happened.
    Later rotations may pick a different eviction target until the history
    catches up.
    """

    def __init__(self, result: "CommitResult", cause: Exception):
        super().__init__(f"emote installed but history was not recorded: {cause}")
        self.result = result
        self.cause = cause


class ResourceClientError(Exception):
    """Raised by provider adapters on transport or protocol errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ResourceTimeout(ResourceClientError):
    pass
