from app.models.ledger import LedgerEntryRecord, BlockedItemRecord

__all__ = ["LedgerEntryRecord", "BlockedItemRecord"]
