from enum import Enum


class SyncStatus(str, Enum):
    LOCAL_ONLY = "local_only"
    SYNCED = "synced"
    PENDING_SYNC = "pending_sync"
    # Reserved for bidirectional merge; no transition produces it
    CONFLICT = "conflict"


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    FILL_IN_BLANK = "fill_in_blank"


class ContentType(str, Enum):
    TEXT = "TEXT"
    CODE = "CODE"


class SyncEntityType(str, Enum):
    DECK = "deck"
    CARD = "card"


class SyncOperation(str, Enum):
    CREATE = "create"
