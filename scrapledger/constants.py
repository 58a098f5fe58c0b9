"""Constants and enums for the reporting engine"""

from enum import Enum


class TransactionKind(str, Enum):
    """Transaction source kinds"""
    PURCHASE = "purchase"
    SALE = "sale"


class ChangeOperation(str, Enum):
    """Change notification operations"""
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class GroupBy(str, Enum):
    """Aggregation grouping dimensions"""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    MATERIAL = "material"
    COUNTERPARTY = "counterparty"

    @property
    def is_time_bucket(self) -> bool:
        return self in (GroupBy.DAY, GroupBy.WEEK, GroupBy.MONTH)


class ListenerState(str, Enum):
    """Per-source listener lifecycle"""
    DISCONNECTED = "disconnected"
    SUBSCRIBING = "subscribing"
    ACTIVE = "active"
    RECONNECTING = "reconnecting"


LISTENER_STATE_CODES = {
    ListenerState.DISCONNECTED: 0,
    ListenerState.SUBSCRIBING: 1,
    ListenerState.ACTIVE: 2,
    ListenerState.RECONNECTING: 3,
}


class PaymentStatus(str, Enum):
    """Payment statuses used by KPI counts"""
    COMPLETED = "completed"
    PENDING = "pending"
    FAILED = "failed"


# Neutral defaults for missing optional fields
DEFAULT_PAYMENT_METHOD = "cash"
DEFAULT_PAYMENT_STATUS = "pending"
DEFAULT_QUALITY_GRADE = "Ungraded"

# Counterparty fallbacks
WALK_IN_FALLBACK = "Walk-in Customer"
UNKNOWN_SUPPLIER = "Unknown Supplier"
UNKNOWN_CUSTOMER = "Unknown Customer"
UNKNOWN_MATERIAL = "Unknown"

# Report defaults
DEFAULT_TOP_COUNTERPARTIES = 10
DEFAULT_TOP_DAILY_COUNTERPARTIES = 5
DEFAULT_CUSTOM_RANGE_DAYS = 30
KPI_GROWTH_WINDOW_DAYS = 30

# Listener defaults
DEFAULT_DEDUP_CAPACITY = 10000
DEFAULT_RECONNECT_BASE_DELAY = 1.0   # seconds
DEFAULT_RECONNECT_MAX_DELAY = 60.0   # seconds
