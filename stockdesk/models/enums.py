from enum import Enum


class Category(str, Enum):
    UNCATEGORIZED = "UNCATEGORIZED"
    IN_STOCK = "IN_STOCK"
    SPU_PENDING = "SPU_PENDING"
    SPU_CLEARED = "SPU_CLEARED"
    AMC = "AMC"
    OG = "OG"
    RETURN = "RETURN"
    RECEIVED_FOR_OTHERS = "RECEIVED_FOR_OTHERS"
    # Only produced by the spreadsheet column map; can still be moved to and from freely.
    RETURN_PENDING = "RETURN_PENDING"
    PENDING_TO_CHECK = "PENDING_TO_CHECK"


class MovementType(str, Enum):
    INITIAL_ENTRY = "INITIAL_ENTRY"
    CATEGORIZED = "CATEGORIZED"
    CATEGORY_CHANGE = "CATEGORY_CHANGE"
    CONTEXT_UPDATE = "CONTEXT_UPDATE"
    PAYMENT_UPDATE = "PAYMENT_UPDATE"


class PaymentStatus(str, Enum):
    PAID = "PAID"
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    WAIVED = "WAIVED"


class PaymentMode(str, Enum):
    CASH = "CASH"
    CHEQUE = "CHEQUE"
    ONLINE = "ONLINE"
    UPI = "UPI"


class TransferStatus(str, Enum):
    PENDING = "PENDING"
    TRANSFERRED = "TRANSFERRED"
