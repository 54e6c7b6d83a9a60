from dataclasses import dataclass
from typing import Any


class StockDeskError(ValueError):
    status_code = 400
    code = "bad_request"

    def __init__(self, message: str, *, details: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


@dataclass(frozen=True)
class ContextIssue:
    field: str
    kind: str  # "MissingRequiredField" | "InvalidFieldType"
    message: str

    def as_dict(self) -> dict[str, str]:
        return {"field": self.field, "type": self.kind, "message": self.message}


class ContextValidationError(StockDeskError):
    status_code = 422
    code = "validation_error"

    def __init__(self, category: str, issues: list[ContextIssue]):
        fields = ", ".join(issue.field for issue in issues)
        super().__init__(
            f"Context is not valid for category {category}: {fields}",
            details=[issue.as_dict() for issue in issues],
        )
        self.category = category
        self.issues = issues


class DuplicateSerialNumberError(StockDeskError):
    status_code = 409
    code = "duplicate_serial_number"

    def __init__(self, serial_number: str):
        super().__init__(f"Serial number '{serial_number}' already exists")
        self.serial_number = serial_number


class NotFoundError(StockDeskError):
    status_code = 404
    code = "not_found"
    entity = "Resource"

    def __init__(self, identifier: str):
        super().__init__(f"{self.entity} not found: {identifier}")
        self.identifier = identifier


class SerialNotFoundError(NotFoundError):
    code = "serial_not_found"
    entity = "Serial"


class BillNotFoundError(NotFoundError):
    entity = "Bill"


class PartNotFoundError(NotFoundError):
    entity = "Part"


class SupplierNotFoundError(NotFoundError):
    entity = "Supplier"


class CustomerNotFoundError(NotFoundError):
    entity = "Customer"


class ReferentialIntegrityError(StockDeskError):
    status_code = 409
    code = "referential_error"


class DuplicateVoucherNumberError(StockDeskError):
    status_code = 409
    code = "duplicate_voucher_number"

    def __init__(self, voucher_number: str):
        super().__init__(f"Voucher number '{voucher_number}' already exists")
        self.voucher_number = voucher_number


class DuplicatePartCodeError(StockDeskError):
    status_code = 409
    code = "duplicate_part_code"

    def __init__(self, code: str):
        super().__init__(f"Part code '{code}' already exists")
        self.part_code = code


class DuplicateSupplierError(StockDeskError):
    status_code = 409
    code = "duplicate_supplier"


class NotChargeableError(StockDeskError):
    code = "not_chargeable"


class SpreadsheetParseError(StockDeskError):
    code = "parse_error"


class TransactionError(StockDeskError):
    status_code = 503
    code = "transaction_error"


class InvalidSerialNumberError(StockDeskError):
    status_code = 422
    code = "invalid_serial_number"


class BatchTooLargeError(StockDeskError):
    status_code = 422
    code = "batch_too_large"

    def __init__(self, size: int, limit: int):
        super().__init__(f"Batch of {size} items exceeds the limit of {limit}")
        self.size = size
        self.limit = limit


class StorageError(StockDeskError):
    status_code = 422
    code = "storage_error"
