from stockdesk.schemas.common import ErrorOut


_ERROR_EXAMPLES: dict[int, tuple[str, str]] = {
    400: ("bad_request", "Bad request"),
    401: ("unauthorized", "X-Actor-Id header is required"),
    404: ("not_found", "Serial not found: 6f1c..."),
    409: ("duplicate_serial_number", "Serial number 'SN-0001' already exists"),
    413: ("payload_too_large", "Uploaded file is too large"),
    422: ("validation_error", "Validation failed"),
    500: ("internal_error", "Internal server error"),
    503: ("transaction_error", "Could not save changes, nothing was written"),
}


def error_responses(*status_codes: int) -> dict[int, dict]:
    responses: dict[int, dict] = {}
    for status_code in status_codes:
        code, message = _ERROR_EXAMPLES.get(status_code, ("http_error", "HTTP error"))
        responses[status_code] = {
            "model": ErrorOut,
            "description": message,
            "content": {
                "application/json": {
                    "example": {
                        "error": {
                            "code": code,
                            "message": message,
                            "request_id": "request-id",
                            "path": "/serials",
                            "details": None,
                        }
                    }
                }
            },
        }
    return responses
