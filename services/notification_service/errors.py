class PublicError(Exception):
    """Rejected request the caller is expected to handle (surfaced as-is by the API)."""

    FINE_PENDING = "FINE_PENDING"
    LOAN_ALREADY_ACTIVE = "LOAN_ALREADY_ACTIVE"

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


class PrivateError(Exception):
    """Missing record or broken invariant inside the service."""

    LOAN_NOT_FOUND = "LOAN_NOT_FOUND"
    FINE_NOT_FOUND = "FINE_NOT_FOUND"

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code
