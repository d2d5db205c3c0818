"""
Pipeline error types.

Transport errors live with the HTTP client (core.http); the errors here
cover validation, persistence concurrency and run coordination.
"""


class SchemaError(ValueError):
    """Raised when an upstream payload is structurally invalid."""

    def __init__(self, payload_type: str, message: str):
        super().__init__(f"Invalid {payload_type} payload: {message}")
        self.payload_type = payload_type


class StaleStatError(RuntimeError):
    """Raised when a stat row keeps changing under an optimistic update."""

    def __init__(self, table: str, key: str, attempts: int):
        super().__init__(f"{table} row {key} changed concurrently {attempts} times")
        self.table = table
        self.key = key
        self.attempts = attempts


class RunLockedError(RuntimeError):
    """Raised when another run of the same kind holds the sync lock."""

    def __init__(self, kind: str, holder: str | None = None):
        message = f"A {kind} sync is already running"
        if holder:
            message += f" (holder {holder})"
        super().__init__(message)
        self.kind = kind
        self.holder = holder
