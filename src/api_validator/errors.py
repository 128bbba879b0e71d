"""Error types raised by the validation pipeline.

Every error carries a human-readable ``message``. Resolution-time errors
abort the whole pipeline; per-probe errors are turned into inconclusive
results by the executor and never abort a run.
"""


class ValidatorError(Exception):
    """Base class for all api-validator errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class FetchError(ValidatorError):
    """The API document could not be fetched or parsed."""


class SchemaCycleError(ValidatorError):
    """A $ref chain revisits a reference it is already resolving."""

    def __init__(self, chain: list[str]):
        super().__init__("Reference cycle detected: " + " -> ".join(chain))
        self.chain = chain


class UnresolvedReferenceError(ValidatorError):
    """A $ref points outside the document or at a missing key."""

    def __init__(self, ref: str):
        super().__init__(f"Cannot resolve reference {ref!r}")
        self.ref = ref


class TransportError(ValidatorError):
    """The network call of a probe failed (timeout, refused, DNS...)."""


class UnexpectedStatusError(ValidatorError):
    """A probe got a status code the classification table does not cover."""

    def __init__(self, status_code: int):
        super().__init__(f"Unexpected response ({status_code})")
        self.status_code = status_code


class RunInProgressError(ValidatorError):
    """A run was started on a controller that is already running."""


class StorageError(ValidatorError):
    """A file in the data directory is not valid JSON."""
