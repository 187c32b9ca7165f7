class BulkTransferError(Exception):
    """Base class for every error raised by the bulk transfer core."""


class WalletConnectionError(BulkTransferError):
    """No signing identity is available, or the operator is not connected."""


class QueryError(BulkTransferError):
    """A balance or URI read against the token contract failed."""


class MetadataUnavailable(BulkTransferError):
    """Token metadata could not be fetched or parsed. Never shown to the operator."""


class EmptyRecipientList(BulkTransferError):
    def __init__(self, message: str = "Please provide at least one recipient address"):
        super().__init__(message)


class InvalidAmount(BulkTransferError, ValueError):
    def __init__(self, amount):
        self.amount = amount
        super().__init__(f"Amount per recipient must be a positive integer, got {amount!r}")


class InsufficientBalance(BulkTransferError):
    def __init__(self, balance: int, required: int):
        self.balance = balance
        self.required = required
        super().__init__(
            f"Not enough tokens. You have {balance} tokens but trying to send {required}"
        )


class BatchFailure(BulkTransferError):
    """A transaction inside a batch failed to submit or to confirm."""

    def __init__(self, batch_index: int, reason: str):
        self.batch_index = batch_index
        self.reason = reason
        super().__init__(f"Batch {batch_index} failed: {reason}")


class SessionInProgress(BulkTransferError):
    def __init__(self, message: str = "A transfer session is already running for this account"):
        super().__init__(message)
