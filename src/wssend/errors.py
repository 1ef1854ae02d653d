from __future__ import annotations


class TransferError(Exception):
    pass


class TransferTimeout(TransferError):
    pass


class TransferCancelled(TransferError):
    pass


class FileLoadError(TransferError):
    pass


class TransferAborted(TransferError):
    """Raised inside the writer when the progress callback asks to stop."""
