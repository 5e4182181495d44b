"""Exception taxonomy for NoteVault.

Every failure that crosses a component boundary is one of these types so the
webhook layer can turn it into a specific user-facing message:

    NoteVaultError
    ├── ConfigurationError      missing credentials / settings (fatal)
    ├── SessionStoreError       session persistence read/write failed
    ├── RecordStoreError        record/user persistence read/write failed
    ├── ValidationFailure       recoverable bad input
    │   ├── RecordNotFoundError
    │   ├── PermissionDeniedError
    │   └── AccessDeniedError
    └── TransferError           attachment could not be moved to storage
        ├── FetchError          chat platform / network side
        └── StorageWriteError   object store side
"""


class NoteVaultError(Exception):
    """Base class for all NoteVault errors."""


class ConfigurationError(NoteVaultError):
    """Required configuration is missing or invalid."""


class SessionStoreError(NoteVaultError):
    """The session store could not be read or written."""


class RecordStoreError(NoteVaultError):
    """The record store could not be read or written."""


class ValidationFailure(NoteVaultError):
    """Input was rejected; the user can correct it and retry."""


class RecordNotFoundError(ValidationFailure):
    """The referenced record does not exist (any more)."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Record {record_id} not found")
        self.record_id = record_id


class PermissionDeniedError(ValidationFailure):
    """The acting user may not perform this operation."""


class AccessDeniedError(ValidationFailure):
    """A consumer may not open this record (revoked, or never started the bot)."""


class TransferError(NoteVaultError):
    """Moving an attachment into object storage failed."""


class FetchError(TransferError):
    """The attachment could not be retrieved from the chat platform."""


class StorageWriteError(TransferError):
    """The object store rejected a write, copy or ACL change."""
