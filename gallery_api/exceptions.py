"""
Exceptions raised by the access engine.

Expected access outcomes (not found, expired, password required, ...) are
returned as ``Denial`` values by the grant resolver, never raised. The
classes below cover the cases a caller cannot treat as a normal answer.
"""


class GalleryAccessError(Exception):
    """Base class for access engine errors."""


class StorageConflict(GalleryAccessError):
    """Transient storage failure (lock, timeout). The whole resolution may be retried."""


class ConfigurationError(GalleryAccessError):
    """Fatal misconfiguration, e.g. token generation keeps colliding."""


class LedgerInvariantError(GalleryAccessError):
    """A usage counter ended up in a state the ledger must never produce."""


class InvitationNotLive(GalleryAccessError):
    """The invitation is expired or revoked and can no longer be changed or resent."""
