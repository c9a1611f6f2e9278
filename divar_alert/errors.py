"""
Error Types
===========

- ValidationError: bad user input; carries a message safe to show the user
- NotActiveError: free text arrived while no conversation is running
- StorageError: key-value transaction or (de)serialization failure
- SourceError: listing fetch failed (transport, status, parse)
- DeliveryError: notification could not be delivered
"""


class DivarAlertError(Exception):
    """Base class for all bot errors."""


class ValidationError(DivarAlertError):
    """Input rejected. str(err) is the user-facing (localized) message."""


class NotActiveError(ValidationError):
    """No conversation is active for the owner."""


class StorageError(DivarAlertError):
    """Persistent store failure."""


class SourceError(DivarAlertError):
    """Listing source failure."""


class DeliveryError(DivarAlertError):
    """Notification sink failure."""
