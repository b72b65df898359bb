"""Errors raised while charging cards and talking to the queue.

Exception hierarchy:
    PaymentError (base)
    ├── ChargeValidationError
    │   ├── InvalidCardError
    │   ├── UnsupportedNetworkError
    │   └── CardExpiredError
    ├── MalformedMessageError
    └── TransportError

Validation and malformed-message errors are per-message: the consumer logs
them and leaves the message for redelivery. TransportError on receive makes
the consumer back off and poll again.
"""


class PaymentError(Exception):
    """Base class for every error this package raises on purpose."""


class ChargeValidationError(PaymentError):
    """The charge was rejected. Retrying the same request cannot succeed."""


class InvalidCardError(ChargeValidationError):
    """Card number is malformed, of unknown network, or fails the Luhn check."""


class UnsupportedNetworkError(ChargeValidationError):
    """Card is valid but its network is not on the accepted list."""


class CardExpiredError(ChargeValidationError):
    """Card expiration month is before the current month."""


class MalformedMessageError(PaymentError):
    """Message body cannot be parsed into a charge request."""


class TransportError(PaymentError):
    """A receive, delete, or dead-letter call to the queue failed."""
