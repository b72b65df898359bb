"""
Domain models for the payment charge processor.

All models use Pydantic v2 BaseModel for validation, serialization, and
deserialization. Queue messages arrive as JSON and are parsed straight into
these models; the Temporal surface transmits them as JSON payloads through the
pydantic_data_converter configured on both the client and the worker.

Enums inherit from (str, Enum) so they serialize as plain strings in JSON
(e.g. "visa" instead of {"value": "visa"}).
"""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CardType(str, Enum):
    """Card network derived from the card number."""

    VISA = "visa"
    MASTERCARD = "mastercard"
    AMEX = "amex"
    DISCOVER = "discover"
    UNKNOWN = "unknown"  # Digits only, but no network prefix matched
    INVALID = "invalid"  # Empty or contains non-digit characters


class ChargeStatus(str, Enum):
    """Terminal status of a charge submitted through ChargeWorkflow."""

    CHARGED = "CHARGED"    # Card accepted and the transaction was recorded
    REJECTED = "REJECTED"  # Card failed validation; never retried


# ── Charge request ───────────────────────────────────────────────────


class Money(BaseModel):
    """Amount in major units plus a nano remainder (google.type.Money layout)."""

    model_config = ConfigDict(frozen=True)

    units: int
    nanos: int = Field(default=0, ge=0, lt=1_000_000_000)
    currency_code: str = Field(..., pattern=r"^[A-Z]{3}$")  # ISO 4217


class CardDetails(BaseModel):
    """Card as supplied by the caller. Only the last four digits outlive a charge."""

    number: str
    expiration_month: int = Field(..., ge=1, le=12)
    expiration_year: int


class ChargeRequest(BaseModel):
    """A single charge to validate and record."""

    card: CardDetails
    amount: Money


# ── Validation / outcome ─────────────────────────────────────────────


class CardValidationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    card_type: CardType
    is_valid: bool


class TransactionOutcome(BaseModel):
    """Result of a successful charge. Handed to the persistence sink and the caller."""

    model_config = ConfigDict(frozen=True)

    transaction_id: UUID
    card_type: CardType
    last_four_digits: str = Field(..., min_length=4, max_length=4)
    amount: Money


class ChargeResult(BaseModel):
    """Final result returned by ChargeWorkflow to the client.

    Exactly one of `transaction` (CHARGED) or `reason` (REJECTED) is set.
    """

    status: ChargeStatus
    transaction: TransactionOutcome | None = None
    reason: str | None = None
    error_type: str | None = None  # Exception class name of the rejection


# ── Queue payloads ───────────────────────────────────────────────────
# The producer writes snake_case JSON bodies. These models mirror that wire
# shape and are converted into the domain ChargeRequest before processing.


class CreditCardPayload(BaseModel):
    credit_card_number: str
    credit_card_expiration_year: int
    credit_card_expiration_month: int


class ChargeMessage(BaseModel):
    """JSON body of a charge message on the queue."""

    credit_card: CreditCardPayload
    amount: Money

    def to_request(self) -> ChargeRequest:
        return ChargeRequest(
            card=CardDetails(
                number=self.credit_card.credit_card_number,
                expiration_month=self.credit_card.credit_card_expiration_month,
                expiration_year=self.credit_card.credit_card_expiration_year,
            ),
            amount=self.amount,
        )


class QueueMessage(BaseModel):
    """One delivery of a message, as returned by the transport.

    The consumer reads `body` and, on success, hands `receipt_handle` back to
    the transport to delete this delivery.
    """

    model_config = ConfigDict(frozen=True)

    message_id: str
    body: str
    receipt_handle: str
    receive_count: int = Field(default=1, ge=1)  # Deliveries so far, including this one
    attributes: dict[str, str] = Field(default_factory=dict)
