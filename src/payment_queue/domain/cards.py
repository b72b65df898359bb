"""
Card number classification.

A card number is accepted as valid when three checks agree:

  1. **Network prefix** (IIN/BIN range) identifies the card network.
  2. **Length** is one the network actually issues.
  3. **Luhn checksum** passes.

Spaces and hyphens are treated as separators and stripped before any check,
so "4111 1111 1111 1111" and "4111111111111111" classify identically.

This module is pure: no I/O, no clock, no randomness.
"""

from payment_queue.domain.models import CardType, CardValidationResult

# (network, inclusive prefix ranges, allowed lengths). Order matters only where
# ranges overlap, which they do not for the networks listed here.
NETWORK_RULES: tuple[tuple[CardType, tuple[tuple[int, int], ...], frozenset[int]], ...] = (
    (CardType.AMEX, ((34, 34), (37, 37)), frozenset({15})),
    (CardType.VISA, ((4, 4),), frozenset({13, 16, 19})),
    (CardType.MASTERCARD, ((51, 55), (2221, 2720)), frozenset({16})),
    (
        CardType.DISCOVER,
        ((6011, 6011), (644, 649), (65, 65), (622126, 622925)),
        frozenset({16, 17, 18, 19}),
    ),
)

SEPARATORS = " -"


def normalize_number(number: str) -> str:
    """Strip separators from a card number."""
    return "".join(ch for ch in number if ch not in SEPARATORS)


def luhn_checksum_ok(digits: str) -> bool:
    total = 0
    for i, ch in enumerate(reversed(digits)):
        digit = int(ch)
        if i % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def detect_network(digits: str) -> tuple[CardType, frozenset[int]]:
    """Return the network whose prefix range matches, and its allowed lengths."""
    for card_type, ranges, lengths in NETWORK_RULES:
        for low, high in ranges:
            width = len(str(low))
            if len(digits) < width:
                continue
            if low <= int(digits[:width]) <= high:
                return card_type, lengths
    return CardType.UNKNOWN, frozenset()


def validate_card(number: str) -> CardValidationResult:
    """Classify a card number.

    Returns:
        CardValidationResult with `card_type` INVALID for empty or non-digit
        input, UNKNOWN when no network prefix matches, and the network
        otherwise. `is_valid` is True only for a known network with an
        allowed length and a passing Luhn checksum.
    """
    digits = normalize_number(number)
    if not digits or not digits.isascii() or not digits.isdigit():
        return CardValidationResult(card_type=CardType.INVALID, is_valid=False)

    card_type, lengths = detect_network(digits)
    if card_type is CardType.UNKNOWN:
        return CardValidationResult(card_type=card_type, is_valid=False)

    is_valid = len(digits) in lengths and luhn_checksum_ok(digits)
    return CardValidationResult(card_type=card_type, is_valid=is_valid)


def last_four_digits(number: str) -> str:
    return normalize_number(number)[-4:]
