"""Tests for card number classification."""

import pytest

from payment_queue.domain.cards import (
    last_four_digits,
    luhn_checksum_ok,
    normalize_number,
    validate_card,
)
from payment_queue.domain.models import CardType


class TestLuhn:
    @pytest.mark.parametrize("digits", ["4111111111111111", "378282246310005", "79927398713"])
    def test_valid_checksums(self, digits: str) -> None:
        assert luhn_checksum_ok(digits)

    @pytest.mark.parametrize("digits", ["4111111111111112", "79927398710"])
    def test_invalid_checksums(self, digits: str) -> None:
        assert not luhn_checksum_ok(digits)


class TestValidateCard:
    @pytest.mark.parametrize(
        ("number", "card_type"),
        [
            ("4111111111111111", CardType.VISA),
            ("4222222222222", CardType.VISA),
            ("5555555555554444", CardType.MASTERCARD),
            ("2223003122003222", CardType.MASTERCARD),
            ("378282246310005", CardType.AMEX),
            ("6011111111111117", CardType.DISCOVER),
        ],
    )
    def test_known_networks_are_valid(self, number: str, card_type: CardType) -> None:
        result = validate_card(number)

        assert result.card_type == card_type
        assert result.is_valid is True

    def test_bad_checksum_keeps_network_but_is_invalid(self) -> None:
        result = validate_card("4111111111111112")

        assert result.card_type == CardType.VISA
        assert result.is_valid is False

    def test_wrong_length_for_network_is_invalid(self) -> None:
        # 15 digits starting with 4: visa prefix, but not an issued visa length
        result = validate_card("411111111111116")

        assert result.card_type == CardType.VISA
        assert result.is_valid is False

    def test_unmatched_prefix_is_unknown(self) -> None:
        result = validate_card("1234567812345670")

        assert result.card_type == CardType.UNKNOWN
        assert result.is_valid is False

    @pytest.mark.parametrize("number", ["", "   ", "4111abcd11111111", "４１１１１１１１１１１１１１１１"])
    def test_non_digit_input_is_invalid(self, number: str) -> None:
        result = validate_card(number)

        assert result.card_type == CardType.INVALID
        assert result.is_valid is False

    @pytest.mark.parametrize("number", ["4111 1111 1111 1111", "4111-1111-1111-1111"])
    def test_separators_do_not_change_the_result(self, number: str) -> None:
        assert validate_card(number) == validate_card("4111111111111111")


class TestLastFourDigits:
    def test_plain_number(self) -> None:
        assert last_four_digits("5555555555554444") == "4444"

    def test_separators_are_ignored(self) -> None:
        assert last_four_digits("3782-822463-10005") == "0005"
        assert normalize_number("3782 822463 10005") == "378282246310005"
