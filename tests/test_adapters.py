"""Tests for source adapters."""

import json
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from clipmatch.models import Side
from clipmatch.services.adapters import (
    SOURCE_SCHEMAS,
    SourceAdapter,
    build_adapter,
    ensure_utc,
    extract_path,
    normalize_phone,
    to_decimal,
)
from clipmatch.services.errors import ConfigurationError, ValidationError
from tests.factories import (
    BASE_TIME,
    CounterpartyTransactionFactory,
    LedgerTransactionFactory,
    idex_payload,
)


class TestNormalizePhone:
    def test_ten_digits_get_country_code(self) -> None:
        assert normalize_phone("9161234567") == "79161234567"

    def test_leading_eight_becomes_seven(self) -> None:
        assert normalize_phone("8 (916) 123-45-67") == "79161234567"

    def test_formatted_international_number(self) -> None:
        assert normalize_phone("+7 916 123 45 67") == "79161234567"

    def test_wrong_length_has_no_key(self) -> None:
        assert normalize_phone("12345") is None
        assert normalize_phone(None) is None


class TestToDecimal:
    def test_accepts_strings_and_numbers(self) -> None:
        assert to_decimal("100.50", where="t") == Decimal("100.50")
        assert to_decimal(7, where="t") == Decimal("7")

    @pytest.mark.parametrize("value", [None, True, "abc", "NaN", "Infinity"])
    def test_rejects_unusable_values(self, value) -> None:
        with pytest.raises(ValidationError):
            to_decimal(value, where="t")


def test_extract_path_walks_json_encoded_levels() -> None:
    payload = json.dumps({"amount": json.dumps({"trader": {"643": "10.5"}})})
    assert extract_path(payload, ("amount", "trader", "643"), where="t") == "10.5"


def test_extract_path_names_missing_key() -> None:
    with pytest.raises(ValidationError, match="amount.trader"):
        extract_path({"amount": {}}, ("amount", "trader", "643"), where="idex transaction 3")


def test_extract_path_rejects_invalid_json() -> None:
    with pytest.raises(ValidationError, match="not valid JSON"):
        extract_path("{not json", ("amount",), where="t")


def test_ensure_utc_treats_naive_as_utc() -> None:
    naive = datetime(2024, 1, 1, 12, 0)
    assert ensure_utc(naive) == datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


class TestSourceAdapter:
    def test_idex_reads_nested_amounts(self) -> None:
        row = LedgerTransactionFactory.build(
            id=11, source="idex", amount=None, payload=idex_payload("9500.00", "101.25")
        )
        txn = build_adapter("idex").normalize(row)

        assert txn.side is Side.A
        assert txn.amount == Decimal("9500.00")
        assert txn.settlement_amount == Decimal("101.25")
        assert txn.occurred_at == BASE_TIME

    def test_idex_missing_amount_raises_instead_of_zero(self) -> None:
        row = LedgerTransactionFactory.build(id=12, source="idex", amount=None, payload={"total": {}})
        with pytest.raises(ValidationError, match="idex transaction 12"):
            build_adapter("idex").normalize(row)

    def test_bybit_uses_total_price_and_flat_amount(self) -> None:
        row = CounterpartyTransactionFactory.build(
            id=21, source="bybit", amount=Decimal("100.00"), payload={"total_price": "9500.00"}
        )
        adapter = SourceAdapter(SOURCE_SCHEMAS["bybit"], timedelta(minutes=180))
        txn = adapter.normalize(row)

        assert txn.amount == Decimal("9500.00")
        assert txn.settlement_amount == Decimal("100.00")
        assert txn.occurred_at == BASE_TIME + timedelta(hours=3)

    def test_storage_clock_is_inverse_of_report_clock(self) -> None:
        adapter = SourceAdapter(SOURCE_SCHEMAS["bybit"], timedelta(minutes=180))
        assert adapter.to_storage_clock(adapter.to_report_clock(BASE_TIME)) == BASE_TIME

    def test_vires_match_key_is_normalized_phone(self) -> None:
        row = LedgerTransactionFactory.build(
            id=31,
            source="vires",
            amount=Decimal("-50.00"),
            payload={"sum_rub": "4750.00", "card": "8 916 123-45-67"},
        )
        txn = build_adapter("vires").normalize(row)
        assert txn.match_keys == frozenset({"79161234567"})
        assert txn.settlement_amount == Decimal("-50.00")

    def test_order_phone_list_gives_one_key_per_phone(self) -> None:
        row = CounterpartyTransactionFactory.build(
            id=42,
            source="bybit_order",
            amount=Decimal("50"),
            payload={"total_price": "4750", "phone": ["79990000000", "+7 916 123 45 67", "12"]},
        )
        assert build_adapter("bybit_order").normalize(row).match_keys == frozenset(
            {"79990000000", "79161234567"}
        )

    def test_missing_key_field_means_no_key(self) -> None:
        row = CounterpartyTransactionFactory.build(
            id=41, source="bybit_order", amount=Decimal("50"), payload={"total_price": "4750"}
        )
        assert build_adapter("bybit_order").normalize(row).match_keys == frozenset()

    def test_source_mismatch_is_rejected(self) -> None:
        row = LedgerTransactionFactory.build(id=51, source="ledger")
        with pytest.raises(ValidationError, match="stored source is 'ledger'"):
            build_adapter("idex").normalize(row)

    def test_flat_source_uses_amount_column(self) -> None:
        row = LedgerTransactionFactory.build(id=61, amount=Decimal("42.42"))
        txn = build_adapter("ledger").normalize(row)
        assert txn.amount == txn.settlement_amount == Decimal("42.42")


def test_build_adapter_applies_configured_offset(test_settings) -> None:
    assert build_adapter("bybit", test_settings).clock_offset == timedelta(minutes=180)
    assert build_adapter("idex", test_settings).clock_offset == timedelta(0)


def test_build_adapter_unknown_source() -> None:
    with pytest.raises(ConfigurationError, match="Unknown transaction source"):
        build_adapter("paypal")
