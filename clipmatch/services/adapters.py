"""Source adapters: normalize stored rows from each source into one record shape."""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

from clipmatch.config import Settings, settings
from clipmatch.models import Side, SourceTransaction
from clipmatch.services.errors import ConfigurationError, ValidationError


def normalize_phone(raw: Any) -> str | None:
    """Normalize a phone number to 11 digits starting with 7."""
    if raw is None:
        return None
    digits = re.sub(r"\D", "", str(raw))
    if len(digits) == 10:
        digits = "7" + digits
    if len(digits) == 11 and digits.startswith("8"):
        digits = "7" + digits[1:]
    return digits if len(digits) == 11 else None


@dataclass(frozen=True)
class SourceSchema:
    """Declared shape of a source's stored rows.

    amount_path / settlement_path / key_path are paths inside ``payload``;
    the value at key_path may be a single key or a list of keys.
    a missing amount_path means the flat ``amount`` column is the match amount.
    When no settlement location is declared the match amount is reused.
    """

    name: str
    side: Side
    amount_path: tuple[str, ...] | None = None
    settlement_path: tuple[str, ...] | None = None
    settlement_from_column: bool = False
    key_path: tuple[str, ...] | None = None
    key_normalizer: Callable[[Any], str | None] | None = None


SOURCE_SCHEMAS: dict[str, SourceSchema] = {
    # IDEX keeps both amounts nested per currency code: RUB (643) for matching,
    # USDT (000001) as the settled value.
    "idex": SourceSchema(
        name="idex",
        side=Side.A,
        amount_path=("amount", "trader", "643"),
        settlement_path=("total", "trader", "000001"),
    ),
    "bybit": SourceSchema(
        name="bybit",
        side=Side.B,
        amount_path=("total_price",),
        settlement_from_column=True,
    ),
    "vires": SourceSchema(
        name="vires",
        side=Side.A,
        amount_path=("sum_rub",),
        settlement_from_column=True,
        key_path=("card",),
        key_normalizer=normalize_phone,
    ),
    "bybit_order": SourceSchema(
        name="bybit_order",
        side=Side.B,
        amount_path=("total_price",),
        settlement_from_column=True,
        # a single phone or the list of phones the buyer gave
        key_path=("phone",),
        key_normalizer=normalize_phone,
    ),
    "ledger": SourceSchema(name="ledger", side=Side.A),
    "counterparty": SourceSchema(name="counterparty", side=Side.B),
}


@dataclass(frozen=True)
class NormalizedTransaction:
    """Common record consumed by the matcher.

    ``occurred_at`` is already on the report clock.
    """

    id: int
    side: Side
    source: str
    account_id: int
    occurred_at: datetime
    amount: Decimal
    settlement_amount: Decimal
    match_keys: frozenset[str] = frozenset()
    raw: Any = field(default=None, compare=False, repr=False)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_decimal(value: Any, *, where: str) -> Decimal:
    """Convert a stored value to a finite Decimal or raise ValidationError."""
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{where}: amount is missing")
    try:
        result = Decimal(str(value).strip()) if not isinstance(value, Decimal) else value
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"{where}: amount {value!r} is not numeric") from exc
    if not result.is_finite():
        raise ValidationError(f"{where}: amount {value!r} is not finite")
    return result


def _decode(node: Any, *, where: str) -> Any:
    if isinstance(node, str):
        try:
            return json.loads(node)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"{where}: payload is not valid JSON") from exc
    return node


def extract_path(payload: Any, path: tuple[str, ...], *, where: str) -> Any:
    """Walk ``path`` through a payload, decoding JSON-encoded levels on the way."""
    node = _decode(payload, where=where)
    for depth, key in enumerate(path):
        node = _decode(node, where=where)
        if not isinstance(node, dict) or key not in node:
            missing = ".".join(path[: depth + 1])
            raise ValidationError(f"{where}: payload has no '{missing}'")
        node = node[key]
    return node


class SourceAdapter:
    """Normalizes rows of one source and converts between storage and report clocks."""

    def __init__(self, schema: SourceSchema, clock_offset: timedelta = timedelta(0)):
        self.schema = schema
        self.clock_offset = clock_offset

    @property
    def name(self) -> str:
        return self.schema.name

    @property
    def side(self) -> Side:
        return self.schema.side

    def to_report_clock(self, stored: datetime) -> datetime:
        return ensure_utc(stored) + self.clock_offset

    def to_storage_clock(self, reference: datetime) -> datetime:
        return ensure_utc(reference) - self.clock_offset

    def _where(self, row: SourceTransaction) -> str:
        return f"{self.schema.name} transaction {row.id}"

    def match_amount(self, row: SourceTransaction) -> Decimal:
        where = self._where(row)
        if self.schema.amount_path is None:
            return to_decimal(row.amount, where=where)
        return to_decimal(extract_path(row.payload, self.schema.amount_path, where=where), where=where)

    def settlement_amount(self, row: SourceTransaction) -> Decimal:
        where = self._where(row)
        if self.schema.settlement_from_column:
            return to_decimal(row.amount, where=where)
        if self.schema.settlement_path is not None:
            return to_decimal(extract_path(row.payload, self.schema.settlement_path, where=where), where=where)
        return self.match_amount(row)

    def match_keys(self, row: SourceTransaction) -> frozenset[str]:
        """Normalized keys of a row; a list at the key path yields one key per entry."""
        if self.schema.key_path is None:
            return frozenset()
        try:
            raw = extract_path(row.payload, self.schema.key_path, where=self._where(row))
        except ValidationError:
            return frozenset()
        normalizer = self.schema.key_normalizer or (lambda v: str(v) if v is not None else None)
        values = raw if isinstance(raw, list) else [raw]
        return frozenset(key for key in map(normalizer, values) if key)

    def normalize(self, row: SourceTransaction) -> NormalizedTransaction:
        """Build the common record; raises ValidationError on unreadable amounts."""
        if row.source != self.schema.name:
            raise ValidationError(f"{self._where(row)}: stored source is '{row.source}'")
        return NormalizedTransaction(
            id=row.id,
            side=self.schema.side,
            source=self.schema.name,
            account_id=row.account_id,
            occurred_at=self.to_report_clock(row.occurred_at),
            amount=self.match_amount(row),
            settlement_amount=self.settlement_amount(row),
            match_keys=self.match_keys(row),
            raw=row,
        )


def build_adapter(source: str, config: Settings | None = None) -> SourceAdapter:
    """Create the adapter for a registered source with its configured clock offset."""
    schema = SOURCE_SCHEMAS.get(source)
    if schema is None:
        raise ConfigurationError(f"Unknown transaction source '{source}'")
    cfg = config or settings
    return SourceAdapter(schema, cfg.clock_offset_for(source))
