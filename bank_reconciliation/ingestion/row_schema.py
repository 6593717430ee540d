"""
Schema of a raw bank-statement row at the import boundary.
Every row is validated here before it can reach the transaction store.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..models import BankTransaction, Direction
from ..utils.text_similarity import normalize_text


DATE_PATTERNS = [
    (re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$"), "ymd"),   # YYYY-MM-DD
    (re.compile(r"^(\d{1,2})[/.-](\d{1,2})[/.-](\d{4})$"), "dmy"),  # DD/MM/YYYY, DD-MM-YYYY, DD.MM.YYYY
    (re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2})$"), "dmy2"),  # DD/MM/YY
]

DIRECTION_ALIASES = {
    "credit": Direction.CREDIT,
    "c": Direction.CREDIT,
    "cr": Direction.CREDIT,
    "in": Direction.CREDIT,
    "debit": Direction.DEBIT,
    "d": Direction.DEBIT,
    "db": Direction.DEBIT,
    "dr": Direction.DEBIT,
    "out": Direction.DEBIT,
}

_CURRENCY_NOISE = re.compile(r"[a-z]+", re.IGNORECASE)
_CENT = Decimal("0.01")


def parse_date(value: Any) -> date:
    """Parse a statement date in one of the unambiguous calendar formats."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if value is None or not str(value).strip():
        raise ValueError("missing date")

    text = str(value).strip()
    # Drop a time component such as '2024-03-10T00:00:00' or '10/03/2024 08:15'
    text = re.split(r"[T ]", text, maxsplit=1)[0]

    for pattern, layout in DATE_PATTERNS:
        match = pattern.match(text)
        if not match:
            continue
        a, b, c = (int(g) for g in match.groups())
        if layout == "ymd":
            year, month, day = a, b, c
        elif layout == "dmy":
            day, month, year = a, b, c
        else:
            day, month = a, b
            year = 2000 + c if c < 50 else 1900 + c
        try:
            return date(year, month, day)
        except ValueError:
            raise ValueError(f"invalid calendar date: {value!r}")

    raise ValueError(f"unrecognised date format: {value!r}")


def parse_amount(value: Any) -> Tuple[int, bool]:
    """
    Parse a statement amount into (absolute cents, is_negative).

    Accepts numbers and strings such as '15 000,00', '1.234,56', '-250.00',
    '(250,00)' or '1 200,50 MAD'. A lone separator followed by exactly three
    digits ('1.234', '1,234') is rejected since it could be either one.
    """
    if isinstance(value, bool):
        raise ValueError("amount must be a number")
    if isinstance(value, (int, float, Decimal)):
        try:
            number = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"unparseable amount: {value!r}")
        if not number.is_finite():
            raise ValueError(f"unparseable amount: {value!r}")
        cents = int((abs(number) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        return cents, number < 0

    if value is None or not str(value).strip():
        raise ValueError("missing amount")

    text = str(value).strip()
    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]

    text = text.replace("\u00a0", "").replace("\u202f", "").replace(" ", "").replace("'", "")
    text = _CURRENCY_NOISE.sub("", text)

    if text.startswith("-"):
        negative = True
        text = text[1:]
    elif text.endswith("-"):
        negative = True
        text = text[:-1]
    elif text.startswith("+"):
        text = text[1:]

    text = _normalize_separators(text)
    if not re.fullmatch(r"\d+(\.\d+)?", text):
        raise ValueError(f"unparseable amount: {value!r}")

    number = Decimal(text)
    cents = int((number / _CENT).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return cents, negative


def _normalize_separators(text: str) -> str:
    """Rewrite thousands/decimal separators to a plain '1234.56' form."""
    if "," in text and "." in text:
        # Whichever separator comes last is the decimal one
        if text.rfind(",") > text.rfind("."):
            return text.replace(".", "").replace(",", ".")
        return text.replace(",", "")

    for separator in (",", "."):
        count = text.count(separator)
        if count == 0:
            continue
        head, _, tail = text.rpartition(separator)
        if count == 1:
            # "1,234" / "1.234" reads as either 1234 or 1.234
            if len(tail) == 3:
                raise ValueError(f"ambiguous amount separator: {text!r}")
            return f"{head}.{tail}"
        if len(tail) == 3:
            return text.replace(separator, "")
        return head.replace(separator, "") + "." + tail

    return text


def parse_direction(value: Any) -> Optional[Direction]:
    if value is None or isinstance(value, Direction):
        return value
    key = normalize_text(str(value))
    if not key:
        return None
    if key not in DIRECTION_ALIASES:
        raise ValueError(f"unknown direction: {value!r}")
    return DIRECTION_ALIASES[key]


class RawTransactionRow(BaseModel):
    """One row of the raw import format: {date, label, amount, bank_reference?, direction?}."""

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    transaction_date: date = Field(alias="date")
    label: str = Field(min_length=1)
    amount_cents: int = Field(alias="amount")  # Signed as written in the statement
    bank_reference: Optional[str] = None
    direction: Optional[Direction] = None
    value_date: Optional[date] = None

    @field_validator("amount_cents", mode="before")
    @classmethod
    def _parse_amount(cls, value: Any) -> int:
        cents, negative = parse_amount(value)
        return -cents if negative else cents

    @field_validator("transaction_date", mode="before")
    @classmethod
    def _parse_transaction_date(cls, value: Any) -> date:
        return parse_date(value)

    @field_validator("value_date", mode="before")
    @classmethod
    def _parse_value_date(cls, value: Any) -> Optional[date]:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return parse_date(value)

    @field_validator("label", mode="before")
    @classmethod
    def _require_label(cls, value: Any) -> Any:
        if value is None or not str(value).strip():
            raise ValueError("missing label")
        return str(value)

    @field_validator("bank_reference", mode="before")
    @classmethod
    def _blank_reference_is_none(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("direction", mode="before")
    @classmethod
    def _parse_direction(cls, value: Any) -> Optional[Direction]:
        return parse_direction(value)

    @property
    def resolved_direction(self) -> Direction:
        if self.direction is not None:
            return self.direction
        return Direction.DEBIT if self.amount_cents < 0 else Direction.CREDIT

    @property
    def signed_cents(self) -> int:
        """Signed amount: an explicit direction wins over the amount's own sign."""
        magnitude = abs(self.amount_cents)
        return -magnitude if self.resolved_direction == Direction.DEBIT else magnitude

    def to_transaction(self, currency: str) -> BankTransaction:
        return BankTransaction(
            transaction_date=self.transaction_date,
            value_date=self.value_date,
            label=self.label,
            bank_reference=self.bank_reference,
            amount_cents=self.signed_cents,
            currency=currency,
            direction=self.resolved_direction,
        )


def describe_validation_error(error: ValidationError) -> str:
    """Flatten a pydantic error into a one-line rejection reason."""
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item.get("loc", ())) or "row"
        message = item.get("msg", "invalid value")
        parts.append(f"{location}: {message}")
    return "; ".join(parts)
