"""Normalization of persisted money, timestamp and legacy status values.

Records in the database were written by several generations of the
application, so the same field can arrive as a native datetime, an epoch
number, an ISO string or a wrapper object exposing ``to_date()``. Everything
is normalized here, at the ingestion boundary, so business logic only ever
sees timezone-aware ``datetime`` and ``Decimal`` values.
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Protocol

from src.models.enums import PaymentStatus, PaymentType

logger = logging.getLogger(__name__)

# Epoch values above this are milliseconds (JS Date convention), below it seconds
EPOCH_MILLIS_THRESHOLD = 10**11

MONEY_QUANTUM = Decimal("0.01")
ZERO = Decimal("0")


class TimestampKind(str, Enum):
    """Shapes a persisted timestamp can take."""

    NATIVE = "native"
    EPOCH = "epoch"
    ISO_STRING = "iso_string"
    WRAPPER = "wrapper"
    MISSING = "missing"
    UNKNOWN = "unknown"


def utcnow() -> datetime:
    """Current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _wrapper_converter(value: Any) -> Any:
    for name in ("to_date", "toDate", "to_datetime"):
        converter = getattr(value, name, None)
        if callable(converter):
            return converter
    return None


def classify_timestamp(value: Any) -> TimestampKind:
    """Tag a raw timestamp value with its representation.

    Args:
        value: Raw value read from the database.

    Returns:
        TimestampKind: The detected representation.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return TimestampKind.MISSING
    if isinstance(value, bool):
        return TimestampKind.UNKNOWN
    if isinstance(value, (datetime, date)):
        return TimestampKind.NATIVE
    if isinstance(value, (int, float, Decimal)):
        return TimestampKind.EPOCH
    if isinstance(value, str):
        return TimestampKind.ISO_STRING
    if isinstance(value, Mapping):
        if "seconds" in value or "_seconds" in value:
            return TimestampKind.WRAPPER
        return TimestampKind.UNKNOWN
    if _wrapper_converter(value) is not None:
        return TimestampKind.WRAPPER
    return TimestampKind.UNKNOWN


def _from_native(value: date) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


def _from_epoch(value: float | int | Decimal) -> datetime:
    number = float(value)
    if abs(number) > EPOCH_MILLIS_THRESHOLD:
        number = number / 1000
    return datetime.fromtimestamp(number, tz=timezone.utc)


def _from_string(value: str) -> datetime:
    text = value.strip()
    try:
        return _from_epoch(Decimal(text))
    except InvalidOperation:
        pass
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return _from_native(datetime.fromisoformat(text))


def _from_wrapper(value: Any) -> datetime:
    if isinstance(value, Mapping):
        seconds = value.get("seconds", value.get("_seconds", 0))
        nanos = value.get("nanoseconds", value.get("_nanoseconds", 0)) or 0
        return datetime.fromtimestamp(float(seconds) + float(nanos) / 1e9, tz=timezone.utc)
    try:
        converted = _wrapper_converter(value)()
    except Exception as e:
        raise TypeError(f"Timestamp wrapper conversion failed: {e!r}") from e
    if isinstance(converted, (datetime, date)):
        return _from_native(converted)
    if classify_timestamp(converted) in (TimestampKind.EPOCH, TimestampKind.ISO_STRING):
        return normalize_timestamp(converted)
    raise TypeError(f"Timestamp wrapper returned {type(converted).__name__}")


def normalize_timestamp(value: Any, now: datetime | None = None) -> datetime:
    """Convert any persisted timestamp representation to an aware UTC datetime.

    Unparseable or missing input fails soft: the current instant is returned
    and a warning is logged, so display paths never crash on bad data.

    Args:
        value: Raw value read from the database.
        now: Instant to fall back to (defaults to the current time).

    Returns:
        datetime: Timezone-aware UTC datetime.
    """
    kind = classify_timestamp(value)
    try:
        if kind == TimestampKind.NATIVE:
            return _from_native(value)
        if kind == TimestampKind.EPOCH:
            return _from_epoch(value)
        if kind == TimestampKind.ISO_STRING:
            return _from_string(value)
        if kind == TimestampKind.WRAPPER:
            return _from_wrapper(value)
    except (ValueError, TypeError, OverflowError, OSError, InvalidOperation) as e:
        logger.warning("Unparseable %s timestamp %r: %s", kind.value, value, e)
        return now or utcnow()

    if kind == TimestampKind.UNKNOWN:
        logger.warning("Unrecognized timestamp value %r", value)
    return now or utcnow()


def normalize_optional_timestamp(value: Any) -> datetime | None:
    """Like normalize_timestamp, but a missing value stays None."""
    if classify_timestamp(value) == TimestampKind.MISSING:
        return None
    return normalize_timestamp(value)


def to_decimal(value: Any) -> Decimal:
    """Coerce a persisted numeric value to Decimal.

    Floats go through their shortest repr so 0.1 stays 0.1 rather than the
    binary expansion. Missing or invalid values become zero.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        return Decimal(value)
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            logger.warning("Invalid money value %r treated as 0", value)
            return ZERO
    if not result.is_finite():
        logger.warning("Non-finite money value %r treated as 0", value)
        return ZERO
    return result


def quantize_money(value: Decimal) -> Decimal:
    """Round to 2 places. Only used at output boundaries, never while summing."""
    return to_decimal(value).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def resolve_payment_completion_state(status: PaymentStatus | str | None) -> PaymentStatus:
    """Resolve a payment's stored status for aggregation.

    Payments written before the status field existed carry no status; they
    were only ever recorded on completion, so a missing status counts as
    COMPLETED. Unrecognized values count as PENDING and are excluded from
    received totals.

    Args:
        status: The stored status value, possibly None.

    Returns:
        PaymentStatus: The definite status to aggregate with.
    """
    if status is None:
        return PaymentStatus.COMPLETED
    if isinstance(status, PaymentStatus):
        return status
    text = str(status).strip().upper()
    if not text:
        return PaymentStatus.COMPLETED
    try:
        return PaymentStatus(text)
    except ValueError:
        logger.warning("Unknown payment status %r treated as PENDING", status)
        return PaymentStatus.PENDING


class PaymentLike(Protocol):
    amount: Decimal
    status: PaymentStatus | str | None
    type: PaymentType | str | None


def counts_as_received(payment: PaymentLike) -> bool:
    """Whether a payment contributes to the money received for an order."""
    if resolve_payment_completion_state(payment.status) != PaymentStatus.COMPLETED:
        return False
    return str(getattr(payment.type, "value", payment.type)) != PaymentType.REFUND.value


def total_received(payments: Iterable[PaymentLike]) -> Decimal:
    """Sum completed, non-refund payment amounts without intermediate rounding."""
    return sum((to_decimal(p.amount) for p in payments if counts_as_received(p)), ZERO)


def normalize_features(value: Any) -> list[str]:
    """Normalize plan features to an ordered list of strings.

    Older plan documents stored features as a map keyed by position.
    """
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, Mapping):
        def _key(item: tuple[Any, Any]) -> tuple[int, Any]:
            key = str(item[0])
            return (0, int(key)) if key.isdigit() else (1, key)

        return [v for _, v in sorted(value.items(), key=_key) if isinstance(v, str)]
    if isinstance(value, Iterable):
        return [v for v in value if isinstance(v, str)]
    return []
