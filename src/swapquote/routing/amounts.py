"""Exact decimal-string helpers for on-chain amounts.

Amounts travel through the system as decimal strings. Every conversion here
works on Decimal or on digit strings so that no amount is ever rounded
through a float.
"""

from decimal import ROUND_DOWN, ROUND_FLOOR, Decimal, InvalidOperation, localcontext
from typing import Union

AmountLike = Union[str, int, Decimal]

# enough digits for uint256 amounts with 18+ decimals
_PRECISION = 200

# uint256 tops out near 1e77; anything beyond this is not an amount
MAX_EXPONENT = 80


def parse_amount(value: AmountLike) -> Decimal:
    """Parse a non-negative, finite decimal amount.

    Raises:
        ValueError: for floats, non-numeric strings, NaN/inf, negatives or absurd exponents
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError(f"Amounts must be decimal strings, got {type(value).__name__}")
    if isinstance(value, Decimal):
        amount = value
    else:
        text = str(value).strip()
        if not text:
            raise ValueError("Amount is empty")
        try:
            amount = Decimal(text)
        except InvalidOperation:
            raise ValueError(f"Amount is not numeric: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Amount is not finite: {value!r}")
    if amount < 0:
        raise ValueError(f"Amount is negative: {value!r}")
    if amount and not -MAX_EXPONENT <= amount.adjusted() <= MAX_EXPONENT:
        raise ValueError(f"Amount is out of range: {value!r}")
    return amount


def canonical_amount(value: AmountLike) -> str:
    """Canonical plain-notation string without insignificant zeros.

    >>> canonical_amount("1.500")
    '1.5'
    >>> canonical_amount("1e2")
    '100'
    """
    amount = parse_amount(value)
    if amount == 0:
        return "0"
    text = format(amount, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def fraction_digits(value: AmountLike) -> int:
    """Number of significant digits after the decimal point."""
    text = canonical_amount(value)
    if "." not in text:
        return 0
    return len(text.split(".", 1)[1])


def from_base_units(raw: Union[str, int], decimals: int) -> str:
    """Scale an integer base-unit amount (wei, lamports) to a decimal string."""
    text = str(raw).strip()
    if not text.isdigit():
        raise ValueError(f"Base-unit amount must be a non-negative integer: {raw!r}")
    if decimals == 0:
        return canonical_amount(text)
    digits = text.rjust(decimals + 1, "0")
    whole, frac = digits[:-decimals], digits[-decimals:]
    return canonical_amount(f"{whole}.{frac}")


def to_base_units(value: AmountLike, decimals: int) -> int:
    """Convert a decimal amount to integer base units.

    Raises:
        ValueError: if the amount has more fractional digits than the token
    """
    if fraction_digits(value) > decimals:
        raise ValueError(f"Amount {value} has more than {decimals} decimal places")
    amount = parse_amount(value)
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return int(amount.scaleb(decimals))


def slippage_bps(slippage_percent: Union[float, str, Decimal]) -> int:
    """Slippage percent to whole basis points, floored (0.5% -> 50)."""
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        bps = (Decimal(str(slippage_percent)) * 100).to_integral_value(rounding=ROUND_FLOOR)
    return int(bps)


def minimum_out(
    amount_out: AmountLike,
    slippage_percent: Union[float, str, Decimal],
    decimals: int,
) -> str:
    """Minimum acceptable output after slippage, rounded down to token precision."""
    amount = parse_amount(amount_out)
    bps = min(max(slippage_bps(slippage_percent), 0), 10000)
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        minimum = amount * (10000 - bps) / Decimal(10000)
        minimum = minimum.quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_DOWN)
    return canonical_amount(minimum)
