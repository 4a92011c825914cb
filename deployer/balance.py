from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional, Tuple

from deployer.errors import DeployError, ErrorKind
from deployer.models import TokenMetadata


# Unit prefixes accepted in front of the token symbol, as powers of ten.
UNIT_PREFIXES: Dict[str, int] = {
    "G": 9,
    "M": 6,
    "k": 3,
    "": 0,
    "m": -3,
    "μ": -6,
    "u": -6,
    "n": -9,
}

_DENOMINATED = re.compile(r"^(?P<amount>\d+(?:\.\d+)?)\s*(?P<unit>[A-Za-zμ]+)$")


def _fail(expr: str, why: str) -> DeployError:
    return DeployError(ErrorKind.BALANCE_RESOLUTION_FAILED, f"invalid balance {expr!r}: {why}")


def split_denomination(expr: str, symbol: str) -> Tuple[Decimal, int]:
    """Split '1.5mUNIT' into (Decimal('1.5'), -3) for the given symbol."""
    m = _DENOMINATED.match(expr)
    if not m:
        raise _fail(expr, "expected an integer or <amount><prefix><symbol>")
    unit = m.group("unit")
    if not symbol:
        raise _fail(expr, "chain reports no token symbol, use plain native units")
    if not unit.endswith(symbol):
        raise _fail(expr, f"token symbol does not match chain symbol {symbol!r}")
    prefix = unit[: len(unit) - len(symbol)]
    if prefix not in UNIT_PREFIXES:
        raise _fail(expr, f"unknown unit prefix {prefix!r}")
    try:
        amount = Decimal(m.group("amount"))
    except InvalidOperation as exc:
        raise _fail(expr, "not a number") from exc
    return amount, UNIT_PREFIXES[prefix]


def parse_balance(expr: str, metadata: Optional[TokenMetadata]) -> int:
    """Convert a human balance expression into native units.

    Plain integers (underscores allowed) are already native units.
    Denominated amounts like '10UNIT' or '1.5mUNIT' are scaled by the
    token decimals. Anything that lands on a fraction of a native unit
    is rejected.
    """
    raw = str(expr or "").strip().replace("_", "")
    if not raw:
        raise _fail(str(expr), "empty")
    if raw.isascii() and raw.isdigit():
        return int(raw)
    if metadata is None:
        raise _fail(raw, "token metadata unavailable for a denominated amount")

    amount, exponent = split_denomination(raw, metadata.symbol)
    scaled = amount.scaleb(int(metadata.decimals) + exponent)
    if scaled != scaled.to_integral_value():
        raise _fail(raw, f"more precision than {metadata.decimals} decimals allow")
    return int(scaled)


def format_balance(amount: int, metadata: Optional[TokenMetadata]) -> str:
    if metadata is None or not metadata.symbol:
        return str(int(amount))
    value = Decimal(int(amount)).scaleb(-int(metadata.decimals))
    text = format(value.normalize(), "f") if value else "0"
    return f"{text} {metadata.symbol}"
