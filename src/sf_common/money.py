"""Integer money helpers.

All prices, fees and totals are int minor units (poisha: 1 BDT = 100).
No float anywhere in the ledger; gateways receive a decimal string.
"""


def to_gateway_amount(minor: int) -> str:
    """1050 -> '10.50' (what the providers expect in their amount fields)."""
    if minor < 0:
        raise ValueError(f"Amount must be non-negative, got {minor}")
    return f"{minor // 100}.{minor % 100:02d}"


def from_gateway_amount(raw: object) -> int:
    """Parse a provider amount ('10.50', '10', 10.5) back into minor units.

    Raises ValueError for anything that is not a plain non-negative decimal
    with at most two fractional digits.
    """
    text = str(raw).strip()
    if not text:
        raise ValueError("Empty amount")
    whole, _, frac = text.partition(".")
    frac = frac.rstrip("0") if len(frac) > 2 else frac
    if not whole.isdigit() or (frac and not frac.isdigit()) or len(frac) > 2:
        raise ValueError(f"Unparseable amount: {raw!r}")
    return int(whole) * 100 + int(frac.ljust(2, "0") or "0")


def format_money(minor: int, currency: str = "BDT") -> str:
    """1050 -> 'BDT 10.50', -1200 -> '-BDT 12.00'."""
    sign = "-" if minor < 0 else ""
    value = abs(minor)
    return f"{sign}{currency} {value // 100:,}.{value % 100:02d}"
