"""
Module: cash_kernel.db.types
Responsibility: Column widths and the sanctioned rounding helper for
    monetary values.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/ and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats anywhere in the kernel.  Monetary amounts are Decimal with
      Numeric(38, 9) storage (see db/base.py type_annotation_map).
    - round_money() is the ONLY sanctioned rounding function for amounts.
"""

from decimal import ROUND_HALF_UP, Decimal

# Column widths for caller-supplied identifiers and text
TENANT_ID_LENGTH = 64
ACTOR_ID_LENGTH = 64
NOTES_LENGTH = 1000

DEFAULT_ROUNDING = ROUND_HALF_UP


def round_money(
    value: Decimal,
    decimal_places: int = 2,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places to round to.
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.
    """
    quantum = Decimal(1).scaleb(-decimal_places)
    return value.quantize(quantum, rounding=rounding)
