from __future__ import annotations
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from payroll_api.common.errors import InvalidTaxRegime
from payroll_api.services.salary_calc import round_money


class TaxRegime(str, Enum):
    OLD = "old"
    NEW = "new"


DEFAULT_REGIME = TaxRegime.OLD

# (upper bound of slab, rate); None = no upper bound.
# Simplified annual slabs; an estimate only, not a compliance computation.
SLABS: Dict[TaxRegime, List[Tuple[Optional[Decimal], Decimal]]] = {
    TaxRegime.NEW: [
        (Decimal("300000"), Decimal("0")),
        (Decimal("600000"), Decimal("0.05")),
        (Decimal("900000"), Decimal("0.10")),
        (Decimal("1200000"), Decimal("0.15")),
        (Decimal("1500000"), Decimal("0.20")),
        (None, Decimal("0.30")),
    ],
    TaxRegime.OLD: [
        (Decimal("250000"), Decimal("0")),
        (Decimal("500000"), Decimal("0.05")),
        (Decimal("1000000"), Decimal("0.20")),
        (None, Decimal("0.30")),
    ],
}


def parse_regime(value: Union[str, TaxRegime, None], default: Optional[TaxRegime] = None) -> TaxRegime:
    if isinstance(value, TaxRegime):
        return value
    if value is None or (isinstance(value, str) and not value.strip()):
        if default is not None:
            return default
        raise InvalidTaxRegime("tax regime is required")
    try:
        return TaxRegime(str(value).strip().lower())
    except ValueError:
        raise InvalidTaxRegime(f"unknown tax regime '{value}'", payload={"allowed": [r.value for r in TaxRegime]})


def estimate_tax(basis: Decimal, regime: Union[str, TaxRegime]) -> Decimal:
    """Progressive slab tax on `basis`, rounded to a whole currency unit."""
    slabs = SLABS[parse_regime(regime)]
    basis = Decimal(str(basis))
    tax = Decimal("0")
    lower = Decimal("0")
    for upper, rate in slabs:
        if basis <= lower:
            break
        top = basis if upper is None else min(basis, upper)
        tax += (top - lower) * rate
        if upper is None:
            break
        lower = upper
    return round_money(tax)
