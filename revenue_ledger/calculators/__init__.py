"""Pure money and period calculations. No I/O."""

from revenue_ledger.calculators.category import resolve_category
from revenue_ledger.calculators.commission import (
    compute_commission,
    reverse_commission,
    round2,
)
from revenue_ledger.calculators.periods import (
    calculate_period_end,
    calculate_period_range,
    calculate_prorated_amount,
)
from revenue_ledger.calculators.splits import (
    compute_organization_payout,
    compute_splits,
    reverse_splits,
)

__all__ = [
    "resolve_category",
    "compute_commission",
    "reverse_commission",
    "round2",
    "calculate_period_end",
    "calculate_period_range",
    "calculate_prorated_amount",
    "compute_organization_payout",
    "compute_splits",
    "reverse_splits",
]
