"""
Module: ledger_engines.costing
Responsibility:
    Weighted-average unit cost (CUMP) recomputation on inbound stock.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    InventoryLedger calls it and persists the result inside its own
    atomic update of the product row.

Invariants enforced:
    - new_qty == 0  ->  unit cost 0 (no cost basis once stock is emptied).
    - Otherwise round2((prior_total_cost + inbound_qty * inbound_unit_cost)
      / new_qty), ROUND_HALF_UP.
    - Decimal-only arithmetic; the same inputs always give the same output.

Failure modes:
    - ValueError if the inputs would produce a negative total quantity.
"""

from __future__ import annotations

from decimal import Decimal

from ledger_engines.tracer import traced_engine
from ledger_kernel.db.types import ZERO, round_money
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.costing")


class CostingEngine:
    """
    Weighted-average costing.

    Contract:
        Pure functions.  No clock, no database, no mutation of inputs.
    Non-goals:
        - FIFO/LIFO lot costing.  The kernel values stock at CUMP only.
    """

    @traced_engine(
        "costing",
        "1.0",
        fingerprint_fields=("prior_qty", "prior_total_cost", "inbound_qty", "inbound_unit_cost"),
    )
    def recompute_weighted_average(
        self,
        prior_qty: Decimal,
        prior_total_cost: Decimal,
        inbound_qty: Decimal,
        inbound_unit_cost: Decimal,
    ) -> Decimal:
        """
        New unit cost after an inbound movement.

        Example:
            10 units worth 1000 plus 5 units at 120 ->
            round2((1000 + 600) / 15) = 106.67
        """
        new_qty = prior_qty + inbound_qty
        if new_qty == ZERO:
            return ZERO
        if new_qty < ZERO:
            raise ValueError(
                f"Resulting quantity is negative: {prior_qty} + {inbound_qty}"
            )

        new_cost = round_money(
            (prior_total_cost + inbound_qty * inbound_unit_cost) / new_qty
        )
        logger.debug(
            "weighted_average_recomputed",
            extra={
                "prior_qty": str(prior_qty),
                "inbound_qty": str(inbound_qty),
                "inbound_unit_cost": str(inbound_unit_cost),
                "new_unit_cost": str(new_cost),
            },
        )
        return new_cost

    def value_movement(self, quantity: Decimal, unit_cost: Decimal) -> Decimal:
        """Signed value of a movement, rounded to 2 decimals."""
        return round_money(quantity * unit_cost)
