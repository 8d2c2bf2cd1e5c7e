"""
InventoryLedger -- signed stock movements per (product, warehouse).

Responsibility:
    Applies a signed quantity to a product's per-warehouse level and total
    on-hand quantity, values the movement, keeps the weighted-average unit
    cost current, and appends the immutable StockMovement record.  Also
    offers the multi-line, stock-count and transfer flows built on top of
    record_movement().

Architecture position:
    Kernel > Services.  Calls the pure CostingEngine for the new unit cost
    and persists it in the same unit of work.

Invariants enforced:
    - Product.quantity_on_hand == sum of its StockLevels, and no level is
      negative.  The check happens before any write; on failure nothing
      is persisted, not even the movement.
    - Lock order is product row first, then level row (SELECT ... FOR
      UPDATE), so concurrent movements on the same product serialize and
      never deadlock against each other.
    - Both rows carry a version counter; a stale write surfaces as
      OptimisticLockError instead of a lost update.
    - Outbound movements are valued at the current weighted-average cost;
      inbound ones at the caller's cost (the current average if omitted),
      which then feeds CostingEngine.

Failure modes:
    - InvalidQuantityError: zero quantity, or a sign that contradicts the
      movement kind.
    - InvalidAmountError: negative inbound unit cost.
    - ProductNotFoundError, WarehouseNotFoundError.
    - NoStockAtLocationError, InsufficientStockError.
    - OptimisticLockError.

Audit relevance:
    StockMovement rows are append-only; corrections are new offsetting
    movements.  Each movement logs its id, kind, quantity and value.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ledger_engines.costing import CostingEngine
from ledger_kernel.db.types import ZERO, fits_storage, round_money
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.values import DocumentRef, actor_str
from ledger_kernel.exceptions import (
    InsufficientStockError,
    InvalidAmountError,
    InvalidQuantityError,
    NoStockAtLocationError,
    OptimisticLockError,
    ProductNotFoundError,
    WarehouseNotFoundError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.inventory import (
    INBOUND_KINDS,
    OUTBOUND_KINDS,
    MovementKind,
    Product,
    StockLevel,
    StockMovement,
    Warehouse,
)
from ledger_kernel.services.base import BaseService

logger = get_logger("services.inventory_ledger")


@dataclass(frozen=True)
class StockLine:
    """One product line of a delivery note or goods receipt."""

    product_id: UUID
    quantity: Decimal
    unit_cost: Decimal | None = None


def _as_quantity(value) -> Decimal:
    if isinstance(value, Decimal):
        quantity = value
    else:
        try:
            quantity = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise InvalidQuantityError(str(value), "not a number") from None
    if not fits_storage(quantity):
        raise InvalidQuantityError(str(value), "not a finite number within storage range")
    return quantity


def check_movement_sign(kind: MovementKind, quantity: Decimal) -> None:
    """Reject zero and any sign the movement kind does not allow."""
    if quantity == ZERO:
        raise InvalidQuantityError(str(quantity), "movement quantity cannot be zero")
    if kind in INBOUND_KINDS and quantity < ZERO:
        raise InvalidQuantityError(str(quantity), f"{kind.value} movements must be inbound")
    if kind in OUTBOUND_KINDS and quantity > ZERO:
        raise InvalidQuantityError(str(quantity), f"{kind.value} movements must be outbound")


class InventoryLedger(BaseService):
    """
    Stock movement recorder.

    Contract:
        Every public mutating call runs in a savepoint of the caller's
        transaction and flushes; the caller commits.

    Guarantees:
        - A returned StockMovement was persisted together with the level,
          total and unit-cost updates it implies.
        - A product that is not stock-tracked is a documented no-op:
          record_movement() returns None and writes nothing.

    Non-goals:
        - Lot/serial tracking, FIFO valuation, reservations.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        costing: CostingEngine | None = None,
    ):
        super().__init__(session, clock)
        self.costing = costing or CostingEngine()

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------

    def create_warehouse(
        self, code: str, name: str, actor_id: UUID, is_primary: bool = False
    ) -> Warehouse:
        warehouse = Warehouse(
            code=code.strip().upper(),
            name=name,
            is_primary=is_primary,
            created_by_id=actor_id,
        )
        self.session.add(warehouse)
        self.session.flush()
        logger.info("warehouse_created", extra={"warehouse_code": warehouse.code})
        return warehouse

    def register_product(
        self,
        reference: str,
        designation: str,
        actor_id: UUID,
        is_stock_tracked: bool = True,
        reorder_threshold: Decimal | None = None,
    ) -> Product:
        product = Product(
            reference=reference,
            designation=designation,
            is_stock_tracked=is_stock_tracked,
            quantity_on_hand=ZERO,
            average_unit_cost=ZERO,
            reorder_threshold=reorder_threshold,
            created_by_id=actor_id,
        )
        self.session.add(product)
        self.session.flush()
        logger.info(
            "product_registered",
            extra={"product_reference": reference, "is_stock_tracked": is_stock_tracked},
        )
        return product

    def get_warehouse_by_code(self, code: str) -> Warehouse:
        warehouse = self.session.execute(
            select(Warehouse).where(Warehouse.code == (code or "").strip().upper())
        ).scalar_one_or_none()
        if warehouse is None or not warehouse.is_active:
            raise WarehouseNotFoundError(code)
        return warehouse

    def level_quantity(self, product_id: UUID, warehouse_id: UUID) -> Decimal:
        """On-hand quantity at one warehouse; 0 when no level exists."""
        quantity = self.session.execute(
            select(StockLevel.quantity).where(
                StockLevel.product_id == product_id,
                StockLevel.warehouse_id == warehouse_id,
            )
        ).scalar_one_or_none()
        return quantity if quantity is not None else ZERO

    def movements_for(self, product_id: UUID) -> list[StockMovement]:
        return list(
            self.session.execute(
                select(StockMovement)
                .where(StockMovement.product_id == product_id)
                .order_by(StockMovement.moved_at, StockMovement.created_at)
            ).scalars()
        )

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    def _lock_product(self, product_id: UUID) -> Product | None:
        return self.session.execute(
            select(Product)
            .where(Product.id == product_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _lock_level(self, product_id: UUID, warehouse_id: UUID) -> StockLevel | None:
        return self.session.execute(
            select(StockLevel)
            .where(
                StockLevel.product_id == product_id,
                StockLevel.warehouse_id == warehouse_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _active_warehouse(self, warehouse_id: UUID) -> Warehouse:
        warehouse = self.session.get(Warehouse, warehouse_id)
        if warehouse is None or not warehouse.is_active:
            raise WarehouseNotFoundError(str(warehouse_id))
        return warehouse

    # ------------------------------------------------------------------
    # Movements
    # ------------------------------------------------------------------

    def record_movement(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        signed_quantity: Decimal,
        kind: MovementKind,
        origin: DocumentRef,
        actor_id: UUID,
        unit_cost: Decimal | None = None,
        notes: str | None = None,
    ) -> StockMovement | None:
        """
        Apply a signed quantity to one (product, warehouse).

        Args:
            signed_quantity: Positive for inbound, negative for outbound.
            kind: Movement kind; its direction must match the sign.
            unit_cost: Acquisition cost for inbound movements.  Ignored for
                outbound movements, which use the current average.

        Returns:
            The persisted StockMovement, or None when the product is not
            stock-tracked.
        """
        kind = MovementKind(kind)
        quantity = _as_quantity(signed_quantity)
        check_movement_sign(kind, quantity)

        with LogContext.bind(document_ref=str(origin), actor_id=actor_str(actor_id)):
            with self.session.begin_nested():
                product = self._lock_product(product_id)
                if product is None:
                    raise ProductNotFoundError(str(product_id))
                if not product.is_stock_tracked:
                    logger.info(
                        "stock_movement_skipped_untracked",
                        extra={"product_id": str(product_id), "kind": kind.value},
                    )
                    return None

                self._active_warehouse(warehouse_id)
                level = self._lock_level(product_id, warehouse_id)
                if level is None:
                    if quantity < ZERO:
                        raise NoStockAtLocationError(str(product_id), str(warehouse_id))
                    level = StockLevel(
                        product_id=product_id,
                        warehouse_id=warehouse_id,
                        quantity=ZERO,
                        created_by_id=actor_id,
                    )
                    self.session.add(level)

                new_level = level.quantity + quantity
                new_total = product.quantity_on_hand + quantity
                if new_level < ZERO:
                    raise InsufficientStockError(
                        str(product_id), str(warehouse_id),
                        available=str(level.quantity), requested=str(-quantity),
                    )
                if new_total < ZERO:
                    raise InsufficientStockError(
                        str(product_id), str(warehouse_id),
                        available=str(product.quantity_on_hand), requested=str(-quantity),
                        scope="product",
                    )

                if quantity > ZERO:
                    cost = self._inbound_cost(product, unit_cost)
                    new_average = self.costing.recompute_weighted_average(
                        prior_qty=product.quantity_on_hand,
                        prior_total_cost=product.quantity_on_hand * product.average_unit_cost,
                        inbound_qty=quantity,
                        inbound_unit_cost=cost,
                    )
                else:
                    cost = product.average_unit_cost
                    new_average = product.average_unit_cost

                level.quantity = new_level
                level.updated_by_id = actor_id
                product.quantity_on_hand = new_total
                product.average_unit_cost = new_average
                product.updated_by_id = actor_id

                movement = StockMovement(
                    product_id=product_id,
                    warehouse_id=warehouse_id,
                    quantity=quantity,
                    kind=kind,
                    origin_kind=origin.kind.value,
                    origin_id=origin.id,
                    origin_number=origin.number,
                    unit_cost=cost,
                    movement_value=self.costing.value_movement(quantity, cost),
                    moved_at=self.clock.now(),
                    notes=notes,
                    created_by_id=actor_id,
                )
                self.session.add(movement)
                try:
                    self.session.flush()
                except StaleDataError:
                    logger.warning(
                        "stock_write_conflict",
                        extra={"product_id": str(product_id), "warehouse_id": str(warehouse_id)},
                    )
                    raise OptimisticLockError("Product", str(product_id)) from None

            logger.info(
                "stock_movement_recorded",
                extra={
                    "movement_id": str(movement.id),
                    "product_id": str(product_id),
                    "warehouse_id": str(warehouse_id),
                    "kind": kind.value,
                    "quantity": str(quantity),
                    "unit_cost": str(cost),
                    "movement_value": str(movement.movement_value),
                    "level_after": str(new_level),
                    "total_after": str(new_total),
                    "average_unit_cost": str(new_average),
                },
            )
            if quantity < ZERO and product.below_reorder_threshold:
                logger.warning(
                    "stock_below_reorder_threshold",
                    extra={
                        "product_id": str(product_id),
                        "quantity_on_hand": str(new_total),
                        "reorder_threshold": str(product.reorder_threshold),
                    },
                )
            return movement

    def _inbound_cost(self, product: Product, unit_cost: Decimal | None) -> Decimal:
        if unit_cost is None:
            return product.average_unit_cost
        cost = round_money(_as_cost(unit_cost))
        if cost < ZERO:
            raise InvalidAmountError(str(unit_cost), "unit cost cannot be negative")
        return cost

    def record_document_movements(
        self,
        lines: Iterable[StockLine],
        origin: DocumentRef,
        kind: MovementKind,
        warehouse_id: UUID,
        actor_id: UUID,
    ) -> list[StockMovement]:
        """
        Record every line of a delivery note or goods receipt, all or nothing.

        Line quantities are magnitudes; the sign comes from ``kind``.
        Untracked products are skipped and absent from the result.
        """
        kind = MovementKind(kind)
        outbound = kind in OUTBOUND_KINDS
        movements: list[StockMovement] = []
        with self.session.begin_nested():
            for line in lines:
                magnitude = abs(_as_quantity(line.quantity))
                movement = self.record_movement(
                    product_id=line.product_id,
                    warehouse_id=warehouse_id,
                    signed_quantity=-magnitude if outbound else magnitude,
                    kind=kind,
                    origin=origin,
                    actor_id=actor_id,
                    unit_cost=line.unit_cost,
                )
                if movement is not None:
                    movements.append(movement)
        logger.info(
            "document_movements_recorded",
            extra={
                "origin": str(origin),
                "kind": kind.value,
                "movement_count": len(movements),
            },
        )
        return movements

    def adjust_to_count(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        counted_quantity: Decimal,
        origin: DocumentRef,
        actor_id: UUID,
        notes: str | None = None,
    ) -> StockMovement | None:
        """
        Bring a level in line with a physical count.

        Posts an inventory adjustment of (counted - on hand).  Returns None
        when the count matches, or the product is not stock-tracked.
        """
        counted = _as_quantity(counted_quantity)
        if counted < ZERO:
            raise InvalidQuantityError(str(counted), "counted quantity cannot be negative")

        with self.session.begin_nested():
            product = self._lock_product(product_id)
            if product is None:
                raise ProductNotFoundError(str(product_id))
            self._active_warehouse(warehouse_id)
            level = self._lock_level(product_id, warehouse_id)
            theoretical = level.quantity if level is not None else ZERO
            difference = counted - theoretical
            if difference == ZERO:
                logger.info(
                    "stock_count_matches",
                    extra={"product_id": str(product_id), "quantity": str(counted)},
                )
                return None
            return self.record_movement(
                product_id=product_id,
                warehouse_id=warehouse_id,
                signed_quantity=difference,
                kind=MovementKind.INVENTORY_ADJUSTMENT,
                origin=origin,
                actor_id=actor_id,
                notes=notes or f"Count {counted}, on hand {theoretical}",
            )

    def transfer(
        self,
        product_id: UUID,
        from_warehouse_id: UUID,
        to_warehouse_id: UUID,
        quantity: Decimal,
        origin: DocumentRef,
        actor_id: UUID,
    ) -> tuple[StockMovement, StockMovement] | None:
        """
        Move stock between warehouses at the current average cost.

        Returns (transfer_out, transfer_in), or None for an untracked
        product.  Total on-hand and unit cost are unchanged.
        """
        magnitude = _as_quantity(quantity)
        if magnitude <= ZERO:
            raise InvalidQuantityError(str(magnitude), "transfer quantity must be positive")
        if from_warehouse_id == to_warehouse_id:
            raise InvalidQuantityError(
                str(magnitude), "source and destination warehouses are the same"
            )

        with self.session.begin_nested():
            outbound = self.record_movement(
                product_id=product_id,
                warehouse_id=from_warehouse_id,
                signed_quantity=-magnitude,
                kind=MovementKind.TRANSFER_OUT,
                origin=origin,
                actor_id=actor_id,
            )
            if outbound is None:
                return None
            inbound = self.record_movement(
                product_id=product_id,
                warehouse_id=to_warehouse_id,
                signed_quantity=magnitude,
                kind=MovementKind.TRANSFER_IN,
                origin=origin,
                actor_id=actor_id,
                unit_cost=outbound.unit_cost,
            )
        return outbound, inbound


def _as_cost(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidAmountError(str(value), "unit cost is not a number") from None
