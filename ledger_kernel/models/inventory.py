"""
Module: ledger_kernel.models.inventory
Responsibility: ORM persistence for warehouses, the valuation-relevant part
    of products, per-warehouse stock levels, and the stock movement log.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - (product_id, warehouse_id) is unique on stock_levels.
    - Product.quantity_on_hand == sum of its StockLevel.quantity; no level
      is negative.  Maintained by InventoryLedger, verified by
      ReconciliationSelector.
    - Product and StockLevel carry a version counter (SQLAlchemy
      version_id_col).  A write based on a stale read raises
      StaleDataError, which InventoryLedger surfaces as OptimisticLockError.
    - StockMovement rows are append-only (db/immutability.py).
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString


class MovementKind(str, Enum):
    """Why stock moved."""

    PURCHASE_RECEIPT = "purchase_receipt"
    SALE_ISSUE = "sale_issue"
    INVENTORY_ADJUSTMENT = "inventory_adjustment"
    TRANSFER_OUT = "transfer_out"
    TRANSFER_IN = "transfer_in"
    CUSTOMER_RETURN = "customer_return"
    SUPPLIER_RETURN = "supplier_return"
    LOSS = "loss"
    INITIAL = "initial"


INBOUND_KINDS = frozenset({
    MovementKind.PURCHASE_RECEIPT,
    MovementKind.TRANSFER_IN,
    MovementKind.CUSTOMER_RETURN,
    MovementKind.INITIAL,
})

OUTBOUND_KINDS = frozenset({
    MovementKind.SALE_ISSUE,
    MovementKind.TRANSFER_OUT,
    MovementKind.SUPPLIER_RETURN,
    MovementKind.LOSS,
})


class Warehouse(TrackedBase):
    __tablename__ = "warehouses"

    __table_args__ = (UniqueConstraint("code", name="uq_warehouse_code"),)

    code: Mapped[str] = mapped_column(String(20), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    is_primary: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Warehouse {self.code}>"


class Product(TrackedBase):
    """
    Valuation view of a product.

    Guarantees:
        - quantity_on_hand is never negative.
        - average_unit_cost is the weighted-average cost (CUMP) rounded to
          2 decimals, or 0 when stock was exactly emptied.
    """

    __tablename__ = "products"

    __table_args__ = (UniqueConstraint("reference", name="uq_product_reference"),)

    reference: Mapped[str] = mapped_column(String(50), nullable=False)

    designation: Mapped[str] = mapped_column(String(255), nullable=False)

    is_stock_tracked: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    quantity_on_hand: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    average_unit_cost: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    reorder_threshold: Mapped[Decimal | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    levels: Mapped[list["StockLevel"]] = relationship(back_populates="product")

    __mapper_args__ = {"version_id_col": version}

    @property
    def stock_value(self) -> Decimal:
        return self.quantity_on_hand * self.average_unit_cost

    @property
    def below_reorder_threshold(self) -> bool:
        if self.reorder_threshold is None:
            return False
        return self.quantity_on_hand <= self.reorder_threshold

    def __repr__(self) -> str:
        return f"<Product {self.reference} qty={self.quantity_on_hand}>"


class StockLevel(TrackedBase):
    """On-hand quantity of one product at one warehouse."""

    __tablename__ = "stock_levels"

    __table_args__ = (
        UniqueConstraint("product_id", "warehouse_id", name="uq_stock_level_location"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False
    )

    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("warehouses.id"), nullable=False
    )

    quantity: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    product: Mapped[Product] = relationship(back_populates="levels")

    __mapper_args__ = {"version_id_col": version}


class StockMovement(TrackedBase):
    """
    Immutable audit fact for one quantity change.

    Corrections are new offsetting movements, never edits.  created_by_id
    is the acting user; moved_at is the movement timestamp.
    """

    __tablename__ = "stock_movements"

    __table_args__ = (
        Index("idx_movement_product_date", "product_id", "moved_at"),
        Index("idx_movement_warehouse_date", "warehouse_id", "moved_at"),
        Index("idx_movement_origin", "origin_kind", "origin_id"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False
    )

    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("warehouses.id"), nullable=False
    )

    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    kind: Mapped[MovementKind] = mapped_column(String(30), nullable=False)

    origin_kind: Mapped[str] = mapped_column(String(30), nullable=False)

    origin_id: Mapped[str] = mapped_column(String(64), nullable=False)

    origin_number: Mapped[str | None] = mapped_column(String(64), nullable=True)

    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)

    movement_value: Mapped[Decimal] = mapped_column(nullable=False)

    moved_at: Mapped[datetime] = mapped_column(nullable=False)

    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    @property
    def is_inbound(self) -> bool:
        return self.quantity > 0

    def __repr__(self) -> str:
        return f"<StockMovement {self.kind} qty={self.quantity}>"
