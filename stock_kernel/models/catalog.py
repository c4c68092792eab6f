"""
Module: stock_kernel.models.catalog
Responsibility: ORM persistence for the tenant-scoped catalog that the stock
    ledger and stocktaking refer to: tenants, locations, categories and items.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Every location, category and item belongs to exactly one tenant.
    - Item and location codes are unique per tenant.
    - pieces_per_package is at least 1.

Failure modes:
    - IntegrityError on duplicate (tenant_id, code).
"""

from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, TrackedBase, UUIDString


class Tenant(Base):
    """
    One of the companies sharing the application instance.

    Contract:
        All stock data is scoped by tenant id.  Tenants are seeded from
        configuration (see stock_config.seed_tenants).
    """

    __tablename__ = "tenants"

    __table_args__ = (
        UniqueConstraint("code", name="uq_tenant_code"),
    )

    code: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Tenant {self.code}>"


class Location(TrackedBase):
    """A warehouse (storage location) of one tenant."""

    __tablename__ = "locations"

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_location_tenant_code"),
        Index("idx_location_tenant", "tenant_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )
    code: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Location {self.code}>"


class Category(TrackedBase):
    """Item category, used as a stocktaking scope filter."""

    __tablename__ = "categories"

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_category_tenant_name"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    def __repr__(self) -> str:
        return f"<Category {self.name}>"


class Item(TrackedBase):
    """
    A stocked article.

    Contract:
        Quantities are always held in pieces.  pieces_per_package converts
        package-denominated input (see domain/units.py).  home_location_id is
        the item's default location; stocktakings over all locations place
        the item's line there.
    """

    __tablename__ = "items"

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_item_tenant_code"),
        CheckConstraint("pieces_per_package >= 1", name="ck_item_pieces_per_package"),
        Index("idx_item_tenant_active", "tenant_id", "is_active"),
        Index("idx_item_category", "category_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )
    category_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("categories.id", ondelete="SET NULL"),
        nullable=True,
    )
    home_location_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id", ondelete="SET NULL"),
        nullable=True,
    )
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit: Mapped[str] = mapped_column(String(20), default="pcs", nullable=False)
    pieces_per_package: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Item {self.code} {self.name}>"
