import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from procurement.db.base import Base, TimestampMixin, UUIDMixin

INVOICE_STATUSES = ("PENDING", "APPROVED", "REJECTED", "PAID")

# Invoices in these states are settled; their flags can no longer be overridden
LOCKED_INVOICE_STATUSES = ("APPROVED", "PAID")


class Invoice(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "invoices"

    invoice_number: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    vendor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("vendors.id"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=True, index=True
    )  # owner / submitter
    purchase_order_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("purchase_orders.id"), nullable=True, index=True
    )
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="PENDING")
    total_amount: Mapped[float] = mapped_column(Numeric(18, 4), nullable=False, default=0)
    invoice_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    project: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    items: Mapped[list["InvoiceItem"]] = relationship("InvoiceItem", back_populates="invoice")
    vendor: Mapped["Vendor"] = relationship("Vendor")  # type: ignore[name-defined]
    purchase_order: Mapped["PurchaseOrder | None"] = relationship("PurchaseOrder")  # type: ignore[name-defined]
    delivery_note_links: Mapped[list["InvoiceDeliveryNote"]] = relationship(  # type: ignore[name-defined]
        "InvoiceDeliveryNote"
    )
    validations: Mapped[list["InvoiceValidation"]] = relationship(  # type: ignore[name-defined]
        "InvoiceValidation", back_populates="invoice"
    )


class InvoiceItem(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "invoice_items"

    invoice_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("items.id"), nullable=False, index=True
    )
    quantity: Mapped[float] = mapped_column(Numeric(18, 4), nullable=False)
    unit_price: Mapped[float] = mapped_column(Numeric(18, 4), nullable=False)

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="items")
    item: Mapped["Item"] = relationship("Item")  # type: ignore[name-defined]
