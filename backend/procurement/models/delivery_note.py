import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Numeric, String, Text, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from procurement.db.base import Base, TimestampMixin, UUIDMixin


class DeliveryNote(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "delivery_notes"

    purchase_order_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("purchase_orders.id"), nullable=True, index=True
    )
    vendor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("vendors.id"), nullable=False, index=True
    )
    delivered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    received_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="DRAFT")  # DRAFT, CONFIRMED
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list["DeliveryNoteItem"]] = relationship("DeliveryNoteItem", back_populates="delivery_note")


class DeliveryNoteItem(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "delivery_note_items"

    delivery_note_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("delivery_notes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("items.id"), nullable=False, index=True
    )
    quantity_ordered: Mapped[float] = mapped_column(Numeric(18, 4), nullable=False)
    quantity_delivered: Mapped[float] = mapped_column(Numeric(18, 4), nullable=False)
    condition: Mapped[str] = mapped_column(String(50), nullable=False, default="GOOD")  # GOOD, DAMAGED, PARTIAL

    delivery_note: Mapped["DeliveryNote"] = relationship("DeliveryNote", back_populates="items")


class InvoiceDeliveryNote(Base, UUIDMixin):
    """Link table: which delivery notes an invoice bills for."""

    __tablename__ = "invoice_delivery_notes"
    __table_args__ = (UniqueConstraint("invoice_id", "delivery_note_id"),)

    invoice_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    delivery_note_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("delivery_notes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    linked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=text("now()"), nullable=False
    )

    delivery_note: Mapped["DeliveryNote"] = relationship("DeliveryNote")
