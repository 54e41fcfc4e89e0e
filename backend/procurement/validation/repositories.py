"""Persistence boundary of the validation engine (sync SQLAlchemy sessions)."""
import logging
import uuid
from datetime import datetime
from typing import Callable

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from procurement.core.config import settings
from procurement.models.delivery_note import DeliveryNote, InvoiceDeliveryNote
from procurement.models.invoice import Invoice, InvoiceItem
from procurement.models.item import Item, ItemPriceHistory
from procurement.models.purchase_order import PurchaseOrder
from procurement.models.user import User
from procurement.models.validation import InvoiceValidation, ValidationRuleConfig
from procurement.validation.types import InvoiceContext, PricePoint

logger = logging.getLogger(__name__)


class RuleConfigRepository:
    """Reads rule rows with a short-lived session of its own.

    The config service is process-wide and outlives any request session,
    so this repository owns its session lifecycle.
    """

    def __init__(self, session_factory: Callable[[], Session] | None = None):
        if session_factory is None:
            from procurement.db.session import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory

    def find_all(self) -> list[ValidationRuleConfig]:
        with self._session_factory() as db:
            rows = db.execute(
                select(ValidationRuleConfig).order_by(ValidationRuleConfig.rule_type)
            ).scalars().all()
            return list(rows)

    @staticmethod
    def get_for_update(db: Session, rule_type: str) -> ValidationRuleConfig | None:
        """Row-lock one rule inside the caller's transaction (admin updates)."""
        return db.execute(
            select(ValidationRuleConfig)
            .where(ValidationRuleConfig.rule_type == rule_type)
            .with_for_update()
        ).scalars().first()


class InvoiceRepository:
    def __init__(self, db: Session):
        self.db = db

    def load_context(self, invoice_id: uuid.UUID, price_history_limit: int | None = None) -> InvoiceContext | None:
        """Load the invoice aggregate plus duplicate candidates and price history.

        Three statements regardless of line count: the eager-loaded
        aggregate, the duplicate lookup, and one windowed price-history query.
        Returns None when the invoice is missing or soft-deleted.
        """
        stmt = (
            select(Invoice)
            .where(Invoice.id == invoice_id, Invoice.deleted_at.is_(None))
            .options(
                selectinload(Invoice.items).selectinload(InvoiceItem.item).selectinload(Item.vendor),
                selectinload(Invoice.vendor),
                selectinload(Invoice.purchase_order).selectinload(PurchaseOrder.items),
                selectinload(Invoice.delivery_note_links)
                .selectinload(InvoiceDeliveryNote.delivery_note)
                .selectinload(DeliveryNote.items),
            )
        )
        invoice = self.db.execute(stmt).scalars().first()
        if invoice is None:
            return None

        duplicates = []
        number = (invoice.invoice_number or "").strip()
        if number and invoice.vendor_id:
            duplicates = list(self.db.execute(
                select(Invoice)
                .where(
                    Invoice.vendor_id == invoice.vendor_id,
                    Invoice.invoice_number == invoice.invoice_number,
                    Invoice.deleted_at.is_(None),
                    Invoice.id != invoice.id,
                )
                .order_by(Invoice.created_at.asc())
            ).scalars().all())

        item_ids = list({line.item_id for line in invoice.items})
        limit = settings.PRICE_HISTORY_LOOKBACK if price_history_limit is None else price_history_limit
        price_history = self._price_history(item_ids, limit)

        return InvoiceContext(invoice=invoice, duplicates=duplicates, price_history=price_history)

    def _price_history(self, item_ids: list[uuid.UUID], limit: int) -> dict[uuid.UUID, list[PricePoint]]:
        if not item_ids or limit <= 0:
            return {}
        rank = (
            func.row_number()
            .over(partition_by=ItemPriceHistory.item_id, order_by=ItemPriceHistory.recorded_at.desc())
            .label("rank")
        )
        ranked = (
            select(ItemPriceHistory.item_id, ItemPriceHistory.price, ItemPriceHistory.recorded_at, rank)
            .where(ItemPriceHistory.item_id.in_(item_ids))
            .subquery()
        )
        rows = self.db.execute(
            select(ranked.c.item_id, ranked.c.price, ranked.c.recorded_at)
            .where(ranked.c.rank <= limit)
            .order_by(ranked.c.item_id, ranked.c.recorded_at.desc())
        ).all()

        history: dict[uuid.UUID, list[PricePoint]] = {}
        for item_id, price, recorded_at in rows:
            history.setdefault(item_id, []).append(PricePoint(price=float(price), recorded_at=recorded_at))
        return history


class InvoiceValidationRepository:
    def __init__(self, db: Session):
        self.db = db

    def list_for_invoice(self, invoice_id: uuid.UUID, status: str | None = None) -> list[InvoiceValidation]:
        stmt = (
            select(InvoiceValidation)
            .where(InvoiceValidation.invoice_id == invoice_id)
            .options(selectinload(InvoiceValidation.override))
            .order_by(InvoiceValidation.created_at.desc())
        )
        if status is not None:
            stmt = stmt.where(InvoiceValidation.status == status)
        return list(self.db.execute(stmt).scalars().all())

    def get_for_update(self, validation_id: uuid.UUID) -> tuple[InvoiceValidation, Invoice] | None:
        """Load a flag with its parent invoice, row-locking both until commit/rollback."""
        row = self.db.execute(
            select(InvoiceValidation, Invoice)
            .join(Invoice, Invoice.id == InvoiceValidation.invoice_id)
            .where(InvoiceValidation.id == validation_id)
            .with_for_update()
        ).first()
        if row is None:
            return None
        validation, invoice = row
        return validation, invoice

    def create_many(self, rows: list[InvoiceValidation]) -> list[InvoiceValidation]:
        if not rows:
            return []
        self.db.add_all(rows)
        self.db.flush()
        return rows

    def list_filtered(
        self,
        severity: str | None = None,
        status: str | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[InvoiceValidation], int]:
        """Newest-first page of flags plus the total matching count."""
        conditions = []
        if severity:
            conditions.append(InvoiceValidation.severity == severity)
        if status:
            conditions.append(InvoiceValidation.status == status)
        if created_from:
            conditions.append(InvoiceValidation.created_at >= created_from)
        if created_to:
            conditions.append(InvoiceValidation.created_at <= created_to)

        total = self.db.execute(
            select(func.count()).select_from(InvoiceValidation).where(*conditions)
        ).scalar_one()
        rows = self.db.execute(
            select(InvoiceValidation)
            .where(*conditions)
            .options(selectinload(InvoiceValidation.invoice), selectinload(InvoiceValidation.override))
            .order_by(InvoiceValidation.created_at.desc())
            .offset(offset)
            .limit(limit)
        ).scalars().all()
        return list(rows), total

    def count_by(self, column: str, status: str | None = None) -> dict[str, int]:
        col = getattr(InvoiceValidation, column)
        stmt = select(col, func.count()).group_by(col)
        if status is not None:
            stmt = stmt.where(InvoiceValidation.status == status)
        return {key: count for key, count in self.db.execute(stmt).all()}

    def recent(self, status: str, limit: int = 10) -> list[InvoiceValidation]:
        return list(self.db.execute(
            select(InvoiceValidation)
            .where(InvoiceValidation.status == status)
            .options(selectinload(InvoiceValidation.invoice), selectinload(InvoiceValidation.override))
            .order_by(InvoiceValidation.created_at.desc())
            .limit(limit)
        ).scalars().all())


class UserRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: uuid.UUID) -> User | None:
        return self.db.execute(
            select(User).where(User.id == user_id, User.deleted_at.is_(None))
        ).scalars().first()
