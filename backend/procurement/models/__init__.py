from procurement.models.user import User
from procurement.models.vendor import Vendor
from procurement.models.item import Item, ItemPriceHistory
from procurement.models.purchase_order import PurchaseOrder, PurchaseOrderItem
from procurement.models.delivery_note import DeliveryNote, DeliveryNoteItem, InvoiceDeliveryNote
from procurement.models.invoice import Invoice, InvoiceItem
from procurement.models.validation import (
    InvoiceValidation,
    RuleType,
    Severity,
    ValidationOverride,
    ValidationRuleConfig,
    ValidationStatus,
)
from procurement.models.audit import AuditLog

__all__ = [
    "User",
    "Vendor",
    "Item", "ItemPriceHistory",
    "PurchaseOrder", "PurchaseOrderItem",
    "DeliveryNote", "DeliveryNoteItem", "InvoiceDeliveryNote",
    "Invoice", "InvoiceItem",
    "InvoiceValidation", "ValidationOverride", "ValidationRuleConfig",
    "RuleType", "Severity", "ValidationStatus",
    "AuditLog",
]
