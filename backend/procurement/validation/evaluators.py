"""Rule evaluators: one pure function per rule type.

Each evaluator takes the pre-loaded InvoiceContext and the rule's merged
config and returns a Flag or None. Evaluators never query the database;
everything they read was loaded by InvoiceRepository.load_context.
"""
import logging
from collections import defaultdict
from decimal import Decimal
from typing import Callable

from procurement.models.validation import RuleType
from procurement.validation.types import Flag, InvoiceContext, MergedConfig

logger = logging.getLogger(__name__)

Evaluator = Callable[[InvoiceContext, MergedConfig], "Flag | None"]

# ─── Defaults used when a key is absent from the merged config ───

DEFAULT_THRESHOLD = 10000.0
DEFAULT_MINIMUM_ROUND_AMOUNT = 1000.0
DEFAULT_PRICE_VARIANCE_PERCENT = 15.0
DEFAULT_HISTORICAL_COUNT = 5
DEFAULT_PO_VARIANCE_PERCENT = 10.0
ROUND_AMOUNT_INCREMENT = Decimal("100")


def _flag(rule_type: RuleType, config: MergedConfig, **details) -> Flag:
    return Flag(rule_type=rule_type, severity=config.severity, details=details)


def _quantities_by_item(lines, qty_attr: str = "quantity") -> dict:
    totals: dict = defaultdict(float)
    for line in lines or []:
        totals[line.item_id] += float(getattr(line, qty_attr) or 0)
    return dict(totals)


# ─── Header rules ───

def check_duplicate_invoice_number(ctx: InvoiceContext, config: MergedConfig) -> Flag | None:
    invoice = ctx.invoice
    number = (invoice.invoice_number or "").strip()
    if not number or not invoice.vendor_id or not ctx.duplicates:
        return None

    dup = ctx.duplicates[0]
    return _flag(
        RuleType.DUPLICATE_INVOICE_NUMBER, config,
        message=f"Duplicate invoice number '{number}' found for this vendor",
        invoice_number=number,
        vendor_id=str(invoice.vendor_id),
        duplicate_invoice_id=str(dup.id),
        duplicate_date=dup.invoice_date.isoformat() if dup.invoice_date else None,
        duplicate_amount=float(dup.total_amount or 0),
        duplicate_status=dup.status,
        duplicate_count=len(ctx.duplicates),
    )


def check_missing_invoice_number(ctx: InvoiceContext, config: MergedConfig) -> Flag | None:
    if (ctx.invoice.invoice_number or "").strip():
        return None
    return _flag(
        RuleType.MISSING_INVOICE_NUMBER, config,
        message="Invoice number is missing",
        recommendation="Add the vendor's invoice number for tracking and duplicate prevention",
    )


def check_amount_threshold(ctx: InvoiceContext, config: MergedConfig) -> Flag | None:
    amount = float(ctx.invoice.total_amount or 0)
    threshold = float(config.get("threshold", DEFAULT_THRESHOLD))
    if amount <= threshold:
        return None
    return _flag(
        RuleType.AMOUNT_THRESHOLD_EXCEEDED, config,
        message=f"Invoice amount {amount:.2f} exceeds threshold {threshold:.2f}",
        amount=amount,
        threshold=threshold,
        excess=round(amount - threshold, 2),
    )


def check_round_amount(ctx: InvoiceContext, config: MergedConfig) -> Flag | None:
    # Decimal keeps "exact multiple of 100" exact for Numeric columns
    amount = Decimal(str(ctx.invoice.total_amount or 0))
    minimum = float(config.get("minimumAmount", DEFAULT_MINIMUM_ROUND_AMOUNT))
    if amount % ROUND_AMOUNT_INCREMENT != 0 or float(amount) < minimum:
        return None
    return _flag(
        RuleType.ROUND_AMOUNT_PATTERN, config,
        message=f"Invoice has a suspiciously round amount: {float(amount):.2f}",
        amount=float(amount),
        minimum_amount=minimum,
        pattern="Round number (multiple of 100)",
        recommendation="Verify this is a legitimate invoice backed by itemised charges",
    )


# ─── Line / history rules ───

def check_price_variance(ctx: InvoiceContext, config: MergedConfig) -> Flag | None:
    allowed_pct = float(config.get("variancePercent", DEFAULT_PRICE_VARIANCE_PERCENT))
    sample_size = int(config.get("historicalCount", DEFAULT_HISTORICAL_COUNT))
    if sample_size <= 0:
        return None

    variances = []
    for line in ctx.invoice.items or []:
        history = ctx.price_history.get(line.item_id) or []
        recent = [point.price for point in history[:sample_size]]
        if not recent:
            continue
        average = sum(recent) / len(recent)
        if average <= 0:
            continue
        price = float(line.unit_price)
        variance_pct = abs(price - average) / average * 100
        if variance_pct > allowed_pct:
            variances.append({
                "item_id": str(line.item_id),
                "item_name": line.item.name if line.item is not None else None,
                "current_price": price,
                "average_price": round(average, 4),
                "variance": round(abs(price - average), 4),
                "variance_percent": round(variance_pct, 2),
                "historical_sample_size": len(recent),
            })

    if not variances:
        return None
    return _flag(
        RuleType.PRICE_VARIANCE, config,
        message=f"{len(variances)} item(s) priced significantly away from their historical average",
        variances=variances,
        variance_count=len(variances),
        threshold_percent=allowed_pct,
        historical_count=sample_size,
        recommendation="Review pricing with the vendor",
    )


# ─── Purchase order rules ───

def check_po_amount_variance(ctx: InvoiceContext, config: MergedConfig) -> Flag | None:
    po = ctx.purchase_order
    if po is None:
        return None
    po_total = po.total_amount
    if po_total <= 0:
        return None

    invoice_total = float(ctx.invoice.total_amount or 0)
    variance = abs(invoice_total - po_total)
    variance_pct = variance / po_total * 100
    allowed_pct = float(config.get("variancePercent", DEFAULT_PO_VARIANCE_PERCENT))
    if variance_pct <= allowed_pct:
        return None
    return _flag(
        RuleType.PO_AMOUNT_VARIANCE, config,
        message=f"Invoice amount varies {variance_pct:.2f}% from purchase order",
        invoice_amount=invoice_total,
        po_amount=round(po_total, 4),
        variance=round(variance, 4),
        variance_percent=round(variance_pct, 2),
        threshold=allowed_pct,
        purchase_order_id=str(po.id),
    )


def check_po_item_mismatch(ctx: InvoiceContext, config: MergedConfig) -> Flag | None:
    po = ctx.purchase_order
    if po is None:
        return None

    ordered = _quantities_by_item(po.items)
    invoiced = _quantities_by_item(ctx.invoice.items)
    mismatches = []
    for item_id, qty in invoiced.items():
        if item_id not in ordered:
            mismatches.append({
                "item_id": str(item_id),
                "reason": "NOT_ON_PO",
                "invoiced_quantity": qty,
                "ordered_quantity": 0.0,
            })
        elif qty > ordered[item_id]:
            mismatches.append({
                "item_id": str(item_id),
                "reason": "QUANTITY_EXCEEDED",
                "invoiced_quantity": qty,
                "ordered_quantity": ordered[item_id],
                "excess": round(qty - ordered[item_id], 4),
            })

    if not mismatches:
        return None
    return _flag(
        RuleType.PO_ITEM_MISMATCH, config,
        message=f"{len(mismatches)} invoice item(s) missing from or exceeding the purchase order",
        mismatches=mismatches,
        mismatch_count=len(mismatches),
        purchase_order_id=str(po.id),
        recommendation="Verify these items belong on this invoice or amend the purchase order",
    )


def check_delivery_note_mismatch(ctx: InvoiceContext, config: MergedConfig) -> Flag | None:
    notes = ctx.delivery_notes
    if not notes:
        return None

    delivered: dict = defaultdict(float)
    for note in notes:
        for item_id, qty in _quantities_by_item(note.items, "quantity_delivered").items():
            delivered[item_id] += qty

    mismatches = []
    for item_id, qty in _quantities_by_item(ctx.invoice.items).items():
        got = delivered.get(item_id, 0.0)
        if qty > got:
            mismatches.append({
                "item_id": str(item_id),
                "invoiced_quantity": qty,
                "delivered_quantity": got,
                "excess": round(qty - got, 4),
            })

    if not mismatches:
        return None
    return _flag(
        RuleType.DELIVERY_NOTE_MISMATCH, config,
        message=f"{len(mismatches)} item(s) invoiced above the delivered quantity",
        mismatches=mismatches,
        mismatch_count=len(mismatches),
        delivery_note_ids=[str(note.id) for note in notes],
        recommendation="Verify delivered quantities or wait for outstanding deliveries",
    )


# Fixed dispatch table; iteration order is the evaluation order.
EVALUATORS: dict[RuleType, Evaluator] = {
    RuleType.DUPLICATE_INVOICE_NUMBER: check_duplicate_invoice_number,
    RuleType.MISSING_INVOICE_NUMBER: check_missing_invoice_number,
    RuleType.AMOUNT_THRESHOLD_EXCEEDED: check_amount_threshold,
    RuleType.ROUND_AMOUNT_PATTERN: check_round_amount,
    RuleType.PRICE_VARIANCE: check_price_variance,
    RuleType.PO_AMOUNT_VARIANCE: check_po_amount_variance,
    RuleType.PO_ITEM_MISMATCH: check_po_item_mismatch,
    RuleType.DELIVERY_NOTE_MISMATCH: check_delivery_note_mismatch,
}


def run_evaluators(ctx: InvoiceContext, configs, evaluators: dict[RuleType, Evaluator] | None = None) -> list[Flag]:
    """Run every enabled evaluator. Evaluator exceptions propagate: a run is never silently partial."""
    flags: list[Flag] = []
    for rule_type, evaluate in (evaluators or EVALUATORS).items():
        config = configs.get(rule_type)
        if config is None or not config.enabled:
            continue
        flag = evaluate(ctx, config)
        if flag is not None:
            logger.debug("Rule %s triggered for invoice %s", rule_type.value, ctx.invoice.id)
            flags.append(flag)
    return flags
