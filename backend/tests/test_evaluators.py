"""Tests for the eight rule evaluators.

Evaluators are pure: each test builds an in-memory invoice aggregate and a
MergedConfig and checks the returned Flag (or None).
"""
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from procurement.models.validation import RuleType, Severity
from procurement.validation.evaluators import (
    EVALUATORS,
    check_amount_threshold,
    check_delivery_note_mismatch,
    check_duplicate_invoice_number,
    check_missing_invoice_number,
    check_po_amount_variance,
    check_po_item_mismatch,
    check_price_variance,
    check_round_amount,
    run_evaluators,
)
from procurement.validation.types import InvoiceContext, MergedConfig, PricePoint

NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)
ITEM_A = uuid.UUID("0b0e4c1e-0000-4000-8000-00000000000a")
ITEM_B = uuid.UUID("0b0e4c1e-0000-4000-8000-00000000000b")


# ─── Helpers ──────────────────────────────────────────────────────────────────

def _line(item_id, quantity, unit_price, name="Widget"):
    return SimpleNamespace(
        item_id=item_id,
        quantity=Decimal(str(quantity)),
        unit_price=Decimal(str(unit_price)),
        item=SimpleNamespace(id=item_id, name=name),
    )


def _po(lines):
    from procurement.models.purchase_order import PurchaseOrder

    po = SimpleNamespace(id=uuid.uuid4(), items=lines)
    po.total_amount = PurchaseOrder.total_amount.fget(po)
    return po


def _note(lines):
    return SimpleNamespace(
        id=uuid.uuid4(),
        items=[SimpleNamespace(item_id=i, quantity_delivered=Decimal(str(q))) for i, q in lines],
    )


def _invoice(invoice_number="INV-2024-001", total_amount=5250, items=None, purchase_order=None, notes=None):
    return SimpleNamespace(
        id=uuid.uuid4(),
        invoice_number=invoice_number,
        vendor_id=uuid.uuid4(),
        total_amount=Decimal(str(total_amount)),
        items=items or [],
        purchase_order=purchase_order,
        delivery_note_links=[SimpleNamespace(delivery_note=n) for n in (notes or [])],
    )


def _ctx(invoice=None, duplicates=None, price_history=None):
    return InvoiceContext(invoice=invoice or _invoice(), duplicates=duplicates or [], price_history=price_history or {})


def _cfg(severity=Severity.WARNING, enabled=True, **config):
    return MergedConfig(enabled=enabled, severity=severity, config=config)


def _history(*prices):
    return [PricePoint(price=float(p), recorded_at=NOW - timedelta(days=i)) for i, p in enumerate(prices)]


# ─── Tests: header rules ──────────────────────────────────────────────────────

def test_duplicate_flags_with_details_and_config_severity():
    dup = SimpleNamespace(
        id=uuid.uuid4(), invoice_date=NOW, total_amount=Decimal("800"), status="APPROVED",
    )
    flag = check_duplicate_invoice_number(
        _ctx(_invoice(invoice_number="DUP-001"), duplicates=[dup]), _cfg(Severity.CRITICAL)
    )
    assert flag.rule_type == RuleType.DUPLICATE_INVOICE_NUMBER
    assert flag.severity == Severity.CRITICAL
    assert flag.details["duplicate_invoice_id"] == str(dup.id)
    assert flag.details["duplicate_status"] == "APPROVED"
    assert flag.details["duplicate_amount"] == 800.0


def test_duplicate_not_flagged_without_candidates():
    assert check_duplicate_invoice_number(_ctx(), _cfg()) is None


def test_duplicate_ignores_blank_number():
    dup = SimpleNamespace(id=uuid.uuid4(), invoice_date=None, total_amount=0, status="PENDING")
    assert check_duplicate_invoice_number(_ctx(_invoice(invoice_number="  "), duplicates=[dup]), _cfg()) is None


@pytest.mark.parametrize("number", ["", None, "   "])
def test_missing_invoice_number_flags(number):
    flag = check_missing_invoice_number(_ctx(_invoice(invoice_number=number)), _cfg())
    assert flag.rule_type == RuleType.MISSING_INVOICE_NUMBER


def test_missing_invoice_number_passes_when_present():
    assert check_missing_invoice_number(_ctx(), _cfg()) is None


def test_amount_threshold_strictly_greater():
    assert check_amount_threshold(_ctx(_invoice(total_amount=10000)), _cfg(threshold=10000)) is None
    flag = check_amount_threshold(_ctx(_invoice(total_amount=15000)), _cfg(threshold=10000))
    assert flag.details["amount"] == 15000.0
    assert flag.details["threshold"] == 10000.0
    assert flag.details["excess"] == 5000.0


def test_amount_threshold_default_when_key_absent():
    assert check_amount_threshold(_ctx(_invoice(total_amount=9999)), _cfg()) is None
    assert check_amount_threshold(_ctx(_invoice(total_amount=10001)), _cfg()) is not None


def test_amount_threshold_zero_is_honoured():
    assert check_amount_threshold(_ctx(_invoice(total_amount=1)), _cfg(threshold=0)) is not None


def test_round_amount_multiple_of_100_above_minimum():
    flag = check_round_amount(_ctx(_invoice(total_amount=5000)), _cfg(Severity.INFO, minimumAmount=1000))
    assert flag.severity == Severity.INFO
    assert flag.details["amount"] == 5000.0


@pytest.mark.parametrize("amount", [5250, 500, "5000.50"])
def test_round_amount_not_flagged(amount):
    assert check_round_amount(_ctx(_invoice(total_amount=amount)), _cfg(minimumAmount=1000)) is None


def test_round_amount_minimum_is_inclusive():
    assert check_round_amount(_ctx(_invoice(total_amount=1000)), _cfg(minimumAmount=1000)) is not None


# ─── Tests: price variance ────────────────────────────────────────────────────

def test_price_variance_against_recent_average():
    inv = _invoice(items=[_line(ITEM_A, 1, 130), _line(ITEM_B, 1, 101)])
    history = {ITEM_A: _history(100, 100, 100), ITEM_B: _history(100, 100)}
    flag = check_price_variance(_ctx(inv, price_history=history), _cfg(Severity.INFO, variancePercent=15, historicalCount=5))
    assert flag.details["variance_count"] == 1
    entry = flag.details["variances"][0]
    assert entry["item_id"] == str(ITEM_A)
    assert entry["average_price"] == 100.0
    assert entry["variance_percent"] == 30.0


def test_price_variance_uses_only_historical_count_points():
    inv = _invoice(items=[_line(ITEM_A, 1, 100)])
    # newest two average 100; older points would drag the mean down
    history = {ITEM_A: _history(100, 100, 10, 10, 10)}
    assert check_price_variance(_ctx(inv, price_history=history), _cfg(variancePercent=15, historicalCount=2)) is None
    assert check_price_variance(_ctx(inv, price_history=history), _cfg(variancePercent=15, historicalCount=5)) is not None


def test_price_variance_skips_items_without_history():
    inv = _invoice(items=[_line(ITEM_A, 1, 999)])
    assert check_price_variance(_ctx(inv), _cfg(variancePercent=15, historicalCount=5)) is None


def test_price_variance_skips_zero_average():
    inv = _invoice(items=[_line(ITEM_A, 1, 10)])
    assert check_price_variance(_ctx(inv, price_history={ITEM_A: _history(0, 0)}), _cfg()) is None


def test_price_variance_zero_history_count_never_flags():
    inv = _invoice(items=[_line(ITEM_A, 1, 500)])
    assert check_price_variance(
        _ctx(inv, price_history={ITEM_A: _history(100)}), _cfg(variancePercent=15, historicalCount=0)
    ) is None


# ─── Tests: purchase order rules ──────────────────────────────────────────────

def test_po_amount_variance_flags_above_percent():
    po = _po([_line(ITEM_A, 10, 100)])  # 1000
    flag = check_po_amount_variance(_ctx(_invoice(total_amount=1200, purchase_order=po)), _cfg(variancePercent=10))
    assert flag.details["po_amount"] == 1000.0
    assert flag.details["variance_percent"] == 20.0
    assert flag.details["purchase_order_id"] == str(po.id)


def test_po_amount_variance_within_tolerance():
    po = _po([_line(ITEM_A, 10, 100)])
    assert check_po_amount_variance(_ctx(_invoice(total_amount=1050, purchase_order=po)), _cfg(variancePercent=10)) is None


def test_po_amount_variance_needs_linked_po_with_value():
    assert check_po_amount_variance(_ctx(_invoice(total_amount=99999)), _cfg()) is None
    empty_po = _po([])
    assert check_po_amount_variance(_ctx(_invoice(total_amount=99999, purchase_order=empty_po)), _cfg()) is None


def test_po_item_mismatch_not_on_po_and_quantity_exceeded():
    po = _po([_line(ITEM_A, 5, 10)])
    inv = _invoice(items=[_line(ITEM_A, 3, 10), _line(ITEM_A, 4, 10), _line(ITEM_B, 1, 10)], purchase_order=po)
    flag = check_po_item_mismatch(_ctx(inv), _cfg())
    reasons = {m["item_id"]: m["reason"] for m in flag.details["mismatches"]}
    assert reasons == {str(ITEM_A): "QUANTITY_EXCEEDED", str(ITEM_B): "NOT_ON_PO"}


def test_po_item_mismatch_clean():
    po = _po([_line(ITEM_A, 5, 10), _line(ITEM_B, 2, 10)])
    inv = _invoice(items=[_line(ITEM_A, 5, 10)], purchase_order=po)
    assert check_po_item_mismatch(_ctx(inv), _cfg()) is None


def test_delivery_note_mismatch_sums_across_notes():
    inv = _invoice(items=[_line(ITEM_A, 10, 5)], notes=[_note([(ITEM_A, 4)]), _note([(ITEM_A, 6)])])
    assert check_delivery_note_mismatch(_ctx(inv), _cfg()) is None

    inv = _invoice(items=[_line(ITEM_A, 10, 5), _line(ITEM_B, 1, 5)], notes=[_note([(ITEM_A, 8)])])
    flag = check_delivery_note_mismatch(_ctx(inv), _cfg())
    by_item = {m["item_id"]: m for m in flag.details["mismatches"]}
    assert by_item[str(ITEM_A)]["delivered_quantity"] == 8.0
    assert by_item[str(ITEM_B)]["delivered_quantity"] == 0.0
    assert len(flag.details["delivery_note_ids"]) == 1


def test_delivery_note_mismatch_needs_linked_notes():
    inv = _invoice(items=[_line(ITEM_A, 10, 5)])
    assert check_delivery_note_mismatch(_ctx(inv), _cfg()) is None


# ─── Tests: dispatch ──────────────────────────────────────────────────────────

def test_dispatch_table_covers_every_rule_type():
    assert list(EVALUATORS) == list(RuleType)


def test_disabled_rules_never_flag():
    inv = _invoice(invoice_number="", total_amount=15000)
    configs = {rule_type: _cfg(enabled=False, threshold=0, minimumAmount=0) for rule_type in RuleType}
    assert run_evaluators(_ctx(inv), configs) == []


def test_rules_without_config_are_skipped():
    inv = _invoice(invoice_number="", total_amount=15000)
    flags = run_evaluators(_ctx(inv), {RuleType.MISSING_INVOICE_NUMBER: _cfg()})
    assert [f.rule_type for f in flags] == [RuleType.MISSING_INVOICE_NUMBER]


def test_evaluator_errors_propagate():
    def boom(ctx, config):
        raise ValueError("bad data")

    with pytest.raises(ValueError, match="bad data"):
        run_evaluators(_ctx(), {RuleType.MISSING_INVOICE_NUMBER: _cfg()}, {RuleType.MISSING_INVOICE_NUMBER: boom})
