from decimal import Decimal

import pytest
from structlog.testing import capture_logs

from rental_billing.models.billing import parse_rental_invoice_entry
from rental_billing.services.billing_service import (
    InvoiceTotal,
    channel_cost,
    compute_invoice_total,
)

pytestmark = [pytest.mark.unit]

ZERO_PAYLOAD = {
    "totalAmount": "0.00",
    "commissionRate": 0,
    "commissionAmount": "0.00",
    "totalWithCommission": "0.00",
}


def _machine(base_price=500, gst=(18,), commission=10, **configs):
    machine = {
        "_id": "m-1",
        "basePrice": base_price,
        "gstType": [{"gstType": f"GST{p}", "gstPercentage": p} for p in gst],
        "commission": commission,
    }
    machine.update(configs)
    return machine


def _a4_bw_machine(**kwargs):
    return _machine(
        a4Config={"bwOldCount": 100, "freeCopiesBw": 20, "extraAmountBw": 2},
        **kwargs,
    )


def test_single_product_usage_gst_and_commission():
    entry = {"machineId": _a4_bw_machine(), "a4Config": {"bwNewCount": 150}}
    result = compute_invoice_total(entry)
    assert result.subtotal == Decimal("560.00")
    assert result.as_payload() == {
        "totalAmount": "660.80",
        "commissionRate": 10,
        "commissionAmount": "66.08",
        "totalWithCommission": "726.88",
    }


def test_meter_going_backwards_bills_base_price_only():
    entry = {"machineId": _a4_bw_machine(), "a4Config": {"bwNewCount": 90}}
    result = compute_invoice_total(entry)
    assert result.as_payload()["totalAmount"] == "590.00"
    assert result.subtotal == Decimal("500.00")


def test_first_product_fixes_gst_and_commission():
    entry = {
        "products": [
            {"machineId": _machine(base_price=100, gst=(18,), commission=10)},
            {"machineId": _machine(base_price=200, gst=(), commission=0)},
        ]
    }
    result = compute_invoice_total(entry)
    assert result.product_totals == (Decimal("100.00"), Decimal("200.00"))
    assert result.gst_rate == Decimal("18")
    assert result.as_payload() == {
        "totalAmount": "354.00",
        "commissionRate": 10,
        "commissionAmount": "35.40",
        "totalWithCommission": "389.40",
    }


def test_later_product_supplies_rate_when_earlier_ones_have_none():
    entry = {
        "products": [
            {"machineId": _machine(base_price=100, gst=(), commission=0)},
            {"machineId": _machine(base_price=100, gst=(5,), commission=2)},
        ]
    }
    payload = compute_invoice_total(entry).as_payload()
    assert payload["totalAmount"] == "210.00"
    assert payload["commissionRate"] == 2
    assert payload["commissionAmount"] == "4.20"
    assert payload["totalWithCommission"] == "214.20"


def test_rates_are_not_summed_across_products():
    entry = {
        "products": [
            {"machineId": _machine(base_price=100, gst=(12,), commission=0)},
            {"machineId": _machine(base_price=100, gst=(28,), commission=0)},
        ]
    }
    assert compute_invoice_total(entry).as_payload()["totalAmount"] == "224.00"


def test_gst_components_are_summed_within_a_product():
    machine = _machine(base_price=100, gst=(9, "9"), commission=0)
    result = compute_invoice_total({"machineId": machine})
    assert result.gst_rate == Decimal("18")
    assert result.as_payload()["totalAmount"] == "118.00"


def test_commission_falls_back_to_assigned_salesperson():
    entry = {
        "machineId": _machine(base_price=100, gst=(), commission=0),
        "assignedTo": {"_id": "emp-7", "name": "Ravi", "commission": 5},
    }
    payload = compute_invoice_total(entry).as_payload()
    assert payload["commissionRate"] == 5
    assert payload["commissionAmount"] == "5.00"


def test_machine_commission_wins_over_salesperson():
    entry = {
        "machineId": _machine(base_price=100, gst=(), commission=10),
        "assignedTo": {"commission": 5},
    }
    assert compute_invoice_total(entry).as_payload()["commissionRate"] == 10


def test_all_paper_sizes_and_modes_contribute():
    machine = _machine(
        base_price=500,
        gst=(),
        commission=0,
        a3Config={"colorOldCount": 1000, "freeCopiesColor": 100, "extraAmountColor": 5},
        a4Config={"bwOldCount": 100, "freeCopiesBw": 20, "extraAmountBw": 2},
        a5Config={"colorScanningOldCount": 0, "freeCopiesColorScanning": 20, "extraAmountColorScanning": 1},
    )
    entry = {
        "machineId": machine,
        "a3Config": {"colorNewCount": 1300},
        "a4Config": {"bwNewCount": 150},
        "a5Config": {"colorScanningNewCount": 10},
    }
    result = compute_invoice_total(entry)
    # A3 colour 200 x 5 + A4 bw 30 x 2 + A5 scanning within allowance
    assert result.as_payload()["totalAmount"] == "1560.00"


def test_paper_size_missing_on_machine_is_not_billed():
    entry = {
        "machineId": _machine(base_price=100, gst=(), commission=0),
        "a3Config": {"bwNewCount": 10_000},
    }
    assert compute_invoice_total(entry).as_payload()["totalAmount"] == "100.00"


def test_malformed_numbers_degrade_to_zero():
    machine = _machine(
        base_price="abc",
        gst=("n/a",),
        commission=None,
        a4Config={"bwOldCount": "100", "freeCopiesBw": "", "extraAmountBw": "two"},
    )
    entry = {"machineId": machine, "a4Config": {"bwNewCount": "150"}}
    assert compute_invoice_total(entry).as_payload() == ZERO_PAYLOAD


def test_numeric_strings_are_accepted():
    machine = _machine(
        base_price="500",
        gst=("18",),
        commission="10",
        a4Config={"bwOldCount": "100", "freeCopiesBw": "20", "extraAmountBw": "2"},
    )
    entry = {"machineId": machine, "a4Config": {"bwNewCount": "150"}}
    assert compute_invoice_total(entry).as_payload()["totalWithCommission"] == "726.88"


def test_rounding_is_half_away_from_zero():
    entry = {"machineId": _machine(base_price="10.05", gst=(), commission=50)}
    payload = compute_invoice_total(entry).as_payload()
    assert payload["totalAmount"] == "10.05"
    assert payload["commissionAmount"] == "5.03"
    assert payload["totalWithCommission"] == "15.08"


@pytest.mark.parametrize("entry", [None, "not-an-entry", 42])
def test_missing_or_unparseable_entry_returns_zero(entry):
    assert compute_invoice_total(entry).as_payload() == ZERO_PAYLOAD


def test_missing_machine_returns_zero_result():
    with capture_logs() as logs:
        result = compute_invoice_total({"a4Config": {"bwNewCount": 150}})
    assert result.as_payload() == ZERO_PAYLOAD
    assert result.is_zero
    assert logs[0]["event"] == "rental_billing.zero_fallback"
    assert logs[0]["reason"] == "missing_machine"


def test_unpopulated_machine_reference_returns_zero_result():
    entry = {"machineId": "65f1c0ffee", "a4Config": {"bwNewCount": 150}}
    assert compute_invoice_total(entry).as_payload() == ZERO_PAYLOAD


def test_any_missing_product_machine_returns_zero_result():
    entry = {
        "products": [
            {"machineId": _a4_bw_machine(), "a4Config": {"bwNewCount": 150}},
            {"a4Config": {"bwNewCount": 10}},
        ]
    }
    assert compute_invoice_total(entry).as_payload() == ZERO_PAYLOAD


def test_empty_products_list_uses_legacy_shape():
    entry = {"products": [], "machineId": _a4_bw_machine(), "a4Config": {"bwNewCount": 150}}
    assert compute_invoice_total(entry).as_payload()["totalAmount"] == "660.80"


def test_products_take_precedence_over_legacy_machine():
    entry = {
        "machineId": _machine(base_price=9999),
        "products": [{"machineId": _machine(base_price=100, gst=(), commission=0)}],
    }
    assert compute_invoice_total(entry).as_payload()["totalAmount"] == "100.00"


def test_legacy_and_single_product_shapes_agree():
    legacy = {"machineId": _a4_bw_machine(), "a4Config": {"bwNewCount": 150}}
    multi = {"products": [{"machineId": _a4_bw_machine(), "a4Config": {"bwNewCount": 150}}]}
    assert compute_invoice_total(legacy) == compute_invoice_total(multi)


def test_calculation_is_idempotent():
    entry = parse_rental_invoice_entry({"machineId": _a4_bw_machine(), "a4Config": {"bwNewCount": 150}})
    assert compute_invoice_total(entry) == compute_invoice_total(entry)


@pytest.mark.parametrize(
    "old,new,free,rate",
    [(100, 100, 0, 5), (100, 90, 0, 5), (100, 0, 50, 1), (0, 0, 0, 0), (500, 499, 0, "0.75")],
)
def test_no_usage_costs_nothing(old, new, free, rate):
    assert channel_cost(old, new, free, rate) == 0


@pytest.mark.parametrize("free", [10, 49, 50, 1000])
def test_free_allowance_never_produces_negative_cost(free):
    cost = channel_cost(0, 50, free, 3)
    assert cost >= 0
    assert cost == max(0, 50 - free) * 3


def test_channel_cost_overage():
    assert channel_cost(100, 150, 20, 2) == Decimal("60")
    assert channel_cost(100, 150, 20, "0.5") == Decimal("15.0")


def test_zero_result_shape():
    assert InvoiceTotal.zero().as_payload() == ZERO_PAYLOAD


@pytest.mark.parametrize(
    "machine",
    [
        {"basePrice": "1e30"},
        {"basePrice": "1e999999", "gstType": [{"gstPercentage": "1e999999"}]},
        {"basePrice": 100, "commission": "1e40"},
        {"basePrice": 1, "a4Config": {"freeCopiesBw": 0, "extraAmountBw": "1e999999"}},
    ],
)
def test_amounts_beyond_decimal_range_return_zero_result(machine):
    entry = {"machineId": machine, "a4Config": {"bwNewCount": "1e999999"}}
    with capture_logs() as logs:
        result = compute_invoice_total(entry)
    assert result.as_payload() == ZERO_PAYLOAD
    assert result.fallback_reason == "arithmetic_overflow"
    assert logs[-1]["reason"] == "arithmetic_overflow"


def test_large_but_representable_amounts_are_billed():
    entry = {"machineId": {"basePrice": "1e20", "gstType": [{"gstPercentage": 18}]}}
    result = compute_invoice_total(entry)
    assert result.fallback_reason is None
    assert result.as_payload()["totalAmount"] == "118000000000000000000.00"


def test_numeric_labels_do_not_cancel_the_bill():
    entry = {
        "machineId": {
            "basePrice": 500,
            "serialNo": 12345,
            "modelName": 2020,
            "gstType": [{"gstType": 18, "gstPercentage": 18}],
        },
        "assignedTo": {"_id": 7, "name": 7},
    }
    assert compute_invoice_total(entry).as_payload()["totalAmount"] == "590.00"


def test_fallback_reason_identifies_zero_results():
    assert compute_invoice_total(None).fallback_reason == "missing_entry"
    assert compute_invoice_total(42).fallback_reason == "invalid_entry"
    assert compute_invoice_total({"machineId": "65f1c0ffee"}).fallback_reason == "missing_machine"
    assert compute_invoice_total({"machineId": {"basePrice": 0}}).fallback_reason is None
