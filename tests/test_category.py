"""
Tests for the first-match expense category rules.
"""

import pytest

from receipt_ocr.services.category import CATEGORIES, CategoryRule, infer_category


@pytest.mark.parametrize(
    "text,vendor,expected",
    [
        ("Monthly plan", "Adobe", "Software & Subscriptions"),
        ("64GB SD Card", None, "Equipment & Gear"),
        ("Trip fare $14.20", "Lyft", "Vehicle & Travel"),
        ("STARBUCKS COFFEE\nTotal: $6.75", None, "Meals & Entertainment"),
        ("500 business cards", "PrintCo", "Marketing & Advertising"),
        ("Retainer", "Smith Attorney at Law", "Professional Services"),
        ("PayPal fee on sale", None, "Income Processing Fees"),
        ("Hot desk", "WeWork", "Home Office / Workspace"),
    ],
)
def test_infer_category(text, vendor, expected):
    assert infer_category(text, vendor) == expected


def test_first_rule_wins():
    """An Uber receipt mentioning coffee is still travel"""
    assert infer_category("Uber trip to the coffee shop", None) == "Vehicle & Travel"


def test_no_match_returns_empty_string():
    assert infer_category("Thank you", "Corner Deli") == ""
    assert infer_category("", None) == ""
    assert infer_category(None) == ""


def test_vendor_alone_is_enough():
    assert infer_category("", "Starbucks") == "Meals & Entertainment"


def test_custom_rules():
    rules = [CategoryRule(category="Pets", terms=["kibble"])]

    assert infer_category("Premium kibble 10kg", rules=rules) == "Pets"
    assert infer_category("Premium kibble 10kg", rules=[]) == ""


def test_categories_keep_rule_order():
    assert CATEGORIES[0] == "Software & Subscriptions"
    assert CATEGORIES[-1] == "Home Office / Workspace"
    assert len(CATEGORIES) == 8
