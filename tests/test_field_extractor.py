"""
Tests for the heuristic field parsers (date, total, vendor, location).
"""

import pytest

from receipt_ocr.services.field_extractor import (
    VENDOR_MAX_LENGTH,
    best_vendor_candidate,
    extract_amounts,
    extract_date,
    extract_fields,
    extract_location,
    extract_total,
    extract_vendor,
    parse_city_state,
    score_vendor_line,
    split_lines,
)


# --- Date ---

@pytest.mark.parametrize(
    "text",
    [
        "Paid on March 5th, 2024",
        "Issued 2024-03-05",
        "Date: 03/05/2024",
        "5 March 2024",
        "Mar 5 2024",
    ],
)
def test_extract_date_formats(text):
    assert extract_date(text) == "2024-03-05"


def test_extract_date_two_digit_year_is_2000s():
    assert extract_date("Date 1/5/24") == "2024-01-05"


def test_extract_date_rejects_rollover():
    """Feb 30 does not exist, so nothing is returned"""
    assert extract_date("Date: 02/30/2024") is None


def test_extract_date_prefers_keyword_line():
    text = "Printed 2023-12-01\nInvoice Date: Jan 5, 2024"
    assert extract_date(text) == "2024-01-05"


def test_extract_date_month_name_beats_numeric_in_whole_text():
    text = "Ref 2023-11-30\nThanks for visiting Feb 2, 2024"
    assert extract_date(text) == "2024-02-02"


def test_extract_date_none():
    assert extract_date("") is None
    assert extract_date("no dates in here") is None


# --- Total ---

def test_extract_total_picks_largest_labelled_amount():
    text = "Subtotal $10.00\nTax $1.00\nTotal $11.00"
    assert extract_total(text) == 11.00


def test_extract_total_falls_back_to_largest_amount():
    assert extract_total("Latte 4.50\nMuffin 3.25") == 4.50


def test_extract_total_thousands_separator():
    assert extract_total("Amount Due: $1,234.56") == 1234.56


def test_extract_total_none():
    assert extract_total("") is None
    assert extract_total("Thank you, come again") is None


def test_extract_amounts_requires_two_decimals():
    assert extract_amounts("Qty 3 at 4.5 each, 12.00 total") == [12.00]


# --- Vendor ---

def test_extract_vendor_end_to_end_receipt(starbucks_text):
    assert extract_vendor(starbucks_text) == "STARBUCKS COFFEE"


def test_extract_vendor_strips_label_prefix():
    text = "Order Summary\nSold By: Acme Tools Inc\nTotal $5.00"
    assert extract_vendor(text) == "Acme Tools Inc"


def test_extract_vendor_skips_email_and_url_lines():
    text = "hello@bluebottle.com\nwww.bluebottle.com\nBlue Bottle Coffee\n1 Ferry Building"
    assert extract_vendor(text) == "Blue Bottle Coffee"


def test_extract_vendor_truncates_long_names():
    text = "The Extraordinarily Long Named Neighborhood Bakery And Coffee Roasters Company"
    vendor = extract_vendor(text)
    assert vendor is not None
    assert len(vendor) <= VENDOR_MAX_LENGTH


def test_extract_vendor_none_without_letters():
    assert extract_vendor("12.00\n$5.00") is None
    assert extract_vendor("") is None


def test_vendor_scoring_is_deterministic(starbucks_text):
    lines = split_lines(starbucks_text, min_length=3)
    first = best_vendor_candidate(lines)
    second = best_vendor_candidate(lines)
    assert first == second
    assert first.value == "STARBUCKS COFFEE"
    assert first.score > 0


def test_score_vendor_line_penalizes_address():
    name = score_vendor_line("Blue Bottle Coffee", 3, set())
    address = score_vendor_line("123 Main Street", 3, set())
    assert address.score < name.score


def test_score_vendor_line_rewards_line_above_address():
    without = score_vendor_line("Blue Bottle Coffee", 3, set())
    above_address = score_vendor_line("Blue Bottle Coffee", 3, {4})
    assert above_address.score == without.score + 2


def test_score_vendor_line_rewards_company_suffix():
    plain = score_vendor_line("Acme Tools", 8, set())
    company = score_vendor_line("Acme Tools LLC", 8, set())
    assert company.score == plain.score + 3


def test_score_vendor_line_skips_order_metadata():
    assert score_vendor_line("Order Number 112-3345", 0, set()) is None
    assert score_vendor_line("Summary of charges", 0, set()) is None


# --- Location ---

def test_extract_location_city_state_zip(starbucks_text):
    assert extract_location(starbucks_text) == "Seattle, WA"


def test_extract_location_space_joined():
    assert extract_location("Seattle WA 98101") == "Seattle, WA"


def test_extract_location_city_comma_state():
    assert extract_location("Thanks for visiting\nPortland, OR") == "Portland, OR"


def test_extract_location_none():
    assert extract_location("TOTAL 5.00") is None


def test_parse_city_state():
    assert parse_city_state("1 Apple Park Way, Cupertino, CA 95014") == "Cupertino, CA"
    assert parse_city_state("Cupertino, CA") == "Cupertino, CA"
    assert parse_city_state("") is None


# --- Aggregate ---

def test_extract_fields_end_to_end(starbucks_text):
    suggestion = extract_fields(starbucks_text)

    assert suggestion.date == "2024-01-15"
    assert suggestion.vendor == "STARBUCKS COFFEE"
    assert suggestion.location == "Seattle, WA"
    assert suggestion.total == 6.75


def test_extract_fields_known_vendor_wins(starbucks_text):
    assert extract_fields(starbucks_text, vendor="Starbucks #1234").vendor == "Starbucks #1234"


def test_extract_fields_absent_when_nothing_found():
    assert extract_fields("") is None
    assert extract_fields("12\n34") is None
