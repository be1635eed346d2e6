"""
Heuristic field extraction from raw OCR text.

Four independent parsers infer the receipt date, total, vendor and location.
None of them raise: a field that cannot be found is returned as None.
"""

import re
from dataclasses import dataclass
from datetime import date as Date

from ..models.ocr import OcrSuggestion


def split_lines(text: str, min_length: int = 1) -> list[str]:
    """Split into lines with whitespace collapsed, dropping short lines."""
    lines = []
    for raw in re.split(r"\r?\n", text or ""):
        line = re.sub(r"\s+", " ", raw).strip()
        if len(line) >= min_length:
            lines.append(line)
    return lines


# ---------------------------------------------------------------------------
# Date
# ---------------------------------------------------------------------------

MONTH_NAMES = (
    r"(Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|Jun(?:e)?|Jul(?:y)?|"
    r"Aug(?:ust)?|Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)"
)
MONTH_FIRST_RE = re.compile(
    rf"\b{MONTH_NAMES}\s+(\d{{1,2}})(?:st|nd|rd|th)?(?:,)?\s+(\d{{4}})\b", re.IGNORECASE
)
DAY_FIRST_RE = re.compile(
    rf"\b(\d{{1,2}})(?:st|nd|rd|th)?\s+{MONTH_NAMES}\s+(\d{{4}})\b", re.IGNORECASE
)
YEAR_FIRST_RE = re.compile(
    r"\b(20\d{2}|19\d{2})[/\-.](0?[1-9]|1[0-2])[/\-.](0?[1-9]|[12]\d|3[01])\b"
)
MONTH_FIRST_NUMERIC_RE = re.compile(
    r"\b(0?[1-9]|1[0-2])[/\-.](0?[1-9]|[12]\d|3[01])[/\-.]((?:20)?\d{2})\b"
)
DATE_LINE_RE = re.compile(r"(date|paid|invoice|issued|billing)", re.IGNORECASE)

MONTH_INDEX = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}


def _build_date(year: int, month: int, day: int) -> str | None:
    # Rejects roll-overs such as Feb 30
    try:
        return Date(year, month, day).isoformat()
    except ValueError:
        return None


def _parse_month_name_date(value: str) -> str | None:
    match = MONTH_FIRST_RE.search(value)
    if match:
        month = MONTH_INDEX.get(match.group(1)[:3].lower(), 0)
        if month:
            return _build_date(int(match.group(3)), month, int(match.group(2)))

    match = DAY_FIRST_RE.search(value)
    if match:
        month = MONTH_INDEX.get(match.group(2)[:3].lower(), 0)
        if month:
            return _build_date(int(match.group(3)), month, int(match.group(1)))
    return None


def _parse_numeric_date(value: str) -> str | None:
    match = YEAR_FIRST_RE.search(value)
    if match:
        parsed = _build_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        if parsed:
            return parsed

    match = MONTH_FIRST_NUMERIC_RE.search(value)
    if match:
        year = int(match.group(3))
        if year < 100:
            year += 2000
        parsed = _build_date(year, int(match.group(1)), int(match.group(2)))
        if parsed:
            return parsed
    return None


def extract_date(text: str) -> str | None:
    """
    Find the receipt date and return it as YYYY-MM-DD.

    Lines mentioning date/paid/invoice/issued/billing are tried first
    (month-name formats, then numeric). Otherwise month-name formats are
    searched across the whole text, then numeric formats.
    """
    if not text:
        return None

    for line in split_lines(text):
        if not DATE_LINE_RE.search(line):
            continue
        parsed = _parse_month_name_date(line) or _parse_numeric_date(line)
        if parsed:
            return parsed

    return _parse_month_name_date(text) or _parse_numeric_date(text)


# ---------------------------------------------------------------------------
# Total
# ---------------------------------------------------------------------------

AMOUNT_RE = re.compile(r"(\$\s*)?\d{1,3}(?:,\d{3})*(?:\.\d{2})|(?:\$\s*)?\d+\.\d{2}")
TOTAL_LINE_RE = re.compile(
    r"(grand\s*total|total|amount|balance\s*due|amount\s*due|paid)", re.IGNORECASE
)


def extract_amounts(text: str) -> list[float]:
    """All currency-like values with exactly two decimals, in text order."""
    amounts = []
    for match in AMOUNT_RE.finditer(text or ""):
        raw = re.sub(r"[^0-9.]", "", match.group(0))
        try:
            amounts.append(float(raw))
        except ValueError:
            continue
    return amounts


def extract_total(text: str) -> float | None:
    """
    Largest amount on a total/amount/balance/paid line.

    Subtotals and taxes are smaller than the grand total, so the maximum
    labelled amount wins. Falls back to the largest amount anywhere.
    """
    if not text:
        return None

    totals: list[float] = []
    for line in re.split(r"\r?\n", text):
        line = line.strip()
        if line and TOTAL_LINE_RE.search(line):
            totals.extend(extract_amounts(line))

    if totals:
        return max(totals)

    amounts = extract_amounts(text)
    return max(amounts) if amounts else None


# ---------------------------------------------------------------------------
# Vendor
# ---------------------------------------------------------------------------

BOILERPLATE_RE = re.compile(
    r"(summary|invoice|receipt|statement|order|status|delivery|subtotal|total|amount|"
    r"balance|tax|change|payment|paid|date|due|billing|billed|shipping|ship|qty|"
    r"quantity|item|items|description|plan|subscription|service|card|visa|mastercard|"
    r"amex|cash|paypal|transaction|fee|reference|number|id|vat|email)",
    re.IGNORECASE,
)
HARD_SKIP_RE = re.compile(
    r"(order number|order date|order status|delivery on|delivery on or before|"
    r"tracking number|shipment)",
    re.IGNORECASE,
)
SUMMARY_LINE_RE = re.compile(r"^summary\b", re.IGNORECASE)
COMPANY_RE = re.compile(
    r"\b(inc|llc|l\.l\.c\.|corp|corporation|company|co\.|ltd|limited|gmbh|sarl|sa|plc|"
    r"bv|oy|ab|ag|kg|pte|llp)\b",
    re.IGNORECASE,
)
EMAIL_RE = re.compile(r"@")
URL_RE = re.compile(r"(https?://|www\.)", re.IGNORECASE)
ADDRESS_RE = re.compile(
    r"\b(\d{1,5}\s+\S+|street|st\.|avenue|ave\.|road|rd\.|boulevard|blvd\.|lane|ln\.|"
    r"drive|dr\.|suite|ste\.|floor|fl\.|stra(?:ss|ß)e|str\.)\b",
    re.IGNORECASE,
)
CITY_STATE_RE = re.compile(r"\b[A-Za-z .'-]+,\s*[A-Z]{2}\b")
POSTAL_RE = re.compile(r"\b\d{5}(?:-\d{4})?\b")
LABEL_PREFIX_RE = re.compile(
    r"^(invoice|invoice number|date paid|date|paid|payment|bill to|sold by|from|vendor|"
    r"merchant|seller|sold to|billed to)\b[:\s-]*",
    re.IGNORECASE,
)
LABEL_VALUE_RE = re.compile(r"\b[A-Za-z][A-Za-z &.]{2,}\s*:\s*\S+")
ALL_CAPS_RE = re.compile(r"^[A-Z0-9 &.,'-]+$")

VENDOR_MAX_LENGTH = 40


def is_address(line: str) -> bool:
    return bool(ADDRESS_RE.search(line) or CITY_STATE_RE.search(line) or POSTAL_RE.search(line))


def _has_letters(value: str) -> bool:
    return bool(re.search(r"[A-Za-z]", value))


def _strip_address_tail(line: str) -> str:
    match = ADDRESS_RE.search(line)
    if match and match.start() > 0:
        return line[: match.start()].strip()
    return line


def normalize_vendor_candidate(line: str) -> str:
    """Strip a leading field label ("Sold By:") and any trailing street address."""
    candidate = LABEL_PREFIX_RE.sub("", line, count=1).strip()
    candidate = _strip_address_tail(candidate)
    return re.sub(r"\s{2,}", " ", candidate).strip()


def _is_title_case(value: str) -> bool:
    words = value.split()
    if len(words) < 2:
        return False
    capitalised = sum(1 for word in words if word[0].isupper() and word[0].isascii())
    return capitalised / len(words) >= 0.6


@dataclass(frozen=True)
class VendorCandidate:
    value: str
    score: int
    index: int


def score_vendor_line(line: str, index: int, address_indexes: set[int]) -> VendorCandidate | None:
    """
    Score one line as a vendor name.

    Args:
        line: Whitespace-collapsed line
        index: Position of the line in the document
        address_indexes: Indexes of lines that look like addresses

    Returns:
        VendorCandidate with the cleaned value, or None if the line is excluded
    """
    if HARD_SKIP_RE.search(line):
        return None
    if SUMMARY_LINE_RE.search(line) and not COMPANY_RE.search(line):
        return None

    cleaned = normalize_vendor_candidate(line)
    if not cleaned or len(cleaned) < 2 or len(cleaned) > 80:
        return None
    if not _has_letters(cleaned):
        return None
    if EMAIL_RE.search(cleaned) or URL_RE.search(cleaned):
        return None

    has_company = bool(COMPANY_RE.search(cleaned))
    # "Name: x  Phone: y" style lines are field listings, not a vendor
    if len(LABEL_VALUE_RE.findall(cleaned)) >= 2 and not has_company:
        return None

    score = 0
    if line != cleaned:
        score += 3
    if has_company:
        score += 3
    if _is_title_case(cleaned):
        score += 2
    if ALL_CAPS_RE.match(cleaned) and len(cleaned) <= 40:
        score += 2

    word_count = len(cleaned.split())
    if 1 <= word_count <= 6:
        score += 1
    if word_count == 1 and not has_company:
        score -= 1

    if index <= 2:
        score += 2
    elif index <= 5:
        score += 1

    # Vendor names usually sit directly above their own address
    if index + 1 in address_indexes or index + 2 in address_indexes:
        score += 2

    if BOILERPLATE_RE.search(cleaned):
        score -= 2
    if is_address(cleaned):
        score -= 3

    return VendorCandidate(value=cleaned[:VENDOR_MAX_LENGTH], score=score, index=index)


def best_vendor_candidate(lines: list[str]) -> VendorCandidate | None:
    """Highest-scoring candidate; earlier lines win ties."""
    address_indexes = {i for i, line in enumerate(lines) if is_address(line)}

    best = None
    for index, line in enumerate(lines):
        candidate = score_vendor_line(line, index, address_indexes)
        if candidate is None:
            continue
        if best is None or candidate.score > best.score:
            best = candidate
    return best


def _usable_line(line: str) -> bool:
    if not _has_letters(line):
        return False
    if EMAIL_RE.search(line) or URL_RE.search(line):
        return False
    return not is_address(line)


def extract_vendor(text: str) -> str | None:
    """
    Pick the most likely vendor name.

    Falls back to the first usable line after a boilerplate-labelled line,
    then to the first usable line that is not boilerplate itself.
    """
    if not text:
        return None

    lines = split_lines(text, min_length=3)

    best = best_vendor_candidate(lines)
    if best and best.score > 0:
        return best.value

    for i in range(len(lines) - 1):
        if not BOILERPLATE_RE.search(lines[i]):
            continue
        for candidate in lines[i + 1:]:
            if not _usable_line(candidate):
                continue
            cleaned = normalize_vendor_candidate(candidate)
            if cleaned:
                return cleaned[:VENDOR_MAX_LENGTH]

    for line in lines:
        if not _usable_line(line) or BOILERPLATE_RE.search(line):
            continue
        cleaned = normalize_vendor_candidate(line)[:VENDOR_MAX_LENGTH]
        return cleaned or None

    return None


# ---------------------------------------------------------------------------
# Location
# ---------------------------------------------------------------------------

CITY_STATE_ZIP_RE = re.compile(r"([A-Za-z][A-Za-z .'-]+)[, ]+([A-Z]{2})\s+\d{5}(?:-\d{4})?")
CITY_COMMA_STATE_RE = re.compile(r"([A-Za-z][A-Za-z .'-]+),\s*([A-Z]{2})\b")


def extract_location(text: str) -> str | None:
    """Return "City, ST", preferring a line with a ZIP code."""
    if not text:
        return None

    lines = split_lines(text, min_length=3)

    for line in lines:
        match = CITY_STATE_ZIP_RE.search(line)
        if match:
            return f"{match.group(1).strip()}, {match.group(2).strip()}"

    for line in lines:
        match = CITY_COMMA_STATE_RE.search(line)
        if match:
            return f"{match.group(1).strip()}, {match.group(2).strip()}"

    return None


def parse_city_state(address: str) -> str | None:
    """
    Reduce a full postal address to "City, ST".

    Used for addresses returned by the cloud OCR service, which come as one
    string rather than as receipt lines.
    """
    addr = re.sub(r"\s+", " ", address or "").strip()
    if not addr:
        return None

    match = re.search(r"([A-Za-z][A-Za-z .'-]+),\s*([A-Z]{2})\s*\d{5}(?:-\d{4})?", addr)
    if match:
        return f"{match.group(1).strip()}, {match.group(2).strip()}"

    parts = [part.strip() for part in addr.split(",")]
    if len(parts) >= 2:
        city, state_part = parts[-2], parts[-1]
        match = re.search(r"\b([A-Z]{2})\b", state_part)
        if city and match:
            return f"{city}, {match.group(1)}"

    match = re.search(r"([A-Za-z][A-Za-z .'-]+)\s+([A-Z]{2})\s*\d{5}(?:-\d{4})?", addr)
    if match:
        return f"{match.group(1).strip()}, {match.group(2).strip()}"

    return None


def extract_fields(text: str, vendor: str | None = None) -> OcrSuggestion | None:
    """
    Run all four parsers over ``text``.

    Args:
        text: Raw OCR text
        vendor: Vendor already known (e.g. from vendor memory); skips the heuristic

    Returns:
        OcrSuggestion, or None if no field could be found
    """
    return OcrSuggestion.build(
        date=extract_date(text),
        vendor=vendor or extract_vendor(text),
        location=extract_location(text),
        total=extract_total(text),
    )
