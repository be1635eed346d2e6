"""
Learned vendor recognition.

Every confirmed vendor leaves a signature (domains, address lines, header
lines and name tokens). Later receipts are scored against the stored
signatures; a confident match overrides the generic vendor heuristic.
"""

import re
from datetime import datetime, UTC

from loguru import logger

from ..core.errors import StorageError
from ..models.ocr import VendorMemoryEntry
from .field_extractor import ADDRESS_RE, CITY_STATE_RE, POSTAL_RE, split_lines
from .storage.store_base import VendorMemoryStoreBase

# Generic corporate words that say nothing about which vendor this is
COMMON_VENDOR_TOKENS = frozenset({
    "inc", "llc", "co", "corp", "corporation", "company", "ltd", "limited",
    "gmbh", "sarl", "sa", "plc", "bv", "oy", "ab", "ag", "kg", "pte", "llp",
    "group", "holdings",
})

MAX_ADDRESS_LINES = 4
MAX_HEADER_LINES = 8
MAX_SIGNAL_LENGTH = 120
# Cap for merged signal lists
MAX_SIGNALS = 12

# Score weights (tunable, chosen empirically)
WEIGHT_NAME = 4
WEIGHT_KEY = 3
WEIGHT_DOMAIN = 5
WEIGHT_ADDRESS = 3
WEIGHT_HEADER_LINE = 2
WEIGHT_STRONG_TOKEN = 2
WEIGHT_ALL_TOKENS = 1
WEIGHT_FREQUENT = 1
MATCH_THRESHOLD = 3

EMAIL_DOMAIN_RE = re.compile(r"[A-Z0-9._%+-]+@([A-Z0-9.-]+\.[A-Z]{2,})", re.IGNORECASE)
URL_DOMAIN_RE = re.compile(r"(https?://)?(www\.)?([A-Z0-9.-]+\.[A-Z]{2,})", re.IGNORECASE)


def normalize_line(value: str) -> str:
    return re.sub(r"\s+", " ", (value or "").lower()).strip()


def normalize_vendor_key(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", " ", normalize_line(value)).strip()


def vendor_tokens(vendor: str) -> list[str]:
    tokens = []
    for token in normalize_vendor_key(vendor).split():
        if len(token) > 2 and token not in COMMON_VENDOR_TOKENS and token not in tokens:
            tokens.append(token)
    return tokens


def _unique(values) -> list[str]:
    return list(dict.fromkeys(v for v in values if v))


def build_signature(text: str, vendor: str) -> VendorMemoryEntry | None:
    """
    Extract the signals that identify ``vendor`` on this document.

    Args:
        text: Raw OCR text of a receipt whose vendor is known
        vendor: Confirmed vendor name

    Returns:
        Entry with count 0 (not yet stored), or None if text or vendor is empty
    """
    if not text or not vendor or not vendor.strip():
        return None
    vendor = vendor.strip()

    lines = split_lines(text, min_length=3)

    domains = [m.group(1).lower() for m in EMAIL_DOMAIN_RE.finditer(text)]
    domains += [m.group(3).lower() for m in URL_DOMAIN_RE.finditer(text)]

    addresses = []
    for line in lines:
        if len(addresses) >= MAX_ADDRESS_LINES:
            break
        if len(line) > MAX_SIGNAL_LENGTH:
            continue
        if ADDRESS_RE.search(line) or CITY_STATE_RE.search(line) or POSTAL_RE.search(line):
            addresses.append(normalize_line(line))

    header_lines = [
        normalize_line(line)
        for line in lines[:MAX_HEADER_LINES]
        if len(line) <= MAX_SIGNAL_LENGTH
    ]

    return VendorMemoryEntry(
        vendor=vendor,
        key=normalize_vendor_key(vendor),
        domains=_unique(domains),
        addresses=_unique(addresses),
        lines=_unique([normalize_line(vendor)] + header_lines),
        tokens=vendor_tokens(vendor),
        count=0,
    )


def score_entry(normalized_text: str, entry: VendorMemoryEntry) -> int:
    """Additive evidence that ``entry``'s vendor issued the (lower-cased) text."""
    score = 0
    name = normalize_line(entry.vendor)
    key = normalize_line(entry.key) if entry.key else normalize_vendor_key(entry.vendor)
    addresses = [a for a in entry.addresses if a and len(a) <= MAX_SIGNAL_LENGTH]
    snippets = [s for s in entry.lines if s and len(s) <= MAX_SIGNAL_LENGTH]
    tokens = [t for t in entry.tokens if t and len(t) > 2 and t not in COMMON_VENDOR_TOKENS]

    if name and name in normalized_text:
        score += WEIGHT_NAME
    if key and key in normalized_text:
        score += WEIGHT_KEY
    if any(domain in normalized_text for domain in entry.domains if domain):
        score += WEIGHT_DOMAIN
    if any(address in normalized_text for address in addresses):
        score += WEIGHT_ADDRESS
    if any(snippet in normalized_text for snippet in snippets):
        score += WEIGHT_HEADER_LINE
    if tokens:
        matched = [token for token in tokens if token in normalized_text]
        if any(len(token) >= 4 for token in matched):
            score += WEIGHT_STRONG_TOKEN
        if len(matched) == len(tokens):
            score += WEIGHT_ALL_TOKENS
    if entry.count > 2:
        score += WEIGHT_FREQUENT
    return score


def match_vendor(text: str, entries: list[VendorMemoryEntry]) -> str | None:
    """
    Return the best-scoring known vendor, or None below the confidence threshold.

    Ties keep the earlier entry.
    """
    if not text or not entries:
        return None

    normalized_text = normalize_line(text)
    best_vendor, best_score = None, 0
    for entry in entries:
        if not entry.vendor:
            continue
        score = score_entry(normalized_text, entry)
        if score > best_score:
            best_vendor, best_score = entry.vendor, score

    if best_vendor and best_score >= MATCH_THRESHOLD:
        logger.debug("Vendor memory match", vendor=best_vendor, score=best_score)
        return best_vendor
    return None


def merge_entries(existing: VendorMemoryEntry, incoming: VendorMemoryEntry) -> VendorMemoryEntry:
    """Union the signals of two entries with the same key and bump the count."""
    return VendorMemoryEntry(
        vendor=incoming.vendor,
        key=existing.key,
        domains=_unique(existing.domains + incoming.domains)[:MAX_SIGNALS],
        addresses=_unique(existing.addresses + incoming.addresses)[:MAX_ADDRESS_LINES],
        lines=_unique(existing.lines + incoming.lines)[:MAX_SIGNALS],
        tokens=_unique(existing.tokens + incoming.tokens)[:MAX_SIGNALS],
        count=existing.count + 1,
        updated_at=datetime.now(UTC).isoformat(),
    )


class VendorMemory:
    """
    Read-mostly view over a vendor memory store.

    Entries are loaded once and cached; ``learn`` writes through to the store
    and refreshes the cached entry.
    """

    def __init__(self, store: VendorMemoryStoreBase):
        self.store = store
        self._entries: list[VendorMemoryEntry] | None = None

    @property
    def entries(self) -> list[VendorMemoryEntry]:
        if self._entries is None:
            try:
                self._entries = self.store.load_all()
            except StorageError as e:
                logger.warning("Could not load vendor memory", error=str(e))
                return []
        return self._entries

    def reload(self) -> None:
        self._entries = None

    def match(self, text: str) -> str | None:
        return match_vendor(text, self.entries)

    def learn(self, text: str, vendor: str) -> VendorMemoryEntry | None:
        """
        Record that ``text`` came from ``vendor``.

        Merges into the existing entry with the same normalized key, or
        creates a new one with count 1.

        Returns:
            The stored entry, or None if nothing could be learned or saved
        """
        signature = build_signature(text, vendor)
        if signature is None or not signature.key:
            return None

        entries = self.entries
        existing = next((e for e in entries if e.key == signature.key), None)
        if existing is not None:
            entry = merge_entries(existing, signature)
        else:
            entry = signature.model_copy(
                update={"count": 1, "updated_at": datetime.now(UTC).isoformat()}
            )

        try:
            self.store.upsert(entry)
        except StorageError as e:
            logger.warning("Could not save vendor memory", vendor=vendor, error=str(e))
            return None

        if self._entries is not None:
            if existing is not None:
                self._entries = [entry if e.key == entry.key else e for e in self._entries]
            else:
                self._entries.append(entry)

        logger.info(
            "Vendor memory updated",
            vendor=entry.vendor,
            count=entry.count,
            created=existing is None,
        )
        return entry
