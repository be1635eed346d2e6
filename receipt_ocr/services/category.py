"""
Keyword rules that map a receipt to an expense category.

Rules are evaluated in order and the first rule with any keyword found in
the vendor name or receipt text wins. This is a first-match classifier:
"coffee" on an Uber receipt still yields "Vehicle & Travel" because that
rule comes first.
"""

from loguru import logger
from pydantic import BaseModel


class CategoryRule(BaseModel):
    category: str
    terms: list[str]


CATEGORY_RULES: list[CategoryRule] = [
    CategoryRule(category="Software & Subscriptions", terms=[
        "adobe", "lightroom", "photoshop", "dropbox", "google workspace", "gsuite",
        "microsoft", "office 365", "creative cloud", "slack", "figma", "notion",
        "airtable", "github", "aws", "digitalocean", "stripe", "domain", "hosting",
        "subscription",
    ]),
    CategoryRule(category="Equipment & Gear", terms=[
        "camera", "lens", "tripod", "lighting", "light stand", "softbox",
        "memory card", "sd card", "hard drive", "ssd", "monitor", "macbook",
        "laptop", "microphone", "audio", "battery", "canon", "nikon", "sony",
        "panasonic",
    ]),
    CategoryRule(category="Vehicle & Travel", terms=[
        "uber", "lyft", "delta", "united", "american airlines", "southwest",
        "hotel", "airbnb", "rental car", "hertz", "avis", "enterprise", "parking",
        "toll", "gas", "fuel", "shell", "chevron", "exxon", "marriott", "hilton",
    ]),
    CategoryRule(category="Meals & Entertainment", terms=[
        "restaurant", "cafe", "coffee", "starbucks", "dunkin", "chipotle", "panera",
        "ubereats", "doordash", "grubhub", "bar", "lunch", "dinner", "breakfast",
    ]),
    CategoryRule(category="Marketing & Advertising", terms=[
        "facebook ads", "instagram ads", "google ads", "adwords", "marketing",
        "advertising", "printing", "flyer", "brochure", "business cards",
        "sponsored", "campaign",
    ]),
    CategoryRule(category="Professional Services", terms=[
        "accountant", "bookkeeper", "legal", "law", "attorney", "consulting",
        "contractor", "invoice", "freelance", "coach",
    ]),
    CategoryRule(category="Income Processing Fees", terms=[
        "stripe fee", "paypal fee", "square fee", "processing fee",
        "transaction fee", "marketplace fee",
    ]),
    CategoryRule(category="Home Office / Workspace", terms=[
        "coworking", "wework", "office rent", "workspace", "internet", "utilities",
        "electric", "water", "rent", "mortgage",
    ]),
]

CATEGORIES = [rule.category for rule in CATEGORY_RULES]


def infer_category(text: str | None, vendor: str | None = None,
                   rules: list[CategoryRule] | None = None) -> str:
    """
    Infer the expense category for a receipt.

    Args:
        text: Full OCR text
        vendor: Vendor name, if known
        rules: Ordered rules (defaults to CATEGORY_RULES)

    Returns:
        Category name, or "" if no rule matches
    """
    haystack = f"{(vendor or '').lower()} {(text or '').lower()}"
    if not haystack.strip():
        return ""

    for rule in rules if rules is not None else CATEGORY_RULES:
        term = next((t for t in rule.terms if t in haystack), None)
        if term is not None:
            logger.debug("Category rule matched", category=rule.category, term=term)
            return rule.category
    return ""
