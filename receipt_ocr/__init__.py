"""
Receipt OCR suggestion pipeline.

Chooses between PDF text-layer extraction, cloud OCR and local OCR, then turns
the extracted text into suggested receipt fields (date, vendor, location,
total) and an expense category.
"""

__version__ = "0.1.0"
