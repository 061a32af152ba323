"""
Identifier generation

Entity and event ids are UUIDv7-shaped: the leading 48 bits are a Unix
millisecond timestamp, so ids sort roughly by creation time, which keeps the
events table's primary-key index append-friendly.
"""

import secrets
import time
from datetime import datetime


def generate_id() -> str:
    """
    Generate a time-ordered UUID string (version 7 layout)

    Returns:
        36-character id, e.g. "01908e9a-3b87-7000-8000-123456789abc"
    """
    timestamp_ms = int(time.time() * 1000) & 0xFFFFFFFFFFFF
    rand_a = secrets.randbits(12)
    rand_b = secrets.randbits(62)

    value = (timestamp_ms << 80) | (0x7 << 76) | (rand_a << 64) | (0b10 << 62) | rand_b
    hex_str = f"{value:032x}"
    return f"{hex_str[:8]}-{hex_str[8:12]}-{hex_str[12:16]}-{hex_str[16:20]}-{hex_str[20:]}"


def document_number(prefix: str, entity_id: str, issued_at: datetime) -> str:
    """
    Human-readable document number, e.g. ``DN-20250115-56789abc``

    Used on delivery notes handed to drivers; the random tail of the entity
    id keeps numbers distinct when several documents are issued on the same day.
    """
    return f"{prefix}-{issued_at:%Y%m%d}-{entity_id.replace('-', '')[-8:]}"
