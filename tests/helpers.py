"""
Test helpers - line item builders and a deadline that is still open on the
test clock's "today" (2025-01-15)
"""

from datetime import date
from typing import Any

OPEN_DEADLINE = date(2025, 1, 31)


def offer(
    unit_price: str,
    quantity: str = "10",
    product_name: str = "Urea 50kg",
) -> list[dict[str, Any]]:
    """
    Single-line offering

    Example:
        >>> offer("90")
        [{'product_name': 'Urea 50kg', 'quantity': '10', 'unit_price': '90'}]
    """
    return [{"product_name": product_name, "quantity": quantity, "unit_price": unit_price}]


def requested(*names: str, quantity: str = "1") -> list[dict[str, Any]]:
    """Requested line items, one per product name"""
    return [{"product_name": name, "quantity": quantity} for name in names]
