"""
Order lifecycle utilities for the FindBooks API

Any valid order status may replace any other. The transitions table in config
only describes the usual forward moves, and re-applying the current status is
a no-op.
"""

from __future__ import annotations

from decimal import Decimal


def current_status(order_item: dict, default: str = "Pending") -> str:
    """Status stored on an order; legacy orders without one read as Pending."""
    return order_item.get("order_status") or default


def can_transition(current: str, new: str, transitions: dict[str, set[str]]) -> bool:
    """
    Check whether a status change is one of the usual forward moves.

    Args:
        current: Status the order holds now
        new: Requested status
        transitions: Mapping of status -> set of reachable statuses

    Returns:
        bool: True for a usual move (staying put always counts)
    """
    if current == new:
        return True
    return new in transitions.get(current, set())


def cart_line_items(cart_item: dict) -> list[dict]:
    """
    Copy a cart's books into order line items.

    Returns:
        list: [{"book_id": ..., "book_quantity": Decimal}, ...] in cart order
    """
    return [
        {
            "book_id": item["book_id"],
            "book_quantity": Decimal(str(item.get("book_quantity", 1))),
        }
        for item in cart_item.get("books") or []
        if item.get("book_id")
    ]


def line_item_book_ids(line_items: list[dict]) -> list[str]:
    """Distinct book ids referenced by line items, in first-seen order."""
    return list(dict.fromkeys(item["book_id"] for item in line_items))
