"""examples/basic_usage.py - logcall integration demo.

Demonstrates the decorator forms on ordinary functions and methods:
    Scenario A: bare @logcall, DEBUG for every call
    Scenario B: @logcall("info") with a custom input template
    Scenario C: methods, where self is shown by name only

Run:
    python examples/basic_usage.py
"""

import logging

from logcall import logcall

# ---------------------------------------------------------------------------
# Standard logger setup (no changes from what a developer already has)
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


# ===========================================================================
# Scenario A: bare @logcall
# ===========================================================================


@logcall
def add(a: int, b: int) -> int:
    return a + b


# ===========================================================================
# Scenario B: explicit level and input template
# ===========================================================================


@logcall("info", input="user_id = {user_id}, items = {len(items)}")
def checkout(user_id: int, items: list) -> float:
    """Total an order. Only the item count goes into the log line."""
    return round(sum(price for _, price in items), 2)


# ===========================================================================
# Scenario C: methods
# ===========================================================================


class Rectangle:
    def __init__(self, width: float, height: float) -> None:
        self.width = width
        self.height = height

    @logcall("info")
    def area(self, scale: float = 1.0) -> float:
        return self.width * self.height * scale


# ---------------------------------------------------------------------------
# Run all scenarios
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    print("=" * 60)
    print("Scenario A: bare @logcall")
    print("=" * 60)
    add(2, 3)

    print()
    print("=" * 60)
    print("Scenario B: level + input template")
    print("=" * 60)
    checkout(101, [("pen", 1.5), ("pad", 3.25)])

    print()
    print("=" * 60)
    print("Scenario C: methods")
    print("=" * 60)
    Rectangle(2, 3).area(scale=2)
