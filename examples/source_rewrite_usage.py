"""examples/source_rewrite_usage.py - Instrument source text ahead of time.

transform_source() does at build time what @logcall does at import time.
The output has the decorator removed and the logging statements written
into the function bodies, so it runs without the decorator machinery.

Run:
    python examples/source_rewrite_usage.py
"""

import logging

from logcall import TransformOptions, transform_source

logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

SOURCE = '''\
"""Billing helpers."""

from logcall import Err, Ok, Result, logcall


@logcall("info")
def subtotal(prices):
    """Sum of line prices."""
    return sum(prices)


@logcall(ok="debug", err="error")
def charge(account, amount) -> Result[float, str]:
    if amount > account["limit"]:
        return Err("limit exceeded")
    return Ok(account["limit"] - amount)
'''


if __name__ == "__main__":
    rewritten = transform_source(SOURCE, module="billing", filename="billing.py")

    print("=" * 60)
    print("Rewritten source")
    print("=" * 60)
    print(rewritten)

    print("=" * 60)
    print("Running it")
    print("=" * 60)
    namespace = {"__name__": "billing"}
    exec(compile(rewritten, "billing.py", "exec"), namespace)
    namespace["subtotal"]([1.5, 2.5])
    namespace["charge"]({"limit": 100.0}, 250.0)

    print()
    print("=" * 60)
    print("str() formatting instead of repr()")
    print("=" * 60)
    print(transform_source(SOURCE, module="billing", options=TransformOptions(conversion="s")))
