"""examples/result_usage.py - Result-returning functions, sync and async.

Functions annotated ``-> Result[...]`` can log their two outcomes at
different levels. Failures go out at ERROR while successes stay at INFO,
so a production logger set to WARNING only ever shows the failures.

Records are also captured with a RecordingBackend to show what a test
would assert on.

Run:
    python examples/result_usage.py
"""

import asyncio
import logging

from logcall import Err, Ok, RecordingBackend, Result, logcall, use_backend

logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


# ---------------------------------------------------------------------------
# Business logic
# ---------------------------------------------------------------------------


@logcall(ok="info", err="error")
def divide(a: int, b: int) -> Result[int, str]:
    if b == 0:
        return Err("Division by zero")
    return Ok(a // b)


@logcall(err="warn")
async def reserve(sku: str, qty: int) -> Result[int, str]:
    """Reserve stock. Only failed reservations are logged."""
    await asyncio.sleep(0.01)  # simulate a remote call
    stock = {"pen": 10, "pad": 0}
    if stock.get(sku, 0) < qty:
        return Err(f"out of stock: {sku}")
    return Ok(stock[sku] - qty)


async def main() -> None:
    results = await asyncio.gather(reserve("pen", 2), reserve("pad", 1))
    print("reservations:", results)


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    print("=" * 60)
    print("Sync: Ok at INFO, Err at ERROR")
    print("=" * 60)
    divide(4, 2)
    divide(2, 0)

    print()
    print("=" * 60)
    print("Async: only Err is logged")
    print("=" * 60)
    asyncio.run(main())

    print()
    print("=" * 60)
    print("Captured with RecordingBackend")
    print("=" * 60)
    with use_backend(RecordingBackend()) as backend:
        divide(9, 3)
        divide(1, 0)
    for record in backend.records():
        print(f"{record.level_name:<6} {record.origin}: {record.message}")
