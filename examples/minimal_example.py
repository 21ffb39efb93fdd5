#!/usr/bin/env python3
"""
Minimal Working Example of Taktgeber

Chains futures, awaits them from a coroutine and drives everything from a
headless host loop on a virtual clock.
"""

from taktgeber.core import (
    Future, Scheduler, VirtualClock, async_function, sleep, run_until_complete
)


def main():
    print("🚀 Taktgeber - Minimal Working Example")
    print("=" * 50)

    scheduler = Scheduler(clock=VirtualClock())

    def get_user(user_id):
        return sleep(1.0, {"id": user_id, "name": "John"}, scheduler=scheduler)

    def get_orders(user_id):
        return sleep(1.0, [{"order_id": 1, "item": "Book"}, {"order_id": 2, "item": "Pen"}],
                     scheduler=scheduler)

    # 1. Promise chaining
    chain = (
        get_user(1)
        .then(lambda user: get_orders(user["id"]))
        .then(lambda orders: orders[0]["item"])
        .catch_error(lambda error: f"failed: {error}")
    )
    print(f"📦 First item: {run_until_complete(chain)}")

    # 2. async/await
    @async_function(scheduler=scheduler)
    async def parallel():
        user, orders = await Future.all([get_user(2), get_orders(2)], scheduler)
        return f"{user['name']} has {len(orders)} orders"

    print(f"📋 {run_until_complete(parallel())}")
    print(f"⏱️  Virtual time elapsed: {scheduler.now():.1f}s")

    scheduler.close()


if __name__ == "__main__":
    main()
