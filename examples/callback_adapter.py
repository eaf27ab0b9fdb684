"""
enter_do: use a callback-style resource API without nesting.

Run: python examples/callback_adapter.py
"""
import asyncio

from deferpy import context, enter_do


class Connection:
    def __init__(self, url: str):
        self.url = url
        print(f"[conn] open {url}")

    async def query(self, x: int) -> int:
        await asyncio.sleep(0.01)
        return x * 3

    async def close(self) -> None:
        print(f"[conn] close {self.url}")


async def with_connection(callback, url: str):
    conn = Connection(url)
    try:
        await callback(conn)
    finally:
        await conn.close()


async def main() -> None:
    async with context():
        primary = await enter_do(with_connection, "db://primary")
        replica = await enter_do(with_connection, "db://replica")
        print("[main] results", await primary.query(2), await replica.query(3))
    print("[main] done")


if __name__ == "__main__":
    asyncio.run(main())
