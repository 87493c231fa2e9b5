"""Example usage of pgquery.

To run this example:
1. Start PostgreSQL: brew services start postgresql@14
2. Create database: createdb pgquery_example
3. Run: DATABASE_URL=postgresql://localhost/pgquery_example python examples/pg_example.py
"""

import asyncio
import logging
import os

from pgquery import PgQuery, PgQueryError, TxIsolation


async def main() -> int:
    """Demonstrate queries, write helpers, a transaction and LISTEN/NOTIFY."""
    logging.basicConfig(level=logging.DEBUG)

    dsn = os.getenv("DATABASE_URL", "postgresql://localhost/pgquery_example")

    print("=" * 70)
    print("pgquery Example")
    print("=" * 70)
    print()

    async with PgQuery({"dsn": dsn, "maxPoolSize": 4}) as db:
        await db.execute(
            "CREATE TABLE IF NOT EXISTS items ("
            " id SERIAL PRIMARY KEY, name TEXT NOT NULL, price FLOAT8 NOT NULL)"
        )
        await db.execute(
            "CREATE TABLE IF NOT EXISTS stock ("
            " item_id INTEGER PRIMARY KEY REFERENCES items(id), qty INTEGER NOT NULL)"
        )

        item_id = await db.insert("items", {"name": "Widget", "price": 9.99}, "id")
        print(f"✓ Inserted item {item_id}")

        await db.upsert("stock", {"qty": 100}, {"item_id": item_id})
        row = await db.fetch_one("SELECT qty FROM stock WHERE item_id = $1", [item_id])
        print(f"✓ Stock level: {row.qty}")

        async def sell(tx):
            current = await tx.fetch_one("SELECT qty FROM stock WHERE item_id = $1", [item_id])
            await tx.update("stock", {"qty": current.qty - 1}, {"item_id": item_id})
            return current.qty - 1

        remaining = await db.transaction([sell], isolation=TxIsolation.serializable)
        print(f"✓ Sold one, {remaining} left")

        try:
            await db.transaction([sell, lambda tx: tx.execute("SELECT * FROM missing_table")])
        except PgQueryError as e:
            print(f"✓ Rolled back: {e}")

        print("Streaming items:")
        await db.each_row("SELECT id, name, price FROM items ORDER BY id", None, print)

        waiter = asyncio.create_task(db.listen("restock"))
        await asyncio.sleep(0.1)
        await db.notify("restock", str(item_id))
        notification = await asyncio.wait_for(waiter, timeout=5)
        print(f"✓ Notification on {notification.channel}: {notification.payload}")

        await db.remove("stock", {"item_id": item_id})
        await db.remove("items", {"id": item_id})

    return 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
