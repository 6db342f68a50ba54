from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

SHOP_SCHEMA = """
CREATE TABLE customers (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT
);
CREATE TABLE orders (
    id INTEGER PRIMARY KEY,
    customer_id INTEGER NOT NULL REFERENCES customers(id),
    status TEXT DEFAULT 'new',
    total REAL
);
CREATE INDEX idx_orders_customer ON orders(customer_id);
CREATE VIEW big_orders AS SELECT * FROM orders WHERE total > 100;
"""


@pytest.fixture
def shop_db(tmp_path: Path) -> Path:
    db_path = tmp_path / "shop.db"
    connection = sqlite3.connect(db_path)
    try:
        connection.executescript(SHOP_SCHEMA)
        connection.executemany(
            "INSERT INTO customers (id, name, email) VALUES (?, ?, ?)",
            [(1, "Ada", "ada@example.com"), (2, "Grace", None)],
        )
        connection.executemany(
            "INSERT INTO orders (customer_id, status, total) VALUES (?, ?, ?)",
            [(1, "paid", 120.0), (1, "new", 15.5), (2, "paid", 230.0)],
        )
        connection.commit()
    finally:
        connection.close()
    return db_path
