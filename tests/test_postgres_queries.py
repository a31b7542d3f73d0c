# tests/test_postgres_queries.py
import contextlib

import pytest

from campus_delivery.database.database import Database
from campus_delivery.database.postgres import (
    PostgresDeliveryRequestRepository,
    PostgresOrderRepository,
    build_conditions,
    build_delete,
    build_order_query,
    build_request_query,
    build_update,
)
from campus_delivery.exceptions import Conflict, NotFound
from campus_delivery.models.delivery import DeliveryRequestFilter, DeliveryRequestStatus
from campus_delivery.models.order import OrderFilter, OrderStatus

from conftest import T0


def test_build_conditions_handles_null():
    parts, params = build_conditions({
        "status": OrderStatus.DELIVERED,
        "delivery_person_id": None,
        "customer_confirmed": True,
    }, start_index=3)
    assert parts == ["status = $3", "delivery_person_id IS NULL", "customer_confirmed = $4"]
    assert params == ["delivered", True]


def test_build_order_query():
    query, params = build_order_query(OrderFilter(
        statuses=[OrderStatus.PENDING],
        customer_id=5,
        exclude_active_requests=True,
        created_from=T0,
    ))
    assert query == (
        "SELECT * FROM orders WHERE 1=1"
        " AND status = ANY($1::text[])"
        " AND customer_id = $2"
        " AND has_active_delivery_request = FALSE"
        " AND created_at >= $3"
        " ORDER BY created_at DESC"
    )
    assert params == [["pending"], 5, T0]


def test_build_order_query_without_filters():
    query, params = build_order_query(OrderFilter())
    assert query == "SELECT * FROM orders WHERE 1=1 ORDER BY created_at DESC"
    assert params == []


def test_build_request_query():
    query, params = build_request_query(DeliveryRequestFilter(
        order_id="o1", status=DeliveryRequestStatus.PENDING
    ))
    assert query == (
        "SELECT * FROM delivery_requests WHERE 1=1 AND order_id = $1 AND status = $2"
        " ORDER BY created_at DESC"
    )
    assert params == ["o1", "pending"]


async def test_unknown_columns_are_refused():
    repo = PostgresOrderRepository(Database("postgresql://unused"))
    with pytest.raises(ValueError):
        await repo.update("o1", {"status; DROP TABLE orders": "x"})


def test_build_update_guards_on_expected_columns():
    query, params = build_update("orders", "order_id", "o1", {
        "status": OrderStatus.IN_PROGRESS,
        "delivery_person_id": 201,
    }, expected={"status": OrderStatus.PENDING, "delivery_person_id": None,
                 "has_active_delivery_request": False})
    assert query == (
        "UPDATE orders SET status = $1, delivery_person_id = $2, updated_at = NOW()"
        " WHERE order_id = $3 AND status = $4 AND delivery_person_id IS NULL"
        " AND has_active_delivery_request = $5"
    )
    assert params == ["in_progress", 201, "o1", "pending", False]


def test_build_update_without_expected():
    query, params = build_update("delivery_requests", "request_id", "r1", {"status": "accepted"})
    assert query.endswith("WHERE request_id = $2")
    assert params == ["accepted", "r1"]


def test_build_delete():
    query, params = build_delete("orders", "order_id", "o1",
                                 {"status": OrderStatus.PENDING, "delivery_person_id": None})
    assert query == "DELETE FROM orders WHERE order_id = $1 AND status = $2 AND delivery_person_id IS NULL"
    assert params == ["o1", "pending"]


class StubConnection:
    def __init__(self, result, exists=None):
        self.result = result
        self.exists = exists
        self.executed = []

    async def execute(self, query, *params):
        self.executed.append((query, params))
        return self.result

    async def fetchval(self, query, *params):
        return self.exists


class StubPool:
    def __init__(self, conn):
        self.conn = conn

    @contextlib.asynccontextmanager
    async def acquire(self):
        yield self.conn


def _order_repo(conn):
    db = Database("postgresql://unused")
    db.pool = StubPool(conn)
    return PostgresOrderRepository(db)


async def test_update_that_matches_succeeds():
    conn = StubConnection("UPDATE 1")
    await _order_repo(conn).update("o1", {"status": OrderStatus.DELIVERED},
                                   expected={"status": OrderStatus.IN_PROGRESS})
    query, params = conn.executed[0]
    assert query.startswith("UPDATE orders SET status = $1")
    assert params == ("delivered", "o1", "in_progress")


async def test_missed_update_on_existing_row_is_conflict():
    repo = _order_repo(StubConnection("UPDATE 0", exists=1))
    with pytest.raises(Conflict):
        await repo.update("o1", {"status": OrderStatus.IN_PROGRESS},
                          expected={"status": OrderStatus.PENDING})


async def test_missed_update_on_missing_row_is_not_found():
    repo = _order_repo(StubConnection("UPDATE 0", exists=None))
    with pytest.raises(NotFound):
        await repo.update("o1", {"status": OrderStatus.IN_PROGRESS})


async def test_missed_delete_maps_like_update():
    with pytest.raises(Conflict):
        await _order_repo(StubConnection("DELETE 0", exists=1)).delete(
            "o1", expected={"status": OrderStatus.PENDING}
        )
    with pytest.raises(NotFound):
        await _order_repo(StubConnection("DELETE 0", exists=None)).delete("o1")
    await _order_repo(StubConnection("DELETE 1")).delete("o1")


async def test_request_update_uses_request_key():
    conn = StubConnection("UPDATE 1")
    db = Database("postgresql://unused")
    db.pool = StubPool(conn)
    await PostgresDeliveryRequestRepository(db).update(
        "r1", {"status": "rejected"}, expected={"status": "pending"}
    )
    query, params = conn.executed[0]
    assert "WHERE request_id = $2 AND status = $3" in query
    assert params == ("rejected", "r1", "pending")
