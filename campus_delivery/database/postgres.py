# campus_delivery/database/postgres.py
import asyncio
import functools
import logging
from decimal import Decimal
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple
import asyncpg
from .database import Database
from .repositories import (
    DeliveryPersonRepository,
    DeliveryRequestRepository,
    OrderRepository,
    PaymentFormRepository,
    SettingsRepository,
)
from ..exceptions import Conflict, DeliveryError, GuardViolation, NotFound, RepositoryUnavailable
from ..models.delivery import DeliveryPerson, DeliveryRequest, DeliveryRequestFilter
from ..models.order import Order, OrderDraft, OrderFilter
from ..models.payment import PaymentFormResponse
from ..models.settings import SystemSettings

_DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)

ORDER_COLUMNS = frozenset(OrderDraft.model_fields) | {"updated_at"}
DELIVERY_PERSON_COLUMNS = frozenset(DeliveryPerson.model_fields) - {"user_id"}
DELIVERY_REQUEST_COLUMNS = frozenset(DeliveryRequest.model_fields) - {"request_id"}


def _db_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_db_value(v) for v in value]
    return value


def _check_columns(fields, allowed):
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Unknown columns: {', '.join(sorted(unknown))}")


def build_conditions(conditions: Dict[str, Any], start_index: int = 1) -> Tuple[List[str], List[Any]]:
    """Equality conditions, ``None`` meaning IS NULL"""
    parts = []
    params = []
    param_index = start_index
    for column, value in conditions.items():
        if value is None:
            parts.append(f"{column} IS NULL")
        else:
            parts.append(f"{column} = ${param_index}")
            params.append(_db_value(value))
            param_index += 1
    return parts, params


def build_order_query(order_filter: OrderFilter) -> Tuple[str, List[Any]]:
    """SELECT for an OrderFilter, newest orders first"""
    query = "SELECT * FROM orders WHERE 1=1"
    params: List[Any] = []
    param_index = 1

    if order_filter.statuses is not None:
        query += f" AND status = ANY(${param_index}::text[])"
        params.append([_db_value(s) for s in order_filter.statuses])
        param_index += 1

    if order_filter.customer_id is not None:
        query += f" AND customer_id = ${param_index}"
        params.append(order_filter.customer_id)
        param_index += 1

    if order_filter.delivery_person_id is not None:
        query += f" AND delivery_person_id = ${param_index}"
        params.append(order_filter.delivery_person_id)
        param_index += 1

    if order_filter.exclude_active_requests:
        query += " AND has_active_delivery_request = FALSE"

    if order_filter.created_from is not None:
        query += f" AND created_at >= ${param_index}"
        params.append(order_filter.created_from)
        param_index += 1

    if order_filter.order_ids is not None:
        query += f" AND order_id = ANY(${param_index}::text[])"
        params.append(list(order_filter.order_ids))
        param_index += 1

    query += " ORDER BY created_at DESC"
    return query, params


def build_request_query(request_filter: DeliveryRequestFilter) -> Tuple[str, List[Any]]:
    conditions = {
        key: value
        for key, value in request_filter.model_dump().items()
        if value is not None
    }
    parts, params = build_conditions(conditions)
    query = "SELECT * FROM delivery_requests WHERE " + " AND ".join(["1=1"] + parts)
    return query + " ORDER BY created_at DESC", params


def build_update(table: str, key: str, record_id: Any, fields: Dict[str, Any],
                 expected: Optional[Dict[str, Any]] = None) -> Tuple[str, List[Any]]:
    """UPDATE that only matches while the expected columns still hold"""
    set_parts = []
    params: List[Any] = []
    for column, value in fields.items():
        params.append(_db_value(value))
        set_parts.append(f"{column} = ${len(params)}")

    params.append(record_id)
    where_parts = [f"{key} = ${len(params)}"]
    expected_parts, expected_params = build_conditions(expected or {}, len(params) + 1)
    where_parts.extend(expected_parts)
    params.extend(expected_params)

    query = (
        f"UPDATE {table} SET {', '.join(set_parts)}, updated_at = NOW()"
        f" WHERE {' AND '.join(where_parts)}"
    )
    return query, params


def build_delete(table: str, key: str, record_id: Any,
                 expected: Optional[Dict[str, Any]] = None) -> Tuple[str, List[Any]]:
    parts, params = build_conditions(expected or {}, 2)
    where = " AND ".join([f"{key} = $1"] + parts)
    return f"DELETE FROM {table} WHERE {where}", [record_id] + params


def _guarded(func):
    """Turn driver failures into RepositoryUnavailable"""
    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        try:
            return await func(self, *args, **kwargs)
        except DeliveryError:
            raise
        except _DB_ERRORS as e:
            self.logger.error(f"{type(self).__name__}.{func.__name__} failed: {e}")
            raise RepositoryUnavailable() from e
    return wrapper


class _PostgresRepository:

    table: str = ""
    key: str = ""

    def __init__(self, db: Database):
        self.db = db
        self.logger = logging.getLogger(__name__)

    async def _execute_conditional(self, record_id: Any, query: str, params: List[Any],
                                   success: str) -> None:
        """Run a guarded write; a miss is NotFound when the row is gone, else Conflict"""
        async with self.db.pool.acquire() as conn:
            result = await conn.execute(query, *params)
            if result == success:
                return
            exists = await conn.fetchval(
                f"SELECT 1 FROM {self.table} WHERE {self.key} = $1", record_id
            )

        if not exists:
            raise NotFound()
        raise Conflict()

    async def _conditional_update(self, record_id: Any, fields: Dict[str, Any],
                                  expected: Optional[Dict[str, Any]], allowed) -> None:
        _check_columns(fields, allowed)
        _check_columns(expected or {}, allowed)
        if not fields:
            return
        query, params = build_update(self.table, self.key, record_id, fields, expected)
        await self._execute_conditional(record_id, query, params, "UPDATE 1")

    async def _subscribe(self, fetch: Callable[[], Awaitable[list]]) -> AsyncIterator[list]:
        """Full snapshot now and after every change to the table"""
        channel = f"{self.table}_changed"
        changes: asyncio.Queue = asyncio.Queue()

        def listener(conn, pid, channel_name, payload):
            changes.put_nowait(payload)

        try:
            conn = await self.db.pool.acquire()
        except _DB_ERRORS as e:
            raise RepositoryUnavailable() from e

        try:
            await conn.add_listener(channel, listener)
            try:
                yield await fetch()
                while True:
                    await changes.get()
                    # one snapshot per burst of changes
                    while not changes.empty():
                        changes.get_nowait()
                    yield await fetch()
            finally:
                await conn.remove_listener(channel, listener)
        finally:
            await self.db.pool.release(conn)


class PostgresOrderRepository(_PostgresRepository, OrderRepository):

    table = "orders"
    key = "order_id"

    @_guarded
    async def get(self, order_id: str) -> Order:
        async with self.db.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM orders WHERE order_id = $1", order_id)
        if not row:
            raise NotFound("Order not found")
        return Order.model_validate(dict(row))

    @_guarded
    async def create(self, draft: OrderDraft) -> str:
        data = draft.model_dump(exclude_none=True)
        data["items"] = [item.model_dump(mode="json") for item in draft.items]
        columns = list(data)
        placeholders = [f"${i}" for i in range(1, len(columns) + 1)]

        async with self.db.pool.acquire() as conn:
            return await conn.fetchval(f"""
                INSERT INTO orders ({', '.join(columns)})
                VALUES ({', '.join(placeholders)})
                RETURNING order_id
            """, *[_db_value(data[c]) for c in columns])

    @_guarded
    async def update(self, order_id: str, fields: Dict[str, Any],
                     expected: Optional[Dict[str, Any]] = None) -> None:
        await self._conditional_update(order_id, fields, expected, ORDER_COLUMNS)

    @_guarded
    async def delete(self, order_id: str, expected: Optional[Dict[str, Any]] = None) -> None:
        _check_columns(expected or {}, ORDER_COLUMNS)
        query, params = build_delete(self.table, self.key, order_id, expected)
        await self._execute_conditional(order_id, query, params, "DELETE 1")

    @_guarded
    async def query(self, order_filter: OrderFilter) -> List[Order]:
        query, params = build_order_query(order_filter)
        async with self.db.pool.acquire() as conn:
            rows = await conn.fetch(query, *params)
        return [Order.model_validate(dict(row)) for row in rows]

    def subscribe(self, order_filter: OrderFilter) -> AsyncIterator[List[Order]]:
        return self._subscribe(lambda: self.query(order_filter))


class PostgresDeliveryPersonRepository(_PostgresRepository, DeliveryPersonRepository):

    table = "delivery_persons"
    key = "user_id"

    @_guarded
    async def get(self, user_id: int) -> DeliveryPerson:
        async with self.db.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM delivery_persons WHERE user_id = $1", user_id)
        if not row:
            raise NotFound("Delivery person not found")
        return DeliveryPerson.model_validate(dict(row))

    @_guarded
    async def upsert(self, user_id: int, fields: Dict[str, Any]) -> DeliveryPerson:
        _check_columns(fields, DELIVERY_PERSON_COLUMNS)
        columns = list(fields)
        placeholders = [f"${i}" for i in range(2, len(columns) + 2)]
        updates = [f"{c} = EXCLUDED.{c}" for c in columns] or ["user_id = EXCLUDED.user_id"]

        async with self.db.pool.acquire() as conn:
            row = await conn.fetchrow(f"""
                INSERT INTO delivery_persons (user_id{''.join(', ' + c for c in columns)})
                VALUES ($1{''.join(', ' + p for p in placeholders)})
                ON CONFLICT (user_id)
                DO UPDATE SET {', '.join(updates)}
                RETURNING *
            """, user_id, *[_db_value(fields[c]) for c in columns])
        return DeliveryPerson.model_validate(dict(row))

    @_guarded
    async def query(self, available_only: bool = True) -> List[DeliveryPerson]:
        query = "SELECT * FROM delivery_persons"
        if available_only:
            query += " WHERE is_available = TRUE"
        query += " ORDER BY last_updated DESC NULLS LAST"

        async with self.db.pool.acquire() as conn:
            rows = await conn.fetch(query)
        return [DeliveryPerson.model_validate(dict(row)) for row in rows]

    def subscribe(self, available_only: bool = True) -> AsyncIterator[List[DeliveryPerson]]:
        return self._subscribe(lambda: self.query(available_only))


class PostgresDeliveryRequestRepository(_PostgresRepository, DeliveryRequestRepository):

    table = "delivery_requests"
    key = "request_id"

    @_guarded
    async def create(self, request: Dict[str, Any]) -> DeliveryRequest:
        _check_columns(request, DELIVERY_REQUEST_COLUMNS)
        columns = list(request)
        placeholders = [f"${i}" for i in range(1, len(columns) + 1)]

        try:
            async with self.db.pool.acquire() as conn:
                row = await conn.fetchrow(f"""
                    INSERT INTO delivery_requests ({', '.join(columns)})
                    VALUES ({', '.join(placeholders)})
                    RETURNING *
                """, *[_db_value(request[c]) for c in columns])
        except asyncpg.UniqueViolationError as e:
            raise GuardViolation("A delivery request has already been sent for this order") from e
        return DeliveryRequest.model_validate(dict(row))

    @_guarded
    async def get(self, request_id: str) -> DeliveryRequest:
        async with self.db.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM delivery_requests WHERE request_id = $1", request_id
            )
        if not row:
            raise NotFound("Delivery request not found")
        return DeliveryRequest.model_validate(dict(row))

    @_guarded
    async def update(self, request_id: str, fields: Dict[str, Any],
                     expected: Optional[Dict[str, Any]] = None) -> None:
        await self._conditional_update(request_id, fields, expected, DELIVERY_REQUEST_COLUMNS)

    @_guarded
    async def query(self, request_filter: DeliveryRequestFilter) -> List[DeliveryRequest]:
        query, params = build_request_query(request_filter)
        async with self.db.pool.acquire() as conn:
            rows = await conn.fetch(query, *params)
        return [DeliveryRequest.model_validate(dict(row)) for row in rows]

    def subscribe(self, request_filter: DeliveryRequestFilter) -> AsyncIterator[List[DeliveryRequest]]:
        return self._subscribe(lambda: self.query(request_filter))


class PostgresPaymentFormRepository(_PostgresRepository, PaymentFormRepository):

    table = "payment_form_responses"
    key = "response_id"

    @_guarded
    async def create(self, response: Dict[str, Any]) -> PaymentFormResponse:
        columns = list(response)
        placeholders = [f"${i}" for i in range(1, len(columns) + 1)]

        async with self.db.pool.acquire() as conn:
            row = await conn.fetchrow(f"""
                INSERT INTO payment_form_responses ({', '.join(columns)})
                VALUES ({', '.join(placeholders)})
                RETURNING *
            """, *[_db_value(response[c]) for c in columns])
        return PaymentFormResponse.model_validate(dict(row))

    @_guarded
    async def query(self, user_id: int) -> List[PaymentFormResponse]:
        async with self.db.pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT *
                FROM payment_form_responses
                WHERE user_id = $1
                ORDER BY created_at DESC
            """, user_id)
        return [PaymentFormResponse.model_validate(dict(row)) for row in rows]

    @_guarded
    async def mark_seen(self, response_id: str) -> None:
        async with self.db.pool.acquire() as conn:
            result = await conn.execute("""
                UPDATE payment_form_responses
                SET seen = TRUE, updated_at = NOW()
                WHERE response_id = $1
            """, response_id)
        if result != "UPDATE 1":
            raise NotFound("Payment response not found")


class PostgresSettingsRepository(_PostgresRepository, SettingsRepository):
    """System settings kept in the typed key/value ``settings`` table"""

    table = "settings"
    key = "key"

    @_guarded
    async def get(self) -> SystemSettings:
        async with self.db.pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT key, value, type
                FROM settings
                WHERE key = ANY($1::text[])
            """, list(SystemSettings.model_fields))

        stored = {r['key']: self._convert_value(r['value'], r['type']) for r in rows}
        return SystemSettings(**stored)

    @_guarded
    async def save(self, settings: SystemSettings) -> None:
        async with self.db.pool.acquire() as conn:
            async with conn.transaction():
                for key, value in settings.model_dump().items():
                    await conn.execute("""
                        INSERT INTO settings (key, value, type)
                        VALUES ($1, $2, $3)
                        ON CONFLICT (key)
                        DO UPDATE SET value = $2, type = $3
                    """, key, str(value), self._get_value_type(value))

    @staticmethod
    def _get_value_type(value: Any) -> str:
        """Storage type of a setting value"""
        if isinstance(value, bool):
            return 'boolean'
        elif isinstance(value, int):
            return 'integer'
        elif isinstance(value, float) or isinstance(value, Decimal):
            return 'decimal'
        else:
            return 'string'

    @staticmethod
    def _convert_value(value: str, type_: str) -> Any:
        """Stored text back to its type"""
        if type_ == 'boolean':
            return value.lower() == 'true'
        elif type_ == 'integer':
            return int(value)
        elif type_ == 'decimal':
            return Decimal(value)
        else:
            return value
