"""
Simple PostgreSQL database functions for the website order checkout
Direct database connections with raw SQL queries for transparency and performance
"""

import asyncio
import json
import logging
import threading
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional

import psycopg2
import psycopg2.pool
from psycopg2.extras import RealDictCursor

from financial_precision import safe_decimal

logger = logging.getLogger(__name__)


class DatabaseError(Exception):
    """Raised when a query or write fails"""
    pass


class DatabaseNotConfiguredError(DatabaseError):
    """Raised when DATABASE_URL is missing"""
    pass


# UUID Utility Functions for Production-Safe ID Generation
def generate_uuid() -> str:
    """Generate a new UUID v4 string for database records"""
    return str(uuid.uuid4())


class _JsonEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        return super().default(obj)


def to_json(value: Any) -> str:
    """Serialize dicts for JSONB columns (psycopg2 can't adapt dict directly)"""
    return json.dumps(value, cls=_JsonEncoder)


# ====================================================================
# CONNECTION POOL
# ====================================================================

_connection_pool: Optional[psycopg2.pool.ThreadedConnectionPool] = None
_pool_lock = threading.Lock()


def get_database_url() -> Optional[str]:
    from config import get_config
    return get_config().database.url


def is_database_configured() -> bool:
    return bool(get_database_url())


def get_connection_pool() -> psycopg2.pool.ThreadedConnectionPool:
    """Get or create the database connection pool"""
    global _connection_pool
    if _connection_pool is not None:
        return _connection_pool

    with _pool_lock:
        if _connection_pool is None:
            from config import get_config
            settings = get_config().database
            if not settings.url:
                raise DatabaseNotConfiguredError("Missing DATABASE_URL")
            try:
                _connection_pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=settings.min_connections,
                    maxconn=settings.max_connections,
                    dsn=settings.url,
                    cursor_factory=RealDictCursor,
                    connect_timeout=settings.connect_timeout,
                )
                logger.info(f"✅ Connection pool created ({settings.min_connections}-{settings.max_connections} connections)")
            except psycopg2.Error as e:
                logger.error(f"❌ Failed to create connection pool: {e}")
                raise DatabaseError(f"Failed to connect to database: {e}") from e
    return _connection_pool


def close_connection_pool() -> None:
    global _connection_pool
    with _pool_lock:
        if _connection_pool is not None:
            _connection_pool.closeall()
            _connection_pool = None
            logger.info("🔄 Connection pool closed")


def get_connection():
    pool = get_connection_pool()
    conn = pool.getconn()
    conn.autocommit = True
    return conn


def return_connection(conn, is_broken: bool = False) -> None:
    """Return a connection to the pool, closing it if broken"""
    try:
        get_connection_pool().putconn(conn, close=is_broken)
    except Exception as e:
        logger.warning(f"⚠️ Failed to return connection to pool: {e}")
        try:
            conn.close()
        except psycopg2.Error:
            pass


async def execute_query(query: str, params: Optional[tuple] = None) -> List[Dict]:
    """Execute a SELECT query and return rows as dicts"""

    def _execute() -> List[Dict]:
        conn = get_connection()
        broken = False
        try:
            with conn.cursor() as cursor:
                cursor.execute(query, params)
                results = cursor.fetchall()
                return [dict(row) for row in results] if results else []
        except (psycopg2.OperationalError, psycopg2.InterfaceError) as e:
            broken = True
            logger.error(f"💥 CONNECTION ERROR in execute_query: {e}")
            raise DatabaseError(str(e)) from e
        except psycopg2.Error as e:
            logger.error(f"💥 SQL ERROR in execute_query: {e}")
            logger.debug(f"  Query: {query}")
            raise DatabaseError(str(e)) from e
        finally:
            return_connection(conn, is_broken=broken)

    return await asyncio.to_thread(_execute)


async def execute_update(query: str, params: Optional[tuple] = None) -> int:
    """
    Execute an INSERT/UPDATE/DELETE in its own transaction (no retries to prevent duplicates)

    Returns:
        Affected row count
    """

    def _execute() -> int:
        conn = get_connection()
        broken = False
        try:
            conn.autocommit = False
            with conn.cursor() as cursor:
                cursor.execute(query, params)
                rowcount = cursor.rowcount
            conn.commit()
            logger.debug(f"✅ SQL UPDATE: affected {rowcount} rows")
            return rowcount
        except psycopg2.Error as e:
            broken = isinstance(e, (psycopg2.OperationalError, psycopg2.InterfaceError))
            logger.error(f"💥 SQL ERROR in execute_update: {type(e).__name__}: {e}")
            logger.debug(f"  Query: {query}")
            try:
                conn.rollback()
            except psycopg2.Error as rollback_error:
                logger.error(f"Failed to rollback transaction: {rollback_error}")
                broken = True
            raise DatabaseError(str(e)) from e
        finally:
            try:
                conn.autocommit = True
            except psycopg2.Error:
                broken = True
            return_connection(conn, is_broken=broken)

    return await asyncio.to_thread(_execute)


# ====================================================================
# INTEGRATION SECRETS
# ====================================================================

async def get_integration_secret(provider: str, name: str) -> Optional[Dict[str, Any]]:
    """Fetch the stored secret record ({ciphertext, iv}) for a provider, or None"""
    rows = await execute_query(
        """
        SELECT ciphertext, iv FROM integration_secrets
        WHERE provider = %s AND name = %s
        LIMIT 1
        """,
        (provider, name),
    )
    return rows[0] if rows else None


# ====================================================================
# AUDIT LOG / LEADS / ORDERS
# ====================================================================

async def insert_audit_log(actor_user_id: str, provider: str, action: str, metadata: Dict[str, Any]) -> int:
    return await execute_update(
        """
        INSERT INTO super_admin_audit_logs (actor_user_id, provider, action, metadata, created_at)
        VALUES (%s, %s, %s, %s, CURRENT_TIMESTAMP)
        """,
        (actor_user_id, provider, action, to_json(metadata)),
    )


async def save_order_lead(lead: Dict[str, Any]) -> str:
    """
    Persist an order lead for follow-up

    Args:
        lead: Column values (flow_type, domain, amount_idr, ...)

    Returns:
        The new lead id
    """
    lead_id = generate_uuid()
    row = dict(lead)
    for json_column in ('add_ons', 'subscription_add_ons'):
        if isinstance(row.get(json_column), dict):
            row[json_column] = to_json(row[json_column])

    columns = ['id'] + list(row.keys())
    values = [lead_id] + list(row.values())
    placeholders = ', '.join(['%s'] * len(values))
    await execute_update(
        f"""
        INSERT INTO order_leads ({', '.join(columns)}, status, is_read, created_at)
        VALUES ({placeholders}, 'new', FALSE, CURRENT_TIMESTAMP)
        """,
        tuple(values),
    )
    logger.info(f"✅ Order lead saved: {lead_id} ({row.get('flow_type')}, amount {row.get('amount_idr')})")
    return lead_id


async def create_website_order(order: Dict[str, Any]) -> str:
    """Insert a pending website order and return its id"""
    order_id = generate_uuid()
    await execute_update(
        """
        INSERT INTO website_orders (
            id, amount_idr, subscription_years, promo_code, domain,
            template_id, template_name, customer_name, customer_email,
            provider, status, created_at
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, 'pending', CURRENT_TIMESTAMP)
        """,
        (
            order_id,
            str(order.get('amount_idr')),
            order.get('subscription_years'),
            order.get('promo_code') or None,
            order.get('domain'),
            order.get('selected_template_id') or None,
            order.get('selected_template_name') or None,
            order.get('customer_name'),
            order.get('customer_email'),
            order.get('provider', 'xendit'),
        ),
    )
    logger.info(f"✅ Website order created: {order_id}")
    return order_id


async def update_website_order_invoice(order_id: str, invoice_id: Optional[str], invoice_url: Optional[str], status: str) -> int:
    return await execute_update(
        """
        UPDATE website_orders
        SET provider_invoice_id = %s, invoice_url = %s, status = %s, updated_at = CURRENT_TIMESTAMP
        WHERE id = %s
        """,
        (invoice_id, invoice_url, status, order_id),
    )


# ====================================================================
# PROMO CODES
# ====================================================================

async def get_active_promo_code(code: str) -> Optional[Dict[str, Any]]:
    """Active, in-window promo code matching case-insensitively"""
    rows = await execute_query(
        """
        SELECT id, code, promo_name, discount_type, discount_value,
               max_discount_usd, min_order_usd
        FROM order_promo_codes
        WHERE UPPER(code) = UPPER(%s)
          AND is_active = TRUE
          AND (starts_at IS NULL OR starts_at <= CURRENT_TIMESTAMP)
          AND (ends_at IS NULL OR ends_at > CURRENT_TIMESTAMP)
        LIMIT 1
        """,
        (code,),
    )
    return rows[0] if rows else None


# ====================================================================
# CATALOG READS
# ====================================================================

async def get_default_package_id() -> Optional[str]:
    rows = await execute_query("SELECT default_package_id FROM order_settings LIMIT 1")
    if not rows or rows[0].get('default_package_id') is None:
        return None
    return str(rows[0]['default_package_id'])


async def get_package(package_id: str) -> Optional[Dict[str, Any]]:
    rows = await execute_query(
        "SELECT id, name, price_usd FROM packages WHERE id = %s LIMIT 1",
        (package_id,),
    )
    return rows[0] if rows else None


async def get_subscription_plans(package_id: str) -> List[Dict[str, Any]]:
    return await execute_query(
        """
        SELECT years, price_usd FROM package_subscription_plans
        WHERE package_id = %s
        ORDER BY years
        """,
        (package_id,),
    )


async def get_package_durations(package_id: str) -> List[Dict[str, Any]]:
    return await execute_query(
        """
        SELECT duration_months, discount_percent, is_active FROM package_durations
        WHERE package_id = %s
        ORDER BY duration_months
        """,
        (package_id,),
    )


async def get_add_on_prices(package_id: str) -> Dict[str, Decimal]:
    rows = await execute_query(
        """
        SELECT add_on_key, price_usd FROM package_add_ons
        WHERE package_id = %s AND is_active = TRUE
        """,
        (package_id,),
    )
    return _price_map(rows)


async def get_subscription_add_on_prices(package_id: Optional[str]) -> Dict[str, Decimal]:
    rows = await execute_query(
        """
        SELECT add_on_key, price_usd FROM subscription_add_ons
        WHERE is_active = TRUE AND (package_id IS NULL OR package_id = %s)
        """,
        (package_id,),
    )
    return _price_map(rows)


def _price_map(rows: List[Dict[str, Any]]) -> Dict[str, Decimal]:
    prices: Dict[str, Decimal] = {}
    for row in rows:
        price = safe_decimal(row.get('price_usd'), "price_usd")
        if row.get('add_on_key') and price is not None:
            prices[str(row['add_on_key'])] = price
    return prices
