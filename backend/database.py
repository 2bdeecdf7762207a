"""
Compliance Reading Engine - Database Connection Manager
Version: 1.1.0

Changelog:
v1.1.0 (2026-10-19): write_transaction() for check-then-write sequences;
                      busy timeout taken from settings
v1.0.0 (2026-10-05): Initial database connection manager with async helpers

Every repository call opens its own short-lived aiosqlite connection
(WAL journal, foreign keys on). Writes that must see the state they
check run inside write_transaction(), which takes SQLite's write lock
before the first read so a concurrent submit cannot land in between.
"""

import os
import json
import aiosqlite
from contextlib import asynccontextmanager

from config import settings


def get_db_path() -> str:
    """Resolve database path from settings, create its directory if needed"""
    db_path = settings.SQLITE_DB_PATH
    os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
    return db_path


async def _connect() -> aiosqlite.Connection:
    db = await aiosqlite.connect(get_db_path(), timeout=settings.SQLITE_BUSY_TIMEOUT)
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA journal_mode=WAL")
    await db.execute("PRAGMA foreign_keys=ON")
    return db


@asynccontextmanager
async def get_db():
    """Async context manager yielding a configured connection"""
    db = await _connect()
    try:
        yield db
    finally:
        await db.close()


@asynccontextmanager
async def write_transaction():
    """
    Connection inside BEGIN IMMEDIATE.

    Commits when the block exits normally and rolls back when it raises,
    so a typed error raised after a status check leaves nothing written.
    """
    db = await _connect()
    try:
        await db.execute("BEGIN IMMEDIATE")
        try:
            yield db
        except BaseException:
            await db.rollback()
            raise
        await db.commit()
    finally:
        await db.close()


async def execute_one(db, sql: str, params=()) -> dict | None:
    """First row as a dict, or None"""
    cursor = await db.execute(sql, params)
    row = await cursor.fetchone()
    return dict(row) if row else None


async def execute_all(db, sql: str, params=()) -> list[dict]:
    cursor = await db.execute(sql, params)
    return [dict(row) for row in await cursor.fetchall()]


async def execute_insert(db, sql: str, params=()) -> int:
    """Execute INSERT, commit, and return lastrowid"""
    cursor = await db.execute(sql, params)
    await db.commit()
    return cursor.lastrowid


async def execute_update(db, sql: str, params=()) -> int:
    """Execute UPDATE/DELETE, commit, and return rowcount"""
    cursor = await db.execute(sql, params)
    await db.commit()
    return cursor.rowcount


def json_col(data, empty: str = '{}') -> str:
    """Answers maps and field lists are stored as JSON TEXT"""
    if data is None:
        return empty
    return json.dumps(data, default=str)


def from_json(text: str, default=None):
    if not text:
        return default
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return default
