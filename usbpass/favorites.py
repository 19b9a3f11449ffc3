"""SQLite-backed favorites: a small CRUD store keyed by (vendor, product)."""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path

from loguru import logger

from .errors import PersistenceFailed
from .models import DeviceIdentity, FavoriteRecord

log = logger

SCHEMA = """
CREATE TABLE IF NOT EXISTS favorites (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    vendor_id TEXT NOT NULL,
    product_id TEXT NOT NULL,
    description TEXT,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(vendor_id, product_id)
);
"""


class FavoritesStore:
    """One shared connection; each method is a single statement.

    Identities are stored in canonical form, so lookups never depend on the
    caller's casing or ``0x`` prefix.
    """

    def __init__(self, db_path: str | Path, *, timeout_s: float = 5.0):
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        if self.db_path != ':memory:':
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = sqlite3.connect(
                self.db_path, timeout=timeout_s, check_same_thread=False
            )
            with self._lock, self._conn:
                self._conn.executescript(SCHEMA)
        except sqlite3.Error as ex:
            raise PersistenceFailed(
                f'Failed to open favorites database {self.db_path}: {ex}'
            ) from ex
        log.debug('Favorites database ready: {}', self.db_path)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def list_favorites(self) -> list[FavoriteRecord]:
        try:
            with self._lock:
                rows = self._conn.execute(
                    'SELECT id, vendor_id, product_id, description, created_at '
                    'FROM favorites ORDER BY created_at DESC, id DESC'
                ).fetchall()
        except sqlite3.Error as ex:
            raise PersistenceFailed(f'Failed to get favorites: {ex}') from ex
        return [
            FavoriteRecord(
                id=int(row[0]),
                identity=DeviceIdentity(row[1], row[2]),
                description=row[3] or '',
                created_at=str(row[4] or ''),
            )
            for row in rows
        ]

    def add_favorite(self, ident: DeviceIdentity, description: str = '') -> None:
        """Insert, or overwrite the description of an existing pair."""
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    'INSERT INTO favorites (vendor_id, product_id, description) '
                    'VALUES (?, ?, ?) '
                    'ON CONFLICT(vendor_id, product_id) '
                    'DO UPDATE SET description = excluded.description',
                    (ident.vendor_id, ident.product_id, description),
                )
        except sqlite3.Error as ex:
            raise PersistenceFailed(f'Failed to add favorite: {ex}') from ex
        log.info('Favorite saved: {} ({})', ident.key, description)

    def remove_favorite(self, ident: DeviceIdentity) -> bool:
        try:
            with self._lock, self._conn:
                cur = self._conn.execute(
                    'DELETE FROM favorites WHERE vendor_id = ? AND product_id = ?',
                    (ident.vendor_id, ident.product_id),
                )
        except sqlite3.Error as ex:
            raise PersistenceFailed(f'Failed to remove favorite: {ex}') from ex
        removed = cur.rowcount > 0
        if removed:
            log.info('Favorite removed: {}', ident.key)
        return removed

    def is_favorite(self, ident: DeviceIdentity) -> bool:
        try:
            with self._lock:
                row = self._conn.execute(
                    'SELECT COUNT(*) FROM favorites '
                    'WHERE vendor_id = ? AND product_id = ?',
                    (ident.vendor_id, ident.product_id),
                ).fetchone()
        except sqlite3.Error as ex:
            raise PersistenceFailed(f'Failed to query favorite: {ex}') from ex
        return bool(row and row[0] > 0)
