"""
services/signals_service/signal_store.py
----------------------------------------
Persistencia SQLite de señales seguidas por el tracker de PnL.

Tablas:
    - signals        → un registro por señal (payload JSON completo)
    - signal_sets    → membresía en conjuntos: 'active', 'completed', 'pair:<PAR>'
    - signal_dedupe  → marcador anti-duplicados con expiración (24h)

Los conjuntos son derivados: rebuild_indices() los reconstruye desde los
registros. Cada mutate() corre en su propia transacción y se serializa
por id; no existe ningún lock que abarque varias señales.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional

from core.exceptions import SignalNotFound, StoreUnavailable
from models.signal import Signal, SignalStatus
from utils.helpers import format_ts, utc_now

logger = logging.getLogger("signal_store")

ACTIVE_SET = "active"
COMPLETED_SET = "completed"
DEFAULT_DEDUPE_TTL = 24 * 60 * 60


def pair_set(pair: str) -> str:
    return f"pair:{pair}"


def status_set(status: SignalStatus) -> str:
    return ACTIVE_SET if status is SignalStatus.ACTIVE else COMPLETED_SET


class SignalStore:
    def __init__(self, db_path: str, dedupe_ttl: int = DEFAULT_DEDUPE_TTL, clock=utc_now):
        self.db_path = db_path
        self.dedupe_ttl = dedupe_ttl
        self.clock = clock

        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # ============================================================
    # 🔧 CONEXIÓN
    # ============================================================

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=10, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """
        BEGIN IMMEDIATE ... COMMIT. Cualquier error de SQLite se expone
        como StoreUnavailable; los errores del callback se propagan tal cual
        tras el ROLLBACK.
        """
        try:
            conn = self._connect()
        except sqlite3.Error as e:
            raise StoreUnavailable(str(e)) from e

        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            self._rollback(conn)
            raise StoreUnavailable(str(e)) from e
        except BaseException:
            self._rollback(conn)
            raise
        finally:
            conn.close()

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        try:
            conn.execute("ROLLBACK")
        except sqlite3.Error:
            logger.warning("⚠️ ROLLBACK falló (transacción ya cerrada)")

    def _lock_for(self, signal_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(signal_id)
            if lock is None:
                lock = self._locks[signal_id] = threading.Lock()
            return lock

    # ============================================================
    # 🏗 CREACIÓN DE TABLAS
    # ============================================================

    def init_db(self) -> None:
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS signals (
                    id TEXT PRIMARY KEY,
                    pair TEXT NOT NULL,
                    status TEXT NOT NULL,
                    created_at TEXT,
                    payload TEXT NOT NULL
                );
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS signal_sets (
                    set_name TEXT NOT NULL,
                    signal_id TEXT NOT NULL,
                    PRIMARY KEY (set_name, signal_id)
                );
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS signal_dedupe (
                    dedupe_key TEXT PRIMARY KEY,
                    signal_id TEXT NOT NULL,
                    expires_at REAL NOT NULL
                );
                """
            )

        logger.info(f"🗄 Signal store inicializado en {self.db_path}")

    def ping(self) -> None:
        """Lanza StoreUnavailable si la base no responde."""
        try:
            conn = self._connect()
            try:
                conn.execute("SELECT 1 FROM signals LIMIT 1").fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StoreUnavailable(str(e)) from e

    # ============================================================
    # 🟦 ESCRITURA
    # ============================================================

    def _next_id(self, conn: sqlite3.Connection, pair: str, created_at: datetime) -> str:
        base = f"signal:{pair}:{int(created_at.timestamp() * 1000)}"
        candidate, n = base, 1
        while conn.execute("SELECT 1 FROM signals WHERE id = ?", (candidate,)).fetchone():
            candidate = f"{base}-{n}"
            n += 1
        return candidate

    @staticmethod
    def _write(conn: sqlite3.Connection, signal: Signal) -> None:
        conn.execute(
            """
            INSERT OR REPLACE INTO signals (id, pair, status, created_at, payload)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                signal.id,
                signal.pair,
                signal.status.value,
                format_ts(signal.created_at),
                json.dumps(signal.to_dict(), ensure_ascii=False),
            ),
        )

    @staticmethod
    def _sync_sets(conn: sqlite3.Connection, signal: Signal) -> None:
        conn.execute(
            "DELETE FROM signal_sets WHERE signal_id = ? AND set_name IN (?, ?)",
            (signal.id, ACTIVE_SET, COMPLETED_SET),
        )
        conn.executemany(
            "INSERT OR IGNORE INTO signal_sets (set_name, signal_id) VALUES (?, ?)",
            [(status_set(signal.status), signal.id), (pair_set(signal.pair), signal.id)],
        )

    def create(self, signal: Signal) -> Optional[str]:
        """
        Guarda una señal nueva. Devuelve el id asignado, o None si la misma
        alerta (par, dirección, entry, message_id) ya se guardó dentro de la
        ventana de dedupe.
        """
        now = self.clock()
        if signal.created_at is None:
            signal.created_at = now
        key = signal.dedupe_key()

        with self._transaction() as conn:
            conn.execute("DELETE FROM signal_dedupe WHERE expires_at <= ?", (now.timestamp(),))

            existing = conn.execute(
                "SELECT signal_id FROM signal_dedupe WHERE dedupe_key = ?", (key,)
            ).fetchone()
            if existing:
                logger.info(f"♻️ Señal duplicada ignorada: {key} (ya es {existing['signal_id']})")
                return None

            signal.id = self._next_id(conn, signal.pair, signal.created_at)
            self._write(conn, signal)
            self._sync_sets(conn, signal)
            conn.execute(
                "INSERT INTO signal_dedupe (dedupe_key, signal_id, expires_at) VALUES (?, ?, ?)",
                (key, signal.id, now.timestamp() + self.dedupe_ttl),
            )

        logger.info(f"💾 Señal guardada: {signal.id}")
        return signal.id

    def mutate(self, signal_id: str, fn: Callable[[Signal], Optional[Signal]]) -> Signal:
        """
        Lee → aplica fn → escribe, todo en una transacción. fn puede mutar
        la señal in-place (y devolver None) o devolver una señal nueva.
        Si fn lanza, no se escribe nada.
        """
        with self._lock_for(signal_id):
            with self._transaction() as conn:
                signal = self._load(conn, signal_id)
                result = fn(signal)
                if result is not None:
                    signal = result
                signal.id = signal_id
                self._write(conn, signal)
                self._sync_sets(conn, signal)
            return signal

    def delete(self, signal_id: str) -> None:
        with self._lock_for(signal_id):
            with self._transaction() as conn:
                cur = conn.execute("DELETE FROM signals WHERE id = ?", (signal_id,))
                if cur.rowcount == 0:
                    raise SignalNotFound(signal_id)
                conn.execute("DELETE FROM signal_sets WHERE signal_id = ?", (signal_id,))
                conn.execute("DELETE FROM signal_dedupe WHERE signal_id = ?", (signal_id,))

        with self._locks_guard:
            self._locks.pop(signal_id, None)
        logger.info(f"🗑 Señal eliminada: {signal_id}")

    def rebuild_indices(self) -> int:
        """Reconstruye todos los conjuntos desde los registros. Devuelve nº de señales."""
        with self._transaction() as conn:
            conn.execute("DELETE FROM signal_sets")
            rows = conn.execute("SELECT id, pair, status FROM signals").fetchall()
            for row in rows:
                conn.executemany(
                    "INSERT OR IGNORE INTO signal_sets (set_name, signal_id) VALUES (?, ?)",
                    [
                        (status_set(SignalStatus(row["status"])), row["id"]),
                        (pair_set(row["pair"]), row["id"]),
                    ],
                )
        logger.info(f"🔁 Índices reconstruidos ({len(rows)} señales)")
        return len(rows)

    # ============================================================
    # 🔎 LECTURA
    # ============================================================

    @staticmethod
    def _load(conn: sqlite3.Connection, signal_id: str) -> Signal:
        row = conn.execute("SELECT payload FROM signals WHERE id = ?", (signal_id,)).fetchone()
        if row is None:
            raise SignalNotFound(signal_id)
        signal = Signal.from_dict(json.loads(row["payload"]))
        signal.id = signal_id
        return signal

    def _read(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        try:
            conn = self._connect()
            try:
                return conn.execute(sql, params).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StoreUnavailable(str(e)) from e

    def get(self, signal_id: str) -> Signal:
        rows = self._read("SELECT id, payload FROM signals WHERE id = ?", (signal_id,))
        if not rows:
            raise SignalNotFound(signal_id)
        return self._from_row(rows[0])

    @staticmethod
    def _from_row(row: sqlite3.Row) -> Signal:
        signal = Signal.from_dict(json.loads(row["payload"]))
        signal.id = row["id"]
        return signal

    def _list_set(self, set_name: str) -> List[Signal]:
        rows = self._read(
            """
            SELECT s.id, s.payload
            FROM signal_sets m
            JOIN signals s ON s.id = m.signal_id
            WHERE m.set_name = ?
            ORDER BY s.created_at ASC, s.id ASC
            """,
            (set_name,),
        )
        return [self._from_row(r) for r in rows]

    def list_active(self) -> List[Signal]:
        return self._list_set(ACTIVE_SET)

    def list_completed(self) -> List[Signal]:
        return self._list_set(COMPLETED_SET)

    def list_by_instrument(self, pair: str) -> List[Signal]:
        return self._list_set(pair_set(pair))
