from __future__ import annotations

import json
import logging
import sqlite3
import time
import uuid
from pathlib import Path
from typing import Iterable, Optional

from serverless_api.backend.memory import DEFAULT_ADDRESS_TEMPLATE
from serverless_api.domain.models import GatewayHandle, HandlerHandle, NetworkRef, RuntimeSettings

logger = logging.getLogger(__name__)

_HANDLER_COLUMNS = (
    "id, name, runtime, entry_point, environment, timeout_seconds, "
    "code_location, runtime_layer, network_id, created_at"
)


def _now_ts() -> int:
    return int(time.time())


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class SQLiteStateBackend:
    """Project-local provisioning state.

    Records every handler and gateway it creates so that resources left behind
    by a failed build (a handler without a gateway) can be found and cleaned
    up later. Nothing here talks to a cloud provider.
    """

    SCHEMA_VERSION = "1.0"

    def __init__(self, db_path: Path, address_template: str = DEFAULT_ADDRESS_TEMPLATE):
        self.db_path = db_path
        self.address_template = address_template
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @staticmethod
    def db_path_for_dir(state_dir: Path) -> Path:
        return state_dir / ".serverless_api" / "state.db"

    # ----------------------------
    # Connection / schema
    # ----------------------------

    def _connect(self) -> sqlite3.Connection:
        con = sqlite3.connect(str(self.db_path))
        con.row_factory = sqlite3.Row
        return con

    def _init_db(self) -> None:
        with self._connect() as con:
            con.execute("PRAGMA journal_mode=WAL;")

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS meta (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS handlers (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    runtime TEXT NOT NULL,
                    entry_point TEXT NOT NULL,
                    environment TEXT NOT NULL,
                    timeout_seconds INTEGER NOT NULL,
                    code_location TEXT NOT NULL,
                    runtime_layer TEXT NOT NULL,
                    network_id TEXT,
                    created_at INTEGER NOT NULL
                );
                """
            )
            # handler_id is not a foreign key: borrowed handlers live outside this store.
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS gateways (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    handler_id TEXT NOT NULL,
                    address TEXT NOT NULL,
                    created_at INTEGER NOT NULL
                );
                """
            )
            con.execute("CREATE INDEX IF NOT EXISTS idx_gateways_handler ON gateways(handler_id);")

            if self._get_meta(con, "schema_version") is None:
                self._set_meta(con, "schema_version", self.SCHEMA_VERSION)

    # ----------------------------
    # Provisioning backend
    # ----------------------------

    def create_compute_handler(
        self,
        runtime: RuntimeSettings,
        code_location: str,
        runtime_layer: str,
        network: Optional[NetworkRef] = None,
        *,
        name: Optional[str] = None,
    ) -> HandlerHandle:
        handle = HandlerHandle(id=_new_id("handler"), name=name or "")
        with self._connect() as con:
            con.execute(
                """
                INSERT INTO handlers(
                    id, name, runtime, entry_point, environment, timeout_seconds,
                    code_location, runtime_layer, network_id, created_at
                ) VALUES(?,?,?,?,?,?,?,?,?,?)
                """,
                (
                    handle.id,
                    handle.name,
                    runtime.runtime,
                    runtime.entry_point,
                    json.dumps(runtime.environment, sort_keys=True),
                    int(runtime.timeout_seconds),
                    code_location,
                    runtime_layer,
                    network.id if network else None,
                    _now_ts(),
                ),
            )
        logger.info(f"[state] Created handler {handle.id} ({handle.name})")
        return handle

    def create_gateway(
        self,
        default_route_target: HandlerHandle,
        *,
        name: Optional[str] = None,
    ) -> GatewayHandle:
        handle = GatewayHandle(id=_new_id("gateway"), handler_id=default_route_target.id, name=name or "")
        address = self.address_template.format(gateway_id=handle.id)
        with self._connect() as con:
            con.execute(
                "INSERT INTO gateways(id, name, handler_id, address, created_at) VALUES(?,?,?,?,?)",
                (handle.id, handle.name, handle.handler_id, address, _now_ts()),
            )
        logger.info(f"[state] Created gateway {handle.id} -> {handle.handler_id}")
        return handle

    def get_address(self, gateway: GatewayHandle) -> str:
        row = self.get_gateway(gateway.id)
        if row is None:
            raise KeyError(f"unknown gateway: {gateway.id}")
        return row["address"]

    # ----------------------------
    # Queries / cleanup
    # ----------------------------

    def get_gateway(self, gateway_id: str) -> Optional[dict]:
        with self._connect() as con:
            row = con.execute(
                "SELECT id, name, handler_id, address, created_at FROM gateways WHERE id=?",
                (gateway_id,),
            ).fetchone()
            return dict(row) if row else None

    def get_handlers(self, handler_ids: Iterable[str]) -> list[dict]:
        ids = sorted(set(handler_ids))
        if not ids:
            return []
        marks = ",".join("?" for _ in ids)
        with self._connect() as con:
            rows = con.execute(
                f"SELECT {_HANDLER_COLUMNS} FROM handlers WHERE id IN ({marks}) ORDER BY created_at, id",
                tuple(ids),
            ).fetchall()
            return [dict(r) for r in rows]

    def list_handlers(self, name_contains: Optional[str] = None, limit: int = 200) -> list[dict]:
        q = f"SELECT {_HANDLER_COLUMNS} FROM handlers"
        params: list[object] = []
        if name_contains:
            q += " WHERE name LIKE ?"
            params.append(f"%{name_contains}%")
        q += " ORDER BY created_at, id LIMIT ?"
        params.append(int(limit))

        with self._connect() as con:
            rows = con.execute(q, tuple(params)).fetchall()
            return [dict(r) for r in rows]

    def list_gateways(self, name_contains: Optional[str] = None, limit: int = 200) -> list[dict]:
        q = "SELECT id, name, handler_id, address, created_at FROM gateways"
        params: list[object] = []
        if name_contains:
            q += " WHERE name LIKE ?"
            params.append(f"%{name_contains}%")
        q += " ORDER BY created_at, id LIMIT ?"
        params.append(int(limit))

        with self._connect() as con:
            rows = con.execute(q, tuple(params)).fetchall()
            return [dict(r) for r in rows]

    def orphan_handlers(self) -> list[dict]:
        """Handlers created here that no gateway publishes.

        Covers both failure points after handler creation: no gateway at all,
        or only gateways that never got an address.
        """
        with self._connect() as con:
            rows = con.execute(
                """
                SELECT h.id, h.name, h.code_location, h.runtime_layer, h.network_id, h.created_at
                FROM handlers h
                WHERE NOT EXISTS (
                    SELECT 1 FROM gateways g WHERE g.handler_id = h.id AND g.address != ''
                )
                ORDER BY h.created_at, h.id
                """
            ).fetchall()
            return [dict(r) for r in rows]

    def incomplete_gateways(self) -> list[dict]:
        """Gateways recorded without an address. Delete these before their handler."""
        with self._connect() as con:
            rows = con.execute(
                """
                SELECT id, name, handler_id, address, created_at
                FROM gateways WHERE address = ''
                ORDER BY created_at, id
                """
            ).fetchall()
            return [dict(r) for r in rows]

    def delete_gateway(self, gateway_id: str) -> bool:
        with self._connect() as con:
            cur = con.execute("DELETE FROM gateways WHERE id=?", (gateway_id,))
            deleted = cur.rowcount > 0
        if deleted:
            logger.info(f"[state] Deleted gateway {gateway_id}")
        return deleted

    def delete_handler(self, handler_id: str) -> bool:
        """Forget a handler. Refuses while a gateway still routes to it."""
        with self._connect() as con:
            routed_by = con.execute(
                "SELECT id FROM gateways WHERE handler_id=? ORDER BY id LIMIT 1", (handler_id,)
            ).fetchone()
            if routed_by:
                raise ValueError(
                    f"handler {handler_id} is still routed to by gateway {routed_by['id']}; delete the gateway first"
                )
            cur = con.execute("DELETE FROM handlers WHERE id=?", (handler_id,))
            deleted = cur.rowcount > 0
        if deleted:
            logger.info(f"[state] Deleted handler {handler_id}")
        return deleted

    # ----------------------------
    # internal helpers
    # ----------------------------

    def _get_meta(self, con: sqlite3.Connection, key: str) -> Optional[str]:
        row = con.execute("SELECT value FROM meta WHERE key=?", (key,)).fetchone()
        return row[0] if row else None

    def _set_meta(self, con: sqlite3.Connection, key: str, value: str) -> None:
        con.execute(
            """
            INSERT INTO meta(key, value) VALUES(?, ?)
            ON CONFLICT(key) DO UPDATE SET value=excluded.value
            """,
            (key, value),
        )
