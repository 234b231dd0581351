"""
Persistence collaborator.

Nodes are unique per (owner_slug, domain) and capsules per (node_id,
fingerprint); both writes are upserts so a retried job never duplicates
rows. The domain is always derived from the source URL.
"""

import logging
import os
import sqlite3
import threading
import time
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

import orjson
import psycopg2
import tldextract

from .exceptions import StoreError

logger = logging.getLogger(__name__)

# bundled public-suffix snapshot only, no network fetch
_tld = tldextract.TLDExtract(suffix_list_urls=())


def derive_domain(url: str) -> str:
    ext = _tld(url)
    if ext.fqdn:
        return ext.fqdn.lower()
    return (urlsplit(url).hostname or "").lower()


def to_json(obj) -> str:
    return orjson.dumps(obj, option=orjson.OPT_NON_STR_KEYS).decode("utf-8")


class CapsuleStore:
    """Shared bits: one connection, one lock, context-manager lifecycle."""

    def __init__(self):
        self.conn = None
        self._lock = threading.Lock()

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def open(self):
        raise NotImplementedError

    def close(self):
        if self.conn is not None:
            self.conn.close()
            self.conn = None


# -------- sqlite ----------
SQLITE_SCHEMA = (
    """CREATE TABLE IF NOT EXISTS nodes(
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        owner_slug TEXT NOT NULL,
        source_url TEXT NOT NULL,
        domain TEXT NOT NULL,
        category TEXT CHECK (category IN ('ecommerce','media','smb','corporate','landing')),
        created_at REAL,
        last_harvested TEXT,
        UNIQUE(owner_slug, domain))""",
    """CREATE TABLE IF NOT EXISTS capsules(
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        node_id INTEGER NOT NULL REFERENCES nodes(id) ON DELETE CASCADE,
        capsule_json TEXT NOT NULL,
        fingerprint TEXT NOT NULL,
        harvested_at TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'ok' CHECK (status IN ('ok','needs_review','error')),
        UNIQUE(node_id, fingerprint))""",
    "CREATE INDEX IF NOT EXISTS idx_capsules_fp ON capsules(fingerprint)",
    "CREATE INDEX IF NOT EXISTS idx_nodes_domain ON nodes(domain)",
)


class SqliteCapsuleStore(CapsuleStore):

    def __init__(self, db_path: str = "db/capsules.sqlite"):
        super().__init__()
        self.db_path = db_path

    @classmethod
    def from_settings(cls, settings) -> "SqliteCapsuleStore":
        return cls(settings.get("DB_PATH"))

    def open(self):
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(exist_ok=True, parents=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        for ddl in SQLITE_SCHEMA:
            self.conn.execute(ddl)
        self.conn.commit()
        return self

    def _run(self, sql: str, params=()):
        with self._lock:
            try:
                cur = self.conn.execute(sql, params)
                rows = cur.fetchall()
                self.conn.commit()
                return rows
            except sqlite3.Error as e:
                self.conn.rollback()
                raise StoreError(f"sqlite: {e}") from e

    def upsert_node(self, owner_slug: str, source_url: str) -> int:
        domain = derive_domain(source_url)
        self._run(
            """INSERT INTO nodes(owner_slug, source_url, domain, created_at) VALUES (?,?,?,?)
               ON CONFLICT(owner_slug, domain) DO UPDATE SET source_url = excluded.source_url""",
            (owner_slug, source_url, domain, time.time()),
        )
        rows = self._run("SELECT id FROM nodes WHERE owner_slug=? AND domain=?", (owner_slug, domain))
        return rows[0]["id"]

    def insert_capsule(self, node_id: int, envelope: dict, fingerprint: str,
                       captured_at: str, status: str = "ok") -> int:
        self._run(
            """INSERT INTO capsules(node_id, capsule_json, fingerprint, harvested_at, status)
               VALUES (?,?,?,?,?)
               ON CONFLICT(node_id, fingerprint) DO UPDATE SET
                 capsule_json = excluded.capsule_json,
                 harvested_at = excluded.harvested_at,
                 status       = excluded.status""",
            (node_id, to_json(envelope), fingerprint, captured_at, status),
        )
        # same effect as an AFTER INSERT trigger on capsules
        self._run("UPDATE nodes SET last_harvested=? WHERE id=?", (captured_at, node_id))
        rows = self._run("SELECT id FROM capsules WHERE node_id=? AND fingerprint=?", (node_id, fingerprint))
        return rows[0]["id"]

    def update_node_category(self, node_id: int, category: Optional[str]) -> None:
        self._run("UPDATE nodes SET category=? WHERE id=?", (category, node_id))

    def get_node(self, node_id: int) -> Optional[dict]:
        rows = self._run("SELECT * FROM nodes WHERE id=?", (node_id,))
        return dict(rows[0]) if rows else None

    def get_capsules(self, node_id: int) -> list:
        rows = self._run("SELECT * FROM capsules WHERE node_id=? ORDER BY id", (node_id,))
        out = []
        for r in rows:
            rec = dict(r)
            rec["capsule_json"] = orjson.loads(rec["capsule_json"])
            out.append(rec)
        return out


# -------- postgres ----------
PG_SCHEMA = """
CREATE TABLE IF NOT EXISTS nodes (
  id BIGSERIAL PRIMARY KEY,
  owner_slug TEXT NOT NULL,
  source_url TEXT NOT NULL,
  domain TEXT NOT NULL,
  category TEXT CHECK (category IN ('ecommerce','media','smb','corporate','landing')),
  created_at TIMESTAMPTZ DEFAULT now(),
  last_harvested TIMESTAMPTZ,
  UNIQUE (owner_slug, domain)
);
CREATE TABLE IF NOT EXISTS capsules (
  id BIGSERIAL PRIMARY KEY,
  node_id BIGINT NOT NULL REFERENCES nodes(id) ON DELETE CASCADE,
  capsule_json JSONB NOT NULL,
  fingerprint VARCHAR(80) NOT NULL,
  harvested_at TIMESTAMPTZ NOT NULL,
  status TEXT NOT NULL DEFAULT 'ok' CHECK (status IN ('ok','needs_review','error')),
  UNIQUE (node_id, fingerprint)
);
CREATE INDEX IF NOT EXISTS idx_capsules_fp ON capsules(fingerprint);
CREATE INDEX IF NOT EXISTS idx_nodes_domain ON nodes(domain);
"""

NODE_UPSERT = """
INSERT INTO nodes (owner_slug, source_url, domain)
VALUES (%s, %s, %s)
ON CONFLICT (owner_slug, domain) DO UPDATE SET
  source_url = EXCLUDED.source_url
RETURNING id;
"""

CAPSULE_UPSERT = """
INSERT INTO capsules (node_id, capsule_json, fingerprint, harvested_at, status)
VALUES (%s, %s::jsonb, %s, %s, %s)
ON CONFLICT (node_id, fingerprint) DO UPDATE SET
  capsule_json = EXCLUDED.capsule_json,
  harvested_at = EXCLUDED.harvested_at,
  status       = EXCLUDED.status
RETURNING id;
"""


def connect():
    return psycopg2.connect(
        host=os.environ.get("PGHOST", "localhost"),
        port=int(os.environ.get("PGPORT", "5432")),
        user=os.environ.get("PGUSER", "postgres"),
        password=os.environ.get("PGPASSWORD", ""),
        dbname=os.environ.get("PGDATABASE", "postgres"),
    )


class PostgresCapsuleStore(CapsuleStore):

    def __init__(self, connect_fn=connect):
        super().__init__()
        self.connect_fn = connect_fn

    def open(self):
        try:
            self.conn = self.connect_fn()
            self.conn.autocommit = False
            with self.conn.cursor() as cur:
                cur.execute(PG_SCHEMA)
            self.conn.commit()
        except psycopg2.Error as e:
            raise StoreError(f"postgres: {e}") from e
        return self

    def _run(self, sql: str, params=(), fetch: bool = False):
        with self._lock:
            try:
                with self.conn.cursor() as cur:
                    cur.execute(sql, params)
                    row = cur.fetchone() if fetch else None
                self.conn.commit()
                return row
            except psycopg2.Error as e:
                self.conn.rollback()
                raise StoreError(f"postgres: {e}") from e

    def upsert_node(self, owner_slug: str, source_url: str) -> int:
        row = self._run(NODE_UPSERT, (owner_slug, source_url, derive_domain(source_url)), fetch=True)
        return row[0]

    def insert_capsule(self, node_id: int, envelope: dict, fingerprint: str,
                       captured_at: str, status: str = "ok") -> int:
        row = self._run(CAPSULE_UPSERT, (node_id, to_json(envelope), fingerprint, captured_at, status), fetch=True)
        self._run("UPDATE nodes SET last_harvested = %s WHERE id = %s;", (captured_at, node_id))
        return row[0]

    def update_node_category(self, node_id: int, category: Optional[str]) -> None:
        self._run("UPDATE nodes SET category = %s WHERE id = %s;", (category, node_id))
