"""Tables clé -> enregistrement JSON persistées.

Le journal d'audit et le journal des sessions ne connaissent que cette
interface (get / put / delete / keys / list) ; le backend (répertoire de
fichiers JSON, SQLite ou mémoire) est choisi par la configuration.
"""
from __future__ import annotations
import asyncio, json, logging, sqlite3
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote, unquote

import aiofiles
import aiofiles.os

from ..core.errors import CorruptRecord
from ..core.types import now_iso

_LOGGER = logging.getLogger(__name__)

def _decode(key: str, text: str) -> dict:
    try:
        obj = json.loads(text)
    except ValueError as e:
        raise CorruptRecord(key, str(e)) from e
    if not isinstance(obj, dict):
        raise CorruptRecord(key, "objet JSON attendu")
    return obj

def _encode(record: dict) -> str:
    return json.dumps(record, ensure_ascii=False, indent=2)

class KeyValueStore:
    """Interface commune. `get` lève CorruptRecord, `list` ignore (et journalise) les enregistrements illisibles."""
    namespace: str = ""

    async def get(self, key: str) -> Optional[dict]:  # pragma: no cover - interface
        raise NotImplementedError

    async def put(self, key: str, record: dict) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    async def delete(self, key: str) -> bool:  # pragma: no cover - interface
        raise NotImplementedError

    async def keys(self) -> List[str]:  # pragma: no cover - interface
        raise NotImplementedError

    async def list(self) -> List[Tuple[str, dict]]:
        out: List[Tuple[str, dict]] = []
        for key in await self.keys():
            try:
                record = await self.get(key)
            except CorruptRecord as e:
                _LOGGER.warning("[%s] enregistrement ignoré: %s", self.namespace, e)
                continue
            if record is not None:
                out.append((key, record))
        return out

# ---------------- Mémoire (tests) ----------------
class MemoryKV(KeyValueStore):
    def __init__(self, namespace: str = "memory") -> None:
        self.namespace = namespace
        # texte brut pour garder la même sémantique (copie + parsing) que les backends persistants
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[dict]:
        text = self._data.get(key)
        return None if text is None else _decode(key, text)

    async def put(self, key: str, record: dict) -> None:
        self._data[key] = _encode(record)

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def keys(self) -> List[str]:
        return sorted(self._data)

    def put_raw(self, key: str, text: str) -> None:
        self._data[key] = text

# ---------------- Répertoire de fichiers JSON ----------------
class JsonDirKV(KeyValueStore):
    """Un fichier `<clé>.json` par enregistrement, réécrit en entier (écriture tmp + replace)."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.namespace = self.directory.name

    def _path(self, key: str) -> Path:
        # quote() est réversible et interdit les séparateurs de chemin
        return self.directory / f"{quote(key, safe='')}.json"

    async def get(self, key: str) -> Optional[dict]:
        path = self._path(key)
        if not path.exists():
            return None
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            text = await f.read()
        return _decode(key, text)

    async def put(self, key: str, record: dict) -> None:
        path = self._path(key)
        tmp = path.with_name(path.name + ".tmp")
        async with aiofiles.open(tmp, "w", encoding="utf-8") as f:
            await f.write(_encode(record))
        await aiofiles.os.replace(tmp, path)

    async def delete(self, key: str) -> bool:
        path = self._path(key)
        if not path.exists():
            return False
        await aiofiles.os.remove(path)
        return True

    async def keys(self) -> List[str]:
        return sorted(unquote(p.stem) for p in self.directory.glob("*.json"))

# ---------------- SQLite ----------------
SCHEMA = [
    """CREATE TABLE IF NOT EXISTS records (
        namespace TEXT NOT NULL,
        key TEXT NOT NULL,
        ts TEXT NOT NULL,
        data TEXT NOT NULL,
        PRIMARY KEY (namespace, key)
    );"""
]

class SqliteKV(KeyValueStore):
    """Une ligne par enregistrement ; plusieurs namespaces partagent le même fichier."""

    def __init__(self, path: str | Path, namespace: str) -> None:
        self.path = str(path)
        self.namespace = namespace
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        conn = self._connect()
        try:
            conn.execute("PRAGMA journal_mode=WAL;")
            for stmt in SCHEMA:
                conn.execute(stmt)
            conn.commit()
        finally:
            conn.close()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.path)

    # Les appels sqlite3 sont bloquants : exécutés hors de la boucle
    def _get(self, key: str) -> Optional[str]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT data FROM records WHERE namespace=? AND key=?", (self.namespace, key)
            ).fetchone()
        finally:
            conn.close()
        return row[0] if row else None

    def _put(self, key: str, text: str) -> None:
        conn = self._connect()
        try:
            conn.execute(
                "INSERT OR REPLACE INTO records(namespace, key, ts, data) VALUES (?, ?, ?, ?)",
                (self.namespace, key, now_iso(), text),
            )
            conn.commit()
        finally:
            conn.close()

    def _delete(self, key: str) -> bool:
        conn = self._connect()
        try:
            cur = conn.execute("DELETE FROM records WHERE namespace=? AND key=?", (self.namespace, key))
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()

    def _keys(self) -> List[str]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT key FROM records WHERE namespace=? ORDER BY key", (self.namespace,)
            ).fetchall()
        finally:
            conn.close()
        return [r[0] for r in rows]

    async def get(self, key: str) -> Optional[dict]:
        text = await asyncio.to_thread(self._get, key)
        return None if text is None else _decode(key, text)

    async def put(self, key: str, record: dict) -> None:
        await asyncio.to_thread(self._put, key, _encode(record))

    async def delete(self, key: str) -> bool:
        return await asyncio.to_thread(self._delete, key)

    async def keys(self) -> List[str]:
        return await asyncio.to_thread(self._keys)

    def put_raw(self, key: str, text: str) -> None:
        self._put(key, text)

def open_kv(settings, namespace: str) -> KeyValueStore:
    """Construit le backend configuré pour un namespace ('cases' ou 'evaluations')."""
    st = settings.storage
    if st.backend == "memory":
        return MemoryKV(namespace)
    if st.backend == "sqlite":
        return SqliteKV(st.db_path, namespace)
    directory = st.cases_dir if namespace == "cases" else st.evaluations_dir
    return JsonDirKV(directory)
