"""
Content store access for calculation jobs.

Calculations read seasons, leagues, teams and table entries and write back
recomputed fields. They only see the ContentStore protocol:

- find_one(uid, id, populate)      -> record dict or None
- find_many(uid, filters, populate) -> list of record dicts
- update(uid, id, data)            -> updated record dict

Backends:
- InMemoryContentStore: dict-backed, used by tests and local runs
- StrapiContentStore: Strapi REST API over httpx

Configuration:
- CONTENT_STORE_BACKEND: "memory" (default) or "strapi"
- STRAPI_BASE_URL: Strapi server (default: http://localhost:1337)
- STRAPI_API_TOKEN: Bearer token (optional)
- STRAPI_TIMEOUT_SECONDS: Request timeout (default: 10)
- CONTENT_STORE_FIXTURES: JSON file seeding the in-memory store (optional)
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Optional, Protocol

import httpx

from src.scheduler.errors import TransientJobError


logger = logging.getLogger(__name__)


SAISON = "api::saison.saison"
LIGA = "api::liga.liga"
TEAM = "api::team.team"
TABELLEN_EINTRAG = "api::tabellen-eintrag.tabellen-eintrag"

# to-one relation field -> target content type
TO_ONE_RELATIONS: dict[str, dict[str, str]] = {
    LIGA: {"saison": SAISON},
    TEAM: {"saison": SAISON, "liga": LIGA},
    TABELLEN_EINTRAG: {"liga": LIGA, "team": TEAM},
}

# to-many relation field -> (target content type, back-reference on the target)
TO_MANY_RELATIONS: dict[str, dict[str, tuple[str, str]]] = {
    SAISON: {"teams": (TEAM, "saison"), "ligen": (LIGA, "saison")},
    LIGA: {"teams": (TEAM, "liga"), "tabellen_eintraege": (TABELLEN_EINTRAG, "liga")},
    TEAM: {"tabellen_eintraege": (TABELLEN_EINTRAG, "team")},
}

STRAPI_COLLECTIONS = {
    SAISON: "saisons",
    LIGA: "ligas",
    TEAM: "teams",
    TABELLEN_EINTRAG: "tabellen-eintraege",
}

CONTENT_STORE_BACKEND = os.getenv("CONTENT_STORE_BACKEND", "memory")
STRAPI_BASE_URL = os.getenv("STRAPI_BASE_URL", "http://localhost:1337")
STRAPI_API_TOKEN = os.getenv("STRAPI_API_TOKEN", "")
STRAPI_TIMEOUT_SECONDS = float(os.getenv("STRAPI_TIMEOUT_SECONDS", "10"))
CONTENT_STORE_FIXTURES = os.getenv("CONTENT_STORE_FIXTURES", "")


class ContentStoreError(Exception):
    """Raised when the content store rejects a request."""
    pass


class ContentStoreUnavailableError(ContentStoreError, TransientJobError):
    """Raised when the content store cannot be reached. Retried by the job queue."""
    pass


class ContentStore(Protocol):
    async def find_one(
        self, uid: str, entity_id: int, populate: Optional[dict] = None
    ) -> Optional[dict]:
        ...

    async def find_many(
        self,
        uid: str,
        filters: Optional[dict] = None,
        populate: Optional[dict] = None,
    ) -> list[dict]:
        ...

    async def update(self, uid: str, entity_id: int, data: dict) -> dict:
        ...


def related_id(record: Optional[dict], field: str) -> Optional[int]:
    """
    Id of a to-one relation, whether populated (dict) or not (plain id).

    Returns None when the relation is absent.
    """
    if not record:
        return None
    value = record.get(field)
    if isinstance(value, dict):
        return value.get("id")
    return value


# =============================================================================
# In-memory backend
# =============================================================================


class InMemoryContentStore:
    """
    Dict-backed content store.

    Records are stored flat with to-one relations as ids; ``populate``
    resolves them into nested copies the way Strapi would.
    """

    def __init__(self):
        self._records: dict[str, dict[int, dict]] = {}
        self._next_id: dict[str, int] = {}

    def add(self, uid: str, record: dict) -> int:
        """Insert a record. An id is assigned if the record has none."""
        table = self._records.setdefault(uid, {})
        entity_id = record.get("id")
        if entity_id is None:
            entity_id = self._next_id.get(uid, 1)
        self._next_id[uid] = max(self._next_id.get(uid, 1), entity_id + 1)
        table[entity_id] = {**copy.deepcopy(record), "id": entity_id}
        return entity_id

    def seed(self, data: dict[str, list[dict]]) -> int:
        """
        Insert records grouped by collection name ("saisons", "ligas",
        "teams", "tabellen-eintraege") or content-type uid.

        Returns:
            Number of records inserted

        Raises:
            ValueError: On an unknown collection
        """
        uids = {collection: uid for uid, collection in STRAPI_COLLECTIONS.items()}
        count = 0
        for collection, records in data.items():
            uid = uids.get(collection, collection)
            if uid not in STRAPI_COLLECTIONS:
                raise ValueError(f"Unknown collection: {collection}")
            for record in records:
                self.add(uid, record)
                count += 1
        return count

    @classmethod
    def from_file(cls, path: str | Path) -> "InMemoryContentStore":
        """Store seeded from a JSON fixtures file (see ``seed``)."""
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        store = cls()
        count = store.seed(data)
        logger.info(f"Seeded in-memory content store with {count} records from {path}")
        return store

    def get(self, uid: str, entity_id: int) -> Optional[dict]:
        """Raw stored record (no populate), for assertions."""
        record = self._records.get(uid, {}).get(entity_id)
        return copy.deepcopy(record) if record is not None else None

    async def find_one(
        self, uid: str, entity_id: int, populate: Optional[dict] = None
    ) -> Optional[dict]:
        record = self._records.get(uid, {}).get(entity_id)
        if record is None:
            return None
        return self._populate(uid, record, populate)

    async def find_many(
        self,
        uid: str,
        filters: Optional[dict] = None,
        populate: Optional[dict] = None,
    ) -> list[dict]:
        return [
            self._populate(uid, record, populate)
            for record in self._records.get(uid, {}).values()
            if self._matches(record, filters or {})
        ]

    async def update(self, uid: str, entity_id: int, data: dict) -> dict:
        record = self._records.get(uid, {}).get(entity_id)
        if record is None:
            raise ContentStoreError(f"{uid} {entity_id} not found")
        for field, value in data.items():
            record[field] = related_id(data, field) if isinstance(value, dict) else value
        return copy.deepcopy(record)

    def _matches(self, record: dict, filters: dict) -> bool:
        for field, condition in filters.items():
            if isinstance(condition, dict) and "id" in condition:
                if related_id(record, field) != condition["id"]:
                    return False
            elif record.get(field) != condition:
                return False
        return True

    def _populate(self, uid: str, record: dict, populate: Optional[dict]) -> dict:
        result = copy.deepcopy(record)
        if not populate:
            return result

        for field, spec in populate.items():
            if not spec:
                continue
            nested = spec.get("populate") if isinstance(spec, dict) else None

            to_one = TO_ONE_RELATIONS.get(uid, {}).get(field)
            if to_one is not None:
                target = self._records.get(to_one, {}).get(related_id(record, field))
                result[field] = self._populate(to_one, target, nested) if target else None
                continue

            to_many = TO_MANY_RELATIONS.get(uid, {}).get(field)
            if to_many is not None:
                target_uid, back_ref = to_many
                result[field] = [
                    self._populate(target_uid, target, nested)
                    for target in self._records.get(target_uid, {}).values()
                    if related_id(target, back_ref) == record["id"]
                ]

        return result


# =============================================================================
# Strapi REST backend
# =============================================================================


def _flatten_query(prefix: str, value: Any) -> list[tuple[str, str]]:
    """Encode nested dicts in Strapi's bracket notation (populate[teams][populate]...)."""
    if isinstance(value, dict):
        params = []
        for key, inner in value.items():
            params.extend(_flatten_query(f"{prefix}[{key}]", inner))
        return params
    if isinstance(value, bool):
        return [(prefix, "true" if value else "false")]
    return [(prefix, str(value))]


def _normalize(value: Any) -> Any:
    """Unwrap Strapi v4 ``{"data": {"id", "attributes"}}`` envelopes recursively."""
    if isinstance(value, list):
        return [_normalize(item) for item in value]
    if not isinstance(value, dict):
        return value
    if set(value.keys()) <= {"data", "meta"} and "data" in value:
        return _normalize(value["data"])
    if "attributes" in value:
        flat = {"id": value.get("id")}
        flat.update(value["attributes"])
        value = flat
    return {key: _normalize(inner) for key, inner in value.items()}


class StrapiContentStore:
    """Content store backed by the Strapi REST API."""

    def __init__(
        self,
        base_url: str = STRAPI_BASE_URL,
        api_token: str = STRAPI_API_TOKEN,
        timeout: float = STRAPI_TIMEOUT_SECONDS,
        page_size: int = 100,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.timeout = timeout
        self.page_size = page_size
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {"Content-Type": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=self._transport,
        )

    def _path(self, uid: str, entity_id: Optional[int] = None) -> str:
        collection = STRAPI_COLLECTIONS.get(uid)
        if collection is None:
            raise ContentStoreError(f"Unknown content type: {uid}")
        return f"/api/{collection}" if entity_id is None else f"/api/{collection}/{entity_id}"

    async def _request(self, method: str, path: str, **kwargs) -> Optional[dict]:
        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise ContentStoreUnavailableError(f"Content store connection error: {e}") from e

        if response.status_code == 404:
            return None
        if response.status_code >= 500:
            raise ContentStoreUnavailableError(
                f"Content store error {response.status_code} on {method} {path}"
            )
        if response.status_code >= 400:
            raise ContentStoreError(
                f"Content store rejected {method} {path}: {response.status_code} {response.text}"
            )
        return response.json()

    async def find_one(
        self, uid: str, entity_id: int, populate: Optional[dict] = None
    ) -> Optional[dict]:
        params = _flatten_query("populate", populate) if populate else []
        body = await self._request("GET", self._path(uid, entity_id), params=params)
        if body is None:
            return None
        return _normalize(body.get("data"))

    async def find_many(
        self,
        uid: str,
        filters: Optional[dict] = None,
        populate: Optional[dict] = None,
    ) -> list[dict]:
        base_params: list[tuple[str, str]] = []
        for field, condition in (filters or {}).items():
            if isinstance(condition, dict) and "id" in condition:
                base_params.append((f"filters[{field}][id][$eq]", str(condition["id"])))
            else:
                base_params.append((f"filters[{field}][$eq]", str(condition)))
        if populate:
            base_params.extend(_flatten_query("populate", populate))

        records: list[dict] = []
        page = 1
        while True:
            params = base_params + [
                ("pagination[page]", str(page)),
                ("pagination[pageSize]", str(self.page_size)),
            ]
            body = await self._request("GET", self._path(uid), params=params)
            if body is None:
                return records

            records.extend(_normalize(body.get("data") or []))

            page_count = body.get("meta", {}).get("pagination", {}).get("pageCount", 1)
            if page >= page_count:
                return records
            page += 1

    async def update(self, uid: str, entity_id: int, data: dict) -> dict:
        body = await self._request("PUT", self._path(uid, entity_id), json={"data": data})
        if body is None:
            raise ContentStoreError(f"{uid} {entity_id} not found")
        return _normalize(body.get("data"))


def create_content_store(backend: Optional[str] = None) -> ContentStore:
    """Create the content store selected by CONTENT_STORE_BACKEND."""
    backend = (backend or CONTENT_STORE_BACKEND).lower()
    if backend == "strapi":
        logger.info(f"Using Strapi content store at {STRAPI_BASE_URL}")
        return StrapiContentStore()
    if backend == "memory":
        if CONTENT_STORE_FIXTURES:
            return InMemoryContentStore.from_file(CONTENT_STORE_FIXTURES)
        logger.info("Using in-memory content store")
        return InMemoryContentStore()
    raise ValueError(f"Unknown content store backend: {backend}")
