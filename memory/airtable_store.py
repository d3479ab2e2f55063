"""
Interview Dispatch: Airtable Outcome Store
Create / update / lookup of dispatch outcome records, keyed by idempotency_key.
Records are never deleted by this system.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import quote

import httpx

from config.settings import config

logger = logging.getLogger("dispatch.airtable")

LOOKUP_FIELD = "idempotency_key"


class AirtableError(RuntimeError):
    """Non-success response from the Airtable API."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Airtable API error ({status_code}): {body}")


@dataclass
class StoredRecord:
    id: str
    fields: dict = field(default_factory=dict)


class AirtableStore:
    """Airtable REST wrapper for the dispatch outcome table."""

    def __init__(self, api_key: str = None, base_id: str = None, table_name: str = None,
                 lookup_enabled: bool = True, http_client: httpx.Client = None):
        self._api_key = api_key or config.airtable.api_key
        self._base_id = base_id or config.airtable.base_id
        self._table_name = table_name or config.airtable.table_name
        if not self._api_key:
            logger.warning("AIRTABLE_API_KEY not set - Airtable store will not work")

        # Set from the schema check at startup; without the lookup field every key is "not found"
        self.lookup_enabled = lookup_enabled

        self._client = http_client or httpx.Client(
            base_url=config.airtable.base_url,
            headers={"Authorization": f"Bearer {self._api_key}"},
            timeout=config.airtable.timeout,
        )
        self._max_retries = config.airtable.max_retries
        self._max_backoff = config.airtable.max_backoff

    @property
    def _table_path(self) -> str:
        return f"/{self._base_id}/{quote(self._table_name, safe='')}"

    # -------------------------------------------------------
    # Transport
    # -------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs) -> dict:
        """
        Make an API request, backing off on 429.
        Raises AirtableError for any other non-2xx response or once retries run out.
        """
        backoff = 1

        for attempt in range(self._max_retries):
            resp = self._client.request(method, path, **kwargs)

            if resp.status_code == 429:
                logger.warning(f"Airtable 429 rate limited - backoff {backoff}s (attempt {attempt + 1})")
                time.sleep(backoff)
                backoff = min(backoff * 2, self._max_backoff)
                continue

            if resp.status_code >= 400:
                raise AirtableError(resp.status_code, resp.text[:500])

            return resp.json()

        raise AirtableError(429, f"rate limited, exhausted {self._max_retries} attempts: {method} {path}")

    # -------------------------------------------------------
    # Outcome store interface
    # -------------------------------------------------------

    def find_by_key(self, idempotency_key: str) -> Optional[StoredRecord]:
        """Return the first record whose idempotency_key matches, or None."""
        if not self.lookup_enabled:
            return None

        formula = f"{{{LOOKUP_FIELD}}} = '{idempotency_key}'"
        data = self._request(
            "GET", self._table_path,
            params={"filterByFormula": formula, "maxRecords": 1},
        )
        records = data.get("records") or []
        if not records:
            return None
        first = records[0]
        return StoredRecord(id=first["id"], fields=first.get("fields", {}))

    def create(self, fields: dict) -> str:
        """POST a new record. Returns the Airtable record id."""
        data = self._request("POST", self._table_path, json={"fields": fields, "typecast": True})
        record_id = data["id"]
        logger.debug(f"Created Airtable record {record_id}")
        return record_id

    def update(self, record_id: str, fields: dict) -> None:
        """PATCH an existing record in place."""
        self._request("PATCH", f"{self._table_path}/{record_id}", json={"fields": fields, "typecast": True})
        logger.debug(f"Updated Airtable record {record_id}")

    def iter_records(self, page_size: int = 100):
        """Yield every record in the table, following Airtable's offset pagination."""
        params = {"pageSize": page_size}
        while True:
            data = self._request("GET", self._table_path, params=params)
            for record in data.get("records") or []:
                yield StoredRecord(id=record["id"], fields=record.get("fields", {}))
            offset = data.get("offset")
            if not offset:
                break
            params = {"pageSize": page_size, "offset": offset}

    # -------------------------------------------------------
    # Cleanup
    # -------------------------------------------------------

    def close(self):
        """Close the HTTP client."""
        self._client.close()
        logger.info("Airtable client closed")
