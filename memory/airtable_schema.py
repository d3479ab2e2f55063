"""
Interview Dispatch: Airtable schema provisioning
Runs once at startup. Creates any missing outcome fields in the table and
reports which fields exist, so the store knows whether key lookups work.

Partial failure (some fields not created) is logged and tolerated.
Total failure (metadata unreadable, table missing) raises SchemaError.
"""
import logging
from dataclasses import dataclass, field

from memory.airtable_store import LOOKUP_FIELD, AirtableStore

logger = logging.getLogger("dispatch.airtable_schema")

_DATETIME_OPTIONS = {
    "dateFormat": {"name": "iso"},
    "timeFormat": {"name": "24hour"},
    "timeZone": "utc",
}

REQUIRED_FIELDS = [
    {"name": "company", "type": "singleLineText"},
    {"name": "interviewer", "type": "singleLineText"},
    {"name": "interviewer_email", "type": "email"},
    {"name": "candidate", "type": "singleLineText"},
    {"name": "candidate_email", "type": "email"},
    {"name": "round_name", "type": "singleLineText"},
    {"name": "round_link", "type": "url"},
    {"name": "added_on_raw", "type": "singleLineText"},
    {"name": "added_on_parsed", "type": "dateTime", "options": _DATETIME_OPTIONS},
    {"name": "mail_sent_at", "type": "dateTime", "options": _DATETIME_OPTIONS},
    {"name": "mail_status", "type": "singleSelect", "options": {"choices": [
        {"name": "sent"},
        {"name": "failed"},
        {"name": "queued"},
        {"name": "skipped"},
    ]}},
    {"name": "failure_reason", "type": "multilineText"},
    {"name": "tat_seconds", "type": "number", "options": {"precision": 0}},
    {"name": "processed", "type": "checkbox", "options": {"icon": "check", "color": "greenBright"}},
    {"name": LOOKUP_FIELD, "type": "singleLineText"},
]


class SchemaError(RuntimeError):
    """The outcome table could not be inspected at all."""


@dataclass
class SchemaReport:
    table_id: str
    existing: set = field(default_factory=set)
    created: list = field(default_factory=list)
    failed: dict = field(default_factory=dict)

    @property
    def available(self) -> set:
        return self.existing | set(self.created)

    @property
    def has_lookup_field(self) -> bool:
        return LOOKUP_FIELD in self.available


class AirtableSchemaProvisioner:
    """Ensures the outcome table carries every field the dispatcher writes."""

    def __init__(self, store: AirtableStore):
        self.store = store

    def _get_table(self) -> dict:
        data = self.store._request("GET", f"/meta/bases/{self.store._base_id}/tables")
        wanted = self.store._table_name
        for table in data.get("tables", []):
            if table.get("name") == wanted or table.get("id") == wanted:
                return table
        raise SchemaError(f'Table "{wanted}" not found')

    def _create_field(self, table_id: str, field_def: dict):
        payload = {"name": field_def["name"], "type": field_def["type"]}
        if field_def.get("options"):
            payload["options"] = field_def["options"]
        self.store._request(
            "POST", f"/meta/bases/{self.store._base_id}/tables/{table_id}/fields", json=payload,
        )

    def ensure_required_fields(self) -> SchemaReport:
        """Create missing fields. Returns the resulting field report."""
        logger.info("Checking required Airtable fields")
        try:
            table = self._get_table()
        except SchemaError:
            raise
        except Exception as e:
            raise SchemaError(f"Could not read Airtable table metadata: {e}") from e

        report = SchemaReport(
            table_id=table["id"],
            existing={f.get("name") for f in table.get("fields", [])},
        )

        for field_def in REQUIRED_FIELDS:
            if field_def["name"] in report.existing:
                continue
            logger.info(f"Creating field: {field_def['name']} ({field_def['type']})")
            try:
                self._create_field(report.table_id, field_def)
                report.created.append(field_def["name"])
            except Exception as e:
                logger.warning(f"Failed to create field {field_def['name']}: {e}")
                report.failed[field_def["name"]] = str(e)

        if report.created:
            logger.info(f"Created {len(report.created)} new fields in Airtable")
        else:
            logger.info("All required fields already exist")
        if not report.has_lookup_field:
            logger.warning(f"'{LOOKUP_FIELD}' field unavailable - every round will be treated as unprocessed")
        return report
