"""Local record store for predictions, medications and emergency contacts.

Each record kind lives under its own key in the ``local_storage`` table as one
JSON array, newest entry first. Every mutation rewrites the whole array.

Internal helpers report failures as ``StorageResult`` values; the public
functions turn those into safe defaults (empty list / no-op) and log them, so
a corrupt or full store never takes the application down.
"""
import json
import logging
import secrets
import sqlite3
from dataclasses import dataclass
from time import time_ns
from typing import Any, Optional

import config
from config import CREATED_FIELDS, NAMESPACES, RETENTION, _now_utc_iso
from db import _get_item, _remove_item, _set_item, get_db

logger = logging.getLogger(__name__)


class StorageError(Exception):
    pass


class StorageUnavailableError(StorageError):
    """The backing store could not be read or written."""


class CorruptDataError(StorageError):
    """The namespace holds something other than a JSON array."""


@dataclass
class StorageResult:
    value: Any = None
    error: Optional[StorageError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _new_id() -> str:
    # nanosecond clock alone can repeat on coarse clocks; the suffix breaks ties
    return f"{time_ns():x}-{secrets.token_hex(4)}"


def _namespace(kind: str) -> str:
    try:
        return NAMESPACES[kind]
    except KeyError:
        raise StorageError(f"unknown record kind: {kind!r}")


def _read_namespace(kind: str) -> StorageResult:
    try:
        key = _namespace(kind)
        with get_db() as conn:
            raw = _get_item(conn, key)
    except StorageError as exc:
        return StorageResult([], exc)
    except sqlite3.Error as exc:
        return StorageResult([], StorageUnavailableError(f"read failed: {exc}"))
    if raw is None:
        return StorageResult([])
    try:
        data = json.loads(raw)
    except ValueError as exc:
        return StorageResult([], CorruptDataError(f"malformed JSON in {key}: {exc}"))
    if not isinstance(data, list):
        return StorageResult([], CorruptDataError(f"{key} does not hold a JSON array"))
    return StorageResult(data)


def _write_namespace(kind: str, records: list) -> StorageResult:
    try:
        key = _namespace(kind)
        payload = json.dumps(records, ensure_ascii=False)
        if len(payload.encode("utf-8")) > config.STORAGE_QUOTA_BYTES:
            raise StorageError(f"quota exceeded writing {key}")
        with get_db() as conn:
            _set_item(conn, key, payload)
    except (StorageError, sqlite3.Error, TypeError, ValueError) as exc:
        err = exc if isinstance(exc, StorageError) else StorageUnavailableError(f"write failed: {exc}")
        return StorageResult(None, err)
    return StorageResult(records)


def _apply_retention(kind: str, records: list) -> list:
    cap = RETENTION.get(kind)
    if cap is None:
        return records
    return records[:cap]


def save_record(kind: str, partial: dict) -> Optional[dict]:
    """Prepend a new record of ``kind`` and persist the namespace.

    Returns the stored record, or None if nothing could be written.
    """
    current = _read_namespace(kind)
    if not current.ok:
        if not isinstance(current.error, CorruptDataError):
            # Existing records may still be intact.
            logger.error("Failed to save %s: %s", kind, current.error)
            return None
        # Corrupt data is discarded; the write below heals the namespace.
        logger.warning("Discarding corrupt %s records: %s", kind, current.error)
    record = dict(partial or {})
    record["id"] = _new_id()
    record[CREATED_FIELDS.get(kind, "createdAt")] = _now_utc_iso()
    records = _apply_retention(kind, [record] + current.value)
    written = _write_namespace(kind, records)
    if not written.ok:
        logger.error("Failed to save %s: %s", kind, written.error)
        return None
    return record


def list_records(kind: str) -> list:
    result = _read_namespace(kind)
    if not result.ok:
        logger.error("Failed to load %s records: %s", kind, result.error)
        return []
    return result.value


def delete_record(kind: str, record_id) -> None:
    current = _read_namespace(kind)
    if not current.ok:
        logger.error("Failed to delete %s %r: %s", kind, record_id, current.error)
        return
    filtered = [r for r in current.value if not (isinstance(r, dict) and r.get("id") == record_id)]
    if len(filtered) == len(current.value):
        return
    written = _write_namespace(kind, filtered)
    if not written.ok:
        logger.error("Failed to delete %s %r: %s", kind, record_id, written.error)


def clear_namespace(kind: str) -> None:
    try:
        key = _namespace(kind)
        with get_db() as conn:
            _remove_item(conn, key)
    except (StorageError, sqlite3.Error):
        logger.exception("Failed to clear %s records", kind)


# ── Per-kind helpers ──────────────────────────────────────────────────────────

def save_prediction(prediction: dict) -> Optional[dict]:
    return save_record(config.PREDICTIONS, prediction)


def get_predictions() -> list:
    return list_records(config.PREDICTIONS)


def save_medication(medication: dict) -> Optional[dict]:
    return save_record(config.MEDICATIONS, medication)


def get_medications() -> list:
    return list_records(config.MEDICATIONS)


def delete_medication(record_id) -> None:
    delete_record(config.MEDICATIONS, record_id)


def save_emergency_contact(contact: dict) -> Optional[dict]:
    return save_record(config.CONTACTS, contact)


def get_emergency_contacts() -> list:
    return list_records(config.CONTACTS)


def delete_emergency_contact(record_id) -> None:
    delete_record(config.CONTACTS, record_id)
