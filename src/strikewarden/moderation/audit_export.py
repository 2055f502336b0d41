"""
Flattening and rendering of audit rows for display and export.

Both the paginated view and the CSV/JSON exports describe a row with the same
flat field set (``violationType``, ``reason``, ``amount``, admin identity and
scores). Rows whose payload cannot be decoded are rendered as ``UNKNOWN`` /
``Parse error`` placeholders instead of failing the batch.
"""

from __future__ import annotations

import csv
import io
import json
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from strikewarden.datatypes.audit_datatypes import (
    UNKNOWN_EVENT_TYPE,
    AuditPayload,
    EventType,
    LegacyAutoPayload,
    ManualStrikePayload,
    PenaltyAction,
    PenaltyPayload,
    ScannedPayload,
    ViolationPayload,
)
from strikewarden.util.time_utils import date_stamp

# Supported export formats -> media type
EXPORT_MEDIA_TYPES: Dict[str, str] = {
    "csv": "text/csv",
    "json": "application/json",
}

PARSE_ERROR_ACTION = "Parse error"
PARSE_ERROR_MESSAGE = "Failed to parse log data"

CSV_COLUMNS = [
    ("ID", "id"),
    ("Timestamp", "timestamp"),
    ("Chat ID", "chatId"),
    ("User ID", "userId"),
    ("Type", "type"),
    ("Action", "action"),
    ("Violation Type", "violationType"),
    ("Reason", "reason"),
    ("Amount", "amount"),
    ("Admin ID", "adminId"),
    ("Admin Name", "adminName"),
    ("Admin Username", "adminUsername"),
    ("Classification Score", "classificationScore"),
    ("Spam Score", "spamScore"),
    ("Profanity Score", "profanityScore"),
]
CSV_HEADER = [title for title, _ in CSV_COLUMNS]

_PENALTY_LABELS = {
    PenaltyAction.USER_WARNED: "User warned",
    PenaltyAction.USER_MUTED: "User muted",
    PenaltyAction.USER_KICKED: "User kicked",
    PenaltyAction.USER_BANNED: "User banned",
}


def payload_type_label(payload: AuditPayload) -> str:
    """Type shown for a row; legacy rows always read as ``AUTO``."""
    return payload.event_type.value


def describe_action(payload: AuditPayload) -> str:
    """Human-readable description of what the event recorded."""
    if isinstance(payload, LegacyAutoPayload):
        return "Auto-strike"
    if isinstance(payload, ManualStrikePayload):
        if payload.kind is EventType.MANUAL_STRIKE_ADD:
            return f"Added {payload.amount} strike(s)"
        if payload.kind is EventType.MANUAL_STRIKE_REMOVE:
            return f"Removed {payload.amount} strike(s)"
        return f"Set strikes to {payload.amount}"
    if isinstance(payload, ScannedPayload):
        return "Message analyzed"
    if isinstance(payload, ViolationPayload):
        suffix = ", message deleted" if payload.message_deleted else ""
        return f"{payload.violation_type.value} violation{suffix}"
    if isinstance(payload, PenaltyPayload):
        return f"{_PENALTY_LABELS[payload.action]} at strike {payload.strike_count}"
    return payload.event_type.value


def payload_details(payload: AuditPayload) -> Dict[str, Any]:
    """Flat detail fields of a decoded payload (absent fields are None)."""
    details: Dict[str, Any] = {
        "violationType": None,
        "reason": None,
        "amount": None,
        "admin": None,
        "targetUser": None,
        "classificationScore": None,
        "spamScore": None,
        "profanityScore": None,
        "profanityType": None,
    }

    if isinstance(payload, ManualStrikePayload):
        details["reason"] = payload.reason or None
        details["amount"] = payload.amount
        if payload.admin is not None:
            details["admin"] = {
                "id": str(payload.admin.id),
                "firstName": payload.admin.first_name,
                "username": payload.admin.username,
            }
        if payload.target_user is not None:
            details["targetUser"] = payload.target_user.to_wire_dict()
    elif isinstance(payload, PenaltyPayload):
        details["violationType"] = payload.violation_type
        details["reason"] = payload.reason
    elif isinstance(payload, (ViolationPayload, LegacyAutoPayload)):
        violation_type = payload.violation_type
        details["violationType"] = getattr(violation_type, "value", violation_type)
        details["reason"] = payload.reason or payload.message_excerpt or None
        details["classificationScore"] = payload.classification_score
        details["spamScore"] = payload.spam_score
        details["profanityScore"] = payload.profanity_score
        details["profanityType"] = payload.profanity_type
    elif isinstance(payload, ScannedPayload):
        details["reason"] = payload.message_excerpt or None
        details["spamScore"] = payload.spam_score
        details["profanityScore"] = payload.profanity_score
        details["profanityType"] = payload.profanity_type

    return details


def flatten_record(
    event_id: int,
    timestamp: str,
    group_id: str,
    user_id: str,
    payload: Optional[AuditPayload],
) -> Dict[str, Any]:
    """Export record for one row; ``payload=None`` yields the parse-error placeholder."""
    record: Dict[str, Any] = {
        "id": event_id,
        "timestamp": timestamp,
        "chatId": group_id,
        "userId": user_id,
    }
    if payload is None:
        record.update({
            "type": UNKNOWN_EVENT_TYPE,
            "action": PARSE_ERROR_ACTION,
            "error": PARSE_ERROR_MESSAGE,
        })
        return record

    details = payload_details(payload)
    admin = details["admin"] or {}
    record.update({
        "type": payload_type_label(payload),
        "action": describe_action(payload),
        "violationType": details["violationType"],
        "reason": details["reason"],
        "amount": details["amount"],
        "adminId": admin.get("id"),
        "adminName": admin.get("firstName"),
        "adminUsername": admin.get("username"),
        "classificationScore": details["classificationScore"],
        "spamScore": details["spamScore"],
        "profanityScore": details["profanityScore"],
    })
    return record


def render_csv(records: Iterable[Dict[str, Any]]) -> str:
    """Render records as RFC 4180 CSV with the fixed export header.

    Fields containing a comma, quote, CR or LF are quoted and embedded quotes
    doubled.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\r\n")
    writer.writerow(CSV_HEADER)
    for record in records:
        if record.get("type") == UNKNOWN_EVENT_TYPE:
            row = [record["id"], record["timestamp"], record["chatId"], record["userId"],
                   UNKNOWN_EVENT_TYPE, PARSE_ERROR_ACTION, "", PARSE_ERROR_MESSAGE]
            row.extend([""] * (len(CSV_COLUMNS) - len(row)))
        else:
            row = ["" if record.get(key) is None else record.get(key) for _, key in CSV_COLUMNS]
        writer.writerow(row)
    return buffer.getvalue()


def render_json(records: List[Dict[str, Any]]) -> str:
    return json.dumps(records, ensure_ascii=False, indent=2)


def export_filename(group_id: str, fmt: str, when: Optional[datetime] = None) -> str:
    """``audit_log_<groupId>_<YYYY-MM-DD>.<fmt>``"""
    return f"audit_log_{group_id}_{date_stamp(when)}.{fmt}"
