"""
JSON codec for audit log payloads.

Payloads are stored with the camelCase keys the bot has always written
(``messageExcerpt``, ``classificationScore``, ``targetUser`` ...). Decoding is
a discriminated parse on the ``type`` field:

- ``SCANNED`` / ``VIOLATION`` / ``PENALTY`` / ``MANUAL-STRIKE-*`` map to their
  payload classes;
- ``AUTO`` or a missing ``type`` maps to :class:`LegacyAutoPayload`;
- anything else raises :class:`DecodeError`.

Each type has a JSON schema in :data:`PAYLOAD_SCHEMAS`; a payload that fails
its schema raises :class:`DecodeError` before any field is read.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from jsonschema import Draft7Validator, ValidationError

from strikewarden.datatypes.audit_datatypes import (
    LEGACY_DELETION_ACTIONS,
    LEGACY_PENALTY_ACTIONS,
    VIOLATION_ACTIONS,
    AuditEvent,
    AuditPayload,
    EventType,
    ExecutedBy,
    LegacyAutoPayload,
    ManualStrikePayload,
    PenaltyAction,
    PenaltyPayload,
    ScannedPayload,
    Severity,
    ViolationPayload,
    ViolationType,
)
from strikewarden.datatypes.chat_datatypes import ChatUser, to_group_id, to_user_id
from strikewarden.repositories.audit_repo import AuditLogRow
from strikewarden.util.errors import DecodeError
from strikewarden.util.time_utils import parse_timestamp, to_storage

# Severity written for each enforcement action when a stored row lacks one
DEFAULT_SEVERITY: Dict[PenaltyAction, Severity] = {
    PenaltyAction.USER_WARNED: Severity.INFO,
    PenaltyAction.USER_MUTED: Severity.LOW,
    PenaltyAction.USER_KICKED: Severity.MEDIUM,
    PenaltyAction.USER_BANNED: Severity.HIGH,
}


def _user(user: Optional[ChatUser]) -> Optional[Dict[str, Any]]:
    return user.to_wire_dict() if user is not None else None


def _compact(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


# ----------------------------------------------------------------------
# Encoding
# ----------------------------------------------------------------------

def payload_to_dict(payload: AuditPayload, timestamp: Optional[datetime] = None) -> Dict[str, Any]:
    """Return the stored JSON object of ``payload`` (None values omitted)."""
    ts = to_storage(timestamp) if timestamp is not None else None

    if isinstance(payload, ScannedPayload):
        data = {
            "type": EventType.SCANNED.value,
            "timestamp": ts,
            "action": payload.action,
            "user": _user(payload.user),
            "messageExcerpt": payload.message_excerpt,
            "spamScore": payload.spam_score,
            "profanityScore": payload.profanity_score,
            "profanityType": payload.profanity_type,
            "messageLength": payload.message_length,
        }
    elif isinstance(payload, ViolationPayload):
        data = {
            "type": EventType.VIOLATION.value,
            "timestamp": ts,
            "action": payload.action,
            "violationType": payload.violation_type.value,
            "user": _user(payload.user),
            "messageExcerpt": payload.message_excerpt,
            "reason": payload.reason,
            "spamScore": payload.spam_score,
            "profanityScore": payload.profanity_score,
            "profanityType": payload.profanity_type,
            "classificationScore": payload.classification_score,
            "messageLength": payload.message_length,
            "thresholdExceeded": payload.threshold_exceeded,
        }
    elif isinstance(payload, PenaltyPayload):
        data = {
            "type": EventType.PENALTY.value,
            "timestamp": ts,
            "action": payload.action.value,
            "severity": payload.severity.value,
            "executedBy": payload.executed_by.value,
            "strikeCount": payload.strike_count,
            "user": _user(payload.user),
            "reason": payload.reason,
            "violationType": payload.violation_type,
            "muteDurationMinutes": payload.mute_duration_minutes,
        }
    elif isinstance(payload, ManualStrikePayload):
        data = {
            "type": payload.kind.value,
            "timestamp": ts,
            "admin": _user(payload.admin),
            "targetUser": _user(payload.target_user),
            "amount": payload.amount,
            "reason": payload.reason,
        }
    elif isinstance(payload, LegacyAutoPayload):
        data = {
            "type": payload.type_tag,
            "timestamp": ts,
            "action": payload.action,
            "user": _user(payload.user),
            "messageExcerpt": payload.message_excerpt,
            "reason": payload.reason,
            "classificationScore": payload.classification_score,
            "violationType": payload.violation_type,
            "spamScore": payload.spam_score,
            "profanityScore": payload.profanity_score,
            "profanityType": payload.profanity_type,
            "strikeCount": payload.strike_count,
        }
    else:
        raise TypeError(f"Unsupported audit payload: {type(payload).__name__}")

    return _compact(data)


def encode_payload(payload: AuditPayload, timestamp: Optional[datetime] = None) -> str:
    """Serialize ``payload`` to the JSON text stored in ``audit_log.log_data``."""
    return json.dumps(payload_to_dict(payload, timestamp), ensure_ascii=False)


# ----------------------------------------------------------------------
# Decoding
# ----------------------------------------------------------------------

_STRING = {"type": ["string", "null"]}
_NUMBER = {"type": ["number", "null"]}
_INTEGER = {"type": ["integer", "null"]}
_USER = {
    "type": ["object", "null"],
    "properties": {
        "id": {"type": ["string", "integer"]},
        "first_name": _STRING,
        "last_name": _STRING,
        "username": _STRING,
    },
    "required": ["id"],
}


def _one_of(values: Any, nullable: bool = True) -> Dict[str, Any]:
    allowed = [getattr(value, "value", value) for value in values]
    return {"enum": allowed + [None] if nullable else allowed}


_MANUAL_SCHEMA = {
    "type": "object",
    "properties": {
        "admin": _USER,
        "targetUser": _USER,
        "amount": _INTEGER,
        "reason": _STRING,
    },
}

PAYLOAD_SCHEMAS: Dict[Optional[str], Dict[str, Any]] = {
    EventType.SCANNED.value: {
        "type": "object",
        "properties": {
            "action": _STRING,
            "user": _USER,
            "messageExcerpt": _STRING,
            "spamScore": _NUMBER,
            "profanityScore": _NUMBER,
            "profanityType": _STRING,
            "messageLength": _INTEGER,
        },
    },
    EventType.VIOLATION.value: {
        "type": "object",
        "properties": {
            "action": _one_of(VIOLATION_ACTIONS),
            "violationType": _one_of(ViolationType, nullable=False),
            "user": _USER,
            "messageExcerpt": _STRING,
            "reason": _STRING,
            "spamScore": _NUMBER,
            "profanityScore": _NUMBER,
            "profanityType": _STRING,
            "classificationScore": _NUMBER,
            "messageLength": _INTEGER,
            "thresholdExceeded": _NUMBER,
        },
        "required": ["violationType"],
    },
    EventType.PENALTY.value: {
        "type": "object",
        "properties": {
            "action": _one_of(PenaltyAction, nullable=False),
            "severity": _one_of(Severity),
            "executedBy": _one_of(ExecutedBy),
            "strikeCount": _INTEGER,
            "user": _USER,
            "reason": _STRING,
            "violationType": _STRING,
            "muteDurationMinutes": _INTEGER,
        },
        "required": ["action"],
    },
    EventType.MANUAL_STRIKE_ADD.value: _MANUAL_SCHEMA,
    EventType.MANUAL_STRIKE_REMOVE.value: _MANUAL_SCHEMA,
    EventType.MANUAL_STRIKE_SET.value: _MANUAL_SCHEMA,
    # legacy flat schema, "type" AUTO or absent
    EventType.AUTO.value: {
        "type": "object",
        "properties": {
            "action": _one_of([*LEGACY_PENALTY_ACTIONS, *filter(None, LEGACY_DELETION_ACTIONS)]),
            "user": _USER,
            "messageExcerpt": _STRING,
            "reason": _STRING,
            "classificationScore": _NUMBER,
            "violationType": _STRING,
            "spamScore": _NUMBER,
            "profanityScore": _NUMBER,
            "profanityType": _STRING,
            "strikeCount": _INTEGER,
        },
    },
}
PAYLOAD_SCHEMAS[None] = PAYLOAD_SCHEMAS[EventType.AUTO.value]

_VALIDATORS: Dict[Optional[str], Draft7Validator] = {
    payload_type: Draft7Validator(schema) for payload_type, schema in PAYLOAD_SCHEMAS.items()
}


def _float(value: Any) -> Optional[float]:
    return float(value) if value is not None else None


def _int(value: Any, default: Optional[int] = None) -> Optional[int]:
    return int(value) if value is not None else default


def _str(value: Any, default: Optional[str] = None) -> Optional[str]:
    return value if value is not None else default


def _decode_scanned(data: Dict[str, Any]) -> ScannedPayload:
    return ScannedPayload(
        user=ChatUser.from_wire_dict(data.get("user")),
        message_excerpt=_str(data.get("messageExcerpt"), ""),
        spam_score=_float(data.get("spamScore")),
        profanity_score=_float(data.get("profanityScore")),
        profanity_type=data.get("profanityType"),
        message_length=_int(data.get("messageLength")),
        action=_str(data.get("action"), "message_analyzed"),
    )


def _decode_violation(data: Dict[str, Any]) -> ViolationPayload:
    return ViolationPayload(
        violation_type=ViolationType(data["violationType"]),
        user=ChatUser.from_wire_dict(data.get("user")),
        message_excerpt=_str(data.get("messageExcerpt"), ""),
        reason=_str(data.get("reason"), "Violation detected"),
        spam_score=_float(data.get("spamScore")),
        profanity_score=_float(data.get("profanityScore")),
        profanity_type=data.get("profanityType"),
        classification_score=_float(data.get("classificationScore")),
        message_length=_int(data.get("messageLength")),
        threshold_exceeded=_float(data.get("thresholdExceeded")),
        action=_str(data.get("action"), "message_deleted"),
    )


def _decode_penalty(data: Dict[str, Any]) -> PenaltyPayload:
    action = PenaltyAction(data["action"])
    severity = data.get("severity")
    executed_by = data.get("executedBy")
    return PenaltyPayload(
        action=action,
        severity=Severity(severity) if severity is not None else DEFAULT_SEVERITY[action],
        executed_by=ExecutedBy(executed_by) if executed_by is not None else ExecutedBy.AUTO_MODERATOR,
        strike_count=_int(data.get("strikeCount"), 0),
        user=ChatUser.from_wire_dict(data.get("user")),
        reason=_str(data.get("reason"), "Strike limit reached"),
        violation_type=data.get("violationType"),
        mute_duration_minutes=_int(data.get("muteDurationMinutes")),
    )


def _manual_decoder(kind: EventType) -> Callable[[Dict[str, Any]], ManualStrikePayload]:
    default_amount = 0 if kind is EventType.MANUAL_STRIKE_SET else 1

    def decode(data: Dict[str, Any]) -> ManualStrikePayload:
        return ManualStrikePayload(
            kind=kind,
            amount=_int(data.get("amount"), default_amount),
            reason=_str(data.get("reason"), ""),
            admin=ChatUser.from_wire_dict(data.get("admin")),
            target_user=ChatUser.from_wire_dict(data.get("targetUser")),
        )

    return decode


def _decode_legacy(data: Dict[str, Any]) -> LegacyAutoPayload:
    return LegacyAutoPayload(
        user=ChatUser.from_wire_dict(data.get("user")),
        action=data.get("action"),
        message_excerpt=_str(data.get("messageExcerpt"), ""),
        reason=data.get("reason"),
        classification_score=_float(data.get("classificationScore")),
        violation_type=data.get("violationType"),
        spam_score=_float(data.get("spamScore")),
        profanity_score=_float(data.get("profanityScore")),
        profanity_type=data.get("profanityType"),
        strike_count=_int(data.get("strikeCount")),
        type_tag=data.get("type"),
    )


_DECODERS: Dict[Optional[str], Callable[[Dict[str, Any]], AuditPayload]] = {
    None: _decode_legacy,
    EventType.AUTO.value: _decode_legacy,
    EventType.SCANNED.value: _decode_scanned,
    EventType.VIOLATION.value: _decode_violation,
    EventType.PENALTY.value: _decode_penalty,
    EventType.MANUAL_STRIKE_ADD.value: _manual_decoder(EventType.MANUAL_STRIKE_ADD),
    EventType.MANUAL_STRIKE_REMOVE.value: _manual_decoder(EventType.MANUAL_STRIKE_REMOVE),
    EventType.MANUAL_STRIKE_SET.value: _manual_decoder(EventType.MANUAL_STRIKE_SET),
}


def load_payload_dict(raw: str) -> Dict[str, Any]:
    """Parse stored JSON text into an object.

    Raises:
        DecodeError: Not JSON, or not a JSON object.
    """
    try:
        data = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as exc:
        raise DecodeError(f"Payload is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise DecodeError(f"Payload must be a JSON object, got {type(data).__name__}")
    return data


def decode_payload_dict(data: Dict[str, Any]) -> AuditPayload:
    """Validate ``data`` against the schema of its ``type`` and build the payload."""
    payload_type = data.get("type")
    if payload_type is not None and not isinstance(payload_type, str):
        raise DecodeError(f"Payload type must be a string, got {payload_type!r}")
    validator = _VALIDATORS.get(payload_type)
    if validator is None:
        raise DecodeError(f"Unknown audit payload type: {payload_type!r}")
    try:
        validator.validate(data)
    except ValidationError as exc:
        location = ".".join(str(part) for part in exc.absolute_path) or "payload"
        raise DecodeError(f"Invalid {payload_type or 'legacy'} payload at {location}: {exc.message}") from exc
    return _DECODERS[payload_type](data)


def decode_payload(raw: str) -> AuditPayload:
    """Decode stored JSON text into its payload variant.

    Raises:
        DecodeError: Malformed JSON, unknown type or an invalid field.
    """
    return decode_payload_dict(load_payload_dict(raw))


def decode_row(row: AuditLogRow) -> AuditEvent:
    """Decode a raw ``audit_log`` row into an :class:`AuditEvent`.

    Raises:
        DecodeError: If the payload or the row timestamp cannot be parsed.
    """
    try:
        timestamp = parse_timestamp(row.timestamp)
    except (AttributeError, TypeError, ValueError) as exc:
        raise DecodeError(f"Invalid timestamp on audit row {row.id}: {row.timestamp!r}") from exc

    return AuditEvent(
        id=row.id,
        timestamp=timestamp,
        group_id=to_group_id(row.group_id),
        user_id=to_user_id(row.user_id),
        payload=decode_payload(row.log_data),
    )
