"""Tests for audit payload encoding and decoding."""

import json
from datetime import datetime, timezone

import pytest
from jsonschema import Draft7Validator

from strikewarden.datatypes.audit_datatypes import (
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
from strikewarden.datatypes.chat_datatypes import ChatUser, UserID
from strikewarden.moderation.audit_codec import (
    PAYLOAD_SCHEMAS,
    decode_payload,
    decode_row,
    encode_payload,
    payload_to_dict,
)
from strikewarden.moderation.audit_export import describe_action
from strikewarden.repositories.audit_repo import AuditLogRow
from strikewarden.util.errors import DecodeError

TS = datetime(2025, 8, 1, 10, 0, tzinfo=timezone.utc)


class TestEncoding:

    def test_manual_payload_keys(self):
        payload = ManualStrikePayload(
            kind=EventType.MANUAL_STRIKE_ADD,
            amount=2,
            reason="Manual review",
            admin=ChatUser(id=UserID("42"), first_name="Alice", username="alice_admin"),
            target_user=ChatUser(id=UserID("7")),
        )
        data = payload_to_dict(payload, TS)
        assert data == {
            "type": "MANUAL-STRIKE-ADD",
            "timestamp": "2025-08-01T10:00:00.000Z",
            "admin": {"id": "42", "first_name": "Alice", "username": "alice_admin"},
            "targetUser": {"id": "7"},
            "amount": 2,
            "reason": "Manual review",
        }

    def test_none_fields_omitted(self):
        data = payload_to_dict(ScannedPayload(spam_score=0.2))
        assert data == {"type": "SCANNED", "action": "message_analyzed", "messageExcerpt": "", "spamScore": 0.2}

    def test_legacy_without_type_tag(self):
        data = json.loads(encode_payload(LegacyAutoPayload(type_tag=None, classification_score=0.9)))
        assert "type" not in data
        assert data["action"] == "deleted"

    def test_non_ascii_kept(self):
        raw = encode_payload(ScannedPayload(message_excerpt="Привет 👋"))
        assert "Привет 👋" in raw

    def test_manual_payload_requires_manual_kind(self):
        with pytest.raises(ValueError):
            ManualStrikePayload(kind=EventType.SCANNED, amount=1)


class TestDecoding:

    def test_violation_round_trip(self):
        payload = ViolationPayload(
            violation_type=ViolationType.PROFANITY,
            user=ChatUser(id=UserID("1"), first_name="Bob"),
            reason="Inappropriate language detected (insult)",
            profanity_score=0.9,
            profanity_type="insult",
            threshold_exceeded=0.7,
        )
        decoded = decode_payload(encode_payload(payload, TS))
        assert decoded == payload
        assert decoded.score == 0.9

    def test_legacy_row_without_type(self):
        raw = json.dumps({"action": "deleted", "classificationScore": 0.85, "user": {"id": 5, "first_name": "X"}})
        decoded = decode_payload(raw)
        assert isinstance(decoded, LegacyAutoPayload)
        assert decoded.type_tag is None
        assert decoded.is_deletion is True
        assert decoded.score == 0.85
        assert decoded.user.id == "5"
        assert describe_action(decoded) == "Auto-strike"

    def test_legacy_penalty_action(self):
        decoded = decode_payload(json.dumps({"type": "AUTO", "action": "muted"}))
        assert decoded.is_deletion is False
        assert decoded.penalty_action is PenaltyAction.USER_MUTED

    def test_penalty_defaults(self):
        decoded = decode_payload(json.dumps({"type": "PENALTY", "action": "user_kicked", "strikeCount": 3}))
        assert isinstance(decoded, PenaltyPayload)
        assert decoded.severity is Severity.MEDIUM
        assert decoded.executed_by is ExecutedBy.AUTO_MODERATOR
        assert describe_action(decoded) == "User kicked at strike 3"

    def test_manual_set_default_amount(self):
        decoded = decode_payload(json.dumps({"type": "MANUAL-STRIKE-SET"}))
        assert decoded.amount == 0
        assert describe_action(decoded) == "Set strikes to 0"

    @pytest.mark.parametrize("raw", [
        "{broken",
        "[1, 2]",
        "null",
        json.dumps({"type": "SOMETHING-NEW"}),
        json.dumps({"type": 5}),
        json.dumps({"type": ["SCANNED"]}),
        json.dumps({"type": "VIOLATION", "violationType": "PHISHING"}),
        json.dumps({"type": "SCANNED", "spamScore": "high"}),
        json.dumps({"type": "PENALTY", "action": "user_muted", "severity": "EXTREME"}),
        json.dumps({"type": "MANUAL-STRIKE-ADD", "admin": {"first_name": "no id"}}),
        json.dumps({"type": "VIOLATION", "violationType": "SPAM", "action": "message_archived"}),
        json.dumps({"type": "PENALTY", "action": "user_banned", "executedBy": "SOMEONE"}),
        json.dumps({"type": "PENALTY", "strikeCount": 2}),
        json.dumps({"type": "SCANNED", "messageLength": 12.5}),
        json.dumps({"type": "SCANNED", "spamScore": True}),
        json.dumps({"action": "shadowbanned"}),
        json.dumps({"type": "MANUAL-STRIKE-SET", "amount": "3"}),
    ])
    def test_malformed_payloads(self, raw):
        with pytest.raises(DecodeError):
            decode_payload(raw)

    def test_decode_row_bad_timestamp(self):
        row = AuditLogRow(id=1, timestamp="yesterday", group_id="-1", user_id="2", log_data="{}")
        with pytest.raises(DecodeError):
            decode_row(row)

    def test_decode_row(self):
        row = AuditLogRow(id=9, timestamp="2025-08-01T10:00:00.000Z", group_id="-1", user_id="2",
                          log_data=json.dumps({"type": "SCANNED", "spamScore": 0.4}))
        event = decode_row(row)
        assert event.id == 9
        assert event.timestamp == TS
        assert event.event_type is EventType.SCANNED

    def test_integral_float_accepted_as_integer(self):
        decoded = decode_payload(json.dumps({"type": "MANUAL-STRIKE-ADD", "amount": 2.0}))
        assert decoded.amount == 2

    def test_decode_error_names_field(self):
        with pytest.raises(DecodeError, match="spamScore"):
            decode_payload(json.dumps({"type": "SCANNED", "spamScore": "high"}))

    @pytest.mark.parametrize("payload_type", sorted(PAYLOAD_SCHEMAS, key=str))
    def test_schemas_are_valid_draft7(self, payload_type):
        Draft7Validator.check_schema(PAYLOAD_SCHEMAS[payload_type])
