"""
Moderation core.

- **strike_ledger.py**: per-(group, user) strike counters, each change committed
  together with its audit event.
- **penalty_escalator.py**: maps a strike count to ALERT / MUTE / KICK / BAN and
  runs the enforcement call.
- **audit_log.py**, **audit_codec.py**, **audit_export.py**: the append-only
  audit trail, its JSON payload codec and the CSV/JSON exports.
- **enforcement.py**: protocols for the chat platform and the classifier.
- **moderation_pipeline.py**: the per-message flow tying everything together.
"""
