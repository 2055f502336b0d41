"""
Data structures shared by the ledger, audit log, escalator and analytics.

- **chat_datatypes.py**: GroupID / UserID identifiers and the ChatUser descriptor.
- **penalty_datatypes.py**: PenaltyTier, GroupPenaltyPolicy and StrikeRecord.
- **audit_datatypes.py**: audit payload variants (enhanced and legacy schema),
  AuditEvent and the paginated/exported row shapes.
- **analytics_datatypes.py**: result types of the analytics queries.
"""
