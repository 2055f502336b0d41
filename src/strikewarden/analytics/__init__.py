"""
Analytics over the audit log.

- **normalization.py**: maps both payload schemas onto scan, violation,
  deletion and penalty facts.
- **analytics_engine.py**: group statistics, per-user activity, activity
  patterns, moderation effectiveness and the cross-group deletion ranking.
"""
