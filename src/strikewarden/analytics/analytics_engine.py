"""
On-demand analytics over the audit log.

Every query loads the group's rows for the window, normalizes them into facts
(:mod:`strikewarden.analytics.normalization`) and aggregates in Python. The
engine only reads; it never writes to the database.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Set

from strikewarden.analytics.normalization import Facts, PenaltyFact, normalize_rows
from strikewarden.configuration.app_configuration import AppConfig, app_config
from strikewarden.database.database import Database
from strikewarden.datatypes.analytics_datatypes import (
    ActivityBucket,
    ActivityPatterns,
    FlaggedBreakdown,
    GroupDeletions,
    GroupStats,
    ModerationEffectiveness,
    ModerationEfficiency,
    RepeatOffender,
    ResponseTime,
    UserActivity,
    ViolationTypeCount,
)
from strikewarden.datatypes.audit_datatypes import PenaltyAction, ViolationType
from strikewarden.datatypes.chat_datatypes import GroupID
from strikewarden.repositories.audit_repo import AuditLogRow, AuditRepo
from strikewarden.repositories.directory_repo import DirectoryRepo
from strikewarden.util.errors import ValidationError
from strikewarden.util.logger import get_logger
from strikewarden.util.time_utils import to_storage

logger = get_logger("analytics_engine")


def _mean(values: List[float]) -> float:
    return round(sum(values) / len(values), 2) if values else 0.0


def _distinct_users(penalties: List[PenaltyFact], action: PenaltyAction) -> int:
    return len({fact.user_id for fact in penalties if fact.action is action})


def effectiveness_score(average_response_seconds: Optional[float]) -> float:
    """``max(0, 100 - avg/60*10)``; 0 when nothing was matched."""
    if average_response_seconds is None:
        return 0.0
    return round(max(0.0, 100.0 - average_response_seconds / 60.0 * 10.0), 2)


class AnalyticsEngine:
    """Aggregate statistics derived from the audit log."""

    def __init__(self, database: Database, config: Optional[AppConfig] = None):
        self.database = database
        self.config = config or app_config

    async def _load_facts(self, group_id: GroupID, start: datetime, end: datetime) -> Facts:
        if start > end:
            raise ValidationError("start must not be after end",
                                  details={"start": start.isoformat(), "end": end.isoformat()})
        with self.database.timer.measure("analytics.load_window"):
            async with self.database.read() as conn:
                rows = await AuditRepo.select_window(conn, str(group_id), to_storage(start), to_storage(end))
        facts = normalize_rows(rows)
        if facts.decode_failures:
            logger.warning("[ANALYTICS] %d undecodable rows skipped for group %s", facts.decode_failures, group_id)
        return facts

    # ------------------------------------------------------------------
    # Group statistics
    # ------------------------------------------------------------------

    async def get_group_stats(self, group_id: GroupID, start: datetime, end: datetime) -> GroupStats:
        facts = await self._load_facts(group_id, start, end)

        total_messages = len(facts.scans)
        type_counts = Counter(fact.violation_type for fact in facts.violations)
        flagged = FlaggedBreakdown(
            total=len(facts.violations),
            spam=type_counts.get(ViolationType.SPAM.value, 0),
            profanity=type_counts.get(ViolationType.PROFANITY.value, 0),
        )

        muted = _distinct_users(facts.penalties, PenaltyAction.USER_MUTED)
        kicked = _distinct_users(facts.penalties, PenaltyAction.USER_KICKED)
        banned = _distinct_users(facts.penalties, PenaltyAction.USER_BANNED)

        scores = [fact.score for fact in facts.violations if fact.score is not None]
        flagged_rate = round(flagged.total / total_messages * 100, 2) if total_messages else 0.0

        top_types = sorted(type_counts.items(), key=lambda item: (-item[1], item[0]))
        return GroupStats(
            total_messages=total_messages,
            flagged=flagged,
            deleted_messages=len(facts.deletions),
            muted_users=muted,
            kicked_users=kicked,
            banned_users=banned,
            average_spam_score=_mean(scores),
            flagged_rate=flagged_rate,
            top_violation_types=[
                ViolationTypeCount(type=name, count=count)
                for name, count in top_types[: self.config.top_violation_types_limit]
            ],
            efficiency=ModerationEfficiency(
                messages_scanned=total_messages,
                violations_detected=flagged.total,
                users_actioned=muted + kicked + banned,
            ),
        )

    # ------------------------------------------------------------------
    # Per-user activity
    # ------------------------------------------------------------------

    async def get_user_activity_stats(
        self,
        group_id: GroupID,
        start: datetime,
        end: datetime,
        limit: int = 10,
    ) -> List[UserActivity]:
        """Per-user counters ordered by violations (descending)."""
        if limit < 1:
            raise ValidationError("limit must be at least 1", details={"limit": limit})
        facts = await self._load_facts(group_id, start, end)

        stats: Dict[str, UserActivity] = {}
        spam_scores: Dict[str, List[float]] = defaultdict(list)

        def entry(user_id: str) -> UserActivity:
            if user_id not in stats:
                stats[user_id] = UserActivity(user_id=user_id)
            return stats[user_id]

        for scan in facts.scans:
            entry(scan.user_id).messages_sent += 1
            if scan.spam_score is not None:
                spam_scores[scan.user_id].append(scan.spam_score)
        for violation in facts.violations:
            entry(violation.user_id).violations += 1
        for penalty in facts.penalties:
            entry(penalty.user_id).penalties += 1

        async with self.database.read() as conn:
            users = await DirectoryRepo.get_users(conn, stats.keys())

        for user_id, activity in stats.items():
            activity.avg_spam_score = _mean(spam_scores[user_id])
            known = users.get(user_id)
            if known is not None:
                activity.username = known.username
                activity.first_name = known.first_name
                activity.last_name = known.last_name

        ordered = sorted(stats.values(), key=lambda a: (-a.violations, -a.messages_sent, a.user_id))
        return ordered[:limit]

    # ------------------------------------------------------------------
    # Activity patterns
    # ------------------------------------------------------------------

    async def get_activity_patterns(self, group_id: GroupID, start: datetime, end: datetime) -> ActivityPatterns:
        """Sparse hour-of-day (``"00"``..``"23"``) and per-day buckets, UTC."""
        facts = await self._load_facts(group_id, start, end)

        hourly: Dict[str, ActivityBucket] = {}
        daily: Dict[str, ActivityBucket] = {}

        def buckets(ts: datetime) -> List[ActivityBucket]:
            hour, day = ts.strftime("%H"), ts.strftime("%Y-%m-%d")
            return [
                hourly.setdefault(hour, ActivityBucket(key=hour)),
                daily.setdefault(day, ActivityBucket(key=day)),
            ]

        for scan in facts.scans:
            for bucket in buckets(scan.timestamp):
                bucket.messages += 1
        for violation in facts.violations:
            for bucket in buckets(violation.timestamp):
                bucket.violations += 1

        return ActivityPatterns(
            hourly=[hourly[key] for key in sorted(hourly)],
            daily=[daily[key] for key in sorted(daily)],
        )

    # ------------------------------------------------------------------
    # Moderation effectiveness
    # ------------------------------------------------------------------

    async def get_moderation_effectiveness(
        self,
        group_id: GroupID,
        start: datetime,
        end: datetime,
    ) -> ModerationEffectiveness:
        """
        Response times and repeat offenders.

        Each violation is paired with the first penalty against the same user
        at or after it, within the configured window. Deletions are not
        penalties and never pair.
        """
        facts = await self._load_facts(group_id, start, end)
        window = self.config.response_window_seconds

        penalties_by_user: Dict[str, List[PenaltyFact]] = defaultdict(list)
        for penalty in facts.penalties:
            penalties_by_user[penalty.user_id].append(penalty)
        for user_penalties in penalties_by_user.values():
            user_penalties.sort(key=lambda fact: fact.timestamp)

        pairs: List[ResponseTime] = []
        for violation in facts.violations:
            for penalty in penalties_by_user.get(violation.user_id, []):
                delta = (penalty.timestamp - violation.timestamp).total_seconds()
                if delta < 0:
                    continue
                if delta <= window:
                    pairs.append(ResponseTime(
                        user_id=violation.user_id,
                        violation_type=violation.violation_type,
                        penalty_action=penalty.action.value,
                        response_time_seconds=round(delta, 2),
                    ))
                break

        average: Optional[float] = None
        if pairs:
            average = sum(pair.response_time_seconds for pair in pairs) / len(pairs)

        per_user: Dict[str, List[float]] = defaultdict(list)
        counts: Counter = Counter()
        days: Dict[str, Set[str]] = defaultdict(set)
        for violation in facts.violations:
            counts[violation.user_id] += 1
            days[violation.user_id].add(violation.timestamp.strftime("%Y-%m-%d"))
            if violation.score is not None:
                per_user[violation.user_id].append(violation.score)

        offenders = sorted(
            (
                RepeatOffender(
                    user_id=user_id,
                    total_violations=count,
                    active_days=len(days[user_id]),
                    avg_violation_score=_mean(per_user[user_id]),
                )
                for user_id, count in counts.items()
                if count > 1
            ),
            key=lambda offender: (-offender.total_violations, offender.user_id),
        )

        return ModerationEffectiveness(
            total_violations=len(facts.violations),
            matched_violations=len(pairs),
            average_response_time_seconds=round(average, 2) if average is not None else 0.0,
            response_time_distribution=pairs,
            repeat_offenders=offenders[: self.config.repeat_offender_limit],
            total_repeat_offenders=len(offenders),
            effectiveness_score=effectiveness_score(average),
        )

    # ------------------------------------------------------------------
    # Cross-group ranking
    # ------------------------------------------------------------------

    async def get_top_groups_by_deletions(self, limit: int = 5) -> List[GroupDeletions]:
        """Known groups (registered or seen in the log) ranked by deletions, all time."""
        if limit < 1:
            raise ValidationError("limit must be at least 1", details={"limit": limit})

        with self.database.timer.measure("analytics.top_groups"):
            async with self.database.read() as conn:
                groups = await DirectoryRepo.list_groups(conn)
                logged_ids = await AuditRepo.group_ids(conn)
                rows = await AuditRepo.select_deletion_candidates(conn)

        titles: Dict[str, Optional[str]] = {group.group_id: group.title for group in groups}
        for group_id in logged_ids:
            titles.setdefault(group_id, None)

        rows_by_group: Dict[str, List[AuditLogRow]] = defaultdict(list)
        for row in rows:
            rows_by_group[row.group_id].append(row)

        deletions: Dict[str, int] = {}
        for group_id, group_rows in rows_by_group.items():
            facts = normalize_rows(group_rows)
            deletions[group_id] = len(facts.deletions)
            if facts.decode_failures:
                logger.warning("[ANALYTICS] %d undecodable rows skipped for group %s", facts.decode_failures, group_id)

        ranked = sorted(
            (GroupDeletions(group_id=gid, title=title, deletions=deletions.get(gid, 0)) for gid, title in titles.items()),
            key=lambda entry: (-entry.deletions, entry.group_id),
        )
        return ranked[:limit]
