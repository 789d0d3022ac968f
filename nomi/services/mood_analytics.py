"""
Mood Analytics Engine

Pure functions compute statistics, streaks, weekly insights and the
natural-language context blocks handed to the chat feature. MoodAnalytics
wires them to the mood store and the Clock. Nothing here raises: failures
are logged and turn into empty stats, empty strings or empty lists.
"""

import calendar
import logging
from collections import Counter
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from nomi.models.mood import MOOD_TYPES, MoodEntry, MoodStats, MoodType, StatsPeriod
from nomi.utils.datetime_helpers import Clock, SystemClock, format_date, parse_date, today

logger = logging.getLogger(__name__)

POSITIVE_AVERAGE = 4.0
CHALLENGING_AVERAGE = 2.0
INSIGHT_DELTA = 0.5
STREAK_CELEBRATION_DAYS = 7
MAX_INSIGHTS = 2
MAX_RECENT_NOTES = 3
SUMMARY_CACHE_SECONDS = 5 * 60


# ==========================================
# Statistics
# ==========================================

def empty_stats(period: StatsPeriod = "week", catalog: Optional[List[MoodType]] = None) -> MoodStats:
    """Stats for an empty window: every known mood id present at 0"""
    return MoodStats(
        total_entries=0,
        average_mood=0,
        average_intensity=0,
        mood_distribution={mood.id: 0 for mood in (catalog or MOOD_TYPES)},
        streak=0,
        period=period,
    )


EMPTY_STATS = empty_stats()


def calculate_stats(
    entries: List[MoodEntry],
    period: StatsPeriod = "week",
    streak: int = 0,
    catalog: Optional[List[MoodType]] = None
) -> MoodStats:
    """
    Aggregate a window of entries.

    average_mood is the mean of each entry's catalog value, rounded to one
    decimal. Intensity is averaged separately and never mixed in. The
    distribution counts by mood id and keeps ids missing from the catalog.
    """
    if not entries:
        return empty_stats(period, catalog)

    distribution = {mood.id: 0 for mood in (catalog or MOOD_TYPES)}
    for entry in entries:
        distribution[entry.mood.id] = distribution.get(entry.mood.id, 0) + 1

    total = len(entries)
    return MoodStats(
        total_entries=total,
        average_mood=round(sum(entry.mood.value for entry in entries) / total, 1),
        average_intensity=round(sum(entry.intensity for entry in entries) / total, 1),
        mood_distribution=distribution,
        streak=streak,
        period=period,
    )


def calculate_streak(entry_dates: Iterable[str], current: date) -> int:
    """
    Consecutive days with at least one entry, ending today.

    No entry today means 0, whatever came before.
    """
    logged = set()
    for value in entry_dates:
        try:
            logged.add(parse_date(value))
        except (TypeError, ValueError):
            logger.debug(f"Skipping malformed entry date: {value!r}")

    streak = 0
    day = current
    while day in logged:
        streak += 1
        day -= timedelta(days=1)
    return streak


def dominant_mood(entries: List[MoodEntry]) -> Optional[MoodType]:
    """Most frequent mood; ties go to the most recent"""
    if not entries:
        return None
    counts = Counter(entry.mood.id for entry in entries)
    top_id, _ = counts.most_common(1)[0]
    return next(entry.mood for entry in entries if entry.mood.id == top_id)


# ==========================================
# Insights
# ==========================================

def generate_weekly_insights(
    this_week: MoodStats,
    last_week: Optional[MoodStats] = None,
    streak: int = 0
) -> List[str]:
    """
    Short human-readable insights for the home screen (at most 2).

    Compares against the prior week when it has entries; otherwise buckets
    this week's absolute average.
    """
    insights: List[str] = []
    if this_week.total_entries == 0:
        return insights

    if last_week is not None and last_week.total_entries > 0:
        delta = this_week.average_mood - last_week.average_mood
        if delta >= INSIGHT_DELTA:
            insights.append("📈 Your mood has improved since last week. Keep doing what's working!")
        elif delta <= -INSIGHT_DELTA:
            insights.append("📉 This week has felt heavier than last week. Be gentle with yourself.")
        else:
            insights.append("🌿 Your mood has been steady compared to last week.")
    elif this_week.average_mood >= POSITIVE_AVERAGE:
        insights.append("🌟 You've been feeling great this week!")
    elif this_week.average_mood <= CHALLENGING_AVERAGE:
        insights.append("💙 Remember, it's okay to have tough days. I'm here for you.")
    else:
        insights.append("⚖️ Your mood has been fairly balanced this week.")

    if streak >= STREAK_CELEBRATION_DAYS:
        insights.append("🔥 Amazing! You've been consistent with mood tracking.")

    return insights[:MAX_INSIGHTS]


# ==========================================
# Chat Context
# ==========================================

def _mood_label(mood: MoodType) -> str:
    return f"{mood.emoji} {mood.name}"


def _short_date(value: str) -> str:
    """'2026-10-16' -> 'Oct 16'"""
    try:
        day = parse_date(value)
    except (TypeError, ValueError):
        return value
    return f"{calendar.month_abbr[day.month]} {day.day}"


def build_detailed_mood_context(
    today_entry: Optional[MoodEntry],
    yesterday_entry: Optional[MoodEntry],
    week_entries: List[MoodEntry]
) -> str:
    """
    Multi-section digest for the chat prompt.

    Sections, in order: TODAY'S MOOD, THIS WEEK, RECENT NOTES,
    CONVERSATION APPROACH. week_entries are newest first.
    """
    lines: List[str] = ["TODAY'S MOOD:"]
    if today_entry is None:
        lines.append("- No mood logged yet today")
    else:
        line = f"- {_mood_label(today_entry.mood)} ({today_entry.mood.value}/5, intensity {today_entry.intensity}/5)"
        if yesterday_entry is not None:
            change = today_entry.mood.value - yesterday_entry.mood.value
            if change > 0:
                line += f", up from yesterday's {_mood_label(yesterday_entry.mood)}"
            elif change < 0:
                line += f", down from yesterday's {_mood_label(yesterday_entry.mood)}"
            else:
                line += ", about the same as yesterday"
        lines.append(line)

    lines.append("")
    lines.append("THIS WEEK:")
    if not week_entries:
        lines.append("- No entries in the last 7 days")
    else:
        stats = calculate_stats(week_entries, "week")
        lines.append(f"- Average mood: {stats.average_mood}/5 across {stats.total_entries} entries")
        top = dominant_mood(week_entries)
        if top is not None:
            lines.append(f"- Most common mood: {_mood_label(top)}")

    lines.append("")
    lines.append("RECENT NOTES:")
    notes = [entry for entry in week_entries if entry.note and entry.note.strip()][:MAX_RECENT_NOTES]
    if not notes:
        lines.append("- No recent notes")
    for entry in notes:
        lines.append(f"- {_short_date(entry.date)} ({entry.mood.emoji}): \"{entry.note.strip()}\"")

    lines.append("")
    lines.append("CONVERSATION APPROACH:")
    if today_entry is not None and today_entry.mood.value <= 2:
        lines.append("- Lead with empathy and check in gently before offering suggestions")
    elif today_entry is not None and today_entry.mood.value >= 4:
        lines.append("- Match their positive energy and reinforce what is working")
    else:
        lines.append("- Keep a warm, curious tone and invite them to share more")
    lines.append("- Refer to their mood naturally, don't recite these numbers back")
    lines.append("- Keep replies short and conversational")

    return "\n".join(lines)


def build_mood_summary(entries: List[MoodEntry], now: datetime) -> str:
    """
    One-paragraph digest of the most recent entries (newest first)

    e.g. 'The user's most recent mood was 😊 Happy (4/5) logged today.
    Recent mood levels have been moderate.'
    """
    if not entries:
        return ""

    parts: List[str] = []
    latest = entries[0]
    logged_at = datetime.fromtimestamp(latest.timestamp / 1000, tz=timezone.utc)
    days_since = max((now - logged_at).days, 0)

    sentence = f"The user's most recent mood was {_mood_label(latest.mood)} ({latest.intensity}/5)"
    if days_since == 0:
        sentence += " logged today"
    elif days_since == 1:
        sentence += " logged yesterday"
    else:
        sentence += f" logged {days_since} days ago"
    if latest.note:
        sentence += f' with the note: "{latest.note}"'
    parts.append(sentence + ".")

    if len(entries) > 1:
        average = sum(entry.intensity for entry in entries) / len(entries)
        if average <= 2.5:
            parts.append("Recent entries show lower mood levels.")
        elif average >= 4:
            parts.append("Recent entries show positive mood levels.")
        else:
            parts.append("Recent mood levels have been moderate.")

    noted = [entry for entry in entries if entry.note and entry.note.strip()]
    if noted:
        parts.append(f'Recent context: "{noted[0].note}".')

    return " ".join(parts)


# ==========================================
# Service
# ==========================================

class MoodAnalytics:
    """Mood statistics and summaries backed by MoodService"""

    def __init__(self, mood_service, clock: Optional[Clock] = None):
        self.mood_service = mood_service
        self.clock = clock or SystemClock()
        self._summary_cache: Dict[str, Tuple[datetime, str]] = {}

    async def _stats_for_range(self, user_id: str, start: str, end: str, period: StatsPeriod) -> MoodStats:
        try:
            entries = await self.mood_service.get_mood_entries_for_date_range(user_id, start, end)
            catalog = await self.mood_service.get_mood_types()
            streak = await self.get_current_streak(user_id) if entries else 0
            return calculate_stats(entries, period, streak=streak, catalog=catalog)
        except Exception as e:
            logger.error(f"Error calculating {period} stats for {user_id}: {e}", exc_info=True)
            return empty_stats(period)

    async def get_daily_stats(self, user_id: str, day: Optional[str] = None) -> MoodStats:
        day = day or format_date(today(self.clock))
        return await self._stats_for_range(user_id, day, day, "day")

    async def get_weekly_stats(self, user_id: str, start_date: Optional[str] = None) -> MoodStats:
        """Seven days starting at start_date (default: the last 7 days)"""
        try:
            start = parse_date(start_date) if start_date else today(self.clock) - timedelta(days=6)
        except (TypeError, ValueError):
            logger.warning(f"Invalid week start: {start_date!r}")
            return empty_stats("week")
        end = start + timedelta(days=6)
        return await self._stats_for_range(user_id, format_date(start), format_date(end), "week")

    async def get_monthly_stats(
        self,
        user_id: str,
        year: Optional[int] = None,
        month: Optional[int] = None
    ) -> MoodStats:
        current = today(self.clock)
        year = year or current.year
        month = month or current.month
        try:
            last_day = calendar.monthrange(year, month)[1]
        except (calendar.IllegalMonthError, ValueError):
            logger.warning(f"Invalid month: {year}-{month}")
            return empty_stats("month")
        start = date(year, month, 1)
        end = date(year, month, last_day)
        return await self._stats_for_range(user_id, format_date(start), format_date(end), "month")

    async def get_current_streak(self, user_id: str) -> int:
        try:
            entries = await self.mood_service.get_all_mood_entries(user_id)
            return calculate_streak((entry.date for entry in entries), today(self.clock))
        except Exception as e:
            logger.error(f"Error calculating streak for {user_id}: {e}", exc_info=True)
            return 0

    async def get_weekly_insights(self, user_id: str) -> List[str]:
        try:
            current = today(self.clock)
            this_week = await self.get_weekly_stats(user_id, format_date(current - timedelta(days=6)))
            last_week = await self.get_weekly_stats(user_id, format_date(current - timedelta(days=13)))
            return generate_weekly_insights(this_week, last_week, streak=this_week.streak)
        except Exception as e:
            logger.error(f"Error generating insights for {user_id}: {e}", exc_info=True)
            return []

    async def get_detailed_mood_context(self, user_id: str) -> str:
        try:
            current = today(self.clock)
            today_entry = await self.mood_service.get_mood_entry_for_date(user_id, format_date(current))
            yesterday_entry = await self.mood_service.get_mood_entry_for_date(
                user_id, format_date(current - timedelta(days=1))
            )
            week_entries = await self.mood_service.get_mood_entries_for_date_range(
                user_id, format_date(current - timedelta(days=6)), format_date(current)
            )
            return build_detailed_mood_context(today_entry, yesterday_entry, week_entries)
        except Exception as e:
            logger.error(f"Error building mood context for {user_id}: {e}", exc_info=True)
            return ""

    async def get_simple_mood_summary(self, user_id: str, limit: int = 5) -> str:
        """Digest of the latest entries, cached per user for 5 minutes"""
        now = self.clock.now()
        cached = self._summary_cache.get(user_id)
        if cached and (now - cached[0]).total_seconds() < SUMMARY_CACHE_SECONDS:
            return cached[1]

        try:
            entries = await self.mood_service.get_recent_mood_entries(user_id, limit=limit)
            summary = build_mood_summary(entries, now)
        except Exception as e:
            logger.error(f"Error building mood summary for {user_id}: {e}", exc_info=True)
            return ""

        if summary:
            self._summary_cache[user_id] = (now, summary)
        return summary

    def clear_summary_cache(self, user_id: Optional[str] = None) -> None:
        if user_id is None:
            self._summary_cache.clear()
        else:
            self._summary_cache.pop(user_id, None)

    async def get_daily_mood_series(self, user_id: str, days: int = 7) -> List[Dict[str, Any]]:
        """Chart points, oldest day first: {'date', 'average_mood', 'entries'}"""
        try:
            current = today(self.clock)
            start = current - timedelta(days=days - 1)
            entries = await self.mood_service.get_mood_entries_for_date_range(
                user_id, format_date(start), format_date(current)
            )
        except Exception as e:
            logger.error(f"Error building mood series for {user_id}: {e}", exc_info=True)
            return []

        by_date: Dict[str, List[MoodEntry]] = {}
        for entry in entries:
            by_date.setdefault(entry.date, []).append(entry)

        series = []
        for offset in range(days):
            key = format_date(start + timedelta(days=offset))
            day_entries = by_date.get(key, [])
            average = round(sum(e.mood.value for e in day_entries) / len(day_entries), 1) if day_entries else 0
            series.append({"date": key, "average_mood": average, "entries": len(day_entries)})
        return series
