"""
Schedule Generator

Pure functions that turn a team list into the initial set of matches.

Rules:
- No I/O and no wall-clock reads: `now` is always passed in
- Every generated match is pinned to settings.MATCH_HOUR so dates are
  reproducible for the same inputs
- Byes are resolved at creation: a match with one side is DONE and the
  present side is the winner
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from tourney.config.settings import settings
from tourney.domain import (
    DateWindow, Match, MatchStage, MatchStatus, Tournament, TournamentFormat,
)
from tourney.errors import ErrorCode, ValidationError

logger = logging.getLogger(__name__)

LEAGUE_ROUND_NAME = "League Round"
FINAL_ROUND_NAME = "결승"
SEMIFINAL_ROUND_NAME = "준결승"


# =============================================================================
# Helper Functions
# =============================================================================

def next_power_of_two(n: int) -> int:
    """Smallest power of two >= n, never below 2."""
    size = 2
    while size < n:
        size *= 2
    return size


def bracket_round_name(round_size: int) -> str:
    """Label for an elimination round with round_size slots (8 -> "8강")."""
    if round_size == 2:
        return FINAL_ROUND_NAME
    if round_size == 4:
        return SEMIFINAL_ROUND_NAME
    return f"{round_size}강"


def group_name(index: int) -> str:
    """0 -> "A조", 1 -> "B조", ..."""
    return f"{chr(65 + index)}조"


def at_match_hour(value: datetime) -> datetime:
    return value.replace(hour=settings.MATCH_HOUR, minute=0, second=0, microsecond=0)


def require_enough_teams(team_ids: Sequence[int]) -> None:
    if len(team_ids) < 2:
        raise ValidationError(
            f"At least 2 approved teams are required, found {len(team_ids)}",
            code=ErrorCode.INSUFFICIENT_TEAMS,
            details={"team_count": len(team_ids)}
        )


def validate_playoff_split(playoff_teams: int, group_count: int) -> int:
    """
    Return the number of qualifiers per group.

    Raises ValidationError when playoff_teams cannot be split evenly.
    """
    groups = max(group_count or 1, 1)
    if playoff_teams <= 0 or playoff_teams % groups != 0:
        raise ValidationError(
            f"Playoff team count ({playoff_teams}) is not divisible by group count ({groups})",
            code=ErrorCode.INDIVISIBLE_PLAYOFF,
            details={"playoff_teams": playoff_teams, "group_count": groups}
        )
    return playoff_teams // groups


# =============================================================================
# Date Window
# =============================================================================

def to_naive_local(value: Optional[datetime]) -> Optional[datetime]:
    """Aware datetimes become naive local time; naive ones are taken as local already."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def get_valid_date_range(
    start_date: Optional[datetime],
    end_date: Optional[datetime],
    now: datetime
) -> DateWindow:
    """
    Effective scheduling window.

    start: configured start if still in the future, else now
    end: configured end if after the effective start, else start + DEFAULT_WINDOW_DAYS
    """
    if start_date is None or start_date < now:
        start = now
    else:
        start = start_date

    if end_date is None or end_date <= start:
        end = start + timedelta(days=settings.DEFAULT_WINDOW_DAYS)
    else:
        end = end_date

    return DateWindow(start=start, end=end)


def league_window(tournament: Tournament, now: datetime) -> DateWindow:
    """Window for league matches; HYBRID keeps the tail of the window for playoffs."""
    window = get_valid_date_range(tournament.start_date, tournament.end_date, now)
    if tournament.format == TournamentFormat.HYBRID:
        span = window.end - window.start
        window = DateWindow(start=window.start, end=window.start + span * settings.HYBRID_LEAGUE_SHARE)
    return window


def calculate_match_date(window: DateWindow, match_index: int, total_matches: int) -> datetime:
    """Linear interpolation of match_index across the window, pinned to MATCH_HOUR."""
    duration = window.end - window.start
    interval = duration / total_matches if total_matches > 1 else timedelta(0)
    return at_match_hour(window.start + interval * match_index)


def bracket_base_date(
    tournament: Tournament,
    stage: MatchStage,
    now: datetime,
    last_league_date: Optional[datetime] = None
) -> datetime:
    """
    First slot of a generated bracket.

    HYBRID playoff: the day after the last league match.
    Standalone: tomorrow, or the configured start day when that is later.
    """
    tomorrow = at_match_hour(now + timedelta(days=1))

    if tournament.format == TournamentFormat.HYBRID and stage == MatchStage.TOURNAMENT:
        if last_league_date is not None:
            return at_match_hour(last_league_date + timedelta(days=1))
        return tomorrow

    if tournament.start_date is not None and tournament.start_date.date() > tomorrow.date():
        return at_match_hour(tournament.start_date)
    return tomorrow


def next_round_base_date(previous_round: Sequence[Match], now: datetime) -> datetime:
    """
    Day after the previous round's last match, never earlier than tomorrow.

    Unlike the first round, which starts tomorrow, later rounds follow the
    previous round's calendar: a round whose matches run past tomorrow
    pushes its successor back.
    """
    tomorrow = at_match_hour(now + timedelta(days=1))
    dates = [m.match_date for m in previous_round if m.match_date is not None]
    if not dates:
        return tomorrow
    return max(tomorrow, at_match_hour(max(dates) + timedelta(days=1)))


# =============================================================================
# League (round robin)
# =============================================================================

def assign_groups(team_ids: Sequence[int], group_count: int) -> List[List[int]]:
    """Team at index k goes to group k mod group_count."""
    groups: List[List[int]] = [[] for _ in range(group_count)]
    for index, team_id in enumerate(team_ids):
        groups[index % group_count].append(team_id)
    return groups


def round_robin_pairs(team_ids: Sequence[int]) -> List[Tuple[int, int]]:
    """Every unordered pair (i < j) exactly once."""
    return [
        (team_ids[i], team_ids[j])
        for i in range(len(team_ids))
        for j in range(i + 1, len(team_ids))
    ]


def generate_league_schedule(
    tournament_id: int,
    team_ids: Sequence[int],
    group_count: Optional[int],
    window: DateWindow
) -> List[Match]:
    """
    Round-robin schedule, single table or split into groups.

    Args:
        tournament_id: Owning tournament
        team_ids: Teams in seeding order (already shuffled by the caller)
        group_count: Number of groups; None or <= 1 means a single table
        window: Dates to spread the matches over

    Returns:
        Unsaved LEAGUE matches in creation order
    """
    require_enough_teams(team_ids)

    if group_count and group_count > 1:
        labelled = [
            (group_name(g), round_robin_pairs(members))
            for g, members in enumerate(assign_groups(team_ids, group_count))
        ]
    else:
        labelled = [(LEAGUE_ROUND_NAME, round_robin_pairs(team_ids))]

    total = sum(len(pairs) for _, pairs in labelled)
    matches = []
    index = 0
    for label, pairs in labelled:
        for team_a_id, team_b_id in pairs:
            matches.append(Match(
                tournament_id=tournament_id,
                stage=MatchStage.LEAGUE,
                round_name=label,
                team_a_id=team_a_id,
                team_b_id=team_b_id,
                status=MatchStatus.UPCOMING,
                match_date=calculate_match_date(window, index, total),
            ))
            index += 1

    logger.info(
        f"Generated league schedule for tournament {tournament_id}: "
        f"{len(matches)} matches across {len(labelled)} group(s)"
    )
    return matches


# =============================================================================
# Bracket (single elimination)
# =============================================================================

def make_bracket_match(
    tournament_id: int,
    stage: MatchStage,
    round_name: str,
    team_a_id: Optional[int],
    team_b_id: Optional[int],
    match_date: datetime
) -> Match:
    """One bracket slot; a slot with a missing side is resolved as a bye."""
    match = Match(
        tournament_id=tournament_id,
        stage=stage,
        round_name=round_name,
        team_a_id=team_a_id,
        team_b_id=team_b_id,
        match_date=match_date,
    )
    if team_a_id is None or team_b_id is None:
        match.status = MatchStatus.DONE
        match.winner_team_id = team_a_id if team_a_id is not None else team_b_id
    return match


def generate_bracket(
    tournament_id: int,
    team_ids: Sequence[int],
    stage: MatchStage,
    base_date: datetime
) -> List[Match]:
    """
    Single-elimination round.

    Pairs team_ids[2i] with team_ids[2i + 1] over next_power_of_two(N) / 2
    matches, spaced BRACKET_INTERVAL_MINUTES apart from base_date.
    """
    require_enough_teams(team_ids)

    round_size = next_power_of_two(len(team_ids))
    round_name = bracket_round_name(round_size)
    interval = timedelta(minutes=settings.BRACKET_INTERVAL_MINUTES)

    slots = list(team_ids) + [None] * (round_size - len(team_ids))
    matches = [
        make_bracket_match(
            tournament_id,
            stage,
            round_name,
            slots[2 * i],
            slots[2 * i + 1],
            base_date + interval * i,
        )
        for i in range(round_size // 2)
    ]

    byes = sum(1 for m in matches if m.status == MatchStatus.DONE)
    logger.info(
        f"Generated {round_name} bracket for tournament {tournament_id}: "
        f"{len(matches)} matches ({byes} byes)"
    )
    return matches
