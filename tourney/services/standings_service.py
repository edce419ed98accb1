"""
Standings Calculator

Aggregates finished league matches into per-team records and ranks them.

Ranking order: points DESC, goal difference DESC, goals for DESC.
Ties beyond these keys keep roster order (stable sort); qualifier selection
depends on this being reproducible.
"""
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence

from tourney.domain import Match, MatchStage, MatchStatus

WIN_POINTS = 3
DRAW_POINTS = 1
DEFAULT_GROUP_NAME = "리그"


@dataclass
class StandingRow:
    team_id: int
    played: int = 0
    won: int = 0
    drawn: int = 0
    lost: int = 0
    goals_for: int = 0
    goals_against: int = 0
    points: int = 0
    recent_form: List[str] = field(default_factory=list)

    @property
    def goal_diff(self) -> int:
        return self.goals_for - self.goals_against

    def record(self, scored: int, conceded: int) -> None:
        self.played += 1
        self.goals_for += scored
        self.goals_against += conceded
        if scored > conceded:
            self.won += 1
            self.points += WIN_POINTS
            self.recent_form.append("W")
        elif scored < conceded:
            self.lost += 1
            self.recent_form.append("L")
        else:
            self.drawn += 1
            self.points += DRAW_POINTS
            self.recent_form.append("D")


def ranking_key(row: StandingRow):
    return (-row.points, -row.goal_diff, -row.goals_for)


def is_scored(match: Match) -> bool:
    return (
        match.status == MatchStatus.DONE
        and match.team_a_score is not None
        and match.team_b_score is not None
    )


def compute_standings(matches: Iterable[Match], team_ids: Sequence[int]) -> List[StandingRow]:
    """
    Ranked table for team_ids.

    Only DONE matches with both scores count, and only matches whose two
    teams both belong to team_ids.
    """
    table: Dict[int, StandingRow] = OrderedDict((tid, StandingRow(team_id=tid)) for tid in team_ids)

    for match in matches:
        if not is_scored(match):
            continue
        if match.team_a_id not in table or match.team_b_id not in table:
            continue
        table[match.team_a_id].record(match.team_a_score, match.team_b_score)
        table[match.team_b_id].record(match.team_b_score, match.team_a_score)

    return sorted(table.values(), key=ranking_key)


def group_league_matches(matches: Iterable[Match]) -> "OrderedDict[str, List[int]]":
    """
    Group label -> team ids (first-seen order) for LEAGUE matches.

    Groups come back in sorted label order ("A조", "B조", ...).
    """
    groups: Dict[str, List[int]] = {}
    for match in matches:
        if match.stage != MatchStage.LEAGUE:
            continue
        members = groups.setdefault(match.round_name or DEFAULT_GROUP_NAME, [])
        for team_id in (match.team_a_id, match.team_b_id):
            if team_id is not None and team_id not in members:
                members.append(team_id)
    return OrderedDict((name, groups[name]) for name in sorted(groups))


def select_qualifiers(matches: Sequence[Match], per_group: int) -> List[int]:
    """Top per_group teams of every group, concatenated group by group."""
    qualifiers: List[int] = []
    for name, members in group_league_matches(matches).items():
        group_matches = [m for m in matches if (m.round_name or DEFAULT_GROUP_NAME) == name]
        ranked = compute_standings(group_matches, members)
        qualifiers.extend(row.team_id for row in ranked[:per_group])
    return qualifiers
