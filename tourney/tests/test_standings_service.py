"""
Standings calculator tests.
"""
from tourney.domain import Match, MatchStage, MatchStatus
from tourney.services.standings_service import (
    compute_standings, group_league_matches, select_qualifiers,
)

A, B, C, D = 1, 2, 3, 4


def played(team_a, team_b, score_a, score_b, round_name="League Round"):
    return Match(
        tournament_id=1,
        stage=MatchStage.LEAGUE,
        round_name=round_name,
        team_a_id=team_a,
        team_b_id=team_b,
        team_a_score=score_a,
        team_b_score=score_b,
        status=MatchStatus.DONE,
    )


def upcoming(team_a, team_b, round_name="League Round"):
    return Match(
        tournament_id=1,
        stage=MatchStage.LEAGUE,
        round_name=round_name,
        team_a_id=team_a,
        team_b_id=team_b,
    )


class TestComputeStandings:

    def test_points_and_goal_difference(self):
        matches = [
            played(A, C, 2, 0),
            played(A, D, 1, 0),
            played(B, C, 1, 0),
            played(B, D, 1, 1),
        ]
        table = compute_standings(matches, [A, B, C, D])

        assert [row.team_id for row in table] == [A, B, D, C]
        a, b = table[0], table[1]
        assert (a.won, a.drawn, a.lost, a.points, a.goal_diff) == (2, 0, 0, 6, 3)
        assert (b.won, b.drawn, b.lost, b.points, b.goal_diff) == (1, 1, 0, 4, 1)

    def test_goals_for_breaks_tie(self):
        # Both on 3 points and +1; A scored more
        matches = [played(A, C, 3, 2), played(B, D, 1, 0)]
        table = compute_standings(matches, [B, A, C, D])
        assert [row.team_id for row in table][:2] == [A, B]

    def test_full_tie_keeps_roster_order(self):
        matches = [played(A, B, 1, 1), played(C, D, 1, 1)]
        table = compute_standings(matches, [D, C, B, A])
        assert [row.team_id for row in table] == [D, C, B, A]

    def test_unfinished_matches_are_ignored(self):
        no_score = played(A, B, None, None)
        table = compute_standings([upcoming(A, B), no_score], [A, B])
        assert all(row.played == 0 and row.points == 0 for row in table)

    def test_matches_outside_roster_are_ignored(self):
        table = compute_standings([played(A, C, 5, 0), played(A, B, 0, 1)], [A, B])
        a = next(row for row in table if row.team_id == A)
        assert (a.played, a.goals_for, a.goals_against) == (1, 0, 1)

    def test_recent_form(self):
        matches = [played(A, B, 1, 0), played(A, C, 0, 0), played(D, A, 2, 1)]
        table = compute_standings(matches, [A, B, C, D])
        a = next(row for row in table if row.team_id == A)
        assert a.recent_form == ["W", "D", "L"]
        assert a.goal_diff == 0

    def test_empty_roster_rows(self):
        table = compute_standings([], [A, B])
        assert [row.points for row in table] == [0, 0]


class TestGrouping:

    def test_groups_sorted_by_label_with_first_seen_members(self):
        matches = [
            upcoming(C, D, "B조"),
            upcoming(A, B, "A조"),
            upcoming(D, C, "B조"),
        ]
        groups = group_league_matches(matches)
        assert list(groups) == ["A조", "B조"]
        assert groups["B조"] == [C, D]

    def test_playoff_matches_are_not_grouped(self):
        knockout = upcoming(A, B, "결승")
        knockout.stage = MatchStage.TOURNAMENT
        assert list(group_league_matches([knockout])) == []

    def test_qualifiers_concatenated_group_by_group(self):
        E, F = 5, 6
        matches = [
            played(A, C, 0, 1, "A조"),
            played(A, E, 2, 0, "A조"),
            played(C, E, 1, 1, "A조"),
            played(B, D, 0, 3, "B조"),
            played(B, F, 1, 0, "B조"),
            played(D, F, 2, 2, "B조"),
        ]
        # A조: C 4pts, A 3pts, E 1pt / B조: D 4pts, B 3pts, F 1pt
        assert select_qualifiers(matches, 2) == [C, A, D, B]
        assert select_qualifiers(matches, 1) == [C, D]
        assert select_qualifiers(matches, 3) == [C, A, E, D, B, F]
