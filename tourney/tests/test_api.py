"""
HTTP API tests.

The app runs in-process through httpx's ASGITransport with get_gateway
overridden, so every request shares one InMemoryGateway.
"""
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from tourney.config.feature_flags import FeatureFlags
from tourney.domain import Account, ParticipationStatus, Team, TournamentTeam
from tourney.main import app
from tourney.rbac import create_access_token
from tourney.routes.dependencies import get_gateway


def auth(user_id: int) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest_asyncio.fixture
async def client(gateway):
    async def override_gateway():
        return gateway

    app.dependency_overrides[get_gateway] = override_gateway
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def people(gateway):
    """A manager, a bettor and four team leaders with their teams."""
    manager = await gateway.add_account(Account(name="manager", points=1000))
    bettor = await gateway.add_account(Account(name="bettor", points=500))
    leaders, teams = [], []
    for i in range(4):
        leader = await gateway.add_account(Account(name=f"leader {i}", points=1000))
        teams.append(await gateway.add_team(Team(name=f"Team {i}", sport_type="soccer", leader_id=leader.id)))
        leaders.append(leader)
    return manager, bettor, leaders, teams


async def create_tournament(client, manager_id, **fields) -> dict:
    body = {"name": "Spring Cup", "sport": "soccer", **fields}
    response = await client.post("/api/tournaments", json=body, headers=auth(manager_id))
    assert response.status_code == 201
    return response.json()["data"]


# =============================================================================
# Envelope and auth
# =============================================================================

class TestEnvelope:

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        response = await client.post("/api/tournaments", json={"name": "Cup", "sport": "soccer"})
        assert response.status_code == 401
        assert response.json()["code"] == "AUTH_REQUIRED"

    @pytest.mark.asyncio
    async def test_invalid_token(self, client):
        response = await client.post(
            "/api/tournaments",
            json={"name": "Cup", "sport": "soccer"},
            headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401
        assert response.json()["code"] == "AUTH_INVALID"

    @pytest.mark.asyncio
    async def test_request_validation_envelope(self, client):
        response = await client.post("/api/tournaments", json={"sport": "soccer"}, headers=auth(1))
        body = response.json()
        assert response.status_code == 422
        assert (body["success"], body["code"]) == (False, "INVALID_INPUT")
        assert body["details"]["errors"]

    @pytest.mark.asyncio
    async def test_engine_validation_envelope(self, client):
        response = await client.post(
            "/api/tournaments",
            json={"name": "Cup", "sport": "soccer", "format": "LEAGUE", "playoff_teams": 4},
            headers=auth(1)
        )
        body = response.json()
        assert response.status_code == 400
        assert body == {
            "success": False,
            "error": "Validation Error",
            "message": body["message"],
            "code": "INVALID_INPUT",
            "details": {"format": "LEAGUE"},
        }

    @pytest.mark.asyncio
    async def test_not_found(self, client):
        response = await client.get("/api/tournaments/999")
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_non_manager_forbidden(self, client, people):
        manager, bettor, _, _ = people
        tournament = await create_tournament(client, manager.id)

        response = await client.post(f"/api/tournaments/{tournament['id']}/start", headers=auth(bettor.id))

        assert response.status_code == 403
        assert response.json()["code"] == "NOT_MANAGER"

    @pytest.mark.asyncio
    async def test_betting_flag_off(self, client, people, monkeypatch):
        _, bettor, _, _ = people
        monkeypatch.setattr(FeatureFlags, "FEATURE_BETTING_MARKET", False)

        response = await client.post(
            "/api/predictions",
            json={"match_id": 1, "predicted_team_id": 1, "bet_amount": 10},
            headers=auth(bettor.id)
        )

        assert response.status_code == 403
        assert response.json()["code"] == "FEATURE_DISABLED"


# =============================================================================
# End to end
# =============================================================================

class TestTournamentFlow:

    @pytest.mark.asyncio
    async def test_registration_to_champion(self, client, people):
        manager, bettor, leaders, teams = people
        tournament = await create_tournament(client, manager.id)
        base = f"/api/tournaments/{tournament['id']}"
        assert tournament["status"] == "RECRUITING"

        for leader, team in zip(leaders, teams):
            joined = await client.post(f"{base}/join", json={"team_id": team.id}, headers=auth(leader.id))
            assert joined.status_code == 201
            assert joined.json()["data"]["status"] == "PENDING"
            approved = await client.post(f"{base}/participants/{team.id}/approve", headers=auth(manager.id))
            assert approved.json()["data"]["status"] == "APPROVED"

        participants = (await client.get(f"{base}/participants")).json()["data"]
        assert len(participants) == 4

        started = (await client.post(f"{base}/start", headers=auth(manager.id))).json()["data"]
        assert started["tournament"]["status"] == "ONGOING"
        semis = started["matches"]
        assert [m["round_name"] for m in semis] == ["준결승", "준결승"]

        # Betting on the first semifinal
        semi = semis[0]
        placed = await client.post(
            "/api/predictions",
            json={"match_id": semi["id"], "predicted_team_id": semi["team_a_id"], "bet_amount": 100},
            headers=auth(bettor.id)
        )
        assert placed.status_code == 201
        assert placed.json()["data"]["balance"] == 400

        odds = (await client.get(f"/api/matches/{semi['id']}/odds")).json()["data"]
        assert (odds["team_a_points"], odds["ratio_a"], odds["is_betting_open"]) == (100, 1.0, True)

        first = (await client.post(
            f"/api/matches/{semi['id']}/result",
            json={"team_a_score": 2, "team_b_score": 0},
            headers=auth(manager.id)
        )).json()["data"]
        assert first["settlement"]["paid_out"] == 100
        assert first["settlement"]["multiplier"] == 1.0

        again = await client.post(
            f"/api/matches/{semi['id']}/result",
            json={"team_a_score": 2, "team_b_score": 0},
            headers=auth(manager.id)
        )
        assert again.status_code == 409
        assert again.json()["code"] == "ALREADY_REPORTED"

        second = (await client.post(
            f"/api/matches/{semis[1]['id']}/result",
            json={"team_a_score": 1, "team_b_score": 1, "winner_team_id": semis[1]["team_b_id"]},
            headers=auth(manager.id)
        )).json()["data"]
        assert second["advancement"]["next_round_name"] == "결승"
        [final] = second["advancement"]["created_matches"]

        last = (await client.post(
            f"/api/matches/{final['id']}/result",
            json={"team_a_score": 0, "team_b_score": 3},
            headers=auth(manager.id)
        )).json()["data"]
        assert last["advancement"]["champion_team_id"] == final["team_b_id"]

        advanced = (await client.post(
            f"{base}/rounds/advance", json={"round_name": "준결승"}, headers=auth(manager.id)
        )).json()["data"]
        assert advanced["skipped_existing_round"] is True

        bracket = (await client.get(f"{base}/bracket")).json()["data"]
        assert [r["round_name"] for r in bracket] == ["준결승", "결승"]

        detail = (await client.get(base)).json()["data"]
        assert detail["status"] == "ENDED"
        assert detail["champion"]["id"] == final["team_b_id"]
        assert len(detail["teams"]) == 4

        mine = (await client.get("/api/predictions/me", headers=auth(bettor.id))).json()["data"]
        assert [(p["status"], p["payout"]) for p in mine] == [("won", 100)]

        standings = (await client.get(f"{base}/standings")).json()["data"]
        assert standings[0]["group_name"] == "리그"
        assert len(standings[0]["standings"]) == 4

    @pytest.mark.asyncio
    async def test_manual_bracket(self, client, gateway, people):
        manager, _, _, teams = people
        tournament = await create_tournament(client, manager.id)
        for team in teams[:3]:
            await gateway.add_participant(TournamentTeam(
                tournament_id=tournament["id"], team_id=team.id, status=ParticipationStatus.APPROVED
            ))

        response = await client.post(
            f"/api/tournaments/{tournament['id']}/manual-bracket",
            json={"pairings": [
                {"team_a_id": teams[0].id, "team_b_id": teams[1].id},
                {"team_a_id": teams[2].id},
            ]},
            headers=auth(manager.id)
        )

        data = response.json()["data"]
        assert response.status_code == 200
        assert data["tournament"]["bracket_generation"] == "manual"
        assert data["matches"][1]["winner_team_id"] == teams[2].id

    @pytest.mark.asyncio
    async def test_list_and_update(self, client, people):
        manager, _, _, _ = people
        tournament = await create_tournament(client, manager.id, format="LEAGUE")

        patched = await client.patch(
            f"/api/tournaments/{tournament['id']}",
            json={"description": "Saturday league", "group_count": 2},
            headers=auth(manager.id)
        )
        assert patched.json()["data"]["group_count"] == 2

        listed = (await client.get("/api/tournaments", params={"status": "RECRUITING"})).json()
        assert listed["page"] == 1
        assert [t["id"] for t in listed["data"]] == [tournament["id"]]
        assert listed["data"][0]["approved_count"] == 0

    @pytest.mark.asyncio
    async def test_offset_dates_accepted(self, client, gateway, people):
        manager, _, _, teams = people
        tournament = await create_tournament(
            client, manager.id, format="LEAGUE",
            start_date="2030-03-10T09:00:00Z", end_date="2030-03-20T09:00:00Z"
        )
        base = f"/api/tournaments/{tournament['id']}"
        assert tournament["start_date"].startswith("2030-03-")
        assert not tournament["start_date"].endswith("Z")
        for team in teams:
            await gateway.add_participant(TournamentTeam(
                tournament_id=tournament["id"], team_id=team.id, status=ParticipationStatus.APPROVED
            ))

        patched = await client.patch(
            base, json={"end_date": "2030-03-25T18:00:00+09:00"}, headers=auth(manager.id)
        )
        assert patched.status_code == 200

        started = await client.post(f"{base}/start", headers=auth(manager.id))
        assert started.status_code == 200
        assert len(started.json()["data"]["matches"]) == 6

    @pytest.mark.asyncio
    async def test_betting_board_and_match_detail(self, client, gateway, people):
        manager, bettor, _, teams = people
        tournament = await create_tournament(client, manager.id)
        base = f"/api/tournaments/{tournament['id']}"
        for team in teams:
            await gateway.add_participant(TournamentTeam(
                tournament_id=tournament["id"], team_id=team.id, status=ParticipationStatus.APPROVED
            ))
        semis = (await client.post(f"{base}/start", headers=auth(manager.id))).json()["data"]["matches"]
        await client.post(
            "/api/predictions",
            json={"match_id": semis[0]["id"], "predicted_team_id": semis[0]["team_a_id"], "bet_amount": 50},
            headers=auth(bettor.id)
        )

        board = await client.get("/api/predictions/matches", headers=auth(bettor.id))
        assert board.status_code == 200
        rows = board.json()["data"]
        assert [row["id"] for row in rows] == [m["id"] for m in semis]
        assert rows[0]["user_bet"] == {"predicted_team_id": semis[0]["team_a_id"], "bet_amount": 50}
        assert rows[0]["team_a_percent"] == 100
        assert rows[1]["user_bet"] is None
        assert (await client.get("/api/predictions/matches")).status_code == 401

        detail = (await client.get(f"{base}/matches/{semis[0]['id']}")).json()["data"]
        assert detail["tournament_name"] == "Spring Cup"
        assert detail["team_a"]["id"] == semis[0]["team_a_id"]
        assert detail["prediction_count"] == 1
        assert detail["odds"]["team_a_points"] == 50

        missing = await client.get(f"{base}/matches/999")
        assert missing.status_code == 404
