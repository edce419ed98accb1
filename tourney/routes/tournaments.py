"""
tourney/routes/tournaments.py
Tournament setup, registration, lifecycle and read models.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from tourney.domain import TournamentStatus
from tourney.rbac import get_current_user_id
from tourney.routes.dependencies import (
    get_progression_service, get_tournament_service, require_feature,
)
from tourney.schemas.match import (
    AdvanceRequest, AdvancementResponse, MatchDetailResponse, MatchResponse, RoundResponse,
    ScheduleResponse,
)
from tourney.schemas.prediction import MatchOddsResponse
from tourney.schemas.tournament import (
    GroupStandingsResponse, JoinRequest, ManualBracketCreate, ParticipantResponse,
    StandingResponse, TeamResponse, TournamentCreate, TournamentDetailResponse,
    TournamentResponse, TournamentSummaryResponse, TournamentUpdate,
)
from tourney.services.progression_service import ProgressionService
from tourney.services.tournament_service import TournamentService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/tournaments", tags=["Tournaments"])


# ================= SETUP =================

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_tournament(
    data: TournamentCreate,
    user_id: int = Depends(get_current_user_id),
    service: TournamentService = Depends(get_tournament_service)
):
    """Create a RECRUITING tournament managed by the caller."""
    tournament = await service.create_tournament(manager_id=user_id, **data.model_dump())
    return {"success": True, "data": TournamentResponse.model_validate(tournament)}


@router.get("")
async def list_tournaments(
    status_filter: Optional[TournamentStatus] = Query(None, alias="status"),
    sport: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    service: TournamentService = Depends(get_tournament_service)
):
    """Newest first, PAGE_SIZE per page."""
    summaries = await service.list_tournaments(status=status_filter, sport=sport, page=page)
    data = [
        TournamentSummaryResponse(
            **TournamentResponse.model_validate(s.tournament).model_dump(),
            approved_count=s.approved_count
        )
        for s in summaries
    ]
    return {"success": True, "data": data, "page": page}


@router.get("/{tournament_id}")
async def get_tournament(
    tournament_id: int,
    service: TournamentService = Depends(get_tournament_service)
):
    detail = await service.get_tournament_detail(tournament_id)
    data = TournamentDetailResponse(
        **TournamentResponse.model_validate(detail.tournament).model_dump(),
        teams=[TeamResponse.model_validate(t) for t in detail.teams],
        champion=TeamResponse.model_validate(detail.champion) if detail.champion else None
    )
    return {"success": True, "data": data}


@router.patch("/{tournament_id}")
async def update_tournament(
    tournament_id: int,
    data: TournamentUpdate,
    user_id: int = Depends(get_current_user_id),
    service: TournamentService = Depends(get_tournament_service)
):
    tournament = await service.update_settings(
        tournament_id, user_id, data.model_dump(exclude_unset=True)
    )
    return {"success": True, "data": TournamentResponse.model_validate(tournament)}


# ================= REGISTRATION =================

@router.post("/{tournament_id}/join", status_code=status.HTTP_201_CREATED)
async def request_join(
    tournament_id: int,
    data: JoinRequest,
    user_id: int = Depends(get_current_user_id),
    service: TournamentService = Depends(get_tournament_service)
):
    participant = await service.request_join(tournament_id, data.team_id, user_id)
    return {"success": True, "data": ParticipantResponse.model_validate(participant)}


@router.get("/{tournament_id}/participants")
async def list_participants(
    tournament_id: int,
    status_filter: str = Query("APPROVED", alias="status", description="PENDING, APPROVED, REJECTED or ALL"),
    service: TournamentService = Depends(get_tournament_service)
):
    participants = await service.list_participants(tournament_id, status_filter)
    return {"success": True, "data": [ParticipantResponse.model_validate(p) for p in participants]}


@router.post("/{tournament_id}/participants/{team_id}/approve")
async def approve_participant(
    tournament_id: int,
    team_id: int,
    user_id: int = Depends(get_current_user_id),
    service: TournamentService = Depends(get_tournament_service)
):
    participant = await service.approve_participant(tournament_id, team_id, user_id)
    return {"success": True, "data": ParticipantResponse.model_validate(participant)}


@router.post("/{tournament_id}/participants/{team_id}/reject")
async def reject_participant(
    tournament_id: int,
    team_id: int,
    user_id: int = Depends(get_current_user_id),
    service: TournamentService = Depends(get_tournament_service)
):
    participant = await service.reject_participant(tournament_id, team_id, user_id)
    return {"success": True, "data": ParticipantResponse.model_validate(participant)}


# ================= LIFECYCLE =================

@router.post("/{tournament_id}/close-registration")
async def close_registration(
    tournament_id: int,
    user_id: int = Depends(get_current_user_id),
    service: ProgressionService = Depends(get_progression_service)
):
    tournament = await service.close_registration(tournament_id, user_id)
    return {"success": True, "data": TournamentResponse.model_validate(tournament)}


@router.post("/{tournament_id}/start")
async def start_tournament(
    tournament_id: int,
    user_id: int = Depends(get_current_user_id),
    service: ProgressionService = Depends(get_progression_service)
):
    """Generate the initial schedule from APPROVED teams and set ONGOING."""
    result = await service.start_tournament(tournament_id, user_id)
    return {"success": True, "data": ScheduleResponse.model_validate(result)}


@router.post(
    "/{tournament_id}/manual-bracket",
    dependencies=[Depends(require_feature("FEATURE_MANUAL_BRACKET"))]
)
async def create_manual_bracket(
    tournament_id: int,
    data: ManualBracketCreate,
    user_id: int = Depends(get_current_user_id),
    service: ProgressionService = Depends(get_progression_service)
):
    """
    Start the tournament with manager-chosen first-round pairings.
    - Feature flag FEATURE_MANUAL_BRACKET must be enabled
    """
    pairings = [(p.team_a_id, p.team_b_id) for p in data.pairings]
    result = await service.create_manual_bracket(tournament_id, pairings, user_id)
    return {"success": True, "data": ScheduleResponse.model_validate(result)}


@router.post("/{tournament_id}/playoff")
async def start_playoff(
    tournament_id: int,
    user_id: int = Depends(get_current_user_id),
    service: ProgressionService = Depends(get_progression_service)
):
    """HYBRID cutover from the finished league into the playoff bracket."""
    result = await service.start_playoff(tournament_id, user_id)
    return {"success": True, "data": ScheduleResponse.model_validate(result)}


@router.post("/{tournament_id}/complete")
async def complete_league(
    tournament_id: int,
    user_id: int = Depends(get_current_user_id),
    service: ProgressionService = Depends(get_progression_service)
):
    tournament = await service.complete_league(tournament_id, user_id)
    return {"success": True, "data": TournamentResponse.model_validate(tournament)}


@router.post("/{tournament_id}/rounds/advance")
async def advance_round(
    tournament_id: int,
    data: AdvanceRequest,
    user_id: int = Depends(get_current_user_id),
    service: ProgressionService = Depends(get_progression_service)
):
    """Re-run finalize-and-advance for one round; repeated calls change nothing."""
    result = await service.advance_round(tournament_id, data.stage, data.round_name, user_id)
    return {"success": True, "data": AdvancementResponse.model_validate(result)}


# ================= READ MODELS =================

@router.get("/{tournament_id}/standings")
async def get_standings(
    tournament_id: int,
    service: TournamentService = Depends(get_tournament_service)
):
    groups = await service.get_standings(tournament_id)
    data = [
        GroupStandingsResponse(
            group_name=name,
            standings=[StandingResponse.model_validate(row) for row in rows]
        )
        for name, rows in groups.items()
    ]
    return {"success": True, "data": data}


@router.get("/{tournament_id}/bracket")
async def get_bracket(
    tournament_id: int,
    service: TournamentService = Depends(get_tournament_service)
):
    rounds = await service.get_bracket(tournament_id)
    data = [
        RoundResponse(round_name=name, matches=[MatchResponse.model_validate(m) for m in matches])
        for name, matches in rounds.items()
    ]
    return {"success": True, "data": data}


@router.get("/{tournament_id}/league-matches")
async def get_league_matches(
    tournament_id: int,
    service: TournamentService = Depends(get_tournament_service)
):
    matches = await service.get_league_matches(tournament_id)
    return {"success": True, "data": [MatchResponse.model_validate(m) for m in matches]}


@router.get("/{tournament_id}/matches/{match_id}")
async def get_match_detail(
    tournament_id: int,
    match_id: int,
    service: TournamentService = Depends(get_tournament_service)
):
    """One match of this tournament with its teams and prediction totals."""
    detail = await service.get_match_detail(tournament_id, match_id)
    data = MatchDetailResponse(
        match=MatchResponse.model_validate(detail.match),
        tournament_name=detail.tournament.name,
        sport=detail.tournament.sport,
        team_a=TeamResponse.model_validate(detail.team_a) if detail.team_a else None,
        team_b=TeamResponse.model_validate(detail.team_b) if detail.team_b else None,
        prediction_count=detail.prediction_count,
        odds=MatchOddsResponse(**detail.odds.to_dict())
    )
    return {"success": True, "data": data}
