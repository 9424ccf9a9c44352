"""Vote administration, ballot and results endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from assembly.api.deps import get_db_session, get_publisher
from assembly.api.errors import service_errors
from assembly.schemas import BallotCreate, BallotRead, OptionResult, VoteCreate, VoteRead, VoteResults
from assembly.services.change_events import ChangeEventPublisher
from assembly.services.voting import OptionTally, VoteTabulator, VoteTally

router = APIRouter()


def _tabulator(
    session: Session = Depends(get_db_session),
    publisher: ChangeEventPublisher = Depends(get_publisher),
) -> VoteTabulator:
    return VoteTabulator(session, publisher=publisher)


def option_result(entry: OptionTally) -> OptionResult:
    return OptionResult(
        option_id=entry.option_id,
        option=entry.label,
        count=entry.count,
        weight=entry.weight,
        percentage=entry.percentage,
    )


def results_of(tally: VoteTally) -> VoteResults:
    return VoteResults(
        vote_id=tally.vote_id,
        title=tally.title,
        status=tally.status,
        total_weight=tally.total_weight,
        results=[option_result(entry) for entry in tally.options],
    )


@router.post("/votes", response_model=VoteRead, status_code=status.HTTP_201_CREATED)
def create_vote(payload: VoteCreate, tabulator: VoteTabulator = Depends(_tabulator)) -> VoteRead:
    with service_errors():
        vote = tabulator.create_vote(
            assembly_id=payload.assembly_id, title=payload.title, options=payload.options
        )
    return VoteRead.model_validate(vote)


@router.post("/votes/{vote_id}/close", response_model=VoteRead)
def close_vote(vote_id: str, tabulator: VoteTabulator = Depends(_tabulator)) -> VoteRead:
    with service_errors():
        vote = tabulator.close_vote(vote_id)
    return VoteRead.model_validate(vote)


@router.post("/votes/{vote_id}/ballots", response_model=BallotRead, status_code=status.HTTP_201_CREATED)
def cast_ballot(
    vote_id: str,
    payload: BallotCreate,
    tabulator: VoteTabulator = Depends(_tabulator),
) -> BallotRead:
    """Cast a unit's ballot; the weight is the unit's coefficient at this moment."""

    with service_errors():
        ballot = tabulator.cast(vote_id=vote_id, unit_id=payload.unit_id, option_id=payload.option_id)
    return BallotRead.model_validate(ballot)


@router.get("/votes/{vote_id}/results", response_model=VoteResults)
def vote_results(vote_id: str, tabulator: VoteTabulator = Depends(_tabulator)) -> VoteResults:
    with service_errors():
        tally = tabulator.tabulate(vote_id)
    return results_of(tally)


@router.get("/assemblies/{assembly_id}/votes", response_model=list[VoteRead])
def list_votes(assembly_id: str, tabulator: VoteTabulator = Depends(_tabulator)) -> list[VoteRead]:
    with service_errors():
        votes = tabulator.list_votes(assembly_id)
    return [VoteRead.model_validate(vote) for vote in votes]


__all__ = ["cast_ballot", "close_vote", "create_vote", "list_votes", "option_result", "results_of", "router", "vote_results"]
