"""Vote administration, ballot casting and weighted tabulation."""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy.orm import Session

from assembly.core.errors import NotFoundError, ValidationError
from assembly.db.store import EntityStore, describe_holder, serializable_transaction, store_errors
from assembly.models import Assembly, Ballot, Vote, VoteOption, VoteStatus
from assembly.obs import BALLOTS_CAST
from assembly.services.change_events import ChangeEventPublisher, ChangeTopic

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")


@dataclass(slots=True)
class OptionTally:
    option_id: str
    label: str
    count: int = 0
    weight: Decimal = _ZERO
    percentage: Decimal = _ZERO


@dataclass(slots=True)
class VoteTally:
    vote_id: str
    title: str
    status: VoteStatus
    total_weight: Decimal = _ZERO
    options: list[OptionTally] = field(default_factory=list)
    ignored_ballots: int = 0


class VoteTabulator:
    """Casts ballots and aggregates them using the weight recorded at cast time."""

    def __init__(self, session: Session, *, publisher: ChangeEventPublisher | None = None) -> None:
        self._session = session
        self._store = EntityStore(session)
        self._publisher = publisher or ChangeEventPublisher()

    def create_vote(self, *, assembly_id: str, title: str, options: Sequence[str]) -> Vote:
        labels = [label.strip() for label in options]
        if not title.strip():
            raise ValidationError("A vote needs a title")
        if len(labels) < 2 or any(not label for label in labels):
            raise ValidationError("A vote needs at least two non-empty options")
        if len({label.lower() for label in labels}) != len(labels):
            raise ValidationError("Vote options must be distinct")

        with serializable_transaction(self._session):
            if self._session.get(Assembly, assembly_id) is None:
                raise NotFoundError(f"Assembly '{assembly_id}' was not found")
            vote = Vote(assembly_id=assembly_id, title=title.strip(), status=VoteStatus.OPEN)
            vote.options = [VoteOption(label=label, position=index) for index, label in enumerate(labels)]
            self._session.add(vote)
            self._session.flush()

        self._session.refresh(vote)
        return vote

    def close_vote(self, vote_id: str) -> Vote:
        with serializable_transaction(self._session):
            vote = self._require_vote(vote_id)
            if vote.status is not VoteStatus.OPEN:
                raise ValidationError("Vote is already closed")
            vote.status = VoteStatus.CLOSED
            self._session.flush()
        return vote

    def cast(self, *, vote_id: str, unit_id: str, option_id: str) -> Ballot:
        """Record the unit's ballot, weighted by its coefficient right now."""

        with serializable_transaction(self._session):
            vote = self._require_vote(vote_id)
            unit = self._store.get_unit(unit_id)
            if unit is None:
                raise NotFoundError(f"Unit '{unit_id}' was not found")
            if vote.status is not VoteStatus.OPEN:
                raise ValidationError("Vote is not open")
            if option_id not in {option.id for option in vote.options}:
                raise ValidationError("Option does not belong to this vote")
            if unit.assembly_id != vote.assembly_id:
                raise ValidationError("Unit does not belong to the vote's assembly")

            holder_name, _ = describe_holder(unit.rights_holder, self._session)
            ballot = self._store.create_ballot(
                vote_id=vote_id,
                option_id=option_id,
                unit_id=unit_id,
                weight=Decimal(unit.coefficient),
                cast_by=holder_name,
            )
            assembly_id = vote.assembly_id

        BALLOTS_CAST.inc()
        self._publisher.publish(assembly_id=assembly_id, topic=ChangeTopic.BALLOT, kind="cast")
        return ballot

    def tabulate(self, vote_id: str) -> VoteTally:
        with store_errors():
            vote = self._require_vote(vote_id)
            ballots = self._store.list_ballots(vote_id)

        tally = VoteTally(vote_id=vote.id, title=vote.title, status=vote.status)
        by_option: dict[str, OptionTally] = {}
        for option in vote.options:
            entry = OptionTally(option_id=option.id, label=option.label)
            by_option[option.id] = entry
            tally.options.append(entry)

        for ballot in ballots:
            entry = by_option.get(ballot.option_id)
            if entry is None:
                tally.ignored_ballots += 1
                logger.warning(
                    "ignoring ballot for unknown option",
                    extra={"vote_id": vote_id, "ballot_id": ballot.id, "option_id": ballot.option_id},
                )
                continue
            weight = Decimal(ballot.weight)
            entry.count += 1
            entry.weight += weight
            tally.total_weight += weight

        if tally.total_weight > 0:
            for entry in tally.options:
                entry.percentage = entry.weight / tally.total_weight * 100
        return tally

    def list_votes(self, assembly_id: str) -> Sequence[Vote]:
        with store_errors():
            return self._store.list_votes(assembly_id)

    def _require_vote(self, vote_id: str) -> Vote:
        vote = self._store.get_vote(vote_id)
        if vote is None:
            raise NotFoundError(f"Vote '{vote_id}' was not found")
        return vote


__all__ = ["OptionTally", "VoteTabulator", "VoteTally"]
