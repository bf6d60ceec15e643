"""Provider interfaces for rosters and learned strengths."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from virtuals.simulation.form import FormRecord
from virtuals.simulation.roster import Participant


@dataclass
class ParticipantRow:
    """Canonical roster row."""

    name: str
    region: str  # display name, e.g. 'Greater Accra'
    active: bool = True

    def to_participant(self) -> Participant:
        return Participant(self.name.strip(), self.region.strip())


class RosterProvider(ABC):
    """Supplies the participant pool for quiz events."""

    @abstractmethod
    async def fetch_participants(self) -> list[ParticipantRow]:
        """
        Fetch every active participant.

        Returns:
            List of ParticipantRow objects (possibly empty)
        """
        pass


class StrengthProvider(ABC):
    """Supplies the learned form table refreshed by the statistics side."""

    @abstractmethod
    async def fetch_form(self) -> dict[str, FormRecord]:
        """
        Fetch learned form keyed by participant name.

        Returns:
            Mapping of name to FormRecord; participants without a record
            are simulated as unranked
        """
        pass
