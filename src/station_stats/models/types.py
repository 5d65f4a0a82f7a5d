"""Pydantic models for measurement input.

Measurements arrive from the evaluation pipeline with camelCase keys.
Both the wire names and the Python field names are accepted.
"""

from pydantic import BaseModel, ConfigDict, Field

TASKING_OK = "OK"
CONSENSUS_MAJORITY = "MAJORITY_RESULT"


class Measurement(BaseModel):
    """A single evaluated station measurement.

    Only the fields used for platform statistics are modelled;
    anything else in the payload is ignored.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    station_id: str = Field(alias="stationId", min_length=1)
    participant_address: str = Field(alias="participantAddress", min_length=1)
    inet_group: str | None = None
    tasking_evaluation: str = Field(alias="taskingEvaluation")
    consensus_evaluation: str | None = Field(default=None, alias="consensusEvaluation")

    @property
    def is_accepted(self) -> bool:
        """Tasked in the round and agreed with the majority."""
        return (
            self.tasking_evaluation == TASKING_OK
            and self.consensus_evaluation == CONSENSUS_MAJORITY
        )

    @property
    def was_evaluated(self) -> bool:
        """Reached consensus evaluation (was not dropped before tasking)."""
        return self.consensus_evaluation is not None
