"""Pulse oximeter reading model."""

from pydantic import BaseModel, ConfigDict, Field


class Reading(BaseModel):
    """
    A single pulse oximeter sample.

    Readings are accepted as reported. A peripheral may send SpO2 of 0 or
    nothing while the finger clip settles, so use has_valid_spo2 and
    has_valid_heart_rate to filter before computing statistics.
    """

    model_config = ConfigDict(frozen=True)

    spo2: float | None = Field(default=None, description="Oxygen saturation (%)")
    heart_rate: float | None = Field(default=None, description="Heart rate (bpm)")
    timestamp: int = Field(ge=0, description="Epoch milliseconds")

    @property
    def has_valid_spo2(self) -> bool:
        """SpO2 is present and within (0, 100]."""
        return self.spo2 is not None and 0 < self.spo2 <= 100

    @property
    def has_valid_heart_rate(self) -> bool:
        return self.heart_rate is not None and self.heart_rate > 0
