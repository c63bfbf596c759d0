"""
Pydantic models for phase, cycle and session metrics.

Statistics that cannot be computed (for example a phase that ended before any
valid reading arrived) are None rather than NaN or zero.
"""

from pydantic import BaseModel, Field

from ihht.constants import PhaseType


class MaskLiftRecovery(BaseModel):
    """SpO2 response to a single mask lift."""

    timestamp: int = Field(description="Mask lift time (epoch ms)")
    spo2_at_lift: float | None = Field(default=None, description="SpO2 at lift (%)")
    heart_rate_at_lift: float | None = Field(default=None, description="HR at lift")
    escalated: bool = Field(default=False, description="2-breath lift")
    spo2_recovery_10s: float | None = Field(
        default=None, description="SpO2 change 10 s after the lift"
    )
    spo2_recovery_15s: float | None = Field(
        default=None, description="SpO2 change 15 s after the lift"
    )


class PhaseMetrics(BaseModel):
    """Descriptive statistics for one closed phase."""

    phase_type: PhaseType = Field(description="ALTITUDE or RECOVERY")
    cycle_number: int = Field(ge=1, description="1-based cycle index")
    altitude_level: int | None = Field(default=None, description="Dial level")
    start_time: int = Field(
        description="Phase start (epoch ms), moved forward by paused time"
    )
    end_time: int = Field(description="Phase end (epoch ms)")
    duration_seconds: int = Field(
        ge=0, description="Phase duration excluding paused time (seconds)"
    )
    paused_seconds: int = Field(default=0, ge=0, description="Time spent paused")
    target_min_spo2: float = Field(description="Target range lower bound (%)")
    target_max_spo2: float = Field(description="Target range upper bound (%)")
    spo2_readings_count: int = Field(ge=0, description="Valid SpO2 readings")

    # SpO2
    min_spo2: float | None = Field(default=None, description="Minimum SpO2 (%)")
    max_spo2: float | None = Field(default=None, description="Maximum SpO2 (%)")
    avg_spo2: float | None = Field(default=None, description="Average SpO2 (%)")
    spo2_volatility_total: float | None = Field(
        default=None, description="Population std of SpO2"
    )
    spo2_volatility_in_zone: float | None = Field(
        default=None, description="Volatility of readings inside 85-90%"
    )
    spo2_volatility_out_of_zone: float | None = Field(
        default=None, description="Volatility of readings outside 85-90%"
    )

    # Heart rate
    min_heart_rate: float | None = Field(default=None, description="Min HR (bpm)")
    max_heart_rate: float | None = Field(default=None, description="Peak HR (bpm)")
    avg_heart_rate: float | None = Field(default=None, description="Average HR (bpm)")
    heart_rate_at_end: float | None = Field(default=None, description="Last HR (bpm)")

    # Altitude phase
    mask_lift_count: int = Field(default=0, ge=0, description="Mask lift instructions")
    escalated_mask_lift_count: int = Field(default=0, ge=0)
    emergency_count: int = Field(default=0, ge=0)
    time_in_therapeutic_zone: float | None = Field(
        default=None, description="Seconds with SpO2 in 85-90%"
    )
    time_to_therapeutic_zone: int | None = Field(
        default=None, description="Seconds until SpO2 first fell below 90%"
    )
    time_below_83: float | None = Field(
        default=None, description="Seconds with SpO2 below 83%"
    )
    therapeutic_efficiency: float | None = Field(
        default=None, description="Zone time / phase duration"
    )

    # Recovery phase
    time_to_95: int | None = Field(
        default=None, description="Seconds until SpO2 first reached 95%"
    )
    time_above_95: int | None = Field(
        default=None, description="Accumulated seconds at or above 95%"
    )
    spo2_recovery_slope: float | None = Field(
        default=None, description="Regression slope over first 30 samples"
    )
    hr_recovery_60s: float | None = Field(
        default=None, description="HR drop ~60 s into recovery (bpm)"
    )
    end_reason: str | None = Field(default=None, description="Why the phase ended")

    @property
    def is_available(self) -> bool:
        """Whether any valid SpO2 reading was recorded."""
        return self.spo2_readings_count > 0


class CycleMetrics(BaseModel):
    """Combined altitude and recovery metrics for one cycle."""

    cycle_number: int = Field(ge=1)
    altitude_level: int | None = None
    desaturation_time: int | None = Field(
        default=None, description="Seconds to reach the therapeutic zone"
    )
    time_in_zone: float | None = None
    time_below_83: float | None = None
    min_spo2: float | None = None
    spo2_volatility_total: float | None = None
    peak_heart_rate_hypoxic: float | None = None
    recovery_time_to_95: int | None = None
    hr_recovery_60s: float | None = None
    altitude_duration: int = 0
    recovery_duration: int | None = None
    cycle_adaptation_score: int = Field(ge=0, le=100)


class SessionMetrics(BaseModel):
    """Rollup for a whole training session."""

    session_id: str = Field(description="Session identifier")
    start_time: int = Field(description="Session start (epoch ms)")
    end_time: int = Field(description="Session end (epoch ms)")
    duration_seconds: int = Field(ge=0)
    end_reason: str = Field(default="completed")
    cycle_count: int = Field(ge=0, description="Completed cycles")
    phase_count: int = Field(ge=0, description="Closed phases")
    total_readings: int = Field(ge=0, description="Valid SpO2 readings")

    avg_spo2: float | None = None
    min_spo2: float | None = None
    max_spo2: float | None = None
    avg_heart_rate: float | None = None
    min_heart_rate: float | None = None
    max_heart_rate: float | None = None

    total_mask_lifts: int = Field(default=0, ge=0)
    total_escalated_mask_lifts: int = Field(default=0, ge=0)
    total_emergencies: int = Field(default=0, ge=0)
    total_time_in_zone: float = Field(default=0.0, ge=0)

    # Hypoxic efficiency
    avg_desaturation_time: float | None = None
    min_desaturation_time: int | None = None
    max_desaturation_time: int | None = None
    desaturation_consistency: float | None = None

    # Recovery dynamics
    avg_recovery_time: float | None = None
    min_recovery_time: int | None = None
    max_recovery_time: int | None = None
    recovery_consistency: float | None = None

    # Stability and adaptation
    hypoxic_stability_score: int = Field(default=100, ge=0, le=100)
    avg_mask_lift_recovery_10s: float | None = None
    avg_mask_lift_recovery_15s: float | None = None
    first_cycle_score: int | None = None
    last_cycle_score: int | None = None
    intra_session_improvement: int | None = None
    session_adaptation_index: float | None = None

    starting_altitude_level: int | None = None
    ending_altitude_level: int | None = None
    altitude_progression: list[int] = Field(default_factory=list)
    cycles: list[CycleMetrics] = Field(default_factory=list)
