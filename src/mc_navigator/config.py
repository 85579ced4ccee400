"""Runtime configuration for MC Navigator."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven runtime settings."""

    model_config = SettingsConfigDict(env_prefix="MC_NAVIGATOR_", env_file=".env", extra="ignore")

    app_name: str = "mc-navigator"
    log_level: str = "INFO"
    structure_dir: str = Field(
        default="bots",
        description="Root directory holding one <agent>/house.json structure file per agent.",
    )
    block_place_delay_ms: int = Field(default=0, ge=0, description="Pause between consecutive block placements.")

    supervisor_interval_seconds: float = 0.5
    stuck_threshold_blocks: float = 0.5
    stuck_max_samples: int = 20
    stall_nudge_seconds: float = 1.2

    direct_timeout_seconds: float = 30.0
    segment_timeout_seconds: float = 10.0
    waypoint_distance: int = 30
    milestone_radius: int = 80
    milestone_max_drop: int = 8
    max_milestones: int = 60
    max_segment_stuck: int = 4
    max_no_progress_milestones: int = 5
    min_milestone_progress: float = 10.0
    max_aquatic_deferrals: int = 3

    explorer_node_budget: int = 12_000
    explorer_max_radius: int = 80
    explorer_yield_every: int = 256

    surface_scan_top: int = 320
    vertical_extra_steps: int = 10
    vertical_max_no_progress: int = 10
    cave_exit_depth: int = 80
    cave_exit_node_budget: int = 4_000
    cave_exit_timeout_seconds: float = 30.0
    descend_timeout_seconds: float = 20.0
    door_approach_timeout_seconds: float = 10.0

    aquatic_phase1_radius: int = 25
    aquatic_phase1_timeout_seconds: float = 30.0
    aquatic_max_attempts: int = 25
    aquatic_time_budget_seconds: float = 45.0
    shore_radius: int = 15


settings = Settings()
