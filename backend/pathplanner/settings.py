from __future__ import annotations

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_graph_asset_path() -> str:
    # Keep converted map data in backend/out by default to avoid polluting source assets.
    return str(Path(__file__).resolve().parents[1] / "out" / "graph" / "data.json")


class Settings(BaseSettings):
    """Validated settings (env-driven), keeping config out of code for easy extension."""

    model_config = SettingsConfigDict(
        # Support both "repo root/.env" and "backend/.env" (local dev)
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    graph_asset_path: str = Field(default_factory=_default_graph_asset_path, alias="GRAPH_ASSET_PATH")

    out_dir: str = Field(default="out", alias="OUT_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Nearest-edge locator: an 11x11 sample window, zooming out by halves until the floor.
    locator_window_size: int = Field(default=11, ge=3, le=101, alias="LOCATOR_WINDOW_SIZE")
    locator_initial_scale: float = Field(default=200_000.0, gt=0.0, alias="LOCATOR_INITIAL_SCALE")
    locator_scale_floor: float = Field(default=50.0, gt=0.0, alias="LOCATOR_SCALE_FLOOR")
    locator_line_width_px: float = Field(default=1.0, gt=0.0, le=10.0, alias="LOCATOR_LINE_WIDTH_PX")
    locator_grid_bucket_deg: float = Field(default=0.01, gt=0.0, le=5.0, alias="LOCATOR_GRID_BUCKET_DEG")

    # Interactive queries on city-scale graphs get unbearably slow past ~50k expansions.
    planner_default_node_budget: int = Field(default=50_000, ge=1, alias="PLANNER_DEFAULT_NODE_BUDGET")
    planner_max_node_budget: int = Field(default=10_000_000, ge=1, alias="PLANNER_MAX_NODE_BUDGET")

    @model_validator(mode="after")
    def _check_locator_window(self) -> "Settings":
        if self.locator_window_size % 2 == 0:
            raise ValueError("LOCATOR_WINDOW_SIZE must be odd so the window has a centre sample")
        if self.locator_scale_floor >= self.locator_initial_scale:
            raise ValueError("LOCATOR_SCALE_FLOOR must be below LOCATOR_INITIAL_SCALE")
        if self.planner_default_node_budget > self.planner_max_node_budget:
            self.planner_default_node_budget = self.planner_max_node_budget
        return self


settings = Settings()
