from datetime import datetime
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt

TOKEN_PATTERN = r"^[A-Za-z0-9]+$"


class StatsView(BaseModel):
    """Point-in-time copy of the redirect counters. Also the on-disk format."""

    model_config = ConfigDict(frozen=True)

    total_redirects: NonNegativeInt = 0
    paths: Dict[str, NonNegativeInt] = Field(default_factory=dict)
    start_time: datetime


class ReservedPaths(BaseModel):
    """Random URL segments that gate the stats and reset endpoints."""

    model_config = ConfigDict(frozen=True)

    stats_path: str = Field(pattern=TOKEN_PATTERN)
    stats_json_path: str = Field(pattern=TOKEN_PATTERN)
    reset_path: str = Field(pattern=TOKEN_PATTERN)

    def urls(self, prefix: str = "") -> Dict[str, str]:
        return {
            "stats": f"{prefix}/{self.stats_path}",
            "stats_json": f"{prefix}/{self.stats_json_path}",
            "reset": f"{prefix}/{self.reset_path}",
        }
