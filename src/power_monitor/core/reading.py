"""
Reading: one successful balance snapshot from the remote account.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class Reading(BaseModel):
    """Immutable record of one poll.

    Field aliases are the portal's wire names; numeric values arrive as
    strings ("26.91") and are coerced.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    remaining_energy: float = Field(alias="sydl")  # kWh
    remaining_money: float = Field(alias="syje")  # CNY
    meter_room_id: str = Field(alias="dffjbh")
    room_display_name: str = Field(alias="roomName")
    room_id: str = Field(default="", alias="roomId")
    building_id: str = Field(default="", alias="buiId")
    campus_id: str = Field(default="", alias="areaid")
    room_number: str = Field(default="", alias="fjh")
    captured_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def balance(self) -> float:
        """The value compared against the alert threshold."""
        return self.remaining_money
