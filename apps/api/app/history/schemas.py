from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class EditHistoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    job_id: int
    field_name: str
    old_value: str | None
    new_value: str | None
    edit_type: str
    actor_id: int
    correlation_id: str | None
    created_at: datetime
