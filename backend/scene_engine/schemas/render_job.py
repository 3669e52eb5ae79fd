from datetime import datetime
from typing import Optional
from pydantic import BaseModel
from scene_engine.models.render_job import RenderJobStatus, RenderJobType


class RenderJob(BaseModel):
    id: int
    scene_id: int
    job_type: RenderJobType
    status: RenderJobStatus
    payload: Optional[str] = None
    output_path: Optional[str] = None
    cost_estimate: Optional[float] = None
    error_message: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True
