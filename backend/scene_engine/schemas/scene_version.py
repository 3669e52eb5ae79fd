from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class SceneVersion(BaseModel):
    id: int
    scene_id: int
    version_number: int
    image_path: str
    prompt: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
