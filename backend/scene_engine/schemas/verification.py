from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel


class VerificationLog(BaseModel):
    id: int
    scene_id: int
    verification_type: str
    score: Optional[int] = None
    passed: bool
    issues: Optional[List[Dict[str, Any]]] = None
    created_at: datetime

    class Config:
        from_attributes = True
