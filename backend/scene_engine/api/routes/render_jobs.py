from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from scene_engine.api.dependencies import get_db
from scene_engine import models, schemas

router = APIRouter(prefix="/render_jobs", tags=["render_jobs"])


# 1. List jobs for a scene, oldest first
@router.get("/scene/{scene_id}", response_model=List[schemas.RenderJob])
def list_jobs_for_scene(scene_id: int, db: Session = Depends(get_db)):
    jobs = (
        db.query(models.RenderJob)
        .filter(models.RenderJob.scene_id == scene_id)
        .order_by(models.RenderJob.created_at, models.RenderJob.id)
        .all()
    )
    return jobs


# 2. Get a single render job
@router.get("/{render_job_id}", response_model=schemas.RenderJob)
def get_render_job(render_job_id: int, db: Session = Depends(get_db)):
    job = (
        db.query(models.RenderJob)
        .filter(models.RenderJob.id == render_job_id)
        .first()
    )
    if not job:
        raise HTTPException(status_code=404, detail="Render job not found")

    return job
