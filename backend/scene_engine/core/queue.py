from rq import Queue

from scene_engine.core.config import settings
from scene_engine.core.redis import redis_client

RENDER_QUEUE_NAME = "render_queue"

render_queue = Queue(
    RENDER_QUEUE_NAME,
    connection=redis_client,
    default_timeout=settings.RENDER_JOB_TIMEOUT,
)
