from redis import Redis

from scene_engine.core.config import settings

redis_client = Redis.from_url(settings.REDIS_URL)
