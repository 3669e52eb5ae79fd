import logging

from rq import SimpleWorker, Queue

from scene_engine.core.logging import setup_logging
from scene_engine.core.queue import RENDER_QUEUE_NAME, render_queue
from scene_engine.core.redis import redis_client
from scene_engine.db.init_db import create_tables
from scene_engine.db.session import SessionLocal
from scene_engine.workers.tasks import recover_interrupted_runs

logger = logging.getLogger("scene_engine.worker")

listen = [RENDER_QUEUE_NAME]

if __name__ == '__main__':
    setup_logging()
    create_tables()

    # Runs in flight when the last process stopped will never finish.
    # Single worker: nothing else can be processing them.
    db = SessionLocal()
    try:
        recovered = recover_interrupted_runs(db)
    finally:
        db.close()
    render_queue.empty()
    logger.info("Startup sweep done: %s", recovered)

    queues = [Queue(name, connection=redis_client) for name in listen]
    worker = SimpleWorker(queues, connection=redis_client)
    logger.info("Listening on queues: %s", listen)
    worker.work()
