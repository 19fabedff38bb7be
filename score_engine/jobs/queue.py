from rq import Queue
from redis import Redis
from score_engine.core.config import REDIS_URL, RQ_QUEUE, RECALC_JOB_TIMEOUT

# connections are lazy; nothing talks to Redis until a job is enqueued or fetched
redis = Redis.from_url(REDIS_URL)
queue = Queue(RQ_QUEUE, connection=redis, default_timeout=RECALC_JOB_TIMEOUT)
