import logging
from rq import Worker
from score_engine.jobs.queue import redis
from score_engine.core.config import RQ_QUEUE, LOG_LEVEL

def main():
    logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.INFO), format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    w = Worker([RQ_QUEUE], connection=redis)
    w.work(with_scheduler=True)

if __name__ == "__main__":
    main()
