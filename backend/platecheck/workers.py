from celery import Celery
from .config import settings

ANALYZER_QUEUE = "analyzer"

def _route_task(name, args, kwargs, options, task=None):
    """
    Route tasks to dedicated queues.

    Call sites may use `.delay(...)` as a fallback when `.apply_async(..., queue=...)`
    fails. This router keeps behavior consistent in both cases.
    """
    if name == "platecheck.tasks.dispatch_analysis_task":
        return {"queue": ANALYZER_QUEUE}

    return None

celery_app = Celery(
    "platecheck",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["platecheck.tasks"]
)

celery_app.conf.update(
    task_track_started=True,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_ignore_result=True,
    broker_transport_options={"visibility_timeout": 3600},
    task_routes=(_route_task,),
)
