from celery import Celery
from app.core.config import settings

celery = Celery(
    "locality-worker",
    broker=settings.rabbitmq_url,
    backend=settings.redis_url,
    include=["worker.tasks"],
)

celery.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_routes={
        "worker.tasks.import_city": {"queue": "imports"},
    },
)


def enqueue_city_import(*, city_id: str, job_id: str, city_name: str, pincode_ranges: list[dict]) -> None:
    celery.send_task(
        "worker.tasks.import_city",
        kwargs={
            "city_id": city_id,
            "job_id": job_id,
            "city_name": city_name,
            "pincode_ranges": pincode_ranges,
        },
        queue="imports",
    )
