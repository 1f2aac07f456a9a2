from worker import celery_app


def test_enqueue_city_import_routes_to_imports_queue(monkeypatch):
    sent = []
    monkeypatch.setattr(celery_app.celery, "send_task", lambda name, **kwargs: sent.append((name, kwargs)))

    celery_app.enqueue_city_import(
        city_id="cty_1", job_id="imp_1", city_name="Pune", pincode_ranges=[{"start": 411001, "end": 411003}],
    )

    assert sent == [(
        "worker.tasks.import_city",
        {
            "kwargs": {
                "city_id": "cty_1",
                "job_id": "imp_1",
                "city_name": "Pune",
                "pincode_ranges": [{"start": 411001, "end": 411003}],
            },
            "queue": "imports",
        },
    )]


def test_import_task_is_routed():
    assert celery_app.celery.conf.task_routes["worker.tasks.import_city"] == {"queue": "imports"}
