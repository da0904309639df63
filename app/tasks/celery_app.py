from celery import Celery
from app.config import settings


def tls_redis_url(url: str) -> str:
    """Upstash Redis requires TLS: strip the database suffix and switch to rediss://."""
    if url and "upstash.io" in url:
        url = url.rstrip('/')
        if url.endswith('/0'):
            url = url[:-2]
        if url.startswith("redis://"):
            url = url.replace("redis://", "rediss://", 1)
    return url


celery_broker_url = tls_redis_url(settings.celery_broker_url)
celery_result_backend = tls_redis_url(settings.celery_result_backend)

celery_app = Celery(
    "online_retail",
    broker=celery_broker_url,
    backend=celery_result_backend,
)

config_updates = {
    'task_serializer': "json",
    'accept_content': ["json"],
    'result_serializer': "json",
    'timezone': "UTC",
    'enable_utc': True,
    'task_track_started': True,
    'task_time_limit': 3600,  # 1 hour max for a full dataset import
    'worker_prefetch_multiplier': 1,
    'worker_max_tasks_per_child': 1000,
    'broker_connection_retry_on_startup': True,
    'result_backend_always_retry': True,
    'result_backend_max_retries': 3,
}

if celery_broker_url.startswith("rediss://"):
    config_updates['broker_use_ssl'] = {'ssl_cert_reqs': 'none'}
    config_updates['redis_backend_use_ssl'] = {'ssl_cert_reqs': 'none'}

celery_app.conf.update(**config_updates)

# Import tasks to register them
from app.tasks import retail_import  # noqa: E402,F401
