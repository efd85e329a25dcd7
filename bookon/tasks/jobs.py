from bookon.tasks.celery_app import celery
from bookon.tasks import worker_jobs

@celery.task(name="bookon.tasks.jobs.expire_wallet_credits")
def expire_wallet_credits():
    return worker_jobs.expire_wallet_credits()


@celery.task(name="bookon.tasks.jobs.process_email_queue")
def process_email_queue(limit: int = 50):
    return worker_jobs.process_email_queue(limit=limit)
