#!/usr/bin/env python3
"""
Celery Worker Entry Point
Run with: celery -A celery_worker.celery worker --beat --loglevel=info
Or: python celery_worker.py
"""
from cognicare import create_app
from cognicare.extensions import celery

# Create Flask app to initialize Celery
app = create_app()

# Import tasks so Celery can discover them
from tasks import backup_tasks  # noqa: E402,F401

if __name__ == '__main__':
    celery.worker_main([
        'worker',
        '--beat',
        '--loglevel=info',
        '--concurrency=4'
    ])
