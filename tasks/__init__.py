"""
Celery tasks module
Import all tasks here so Celery can discover them
"""
from . import backup_tasks

__all__ = ['backup_tasks']
