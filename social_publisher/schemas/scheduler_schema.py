# social_publisher/schemas/scheduler_schema.py
from pydantic import BaseModel
from datetime import datetime


class SchedulerSummary(BaseModel):
    success: bool = True
    processed: int = 0
    published: int = 0
    partially_failed: int = 0
    failed: int = 0
    pending: int = 0
    skipped: int = 0  # claimed by an overlapping invocation
    deferred: int = 0  # left for the next pass (time budget)
    errors: int = 0
    timestamp: datetime
