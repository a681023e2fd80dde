"""
Prometheus metrics for the conversational assistant.
"""

import time
from contextlib import asynccontextmanager

from prometheus_client import Counter, Histogram


turn_counter = Counter(
    'companion_turns_total',
    'Chat turns answered, by the stage that produced the reply',
    ['route']
)

fallback_counter = Counter(
    'companion_offline_fallbacks_total',
    'Turns answered by the offline responder',
    ['reason']
)

safety_override_counter = Counter(
    'companion_safety_overrides_total',
    'Replies replaced by a safety message',
    ['kind']
)

tool_call_counter = Counter(
    'companion_tool_calls_total',
    'Tool calls requested by the model',
    ['tool', 'status']
)

llm_request_histogram = Histogram(
    'companion_llm_request_duration_seconds',
    'Completion API latency per attempt',
    ['purpose', 'status'],
    buckets=(0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)
)

background_task_counter = Counter(
    'companion_background_tasks_total',
    'Post-turn background tasks by outcome',
    ['task', 'status']
)


@asynccontextmanager
async def track_llm_request(purpose: str):
    """Time one completion API attempt."""
    start = time.perf_counter()
    status = "success"
    try:
        yield
    except BaseException:
        status = "error"
        raise
    finally:
        llm_request_histogram.labels(purpose=purpose, status=status).observe(
            time.perf_counter() - start
        )
