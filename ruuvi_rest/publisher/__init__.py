"""
Sample aggregation and batch publishing.
"""

from .aggregator import SampleAggregator
from .agent import AgentState, PublishingAgent, PublishingAgentError
from .models import EnrichedSample, serialize_batch
from .options import AgentOptions, PublishMode, RestAgentOptions
from .sink import ConsolePublishSink, PublishError, PublishSink, RestPublishSink
from .throttle import SampleRateLimiter
from .window import BatchWindow, SizeBatchWindow, TimeBatchWindow, create_batch_window

__all__ = [
    "AgentOptions",
    "AgentState",
    "BatchWindow",
    "ConsolePublishSink",
    "EnrichedSample",
    "PublishError",
    "PublishMode",
    "PublishSink",
    "PublishingAgent",
    "PublishingAgentError",
    "RestAgentOptions",
    "RestPublishSink",
    "SampleAggregator",
    "SampleRateLimiter",
    "SizeBatchWindow",
    "TimeBatchWindow",
    "create_batch_window",
    "serialize_batch",
]
