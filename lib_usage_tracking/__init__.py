"""
Usage Tracking Module

Real-time metering of voice conversations: speech time, message counts,
token and cost estimates, and the plan limits checked before a session.
"""

from lib_usage_tracking.usage_models import ConversationMetrics, UsageEvent, UsageEventType
from lib_usage_tracking.usage_tracker import ConversationUsageTracker
from lib_usage_tracking.metrics_ticker import MetricsTicker

__all__ = [
    'ConversationMetrics',
    'UsageEvent',
    'UsageEventType',
    'ConversationUsageTracker',
    'MetricsTicker'
]
