"""
Utility functions for the claude2openai package.
"""

import logging

from .types import ClaudeUsage, global_usage_stats

logger = logging.getLogger(__name__)


def update_global_usage_stats(usage: ClaudeUsage, model: str, context: str = "") -> None:
    """Update global usage statistics and log the usage information."""
    global_usage_stats.update_usage(usage, model)

    logger.info(
        f"USAGE UPDATE [{context}]: Model={model}, Input={usage.input_tokens}t, Output={usage.output_tokens}t"
    )

    cache_info = []
    if usage.cache_read_input_tokens:
        cache_info.append(f"CacheRead={usage.cache_read_input_tokens}t")
    if usage.cache_creation_input_tokens:
        cache_info.append(f"CacheCreate={usage.cache_creation_input_tokens}t")
    if cache_info:
        logger.info(f"CACHE USAGE: {', '.join(cache_info)}")

    summary = global_usage_stats.get_session_summary()
    logger.debug(
        f"SESSION TOTALS: Requests={summary['total_requests']}, Input={summary['total_input_tokens']}t, "
        f"Output={summary['total_output_tokens']}t, Total={summary['total_tokens']}t"
    )


def format_uptime(seconds: float) -> str:
    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours}h {minutes}m {secs}s"
