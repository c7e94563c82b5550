"""
Structured logging for Backend ChainVest.

JSON logs with timestamp, event_type, and per-call context (txid, address, ...).
Use get_logger() in all modules.
"""

from backend_chainvest.chainvest_logging.logger import bind_address, get_logger, level_name

__all__ = ["bind_address", "get_logger", "level_name"]
