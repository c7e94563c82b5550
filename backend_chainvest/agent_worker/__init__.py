"""
Agent worker — periodic reconciliation loop.

Started by the API server's lifespan as an asyncio task; never blocks the API.
"""

from backend_chainvest.agent_worker.runner import PollingRunner, RunnerConfig

__all__ = ["PollingRunner", "RunnerConfig"]
