"""
API Routes Package
"""

from planloop.api.routes import checkpoints, health, runs, tools

__all__ = ["checkpoints", "health", "runs", "tools"]
