"""
AI provider access guarded by the reliability core.
"""

from .gateway import AIGateway, AIProvider, AIRequest, AIResult

__all__ = [
    "AIGateway",
    "AIProvider",
    "AIRequest",
    "AIResult",
]
