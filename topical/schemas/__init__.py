"""
Pydantic Schemas
"""
from .request import RequestEnvelope

__all__ = [
    "RequestEnvelope",
]
