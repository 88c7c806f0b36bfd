"""
Pool Dispatch package.
Technician dispatch board and route stop ordering for pool-service operations.
"""

__version__ = "0.1.0"

from .service import DispatchService
from .api import app

__all__ = [
    "DispatchService",
    "app"
]
