"""
Routes API par domaine.
"""

from . import proxy
from . import health
from . import models

__all__ = [
    "proxy",
    "health",
    "models",
]
