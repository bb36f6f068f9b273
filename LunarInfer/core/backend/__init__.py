from . import backend
from .config import CONFIG

__all__ = [
    "backend",
    "CONFIG"
]
