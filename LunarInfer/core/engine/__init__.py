from .engine import serialize_value
from .engine import save
from .engine import load
from .archive import Archiver
from .archive import Unarchiver

__all__ = [
    "serialize_value",
    "save",
    "load",
    "Archiver",
    "Unarchiver"
]
