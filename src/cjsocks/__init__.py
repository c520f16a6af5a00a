"""cjsocks package"""

from .naming import derive_fqdns
from .addressing import select_address
from .registry import NameRegistry
from .resolver import NameNotFoundError, ResolutionError, ResolutionService

__all__ = [
    "NameNotFoundError",
    "NameRegistry",
    "ResolutionError",
    "ResolutionService",
    "derive_fqdns",
    "select_address",
]
