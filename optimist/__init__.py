"""
optimist — optimistic cache mutations with typed error recovery.

    from optimist import cache as C      # Local cache, snapshots, refetch
    from optimist import errors as X     # Taxonomy + classifier
    from optimist import recovery as R   # Resolver, executor, ledger
    from optimist import mutation as M   # Optimistic mutation coordinator
    from optimist import broadcast as B  # Invalidation fan-out
    from optimist import commerce as K   # Cart domain
"""

from optimist import cache
from optimist import errors
from optimist import recovery
from optimist import broadcast
from optimist import mutation
from optimist import commerce
from optimist._types import (
    RemoteOp,
    Clock,
    utcnow,
)
from optimist.config import OptimistSettings
from optimist.log import configure_logging

__version__ = "0.1.0"

__all__ = (
    "cache",
    "errors",
    "recovery",
    "broadcast",
    "mutation",
    "commerce",
    "RemoteOp",
    "Clock",
    "utcnow",
    "OptimistSettings",
    "configure_logging",
)
