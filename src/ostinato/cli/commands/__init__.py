# ostinato/cli/commands: Command modules for the Ostinato CLI.
#
# Each module in this package provides one or more CLI commands.

from .export import export
from .improvements import improvements
from .insights import insights
from .patterns import patterns
from .predict import predict
from .stats import stats

__all__ = [
    # export.py
    "export",
    # improvements.py
    "improvements",
    # insights.py
    "insights",
    # patterns.py
    "patterns",
    # predict.py
    "predict",
    # stats.py
    "stats",
]
