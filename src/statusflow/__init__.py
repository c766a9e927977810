"""statusflow -- configuration-driven status-transition engine with convention-based project discovery."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("statusflow")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from statusflow.core import Entity, StatusDB
from statusflow.engine import PassSummary, StatusEngine
from statusflow.exceptions import ConditionEvaluationError, ConfigurationError, PersistenceError
from statusflow.workflows import Capability, Kind, WorkflowRegistry

__all__ = [
    "Capability",
    "ConditionEvaluationError",
    "ConfigurationError",
    "Entity",
    "Kind",
    "PassSummary",
    "PersistenceError",
    "StatusDB",
    "StatusEngine",
    "WorkflowRegistry",
    "__version__",
]
