"""git-sweep: fast-forward every Git repository under a directory."""

# Guard against deleted CWD (e.g. directory removed by another process).
# rich crashes on import if os.getcwd() fails, so recover before any imports.
import os

try:
    os.getcwd()
except (OSError, PermissionError):
    os.chdir(os.path.expanduser("~"))

from ._version import __version__
from .core import (
    Action,
    ActionKind,
    AuthError,
    CheckoutError,
    DiscoveryError,
    Fetch,
    GitRepository,
    HeadInfo,
    MergeAnalysis,
    NetworkError,
    Pull,
    ReferenceUpdateError,
    RefNotFoundError,
    RemoteNotFoundError,
    Skip,
    SkipReason,
    SshKeyCallbacks,
    SweepConfig,
    SweepError,
    SweepManager,
    SweepSummary,
    SyncOutcome,
    SyncResult,
    analyze_merge,
    app,
    apply_fast_forward,
    classify,
    configure_logging,
    fetch_upstream,
    load_config,
    sweep_repository,
)
from .formatters import OutputFormatter
from .schema import get_tool_schema

__all__ = [
    # Version
    "__version__",
    # CLI
    "app",
    # Models
    "Action",
    "ActionKind",
    "Fetch",
    "HeadInfo",
    "MergeAnalysis",
    "Pull",
    "Skip",
    "SkipReason",
    "SweepConfig",
    "SweepSummary",
    "SyncOutcome",
    "SyncResult",
    # Errors
    "AuthError",
    "CheckoutError",
    "DiscoveryError",
    "NetworkError",
    "RefNotFoundError",
    "ReferenceUpdateError",
    "RemoteNotFoundError",
    "SweepError",
    # Operations
    "GitRepository",
    "SshKeyCallbacks",
    "SweepManager",
    "analyze_merge",
    "apply_fast_forward",
    "classify",
    "fetch_upstream",
    "sweep_repository",
    # Functions
    "configure_logging",
    "get_tool_schema",
    "load_config",
    # Formatters
    "OutputFormatter",
]
