"""tiled_gravity: direct-summation gravity with shared-memory tiled kernels."""

from importlib.metadata import version as _version_lookup, PackageNotFoundError

# --- Versioning ---
try:
    # This works if the package was installed via 'pip install .'
    __version__ = _version_lookup("tiled_gravity")
except PackageNotFoundError:
    __version__ = "unknown"

# --- Public API ---

# From .particles
from .particles import (
    make_particles,
    make_inputs,
    zero_accelerations,
    duplicate,
    PRECISIONS,
)

# From .reference
from .reference import cpu_gravity, accumulate, interaction, EPS2

# From .launch
from .launch import (
    LaunchConfig,
    ConfigurationError,
    check_launch,
    MAX_THREADS_PER_BLOCK,
    STRATEGIES,
)

# From .kernels
from .kernels import (
    compute_gravity,
    transfer_accelerations,
    benchmark1,
    benchmark2,
    benchmark3,
    get_gpu_info,
)

# From .validation
from .validation import ValidationReport, compare_accelerations

# Define what "from tiled_gravity import *" does
__all__ = [
    "__version__",
    "make_particles",
    "make_inputs",
    "zero_accelerations",
    "duplicate",
    "PRECISIONS",
    "cpu_gravity",
    "accumulate",
    "interaction",
    "EPS2",
    "LaunchConfig",
    "ConfigurationError",
    "check_launch",
    "MAX_THREADS_PER_BLOCK",
    "STRATEGIES",
    "compute_gravity",
    "transfer_accelerations",
    "benchmark1",
    "benchmark2",
    "benchmark3",
    "get_gpu_info",
    "ValidationReport",
    "compare_accelerations",
]
