"""
spfact Config - Runtime Configuration

Holds the process-wide defaults consulted by top-level calls that are not
given explicit values: the number of worker threads used for column
fan-out and the coordinate-descent settings used to refine NNLS solutions
inside projections.

Every top-level function also takes an explicit ``threads`` argument; the
configuration here is read only when that argument is ``None``, once at the
start of the call. Changing it never affects a call already in flight.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Any, Dict, List, Optional

from spfact._errors import InvalidArgumentError


# =============================================================================
# Strategy Enumerations
# =============================================================================

class ParallelStrategy(IntEnum):
    """
    Strategy for parallel execution.
    """
    AUTO = 0           # Parallel when the thread count allows it
    SEQUENTIAL = 1     # Force sequential execution


# =============================================================================
# Configuration Classes
# =============================================================================

@dataclass
class ParallelConfig:
    """Configuration for parallel execution."""
    strategy: ParallelStrategy = ParallelStrategy.AUTO
    num_threads: int = 0           # 0 = all available
    chunk_size: int = 64           # Columns per task


@dataclass
class SolverConfig:
    """Coordinate-descent refinement used by projections of rank >= 3."""
    cd_maxit: int = 100
    cd_tol: float = 1e-8


# =============================================================================
# Global Configuration Manager
# =============================================================================

class SpfactConfig:
    """
    Global configuration manager for spfact.

    Provides thread-local configuration with context manager support.

    Example:
        # Global configuration
        spfact.config.num_threads = 4

        # Local configuration (context manager)
        with spfact.config.local(parallel=ParallelConfig(num_threads=1)):
            model = spfact.nmf(A, k=10)
        # Back to global config
    """

    def __init__(self):
        self._global_parallel = ParallelConfig()
        self._global_solver = SolverConfig()

        # Thread-local storage for context overrides
        self._local = threading.local()

    # -------------------------------------------------------------------------
    # Property Accessors (with thread-local override support)
    # -------------------------------------------------------------------------

    @property
    def parallel(self) -> ParallelConfig:
        """Get parallel configuration."""
        if getattr(self._local, "parallel", None) is not None:
            return self._local.parallel
        return self._global_parallel

    @parallel.setter
    def parallel(self, value: ParallelConfig):
        """Set global parallel configuration."""
        _validate_threads(value.num_threads)
        self._global_parallel = value

    @property
    def solver(self) -> SolverConfig:
        """Get solver configuration."""
        if getattr(self._local, "solver", None) is not None:
            return self._local.solver
        return self._global_solver

    @solver.setter
    def solver(self, value: SolverConfig):
        """Set global solver configuration."""
        self._global_solver = value

    # -------------------------------------------------------------------------
    # Convenience Properties
    # -------------------------------------------------------------------------

    @property
    def num_threads(self) -> int:
        """Number of threads for parallel execution (0 = all available)."""
        return self.parallel.num_threads

    @num_threads.setter
    def num_threads(self, value: int):
        """Set number of threads."""
        _validate_threads(value)
        self._global_parallel = replace(self._global_parallel, num_threads=int(value))

    # -------------------------------------------------------------------------
    # Context Manager Support
    # -------------------------------------------------------------------------

    def local(self, **kwargs) -> "_LocalConfigContext":
        """
        Create a local configuration context.

        Args:
            **kwargs: Configuration overrides (parallel, solver)

        Returns:
            Context manager
        """
        unknown = set(kwargs) - {"parallel", "solver"}
        if unknown:
            raise InvalidArgumentError(f"Unknown configuration sections: {sorted(unknown)}")
        if kwargs.get("parallel") is not None:
            _validate_threads(kwargs["parallel"].num_threads)
        return _LocalConfigContext(self, **kwargs)

    def _set_local(self, **kwargs):
        """Set thread-local configuration."""
        for key, value in kwargs.items():
            if value is not None:
                setattr(self._local, key, value)

    def _clear_local(self, keys: List[str]):
        """Clear thread-local configuration."""
        for key in keys:
            if hasattr(self._local, key):
                setattr(self._local, key, None)

    # -------------------------------------------------------------------------
    # Reset / Serialization
    # -------------------------------------------------------------------------

    def reset(self):
        """Reset all configurations to defaults."""
        self._global_parallel = ParallelConfig()
        self._global_solver = SolverConfig()

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration as dictionary."""
        return {
            "parallel": {
                "strategy": self.parallel.strategy.name,
                "num_threads": self.parallel.num_threads,
                "chunk_size": self.parallel.chunk_size,
            },
            "solver": {
                "cd_maxit": self.solver.cd_maxit,
                "cd_tol": self.solver.cd_tol,
            },
        }

    def __repr__(self) -> str:
        return f"SpfactConfig({self.to_dict()})"


class _LocalConfigContext:
    """Context manager for local configuration override."""

    def __init__(self, config: SpfactConfig, **kwargs):
        self._config = config
        self._kwargs = kwargs
        self._keys = list(kwargs.keys())

    def __enter__(self):
        self._config._set_local(**self._kwargs)
        return self._config

    def __exit__(self, exc_type, exc_val, exc_tb):
        self._config._clear_local(self._keys)
        return False


def _validate_threads(value: int) -> None:
    if int(value) < 0:
        raise InvalidArgumentError(f"Thread count must be >= 0, got {value}")


# =============================================================================
# Global Instance
# =============================================================================

config = SpfactConfig()


# =============================================================================
# Convenience Functions
# =============================================================================

def get_config() -> SpfactConfig:
    """Get the global configuration instance."""
    return config


def get_threads() -> int:
    """
    Number of threads spfact functions use by default.

    Returns:
        Thread count; ``0`` means all available threads.
    """
    return config.num_threads


def set_threads(threads: int) -> None:
    """
    Set the number of threads spfact functions use by default.

    Args:
        threads: Thread count; ``0`` restores "all available threads".
    """
    config.num_threads = threads


def resolve_threads(threads: Optional[int] = None) -> int:
    """
    Turn a ``threads`` argument into a concrete positive worker count.

    ``None`` reads the configured default; ``0`` means every available core.
    A sequential strategy always yields 1.
    """
    parallel = config.parallel
    if parallel.strategy == ParallelStrategy.SEQUENTIAL:
        return 1
    if threads is None:
        threads = parallel.num_threads
    _validate_threads(threads)
    if threads == 0:
        return os.cpu_count() or 1
    return int(threads)


__all__ = [
    "ParallelStrategy",
    "ParallelConfig",
    "SolverConfig",
    "SpfactConfig",
    "config",
    "get_config",
    "get_threads",
    "set_threads",
    "resolve_threads",
]
