# src/ebci_tools/core/_options.py

from __future__ import annotations
import math
from dataclasses import dataclass, replace, asdict
from typing import Any, Dict

import numpy as np


class EBCIInputError(ValueError):
    """
    Raised when inputs to the EBCI routines are malformed.
    """


class RankDeficientWarning(UserWarning):
    """
    The weighted regressor matrix is singular; delta is the minimum-norm solution.
    """


class ConvergenceWarning(UserWarning):
    """
    A root-finder or optimizer in the robust solver hit its iteration cap.
    """


@dataclass(frozen=True)
class SolverConfig:
    """
    Numerical options for the robust critical-value solver.

    :param xtol: absolute tolerance of the Brent root-finder.
    :param rtol: relative tolerance of the Brent root-finder.
    :param maxiter: iteration cap of the Brent root-finder.
    :param opt_xatol: absolute tolerance of the bounded scalar minimiser.
    :param opt_maxiter: iteration cap of the bounded scalar minimiser.
    :param w_min: lower end of the search interval for length-optimal shrinkage.
    """
    xtol: float = 1e-10
    rtol: float = 1e-10
    maxiter: int = 500
    opt_xatol: float = 1e-8
    opt_maxiter: int = 500
    w_min: float = 1e-6

    @classmethod
    def default(cls) -> "SolverConfig":
        return cls()

    def with_options(self, **changes: Any) -> "SolverConfig":
        """
        Return a copy with some fields replaced, validated.
        """
        cfg = replace(self, **changes)
        cfg.validate()
        return cfg

    def validate(self) -> None:
        """
        :raises EBCIInputError: if a tolerance or cap is not positive.
        """
        for name in ("xtol", "rtol", "opt_xatol"):
            value = getattr(self, name)
            if not (math.isfinite(value) and value > 0):
                raise EBCIInputError(f"SolverConfig.{name} must be positive, got {value}")
        # brentq rejects rtol below 4 * machine eps
        if self.rtol < 4 * np.finfo(float).eps:
            raise EBCIInputError(f"SolverConfig.rtol too small: {self.rtol}")
        for name in ("maxiter", "opt_maxiter"):
            value = getattr(self, name)
            if int(value) != value or value < 1:
                raise EBCIInputError(f"SolverConfig.{name} must be a positive integer, got {value}")
        if not (0.0 < self.w_min < 1.0):
            raise EBCIInputError(f"SolverConfig.w_min must lie in (0, 1), got {self.w_min}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
