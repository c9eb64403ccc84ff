# src/ebci_tools/results.py

from __future__ import annotations
import math
from dataclasses import dataclass, field
from typing import Optional, Any, Dict

import numpy as np
import pandas as pd


@dataclass
class EBCIResult:
    """
    Container for empirical Bayes point estimates and confidence intervals.

    Per-observation arrays have length n; ``ci`` has shape (n, 2).
    ``normlng`` is the half-length divided by sigma_i.
    """
    thetahat: np.ndarray
    ci: np.ndarray
    w_estim: np.ndarray
    normlng: np.ndarray
    mu2: float
    kappa: float
    delta: np.ndarray
    mu1: np.ndarray
    method: str
    alpha: float
    tstat: bool
    w_opt: bool
    fs_correction: Optional[str]
    rank_deficient: bool
    converged: np.ndarray
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def n_nonconverged(self) -> int:
        return int(np.sum(~self.converged))

    @property
    def half_length(self) -> np.ndarray:
        """
        Half-length of each interval on the scale of Y.
        """
        return 0.5 * (self.ci[:, 1] - self.ci[:, 0])

    def summary(self) -> str:
        """
        Return a concise multi‐line summary of the EBCI results.
        """
        shrinkage = "t-statistic" if self.tstat else "moment independence"
        weight = "length-optimal" if self.w_opt else "MSE-optimal"
        lines = [
            f"Method: {self.method}",
            f"Observations: {self.thetahat.size}",
            f"Shrinkage: {shrinkage} ({weight})",
            f"Confidence level: {1.0 - self.alpha:.2%}",
            f"mu2: {self.mu2:.4f}",
        ]
        if not math.isinf(self.kappa):
            lines.append(f"kappa: {self.kappa:.4f}")
        if self.fs_correction is not None:
            lines.append(f"Finite-sample correction: {self.fs_correction}")
        if self.delta.size:
            coefs = ", ".join(f"{d:.4f}" for d in self.delta)
            lines.append(f"delta: [{coefs}]")
        if self.rank_deficient:
            lines.append("Warning: rank-deficient regressors (minimum-norm delta)")
        lines.extend([
            f"Mean shrinkage factor: {float(np.mean(self.w_estim)):.4f}",
            f"Mean normalized half-length: {float(np.mean(self.normlng)):.4f}",
        ])
        if self.n_nonconverged:
            lines.append(f"Non-converged solves: {self.n_nonconverged}")
        return "\n".join(lines)

    def to_dataframe(self) -> pd.DataFrame:
        """
        Return per-observation results as a pandas DataFrame (one row per observation).
        """
        return pd.DataFrame(
            {
                "thetahat": self.thetahat,
                "ci_lower": self.ci[:, 0],
                "ci_upper": self.ci[:, 1],
                "w_estim": self.w_estim,
                "normlng": self.normlng,
                "mu1": self.mu1,
                "converged": self.converged,
            },
            index=self.metadata.get("index"),
        )
