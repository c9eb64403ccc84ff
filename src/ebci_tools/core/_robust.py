# src/ebci_tools/core/_robust.py

import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from scipy import optimize
from scipy.special import ndtr
from scipy.stats import norm

from ._options import SolverConfig

# Below this value of chi, r(t, chi) is concave in t and the worst case is a point mass.
_SQRT3 = math.sqrt(3.0)
_INV_SQRT_2PI = 1.0 / math.sqrt(2.0 * math.pi)
_GRID_SIZE = 40


@dataclass(frozen=True)
class RobustEBCI:
    """
    Shrinkage factor and normalized half-length for one robust EBCI.
    """
    w_estim: float
    normlng: float
    converged: bool


class _Tracker:
    """
    Records whether every numerical sub-problem of one solve converged.
    """

    def __init__(self) -> None:
        self.ok = True

    def update(self, flag: bool) -> None:
        self.ok = self.ok and bool(flag)


# ───────────────────────────────────────────────────────────────────────────────
# Non-coverage of the shrinkage interval given normalized squared bias t
# ───────────────────────────────────────────────────────────────────────────────

def _pdf(x: float) -> float:
    return _INV_SQRT_2PI * math.exp(-0.5 * x * x)


def _r(t: float, chi: float) -> float:
    """
    r(t, chi) = P(|Z - sqrt(t)| > chi), Z ~ N(0, 1).
    """
    u = math.sqrt(max(t, 0.0))
    return float(ndtr(-chi - u) + ndtr(u - chi))


def _r1(t: float, chi: float) -> float:
    """
    Derivative of r(t, chi) with respect to t.
    """
    u = math.sqrt(max(t, 0.0))
    if u < 1e-8:
        return chi * _pdf(chi)
    return (_pdf(u - chi) - _pdf(u + chi)) / (2.0 * u)


def _tangent_gap(t: float, chi: float, r0: float) -> float:
    # negative on (0, t0), positive beyond the tangency point t0
    return _r(t, chi) - r0 - t * _r1(t, chi)


def _t0(chi: float, config: SolverConfig, tracker: _Tracker) -> float:
    """
    Tangency point t0 of the least concave majorant of r(., chi).

    For t below t0 the majorant is the chord from (0, r(0)) to (t0, r(t0)).
    Returns 0 when r(., chi) is concave.
    """
    if chi <= _SQRT3:
        return 0.0
    r0 = _r(0.0, chi)
    # the gap decreases while r is convex and increases once it is concave;
    # r is already concave at t = chi^2, so its minimum lies in (0, chi^2)
    res = optimize.minimize_scalar(
        _tangent_gap,
        bounds=(0.0, chi ** 2),
        args=(chi, r0),
        method="bounded",
        options={"xatol": config.opt_xatol, "maxiter": config.opt_maxiter},
    )
    tracker.update(res.success)
    lo = float(res.x)
    if _tangent_gap(lo, chi, r0) >= 0.0:
        return 0.0

    # r is within 1e-6 of one beyond t = (chi + 5)^2, where the gap is positive
    hi = (chi + 5.0) ** 2
    for _ in range(config.maxiter):
        if _tangent_gap(hi, chi, r0) > 0.0:
            break
        hi *= 2.0
    else:
        tracker.update(False)
        return hi

    t0, info = optimize.brentq(
        _tangent_gap, lo, hi, args=(chi, r0),
        xtol=config.xtol, rtol=config.rtol, maxiter=config.maxiter,
        full_output=True, disp=False,
    )
    tracker.update(info.converged)
    return float(t0)


# ───────────────────────────────────────────────────────────────────────────────
# Maximal non-coverage under moment constraints
# ───────────────────────────────────────────────────────────────────────────────

def rho0(
    m2: float,
    chi: float,
    config: Optional[SolverConfig] = None,
    tracker: Optional[_Tracker] = None
) -> Tuple[float, float]:
    """
    Maximal non-coverage over distributions of t with E[t] = m2.

    :return: (rho, t0)
    """
    config = config or SolverConfig.default()
    tracker = tracker or _Tracker()
    t0 = _t0(chi, config, tracker)
    if m2 >= t0:
        return _r(m2, chi), t0
    r0 = _r(0.0, chi)
    return r0 + (m2 / t0) * (_r(t0, chi) - r0), t0


def _two_point(x0: float, m2: float, kappa: float, chi: float) -> float:
    """
    Non-coverage under the two-point distribution {x0, x1} with mean m2 and
    second moment kappa * m2^2.
    """
    gap = m2 - x0
    x1 = m2 + (kappa - 1.0) * m2 ** 2 / gap
    p0 = (x1 - m2) / (x1 - x0)
    return p0 * _r(x0, chi) + (1.0 - p0) * _r(x1, chi)


def rho(
    m2: float,
    kappa: Optional[float],
    chi: float,
    config: Optional[SolverConfig] = None,
    tracker: Optional[_Tracker] = None
) -> float:
    """
    Maximal non-coverage over distributions of t with E[t] = m2 and
    E[t^2] <= kappa * m2^2.

    :param m2: second moment of the normalized bias.
    :param kappa: kurtosis bound, or None / inf for no bound. A value that is
      not a valid kurtosis (NaN or below 1, as the uncorrected estimator can
      give) imposes no bound either.
    :param chi: critical value.
    """
    config = config or SolverConfig.default()
    tracker = tracker or _Tracker()
    if kappa is not None and not (math.isfinite(kappa) and kappa >= 1.0):
        kappa = None
    if m2 <= 0.0:
        return _r(0.0, chi)
    if kappa is not None and kappa == 1.0:
        return _r(m2, chi)

    value, t0 = rho0(m2, chi, config, tracker)
    if kappa is None or m2 >= t0 or t0 <= kappa * m2:
        return value

    # kurtosis bound binds: search two-point distributions {x0, x1}, x0 in [0, m2)
    grid = np.linspace(0.0, m2, _GRID_SIZE, endpoint=False)
    vals = np.array([_two_point(x, m2, kappa, chi) for x in grid])
    best = int(np.argmax(vals))
    lo = grid[max(best - 1, 0)]
    hi = grid[best + 1] if best + 1 < _GRID_SIZE else m2 * (1.0 - 1e-12)
    res = optimize.minimize_scalar(
        lambda x: -_two_point(x, m2, kappa, chi),
        bounds=(lo, hi),
        method="bounded",
        options={"xatol": config.opt_xatol * max(m2, 1.0), "maxiter": config.opt_maxiter},
    )
    tracker.update(res.success)
    return float(max(-res.fun, vals[best], _r(m2, chi)))


# ───────────────────────────────────────────────────────────────────────────────
# Critical values
# ───────────────────────────────────────────────────────────────────────────────

def _point_mass_cv(
    m2: float,
    alpha: float,
    config: SolverConfig,
    tracker: _Tracker
) -> float:
    """
    chi solving r(m2, chi) = alpha, a lower bound for the robust critical value.
    """
    upper = math.sqrt(m2) + norm.isf(alpha / 2.0)
    chi, info = optimize.brentq(
        lambda c: _r(m2, c) - alpha, 0.0, upper,
        xtol=config.xtol, rtol=config.rtol, maxiter=config.maxiter,
        full_output=True, disp=False,
    )
    tracker.update(info.converged)
    return float(chi)


def cva(
    m2: float,
    kappa: Optional[float],
    alpha: float,
    config: Optional[SolverConfig] = None,
    tracker: Optional[_Tracker] = None
) -> Tuple[float, bool]:
    """
    Robust critical value: the smallest chi with rho(m2, kappa, chi) <= alpha.

    :param m2: second moment of the normalized bias.
    :param kappa: kurtosis bound, or None for no bound.
    :param alpha: significance level.
    :return: (chi, converged)
    """
    config = config or SolverConfig.default()
    tracker = tracker or _Tracker()
    if m2 <= 0.0:
        return float(norm.isf(alpha / 2.0)), tracker.ok

    lo = _point_mass_cv(m2, alpha, config, tracker)

    def excess(c: float) -> float:
        return rho(m2, kappa, c, config, tracker) - alpha

    if excess(lo) <= 0.0:
        return lo, tracker.ok

    # Markov's inequality gives rho <= (1 + m2) / chi^2
    hi = math.sqrt((1.0 + m2) / alpha) * (1.0 + 1e-6)
    for _ in range(config.maxiter):
        if excess(hi) <= 0.0:
            break
        hi *= 2.0
    else:
        tracker.update(False)
        return hi, tracker.ok
    chi, info = optimize.brentq(
        excess, lo, hi,
        xtol=config.xtol, rtol=config.rtol, maxiter=config.maxiter,
        full_output=True, disp=False,
    )
    tracker.update(info.converged)
    return float(chi), tracker.ok


def _half_length(
    w: float,
    ratio: float,
    kappa: Optional[float],
    alpha: float,
    config: SolverConfig,
    tracker: _Tracker
) -> float:
    """
    Normalized half-length w * cva(((1 - w)/w)^2 * ratio, kappa, alpha).
    """
    if w <= 0.0:
        return math.inf
    m2 = ((1.0 - w) / w) ** 2 * ratio
    chi, _ = cva(m2, kappa, alpha, config, tracker)
    return w * chi


def robust_ebci(
    w: Optional[float],
    ratio: float,
    kappa: Optional[float],
    alpha: float,
    config: Optional[SolverConfig] = None
) -> RobustEBCI:
    """
    Robust EBCI for a single moment ratio.

    If ``w`` is given (MSE-optimal shrinkage, typically w_eb) the critical value
    is computed for that weight. If ``w`` is None the weight in [w_min, 1] that
    minimises the half-length is searched for; the result is never longer than
    the interval at w_eb or at w = 1.

    :param w: shrinkage factor, or None for length-optimal shrinkage.
    :param ratio: mu2 / sigma_i^2 (or mu2 under t-statistic shrinkage).
    :param kappa: kurtosis bound, or None to impose only the second moment.
    :param alpha: significance level.
    :param config: numerical options.
    :return: RobustEBCI(w_estim, normlng, converged)
    """
    config = config or SolverConfig.default()
    tracker = _Tracker()

    if w is not None:
        lngth = _half_length(float(w), ratio, kappa, alpha, config, tracker)
        return RobustEBCI(float(w), float(lngth), tracker.ok)

    res = optimize.minimize_scalar(
        _half_length,
        bounds=(config.w_min, 1.0),
        args=(ratio, kappa, alpha, config, tracker),
        method="bounded",
        options={"xatol": config.opt_xatol, "maxiter": config.opt_maxiter},
    )
    tracker.update(res.success)

    w_eb = ratio / (1.0 + ratio)
    candidates = [(float(res.fun), float(res.x))]
    for w_cand in (w_eb, 1.0):
        candidates.append((_half_length(w_cand, ratio, kappa, alpha, config, tracker), w_cand))
    lngth, w_best = min(candidates)
    return RobustEBCI(float(w_best), float(lngth), tracker.ok)
