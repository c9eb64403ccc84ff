import math

import numpy as np
import pytest

from ebci_tools.core._dispatch import parallel_map, _resolve_n_jobs
from ebci_tools.api import _solve_observation
from ebci_tools.core._options import SolverConfig
from ebci_tools.core._robust import robust_ebci


def test_serial_map_preserves_order():
    items = [9.0, 1.0, 4.0, 16.0]
    assert parallel_map(math.sqrt, items) == [3.0, 1.0, 2.0, 4.0]


def test_verbose_progress_returns_same_results():
    items = list(range(10))
    assert parallel_map(abs, items, verbose=True) == items


def test_resolve_n_jobs():
    assert _resolve_n_jobs(1, 10) == 1
    assert _resolve_n_jobs(8, 3) == 3
    assert _resolve_n_jobs(None, 5) >= 1
    assert _resolve_n_jobs(-1, 5) >= 1
    with pytest.raises(ValueError):
        _resolve_n_jobs(0, 5)


def test_process_pool_matches_serial():
    config = SolverConfig()
    tasks = [(r / (1 + r), r, 3.0, 0.05, config) for r in (0.3, 1.0, 2.5, 7.0)]
    serial = parallel_map(_solve_observation, tasks, n_jobs=1)
    pooled = parallel_map(_solve_observation, tasks, n_jobs=2)
    assert [s.normlng for s in serial] == pytest.approx([p.normlng for p in pooled], rel=1e-12)
    assert [s.w_estim for s in pooled] == pytest.approx([t[0] for t in tasks])


def test_solve_observation_wraps_robust_solver():
    task = (0.5, 1.0, None, 0.1, SolverConfig())
    assert _solve_observation(task) == robust_ebci(0.5, 1.0, None, 0.1, SolverConfig())
