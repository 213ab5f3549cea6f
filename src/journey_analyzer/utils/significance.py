"""Statistical primitives for two-sample timing and proportion comparisons.

Malformed or undersized samples are rejected with ``InsufficientSampleError``;
degenerate-but-valid inputs (zero variance, zero denominators) fall back to
neutral values.
"""
from __future__ import annotations
import math
from dataclasses import dataclass
from math import sqrt
from typing import Callable, Dict, List, Optional, Sequence, Tuple
import numpy as np
from scipy import stats
from journey_analyzer.exceptions import InsufficientSampleError


@dataclass
class WelchTTestResult:
    t_statistic: float
    p_value: float
    degrees_of_freedom: float
    effect_size: float
    confidence_interval: Tuple[float, float]


@dataclass
class MannWhitneyResult:
    u_statistic: float
    z_score: float
    p_value: float
    effect_size: float


@dataclass
class OneSampleTTestResult:
    t_statistic: float
    p_value: float
    degrees_of_freedom: float


@dataclass
class PermutationResult:
    observed_statistic: float
    p_value: float
    n_permutations: int


def _as_array(sample: Sequence[float], name: str, minimum: int = 1) -> np.ndarray:
    arr = np.asarray(list(sample), dtype=float)
    if arr.ndim != 1:
        raise InsufficientSampleError(f"{name} must be one-dimensional")
    if arr.size < minimum:
        raise InsufficientSampleError(f"{name} needs at least {minimum} observations, got {arr.size}")
    if not np.all(np.isfinite(arr)):
        raise InsufficientSampleError(f"{name} contains non-finite values")
    return arr


def _clamp_probability(p: float) -> float:
    if math.isnan(p):
        return 1.0
    return min(1.0, max(0.0, float(p)))


def welch_t_test(sample1: Sequence[float], sample2: Sequence[float],
                 confidence_level: float = 0.95) -> WelchTTestResult:
    """Unequal-variance two-sample t-test with Welch-Satterthwaite df."""
    a = _as_array(sample1, "sample1", minimum=2)
    b = _as_array(sample2, "sample2", minimum=2)
    n1, n2 = a.size, b.size
    mean_diff = float(a.mean() - b.mean())
    var1, var2 = float(a.var(ddof=1)), float(b.var(ddof=1))

    se_sq = var1 / n1 + var2 / n2
    standard_error = sqrt(se_sq)
    if standard_error == 0:
        # Both samples constant
        t_statistic = 0.0 if mean_diff == 0 else math.copysign(math.inf, mean_diff)
        p_value = 1.0 if mean_diff == 0 else 0.0
        dof = float(n1 + n2 - 2)
        interval = (mean_diff, mean_diff)
    else:
        t_statistic = mean_diff / standard_error
        dof = se_sq ** 2 / ((var1 / n1) ** 2 / (n1 - 1) + (var2 / n2) ** 2 / (n2 - 1))
        p_value = _clamp_probability(2 * stats.t.sf(abs(t_statistic), dof))
        t_critical = float(stats.t.ppf(1 - (1 - confidence_level) / 2, dof))
        margin = t_critical * standard_error
        interval = (mean_diff - margin, mean_diff + margin)

    pooled_sd = sqrt(((n1 - 1) * var1 + (n2 - 1) * var2) / (n1 + n2 - 2))
    effect_size = mean_diff / pooled_sd if pooled_sd > 0 else 0.0

    return WelchTTestResult(
        t_statistic=float(t_statistic),
        p_value=p_value,
        degrees_of_freedom=float(dof),
        effect_size=float(effect_size),
        confidence_interval=(float(interval[0]), float(interval[1])),
    )


def mann_whitney_u_test(sample1: Sequence[float], sample2: Sequence[float]) -> MannWhitneyResult:
    """Rank-based two-sample test using the normal approximation.

    Ties receive average ranks. The effect size is the rank-biserial
    correlation ``1 - 2U / (n1 * n2)``.
    """
    a = _as_array(sample1, "sample1")
    b = _as_array(sample2, "sample2")
    n1, n2 = a.size, b.size

    ranks = stats.rankdata(np.concatenate([a, b]))
    r1 = float(ranks[:n1].sum())
    u1 = r1 - n1 * (n1 + 1) / 2
    u2 = n1 * n2 - u1
    u_statistic = min(u1, u2)

    mean_u = n1 * n2 / 2
    std_u = sqrt(n1 * n2 * (n1 + n2 + 1) / 12)
    z_score = (u_statistic - mean_u) / std_u
    p_value = _clamp_probability(2 * stats.norm.sf(abs(z_score)))
    effect_size = 1 - (2 * u_statistic) / (n1 * n2)

    return MannWhitneyResult(
        u_statistic=float(u_statistic),
        z_score=float(z_score),
        p_value=p_value,
        effect_size=float(effect_size),
    )


def one_sample_t_test(sample: Sequence[float], popmean: float = 0.0) -> OneSampleTTestResult:
    a = _as_array(sample, "sample", minimum=2)
    dof = float(a.size - 1)
    sd = float(a.std(ddof=1))
    diff = float(a.mean() - popmean)
    if sd == 0:
        t_statistic = 0.0 if diff == 0 else math.copysign(math.inf, diff)
        return OneSampleTTestResult(t_statistic, 1.0 if diff == 0 else 0.0, dof)
    t_statistic = diff / (sd / sqrt(a.size))
    p_value = _clamp_probability(2 * stats.t.sf(abs(t_statistic), dof))
    return OneSampleTTestResult(float(t_statistic), p_value, dof)


def wilson_confidence_interval(successes: int, trials: int,
                               confidence_level: float = 0.95) -> Tuple[float, float]:
    """Wilson score interval for ``successes / trials``, clamped to [0, 1]."""
    if trials < 0 or successes < 0 or successes > trials:
        raise InsufficientSampleError(f"invalid proportion {successes}/{trials}")
    if trials == 0:
        return (0.0, 0.0)
    if not 0 < confidence_level < 1:
        raise InsufficientSampleError(f"confidence level must be in (0, 1), got {confidence_level}")

    z = float(stats.norm.ppf(1 - (1 - confidence_level) / 2))
    p = successes / trials
    n = trials
    denom = 1 + z * z / n
    center = (p + z * z / (2 * n)) / denom
    margin = (z / denom) * sqrt(p * (1 - p) / n + z * z / (4 * n * n))

    lower = max(0.0, center - margin)
    upper = min(1.0, center + margin)
    if successes == 0:
        lower = 0.0
    if successes == trials:
        upper = 1.0
    return (lower, max(lower, upper))


def cohens_d(sample1: Sequence[float], sample2: Sequence[float]) -> float:
    """Cohen's d from raw samples using the pooled standard deviation."""
    a = _as_array(sample1, "sample1", minimum=2)
    b = _as_array(sample2, "sample2", minimum=2)
    n1, n2 = a.size, b.size
    pooled = sqrt(((n1 - 1) * a.var(ddof=1) + (n2 - 1) * b.var(ddof=1)) / (n1 + n2 - 2))
    if pooled == 0:
        return 0.0
    return float((a.mean() - b.mean()) / pooled)


def approximate_cohens_d(mean1: float, mean2: float, coefficient_of_variation: float = 0.3) -> float:
    """Cohen's d when only one observation per side exists.

    The standard deviation of each side is approximated as
    ``coefficient_of_variation * mean``. Returns 0 when that pooled estimate is 0.
    """
    sd1 = coefficient_of_variation * mean1
    sd2 = coefficient_of_variation * mean2
    pooled = sqrt((sd1 ** 2 + sd2 ** 2) / 2)
    if pooled == 0:
        return 0.0
    return abs(mean1 - mean2) / pooled


def skewness(sample: Sequence[float]) -> float:
    a = _as_array(sample, "sample")
    if a.size < 3 or float(a.std()) == 0:
        return 0.0
    return float(stats.skew(a))


def is_approximately_normal(sample: Sequence[float], max_abs_skew: float = 2.0) -> bool:
    """Skewness heuristic: fewer than 3 points is never treated as normal."""
    if len(sample) < 3:
        return False
    return abs(skewness(sample)) < max_abs_skew


def fisher_combined_p(p_values: Sequence[float]) -> float:
    """Fisher's method over the valid (0, 1] p-values; 1.0 when none remain."""
    valid = [p for p in p_values if p is not None and not math.isnan(p) and 0 < p <= 1]
    if not valid:
        return 1.0
    _, combined = stats.combine_pvalues(valid, method="fisher")
    return _clamp_probability(combined)


def bonferroni_correction(p_values: Sequence[float], alpha: float = 0.05) -> List[Tuple[float, bool]]:
    m = len(p_values)
    adjusted = [min(1.0, p * m) for p in p_values]
    return [(p, p < alpha) for p in adjusted]


def benjamini_hochberg(p_values: Sequence[float], alpha: float = 0.05) -> List[Tuple[float, bool]]:
    if len(p_values) == 0:
        return []
    adjusted = stats.false_discovery_control(np.asarray(p_values, dtype=float), method="bh")
    return [(float(p), bool(p < alpha)) for p in adjusted]


def effect_size_magnitude(d: float) -> str:
    size = abs(d)
    if size < 0.2:
        return "negligible"
    if size < 0.5:
        return "small"
    if size < 0.8:
        return "medium"
    return "large"


def confidence_level_from_p(p_value: float) -> str:
    if p_value < 0.01:
        return "high"
    if p_value < 0.05:
        return "medium"
    if p_value < 0.1:
        return "low"
    return "none"


def percentiles(values: Sequence[float], points: Sequence[int] = (25, 50, 75, 90, 95)) -> Dict[str, float]:
    arr = _as_array(values, "values")
    return {f"p{p}": float(np.percentile(arr, p)) for p in points}


def bootstrap_confidence_interval(data: Sequence[float],
                                  statistic: Callable[[np.ndarray], float] = np.mean,
                                  confidence_level: float = 0.95,
                                  n_resamples: int = 1000,
                                  seed: Optional[int] = None) -> Tuple[float, float]:
    """Percentile bootstrap interval; deterministic for a fixed seed."""
    arr = _as_array(data, "data")
    rng = np.random.default_rng(seed)
    samples = rng.choice(arr, size=(n_resamples, arr.size), replace=True)
    boot = np.sort(np.array([statistic(row) for row in samples], dtype=float))
    alpha = 1 - confidence_level
    lower = float(np.percentile(boot, 100 * alpha / 2))
    upper = float(np.percentile(boot, 100 * (1 - alpha / 2)))
    return (lower, upper)


def _mean_difference(a: np.ndarray, b: np.ndarray) -> float:
    return float(a.mean() - b.mean())


def permutation_test(sample1: Sequence[float], sample2: Sequence[float],
                     statistic: Callable[[np.ndarray, np.ndarray], float] = _mean_difference,
                     n_permutations: int = 1000,
                     seed: Optional[int] = None) -> PermutationResult:
    """Two-sided permutation test on ``statistic(sample1, sample2)``."""
    a = _as_array(sample1, "sample1")
    b = _as_array(sample2, "sample2")
    observed = statistic(a, b)
    combined = np.concatenate([a, b])
    rng = np.random.default_rng(seed)

    extreme = 0
    for _ in range(n_permutations):
        shuffled = rng.permutation(combined)
        if abs(statistic(shuffled[:a.size], shuffled[a.size:])) >= abs(observed):
            extreme += 1
    return PermutationResult(float(observed), extreme / n_permutations, n_permutations)


def z_test_proportions(p_old: float, p_new: float, n_old: int, n_new: int) -> float | None:
    if n_old == 0 or n_new == 0:
        return None
    p_pool = (p_old * n_old + p_new * n_new) / (n_old + n_new)
    denom = sqrt(p_pool * (1 - p_pool) * (1 / n_old + 1 / n_new)) if p_pool not in (0, 1) else None
    if not denom:
        return None
    return (p_new - p_old) / denom
