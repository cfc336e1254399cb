#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Jon Paul Lundquist
"""
Created on Mon Oct 12 09:41:27 2026

    Chatterjee's ξ (Xi) Rank Correlation

    Introduction
    ----------
    Chatterjee's ξ [1] is a rank-based coefficient that measures how well Y can be
    written as a (not necessarily monotone) function of X. It is 0 if and only if the
    variables are independent and tends to 1 if and only if Y is a measurable function
    of X. Unlike Spearman's ρ and Kendall's τ it is asymmetric: ξ(X, Y) asks "does X
    determine Y", not the other way round. It has a simple asymptotic null distribution,
    so a p-value is available without resampling [1, 2].

    Definition
    ----------
    Let (x_i, y_i), i = 1..n, after dropping every pair where either side is NaN.
    Rank x with ties broken uniformly at random, and order the observations by that
    rank. With r_i = #{j : y_j <= y_(i)} and l_i = #{j : y_j >= y_(i)} for the
    observations in that order:

        ξ = 1 - n * sum_i |r_(i+1) - r_i| / (2 * sum_i l_i * (n - l_i))

    Here everything is carried in the normalised form used by the reference R code [2]:

        f = rank_max(y) / n,  g = rank_max(-y) / n
        A1 = mean(|f_ord[i] - f_ord[i+1]|) * (n - 1) / (2n)
        cval = mean(g * (1 - g))
        ξ = 1 - A1 / cval

    Parameters
    ----------
    x, y : 1-D array_like
        Two input samples of equal length. NaN in either sample removes the pair.

    pvals : {True, False}, optional
        Flag for p-value calculation. Default: True.
        If False, the returned p-value is NaN and no p-value work is performed.

    method : {"asymptotic", "permutation"}, optional
        Type of p-value calculation. Default: "asymptotic".
        - "asymptotic": Closed-form normal approximation of the null distribution.
        - "permutation": Monte Carlo estimate from n_perm surrogate X samples drawn
                         from U(0, 1) and paired with the original Y.

    n_perm : integer, optional
        Number of Monte Carlo trials for the permutation p-value. Default: 1000.

    ties : {True, False}, optional
        Use the tie-aware asymptotic variance. Default: True.
        There is no harm in leaving this on for tie-free data; with ties=False the
        simpler variance 2/5 of the continuous case is used.

    rng : None, int, SeedSequence or numpy.random.Generator, optional
        Source of randomness for tie breaking and permutation sampling. Fix it for
        reproducible ξ (with tied x) and permutation p-values.

    timeout : float, optional
        Wall-clock limit in seconds for the permutation test. Checked between trial
        batches; an expired run raises PermutationCancelledError.

    Returns
    -------
    xi : Chatterjee's ξ, roughly in [-0.5, 1]
    p  : one-sided p-value against the null of independence (NaN if pvals=False)

    Properties
    ----------
    - Asymmetric: ξ(x, y) != ξ(y, x) in general.
    - Invariant to strictly increasing transforms of x and of y.
    - For tie-free data the maximum is (n - 2) / (n + 1), reached when y is a
      monotone function of x.
    - With ties in x the value depends on the random tie resolution; repeated calls
      can differ slightly unless rng is fixed.

    Implementation Notes
    --------------------
    - Ties are resolved by sorting on (value, uniform key). The keys come from the
      caller's Generator, so the compiled kernels stay free of random state.
    - The tie-aware argsort of the x ranks never meets a tie (the ranks are a
      permutation), so the ordering step cannot move ξ away from the plain argsort.
    - Permutation trials each draw from their own child Generator and run batched
      in a parallel kernel. The p-value for a fixed seed does not depend on batch.
    - The normal CDF is a 100-term series. It is accurate for |z| < 8 and is
      clamped to 0 or 1 beyond that, so extreme tails read as p = 0 or 1
      rather than as a precise tail probability.

    References
    ----------
    - [1] Chatterjee, S., A New Coefficient of Correlation, Journal of the American
          Statistical Association, 116(536), 2009-2022, 2021.
    - [2] Chatterjee, S., Holmes, S., XICOR: Robust and generalized correlation
          coefficients, https://CRAN.R-project.org/package=XICOR, 2023.

@author: Jon Paul Lundquist
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional
from math import sqrt, exp, pi

import numpy as np
from numba import njit, prange

logger = logging.getLogger(__name__)

METHOD_ASYMPTOTIC = "asymptotic"
METHOD_PERMUTATION = "permutation"
METHODS = (METHOD_ASYMPTOTIC, METHOD_PERMUTATION)

#Null variance of sqrt(n)*xi for continuous data without ties
_NOTIES_VAR = 2.0 / 5.0
#Largest |x| the 100-term CDF series is evaluated at
_PNORM_LIMIT = 8.0


class XiCorError(ValueError):
    """Base class for all xi_corr errors."""
    pass


class SizeMismatchError(XiCorError):
    """Raised when x and y do not have the same length."""
    pass


class InvalidMethodError(XiCorError):
    """Raised when the p-value method is neither 'asymptotic' nor 'permutation'."""
    pass


class PvalueNotRequestedError(XiCorError):
    """Raised when a p-value is requested from a configuration with pvals=False."""
    pass


class DegenerateInputError(XiCorError):
    """Raised when ξ is undefined: y has no variation or fewer than two pairs remain."""
    pass


class PermutationCancelledError(XiCorError):
    """Raised when a permutation test is cancelled or runs out of time."""
    pass


@dataclass(frozen=True)
class XiConfig:
    """Settings for significance(); construction validates the numeric knobs."""
    method: str = METHOD_ASYMPTOTIC
    n_perm: int = 1000
    ties: bool = True
    pvals: bool = True
    timeout: Optional[float] = None
    batch: int = 256

    def __post_init__(self):
        if self.n_perm < 1:
            raise ValueError("n_perm must be >= 1")
        if self.batch < 1:
            raise ValueError("batch must be >= 1")
        if self.timeout is not None and self.timeout < 0:
            raise ValueError("timeout must be None or >= 0")

    @classmethod
    def asymptotic(cls, ties=True):
        return cls(method=METHOD_ASYMPTOTIC, ties=ties, pvals=True)

    @classmethod
    def permutation(cls, n_perm=1000, timeout=None):
        return cls(method=METHOD_PERMUTATION, n_perm=n_perm, pvals=True, timeout=timeout)

    @classmethod
    def without_ties(cls):
        return cls(ties=False, pvals=True)


@dataclass(frozen=True, eq=False)
class XiSample:
    """Paired samples after NaN removal, with the settings to evaluate them."""
    x: np.ndarray = field(repr=False)
    y: np.ndarray = field(repr=False)
    n: int
    n_dropped: int
    config: XiConfig


@dataclass(frozen=True, eq=False)
class XiStats:
    """Result of one correlation pass; the terms the p-value estimators reuse."""
    xi: float
    n: int
    f: np.ndarray = field(repr=False)   # rank_max(y) / n
    cval: float                         # mean(g * (1 - g)), g = rank_max(-y) / n


def _as_generator(rng):
    if isinstance(rng, np.random.Generator):
        return rng
    return np.random.default_rng(rng)

# --- ranking kernels ---
#Argsort with every tie block reordered by its random keys
@njit(cache=True, nogil=True)
def _argsort_ties(a, keys):
    n = a.size
    order = np.argsort(a, kind='mergesort')

    i = 0
    while i < n:
        j = i + 1
        ai = a[order[i]]
        while j < n and a[order[j]] == ai:
            j += 1
        if j - i > 1:
            block = order[i:j].copy()
            sub = np.argsort(keys[block])
            for k in range(j - i):
                order[i + k] = block[sub[k]]
        i = j
    return order

#ranks 1..n, ties get distinct ranks from their block in random order
@njit(cache=True, nogil=True)
def _rank_rnd(a, keys):
    n = a.size
    order = _argsort_ties(a, keys)
    r = np.empty(n, np.float64)
    for i in range(n):
        r[order[i]] = i + 1.0
    return r

#ranks with ties set to the block maximum, i.e. #{j : a[j] <= a[i]}
@njit(cache=True, nogil=True)
def _rank_max(a):
    n = a.size
    sorter = np.argsort(a, kind='mergesort')
    r = np.empty(n, np.float64)

    i = 0
    while i < n:
        j = i + 1
        ai = a[sorter[i]]
        while j < n and a[sorter[j]] == ai:
            j += 1
        for k in range(i, j):
            r[sorter[k]] = j
        i = j
    return r

# --- statistic kernels ---
@njit(cache=True, nogil=True)
def _a1(f, order, n):
    s = 0.0
    for i in range(n - 1):
        s += abs(f[order[i]] - f[order[i + 1]])
    return (s / (n - 1)) * (n - 1) / (2.0 * n)

@njit(cache=True, nogil=True)
def _xi_terms(x, y, keys_rank, keys_order):
    n = x.size
    # PI is the rank vector for x, ties broken at random
    pi_x = _rank_rnd(x, keys_rank)
    # f[i] = #{j : y[j] <= y[i]} / n, g[i] = #{j : y[j] >= y[i]} / n
    f = _rank_max(y) / n
    g = _rank_max(-y) / n
    # order of the x's; ties in pi_x cannot occur but are shuffled if they do
    order = _argsort_ties(pi_x, keys_order)

    A1 = _a1(f, order, n)
    cval = np.mean(g * (1.0 - g))
    return f, A1, cval

#Numba parallelized null trials: one surrogate x per row
@njit(cache=True, nogil=True, parallel=True)
def _xi_null(u, keys_rank, keys_order, f, cval):
    K, n = u.shape
    out = np.empty(K, np.float64)
    for k in prange(K):  #PARALLEL LOOP
        pi_x = _rank_rnd(u[k], keys_rank[k])
        order = _argsort_ties(pi_x, keys_order[k])
        out[k] = 1.0 - _a1(f, order, n) / cval
    return out

@njit(cache=True, nogil=True)
def _tie_variance(f, cval):
    n = f.size
    q = np.sort(f)
    ind = np.arange(1, n + 1).astype(np.float64)
    ind2 = 2.0 * n - 2.0 * ind + 1.0   # 2n-1, 2n-3, ..., 1

    a = np.mean(ind2 * q * q) / n
    c = np.mean(ind2 * q) / n
    cq = np.cumsum(q)
    m = (cq + (n - ind) * q) / n
    b = np.mean(m * m)
    return (a - 2.0 * b + c * c) / (cval * cval)

#Maclaurin series of the normal CDF, 100 terms. Fine for |x| < 8; past that the
#truncated series falls apart, but Phi is already within 1e-15 of 0 or 1.
@njit(cache=True, nogil=True)
def _pnorm(x):
    if x > _PNORM_LIMIT:
        return 1.0
    if x < -_PNORM_LIMIT:
        return 0.0
    term = x
    s = x
    for i in range(1, 101):
        term = term * x * x / (2.0 * i + 1.0)
        s += term
    return 0.5 + (s / sqrt(2.0 * pi)) * exp(-0.5 * x * x)

# --- public primitives ---
def norm_cdf(x):
    """Standard normal CDF Φ(x) from a 100-term series, clamped to 0/1 for |x| > 8."""
    return float(_pnorm(float(x)))


def rank_max(a):
    """Ranks 1..n where tied values all get the largest rank of their block."""
    return _rank_max(np.asarray(a, dtype=np.float64))


def rank_rnd(a, rng=None):
    """Ranks 1..n (a permutation) with ties broken uniformly at random."""
    a = np.asarray(a, dtype=np.float64)
    keys = _as_generator(rng).random(a.size)
    return _rank_rnd(a, keys)


def argsort_ties(a, rng=None):
    """
    Ascending argsort where each block of equal values is shuffled.

    Block membership and the order of distinct values are fixed; only the order
    inside a tie block changes between calls. Tie-free input gives np.argsort.
    """
    a = np.asarray(a, dtype=np.float64)
    keys = _as_generator(rng).random(a.size)
    return _argsort_ties(a, keys)


def remove_nans(x, y):
    """Drop index i from both x and y if either x[i] or y[i] is NaN."""
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    if x.size != y.size:
        raise SizeMismatchError(f"mismatched size of input vectors: {x.size} vs {y.size}")

    indx = ~(np.isnan(x) | np.isnan(y))
    return x[indx], y[indx]

# --- correlation ---
def construct(x, y, config=None):
    """Validate and NaN-filter a sample pair. Raises SizeMismatchError."""
    if config is None:
        config = XiConfig()

    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    if x.ndim != 1 or y.ndim != 1:
        raise ValueError("x and y must be 1-D")

    xf, yf = remove_nans(x, y)
    n_dropped = x.size - xf.size
    if n_dropped:
        logger.debug("dropped %d of %d pairs containing NaN", n_dropped, x.size)

    return XiSample(x=xf, y=yf, n=int(xf.size), n_dropped=int(n_dropped), config=config)


def correlation_stats(sample, rng=None):
    """
    Compute ξ and the terms the p-value estimators need.

    Parameters
    ----------
    sample : XiSample
        Output of construct().
    rng : None, int, SeedSequence or numpy.random.Generator
        Random source for tie breaking in x.

    Returns
    -------
    XiStats

    Raises
    ------
    DegenerateInputError
        Fewer than two complete pairs, or y is constant (cval == 0).
    """
    n = sample.n
    if n < 2:
        raise DegenerateInputError(f"need at least 2 complete pairs, got {n}")

    rng = _as_generator(rng)
    keys_rank = rng.random(n)
    keys_order = rng.random(n)
    f, A1, cval = _xi_terms(sample.x, sample.y, keys_rank, keys_order)

    if cval == 0.0:
        raise DegenerateInputError("y has no variation; xi is undefined")

    xi = 1.0 - A1 / cval
    f.setflags(write=False)
    return XiStats(xi=float(xi), n=n, f=f, cval=float(cval))


def correlation(sample, rng=None):
    """Chatterjee's ξ of a constructed sample."""
    return correlation_stats(sample, rng).xi

# --- p-values ---
def asymptotic_pvalue(stats, ties=True):
    """
    One-sided p-value of ξ from its asymptotic normal null distribution.

    With ties=False the continuous-case variance 2/5 is used. With ties=True
    (default) the variance is estimated from the y ranks; the two agree only
    asymptotically, so they give different p-values even for tie-free data.
    """
    n = stats.n
    if not ties:
        return 1.0 - _pnorm(sqrt(n) * stats.xi / sqrt(_NOTIES_VAR))

    v = _tie_variance(np.array(stats.f), stats.cval)
    if not v > 0.0:
        raise DegenerateInputError(f"non-positive null variance {v}")
    return 1.0 - _pnorm(sqrt(n) * stats.xi / sqrt(v))


def permutation_pvalue(stats, n_perm=1000, rng=None, batch=256, timeout=None, cancel=None):
    """
    Monte Carlo p-value: fraction of surrogate trials with ξ_k > ξ.

    Each trial pairs n fresh U(0, 1) draws with the original y. Only the x side
    changes between trials, so the y terms (f, cval) are reused from stats.

    Parameters
    ----------
    stats : XiStats
        Result of correlation_stats() on the observed sample.
    n_perm : int
        Number of trials.
    rng : None, int, SeedSequence or numpy.random.Generator
        Parent random source; every trial gets its own spawned child stream.
    batch : int
        Trials per parallel kernel call; cancellation is checked between batches.
    timeout : float, optional
        Seconds before the run is abandoned.
    cancel : threading.Event, optional
        Set it from another thread to abandon the run.

    Raises
    ------
    PermutationCancelledError
        If cancelled or timed out. No partial p-value is returned.
    """
    n_perm = int(n_perm)
    if n_perm < 1:
        raise ValueError("n_perm must be >= 1")
    if n_perm < 100:
        logger.warning("only %d permutation trials; p-value resolution is %.3g", n_perm, 1.0 / n_perm)

    n = stats.n
    deadline = None if timeout is None else time.perf_counter() + timeout
    parent = _as_generator(rng)
    f = np.array(stats.f)

    hits = 0
    for start in range(0, n_perm, batch):
        if cancel is not None and cancel.is_set():
            raise PermutationCancelledError(f"permutation test cancelled after {start} of {n_perm} trials")
        if deadline is not None and time.perf_counter() >= deadline:
            raise PermutationCancelledError(f"permutation test timed out after {start} of {n_perm} trials")

        # children come off one SeedSequence counter, so they match a single spawn(n_perm)
        m = min(batch, n_perm - start)
        chunk = parent.spawn(m)
        u = np.empty((m, n), np.float64)
        keys_rank = np.empty((m, n), np.float64)
        keys_order = np.empty((m, n), np.float64)
        for k, g in enumerate(chunk):
            draws = g.random(3 * n)
            u[k] = draws[:n]
            keys_rank[k] = draws[n:2 * n]
            keys_order[k] = draws[2 * n:]

        xi_null = _xi_null(u, keys_rank, keys_order, f, stats.cval)
        hits += int(np.count_nonzero(xi_null > stats.xi))
        logger.debug("permutation trials %d/%d, hits %d", start + m, n_perm, hits)

    return hits / n_perm


def significance(sample, rng=None, cancel=None):
    """
    ξ and its p-value, using the method and flags in sample.config.

    Raises InvalidMethodError, PvalueNotRequestedError, DegenerateInputError and,
    for permutation runs, PermutationCancelledError.
    """
    config = sample.config
    if config.method not in METHODS:
        raise InvalidMethodError(
            f"invalid p-value calculation method {config.method!r}; use either 'asymptotic' or 'permutation'")
    if not config.pvals:
        raise PvalueNotRequestedError("p-value requested from a configuration with pvals=False")

    rng = _as_generator(rng)
    stats = correlation_stats(sample, rng)
    logger.debug("xi=%.6g on n=%d, p-value by %s", stats.xi, stats.n, config.method)

    if config.method == METHOD_PERMUTATION:
        p = permutation_pvalue(stats, n_perm=config.n_perm, rng=rng, batch=config.batch,
                               timeout=config.timeout, cancel=cancel)
    else:
        p = asymptotic_pvalue(stats, ties=config.ties)
    return stats.xi, float(p)


def xi_corr(x, y, pvals=True, method=METHOD_ASYMPTOTIC, n_perm=1000, ties=True, rng=None, timeout=None):
    config = XiConfig(method=method, n_perm=n_perm, ties=ties, pvals=pvals, timeout=timeout)
    sample = construct(x, y, config)

    if not pvals:
        return correlation(sample, rng), np.nan
    return significance(sample, rng)
