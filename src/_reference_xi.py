#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Jon Paul Lundquist
"""
Created on Tue Oct 13 16:02:18 2026

Straightforward NumPy version of ξ used to check the compiled kernels.
Ranks are drawn from per-value pools and tie blocks are shuffled in place,
exactly as the algorithm is usually described.

@author: Jon Paul Lundquist
"""
import numpy as np

#NOT OPTIMIZED SIMPLIFIED CODE
def _pools(a):
    """Sorted 1-based positions of every distinct value."""
    pools = {}
    for i, v in enumerate(np.sort(a)):
        pools.setdefault(v, []).append(i + 1)
    return pools

def rank_rnd(a, rng):
    a = np.asarray(a, dtype=np.float64)
    pools = _pools(a)
    r = np.empty(a.size)
    for i, v in enumerate(a):
        pool = pools[v]
        r[i] = pool.pop(rng.integers(len(pool)))
    return r

def rank_max(a):
    a = np.asarray(a, dtype=np.float64)
    pools = _pools(a)
    return np.array([pools[v][-1] for v in a], dtype=np.float64)

def argsort_ties(a, rng):
    a = np.asarray(a, dtype=np.float64)
    order = np.argsort(a, kind='stable')
    s = a[order]
    n = a.size
    lo = 0
    for hi in range(1, n + 1):
        if hi == n or s[hi] != s[lo]:
            if hi - lo > 1:
                rng.shuffle(order[lo:hi])
            lo = hi
    return order

def xi_terms(x, y, rng):
    """Returns (xi, f, cval) for NaN-free x, y."""
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    n = x.size
    pi_x = rank_rnd(x, rng)
    f = rank_max(y) / n
    g = rank_max(-y) / n
    ford = f[argsort_ties(pi_x, rng)]
    A1 = np.mean(np.abs(np.diff(ford))) * (n - 1) / (2 * n)
    cval = np.mean(g * (1 - g))
    return 1 - A1 / cval, f, cval

def xi_all_tie_resolutions(x, y):
    """Every ξ reachable by some resolution of the ties in x (small inputs only)."""
    from itertools import permutations, product

    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    n = x.size
    f = rank_max(y) / n
    g = rank_max(-y) / n
    cval = np.mean(g * (1 - g))

    order = np.argsort(x, kind='stable')
    blocks = [order[x[order] == v] for v in np.unique(x)]
    out = set()
    for choice in product(*(permutations(b) for b in blocks)):
        ford = f[np.concatenate([np.array(c) for c in choice])]
        A1 = np.mean(np.abs(np.diff(ford))) * (n - 1) / (2 * n)
        out.add(round(float(1 - A1 / cval), 12))
    return sorted(out)

def tie_variance(f, cval):
    n = f.size
    q = np.sort(f)
    ind = np.arange(1, n + 1)
    ind2 = 2 * n - 2 * ind + 1
    a = np.mean(ind2 * q**2) / n
    c = np.mean(ind2 * q) / n
    m = (np.cumsum(q) + (n - ind) * q) / n
    b = np.mean(m**2)
    return (a - 2 * b + c**2) / cval**2
