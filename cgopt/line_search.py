"""Derivative-based line search along a descent direction.

The search works on the directional derivative
``phi'(alpha) = grad(x + alpha p) . p`` only, so it needs no objective
values. Trial points flagged by the domain predicate are pulled back towards
the last accepted step, which keeps every evaluation inside the caller's
domain (for example the interior of a log barrier).
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from .core import Array, DomainPredicate, VectorFunction, evaluate_gradient, never_out_of_domain


def derivative_line_search(
    grad: VectorFunction,
    x: Array,
    p: Array,
    threshold: float = 1e-6,
    alpha0: float = 1.0,
    out_of_domain: Optional[DomainPredicate] = None,
    shrink: float = 0.5,
    max_iter: int = 60,
    grad_x: Optional[Array] = None,
) -> tuple[float, int]:
    """Find a step where ``|phi'(alpha)| <= threshold * |phi'(0)|``.

    The step is first bracketed, doubling while ``phi'`` stays negative and
    shrinking by ``shrink`` while the trial point is out of domain. The
    bracket is then refined by Illinois regula falsi.

    Returns:
        ``(alpha, ngev)`` where ``ngev`` counts gradient evaluations. ``alpha``
        is 0 when ``p`` is not a descent direction. When the budget runs out
        the largest step known to lie before the minimizer is returned.
    """
    if threshold <= 0:
        raise ValueError("threshold must be positive")
    if not (0 < shrink < 1):
        raise ValueError("shrink must lie in (0, 1)")
    if alpha0 <= 0:
        raise ValueError("alpha0 must be positive")
    if out_of_domain is None:
        out_of_domain = never_out_of_domain

    ngev = 0

    def phi_prime(alpha: float) -> float:
        nonlocal ngev
        ngev += 1
        return float(evaluate_gradient(grad, x + alpha * p) @ p)

    if grad_x is None:
        der0 = phi_prime(0.0)
    else:
        der0 = float(grad_x @ p)
    if not der0 < 0:
        return 0.0, ngev
    target = threshold * abs(der0)

    alo, dlo = 0.0, der0
    ahi: Optional[float] = None
    dhi = 0.0
    alpha = float(alpha0)
    for _ in range(max_iter):
        if out_of_domain(x + alpha * p):
            alpha = alo + shrink * (alpha - alo)
            continue
        der = phi_prime(alpha)
        if not np.isfinite(der):
            alpha = alo + shrink * (alpha - alo)
            continue
        if abs(der) <= target:
            return alpha, ngev
        if der > 0:
            ahi, dhi = alpha, der
            break
        alo, dlo = alpha, der
        alpha *= 2.0
    if ahi is None:
        return alo, ngev

    # Illinois regula falsi; bisect once the same end has moved three times.
    side = 0
    repeats = 0
    for _ in range(max_iter):
        width = ahi - alo
        if width <= 1e-15 * ahi:
            break
        alpha = alo - dlo * width / (dhi - dlo)
        if repeats >= 2 or not (alo < alpha < ahi):
            alpha = 0.5 * (alo + ahi)
            repeats = 0
        if out_of_domain(x + alpha * p):
            ahi = alpha
            side = 0
            continue
        der = phi_prime(alpha)
        if not np.isfinite(der):
            ahi = alpha
            side = 0
            continue
        if abs(der) <= target:
            return alpha, ngev
        if der > 0:
            ahi, dhi = alpha, der
            if side == 1:
                dlo *= 0.5
                repeats += 1
            else:
                repeats = 0
            side = 1
        else:
            alo, dlo = alpha, der
            if side == -1:
                dhi *= 0.5
                repeats += 1
            else:
                repeats = 0
            side = -1
    return alo, ngev


__all__ = ["derivative_line_search"]
