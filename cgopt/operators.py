"""Implicit linear operators.

A :class:`LinearOperator` represents a matrix through its action on a vector.
Operators without a fixed size (zero, identity, scalings and function-backed
operators) adapt to the length of their argument; dense and diagonal
operators check it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional, Union

import numpy as np

from .core import Array, DimensionMismatchError, VectorLike, as_vector


class LinearOperator(ABC):
    """Matrix-free linear map ``x -> A x``."""

    size: Optional[int] = None
    # Let ``numpy_scalar * operator`` dispatch to __rmul__.
    __array_ufunc__ = None

    @abstractmethod
    def _apply(self, x: Array) -> Array:
        """Return ``A x`` for a validated vector ``x``."""

    def apply(self, x: VectorLike) -> Array:
        vec = as_vector(x, "x")
        if self.size is not None and vec.shape[0] != self.size:
            raise DimensionMismatchError(
                f"{type(self).__name__} of size {self.size} applied to vector of length {vec.shape[0]}"
            )
        return self._apply(vec)

    def __call__(self, x: VectorLike) -> Array:
        return self.apply(x)

    def __add__(self, other: "LinearOperator") -> "LinearOperator":
        if not isinstance(other, LinearOperator):
            return NotImplemented
        return SumOperator(self, other)

    def __mul__(self, scale: float) -> "LinearOperator":
        if not isinstance(scale, (int, float, np.floating, np.integer)):
            return NotImplemented
        return ScaledOperator(self, float(scale))

    __rmul__ = __mul__


class ZeroOperator(LinearOperator):
    def _apply(self, x: Array) -> Array:
        return np.zeros_like(x)


class IdentityOperator(LinearOperator):
    def _apply(self, x: Array) -> Array:
        return x


class DiagonalOperator(LinearOperator):
    """Element-wise scaling by a fixed diagonal."""

    def __init__(self, diagonal: VectorLike):
        self.diagonal = as_vector(diagonal, "diagonal")
        self.size = self.diagonal.shape[0]

    def _apply(self, x: Array) -> Array:
        return self.diagonal * x


class DenseOperator(LinearOperator):
    """Operator backed by an explicit square matrix."""

    def __init__(self, matrix: np.ndarray):
        mat = np.array(matrix, dtype=float)
        if mat.ndim != 2 or mat.shape[0] != mat.shape[1]:
            raise DimensionMismatchError(f"matrix must be square, got shape {mat.shape}")
        self.matrix = mat
        self.size = mat.shape[0]

    def _apply(self, x: Array) -> Array:
        return self.matrix @ x


class EntryOperator(LinearOperator):
    """Dense operator defined by an entry function ``(i, j) -> a_ij``.

    The size is taken from the vector the operator is applied to. The matrix
    for a given size is built on first use and reused afterwards.
    """

    def __init__(self, entry: Callable[[int, int], float]):
        self.entry = entry
        self._matrices: dict[int, np.ndarray] = {}

    def matrix(self, n: int) -> np.ndarray:
        mat = self._matrices.get(n)
        if mat is None:
            mat = np.array([[self.entry(i, j) for j in range(n)] for i in range(n)], dtype=float)
            mat = mat.reshape(n, n)
            self._matrices[n] = mat
        return mat

    def _apply(self, x: Array) -> Array:
        return self.matrix(x.shape[0]) @ x


class FunctionOperator(LinearOperator):
    """Wraps a plain ``x -> A x`` callable."""

    def __init__(self, func: Callable[[Array], VectorLike], size: Optional[int] = None):
        self.func = func
        self.size = size

    def _apply(self, x: Array) -> Array:
        out = as_vector(self.func(x), "operator output")
        if out.shape != x.shape:
            raise DimensionMismatchError(
                f"operator returned length {out.shape[0]} for input of length {x.shape[0]}"
            )
        return out


class SumOperator(LinearOperator):
    def __init__(self, left: LinearOperator, right: LinearOperator):
        if left.size is not None and right.size is not None and left.size != right.size:
            raise DimensionMismatchError(f"cannot add operators of sizes {left.size} and {right.size}")
        self.left = left
        self.right = right
        self.size = left.size if left.size is not None else right.size

    def _apply(self, x: Array) -> Array:
        return self.left.apply(x) + self.right.apply(x)


class ScaledOperator(LinearOperator):
    def __init__(self, inner: LinearOperator, scale: float):
        self.inner = inner
        self.scale = scale
        self.size = inner.size

    def _apply(self, x: Array) -> Array:
        return self.scale * self.inner.apply(x)


OperatorLike = Union[LinearOperator, np.ndarray, Callable[[Array], VectorLike]]


def as_operator(op: OperatorLike) -> LinearOperator:
    """Coerce a matrix, callable or operator into a :class:`LinearOperator`."""
    if isinstance(op, LinearOperator):
        return op
    if isinstance(op, np.ndarray) or isinstance(op, (list, tuple)):
        return DenseOperator(np.asarray(op, dtype=float))
    if callable(op):
        return FunctionOperator(op)
    raise TypeError(f"cannot interpret {type(op).__name__} as a linear operator")


TensorLike = Union[LinearOperator, np.ndarray, Callable[[Array], OperatorLike]]


def operator_at(tensor: TensorLike, x: Array) -> LinearOperator:
    """Evaluate a point-dependent operator (Hessian or preconditioner) at ``x``.

    Operators and matrices are point-independent and returned as they are;
    any other callable is called with ``x`` and must return an operator,
    a matrix or an ``x -> A x`` callable.
    """
    if isinstance(tensor, (LinearOperator, np.ndarray)):
        return as_operator(tensor)
    return as_operator(tensor(x))


def zero_operator() -> LinearOperator:
    return ZeroOperator()


def identity_operator() -> LinearOperator:
    return IdentityOperator()


def diagonal_operator(diagonal: VectorLike) -> DiagonalOperator:
    return DiagonalOperator(diagonal)


def dense_operator(
    matrix: Union[np.ndarray, list, Callable[[int, int], float]]
) -> LinearOperator:
    """Build a dense operator from a matrix or an entry function ``(i, j) -> a_ij``."""
    if callable(matrix) and not isinstance(matrix, np.ndarray):
        return EntryOperator(matrix)
    return DenseOperator(np.asarray(matrix, dtype=float))


__all__ = [
    "LinearOperator",
    "OperatorLike",
    "TensorLike",
    "ZeroOperator",
    "IdentityOperator",
    "DiagonalOperator",
    "DenseOperator",
    "EntryOperator",
    "FunctionOperator",
    "SumOperator",
    "ScaledOperator",
    "as_operator",
    "operator_at",
    "zero_operator",
    "identity_operator",
    "diagonal_operator",
    "dense_operator",
]
