"""
Linear solve backends for the sparse Jacobians of a system.
"""

import logging
import warnings

import numpy as np
import scipy.linalg
import scipy.sparse as sp
import scipy.sparse.linalg as spla
from abc import ABC, abstractmethod

from .errors import LinearSolveError

logger = logging.getLogger(__name__)


class Factorization(ABC):
    """Abstract base class for a factorized matrix."""

    @abstractmethod
    def solve(self, rhs: np.ndarray) -> np.ndarray:
        """
        Solve A x = rhs with the factorized matrix.

        Args:
            rhs: Right hand side (n,)

        Returns:
            Solution x (n,)
        """
        pass

    def _check(self, x: np.ndarray) -> np.ndarray:
        if not np.all(np.isfinite(x)):
            raise LinearSolveError("Linear solve produced non-finite values (singular matrix?)")
        return x


class LUFactorization(Factorization):
    """Sparse LU factorization (SuperLU)."""

    def __init__(self, matrix: sp.spmatrix):
        try:
            self.lu = spla.splu(sp.csc_matrix(matrix))
        except RuntimeError as err:
            raise LinearSolveError(f"Sparse LU factorization failed: {err}") from err

    def solve(self, rhs: np.ndarray) -> np.ndarray:
        return self._check(self.lu.solve(np.asarray(rhs, dtype=float)))


class DenseFactorization(Factorization):
    """Dense LU factorization, for small systems."""

    def __init__(self, matrix):
        dense = matrix.toarray() if sp.issparse(matrix) else np.asarray(matrix, dtype=float)
        with warnings.catch_warnings():
            warnings.simplefilter('error', scipy.linalg.LinAlgWarning)
            try:
                self.lu_piv = scipy.linalg.lu_factor(dense)
            except (scipy.linalg.LinAlgError, scipy.linalg.LinAlgWarning, ValueError) as err:
                raise LinearSolveError(f"Dense LU factorization failed: {err}") from err
        diag = np.abs(np.diag(self.lu_piv[0]))
        if diag.size > 0 and diag.min() == 0.0:
            raise LinearSolveError("Dense LU factorization failed: matrix is exactly singular")

    def solve(self, rhs: np.ndarray) -> np.ndarray:
        return self._check(scipy.linalg.lu_solve(self.lu_piv, np.asarray(rhs, dtype=float)))


FACTORIZATIONS = {
    'splu': LUFactorization,
    'dense': DenseFactorization,
}


def factorize(matrix, method: str = 'splu') -> Factorization:
    """
    Factorize a matrix with the named backend.

    Args:
        matrix: Square sparse or dense matrix
        method: 'splu' (sparse LU) or 'dense' (dense LU)
    """
    if method not in FACTORIZATIONS:
        raise ValueError(f"Unknown factorization: {method}. "
                         f"Options: {', '.join(FACTORIZATIONS)}")
    logger.debug("Factorizing %dx%d matrix with '%s'", matrix.shape[0], matrix.shape[1], method)
    return FACTORIZATIONS[method](matrix)
