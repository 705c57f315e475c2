"""
Column-major matrix helpers.

Feature matrices hold one instance per column and may be dense numpy arrays
or scipy sparse matrices. These helpers hide the dense/sparse differences
from the distance strategies and algorithms.
"""

from typing import Optional, Tuple, Union

import numpy as np
import scipy.sparse as sp

from colclust.utils.error_handling import InvalidInputError

FeatureMatrix = Union[np.ndarray, sp.spmatrix, sp.sparray]


def is_sparse(matrix) -> bool:
    """True for any scipy sparse matrix or array."""
    return sp.issparse(matrix)


def as_feature_matrix(matrix) -> FeatureMatrix:
    """
    Normalize input to a 2-D float64 matrix.

    Dense inputs become float64 ndarrays (1-D inputs are read as a single
    row, i.e. N one-dimensional points). Sparse inputs become CSC, which
    makes column slicing cheap.
    """
    if is_sparse(matrix):
        return sp.csc_matrix(matrix, dtype=np.float64)
    array = np.asarray(matrix, dtype=np.float64)
    if array.ndim == 1:
        array = array.reshape(1, -1)
    if array.ndim != 2:
        raise ValueError(f"Feature matrix must be 2-D, got {array.ndim}-D")
    return array


def as_vector(point) -> np.ndarray:
    """Dense 1-D float64 copy of a single point."""
    if is_sparse(point):
        return np.asarray(point.toarray(), dtype=np.float64).ravel()
    return np.asarray(point, dtype=np.float64).ravel()


def col_norm2(matrix: FeatureMatrix, out: Optional[np.ndarray] = None) -> np.ndarray:
    """Squared Euclidean norm of every column."""
    if is_sparse(matrix):
        norms = np.asarray(matrix.multiply(matrix).sum(axis=0), dtype=np.float64).ravel()
    else:
        norms = np.einsum("ij,ij->j", matrix, matrix)
    if out is None or out.shape != norms.shape:
        return norms
    np.copyto(out, norms)
    return out


def cross_product(X: FeatureMatrix, Y: FeatureMatrix) -> np.ndarray:
    """Dense X^T Y (dot products of every column pair)."""
    if is_sparse(Y) and not is_sparse(X):
        product = (Y.T @ X).T
    else:
        product = X.T @ Y
    if is_sparse(product):
        return product.toarray()
    return np.asarray(product, dtype=np.float64)


def feature_shape(matrix) -> Tuple[int, int]:
    """
    (dimension, instance count) of a feature matrix, read without copying.

    Raises:
        InvalidInputError: If the input has no features, no instances or the
            wrong number of axes
    """
    shape = matrix.shape if is_sparse(matrix) else np.shape(matrix)
    if len(shape) == 1:
        shape = (1 if shape[0] > 0 else 0, shape[0])
    if len(shape) != 2:
        raise InvalidInputError(
            f"Feature matrix must be 2-D (features x instances), got shape {shape}"
        )
    dim, n_inst = int(shape[0]), int(shape[1])
    if dim <= 0:
        raise InvalidInputError("The input matrix doesn't have any features!")
    if n_inst <= 0:
        raise InvalidInputError("The input matrix doesn't have any instances!")
    return dim, n_inst


def get_column(matrix: FeatureMatrix, index: int) -> np.ndarray:
    """Dense copy of one column."""
    if is_sparse(matrix):
        return matrix[:, [index]].toarray().ravel()
    return np.array(matrix[:, index], dtype=np.float64)


def get_columns(matrix: FeatureMatrix, indices) -> np.ndarray:
    """Dense copy of several columns, shape (D, len(indices))."""
    indices = np.asarray(indices, dtype=np.intp)
    if is_sparse(matrix):
        return matrix[:, indices].toarray()
    return np.array(matrix[:, indices], dtype=np.float64)


def indicator_sums(matrix: FeatureMatrix, assignment: np.ndarray, n_clusters: int) -> np.ndarray:
    """
    Per-cluster column sums, shape (D, K).

    Built from a sparse N x K indicator matrix so dense and sparse feature
    matrices share one code path.
    """
    n_inst = assignment.shape[0]
    indicator = sp.csr_matrix(
        (np.ones(n_inst), (np.arange(n_inst), assignment)),
        shape=(n_inst, n_clusters),
    )
    sums = indicator.T @ matrix.T
    if is_sparse(sums):
        sums = sums.toarray()
    return np.asarray(sums, dtype=np.float64).T
