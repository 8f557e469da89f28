"""Gram-Schmidt orthogonalisation of a new Krylov vector.

Both strategies share one contract. Given the basis ``vectors`` whose
entries ``0..k-1`` are orthonormal, the vector ``vectors[k]`` is
orthogonalised against ``vectors[i0..k-1]`` with ``i0 = max(k - p, 0)``.
The projection coefficients are written to ``hessenberg[i, k-1]`` and the
Euclidean norm of the remainder to ``hessenberg[k, k-1]``; that norm is also
returned. ``vectors[k]`` is left unnormalised.

A remainder norm of exactly zero means the Krylov subspace is invariant
under the operator. It is reported, not treated as an error.
"""

from enum import IntEnum
from typing import Optional, Sequence

import numpy as np

from spgmr.vectors import NVector

# Modified Gram-Schmidt reorthogonalises when the new norm is negligible
# next to REORTHOGONALIZATION_FACTOR times the input norm.
REORTHOGONALIZATION_FACTOR = 1000.0

# Classical Gram-Schmidt runs a second pass when the remainder keeps less
# than this fraction of the input norm.
CLASSICAL_REORTHOGONALIZATION_RATIO = 1.0 / np.sqrt(2.0)


class GramSchmidtType(IntEnum):
    """Orthogonalisation strategies."""
    MODIFIED = 1
    CLASSICAL = 2


def _first_index(k: int, p: Optional[int]) -> int:
    if p is None:
        return 0
    return max(k - p, 0)


def modified_gram_schmidt(
    vectors: Sequence[NVector],
    hessenberg: np.ndarray,
    k: int,
    p: Optional[int] = None,
) -> float:
    """Orthogonalise ``vectors[k]`` one projection at a time.

    Parameters
    ----------
    vectors
        Krylov basis; entries ``i0..k-1`` must be orthonormal.
    hessenberg
        Hessenberg matrix receiving column ``k - 1``.
    k
        Index of the vector to orthogonalise, ``k >= 1``.
    p
        Number of previous vectors to orthogonalise against. ``None``
        orthogonalises against all of them.

    Returns
    -------
    float
        Norm of the orthogonalised vector.

    Notes
    -----
    Each projection is subtracted before the next inner product is taken.
    If the result is negligible relative to the input norm, a second pass
    is made so that a tiny remainder does not hide a loss of
    orthogonality; coefficients that are negligible relative to the first
    pass are skipped in that second pass.
    """
    column = k - 1
    i0 = _first_index(k, p)
    target = vectors[k]
    vk_norm = np.sqrt(target.dot(target))

    for i in range(i0, k):
        hessenberg[i, column] = vectors[i].dot(target)
        target.linear_sum(1.0, target, -hessenberg[i, column], vectors[i])

    new_norm = np.sqrt(target.dot(target))
    hessenberg[k, column] = new_norm

    threshold = REORTHOGONALIZATION_FACTOR * vk_norm
    if threshold + new_norm != threshold:
        return float(new_norm)

    correction_sq = 0.0
    for i in range(i0, k):
        product = vectors[i].dot(target)
        threshold = REORTHOGONALIZATION_FACTOR * hessenberg[i, column]
        if threshold + product == threshold:
            continue
        hessenberg[i, column] += product
        target.linear_sum(1.0, target, -product, vectors[i])
        correction_sq += product * product

    if correction_sq != 0.0:
        remaining = new_norm * new_norm - correction_sq
        new_norm = np.sqrt(remaining) if remaining > 0.0 else 0.0
        hessenberg[k, column] = new_norm
    return float(new_norm)


def classical_gram_schmidt(
    vectors: Sequence[NVector],
    hessenberg: np.ndarray,
    k: int,
    p: Optional[int] = None,
    coefficients: Optional[np.ndarray] = None,
    scratch: Optional[list] = None,
) -> float:
    """Orthogonalise ``vectors[k]`` with batched inner products.

    Parameters
    ----------
    vectors, hessenberg, k, p
        As for :func:`modified_gram_schmidt`.
    coefficients
        Optional preallocated array of length ``>= k + 1`` used for the
        fused linear combination.
    scratch
        Optional preallocated list of length ``>= k + 1`` used to hold the
        vectors of the fused linear combination.

    Returns
    -------
    float
        Norm of the orthogonalised vector.

    Notes
    -----
    All projection coefficients, and the squared input norm, come from a
    single :meth:`~spgmr.vectors.NVector.dot_multi` call and are removed
    with a single :meth:`~spgmr.vectors.NVector.linear_combination`. When
    the remainder norm falls below ``1/sqrt(2)`` of the input norm the
    projection is repeated once and the corrections are added to the
    Hessenberg column.
    """
    column = k - 1
    i0 = _first_index(k, p)
    count = k - i0
    target = vectors[k]
    if coefficients is None:
        coefficients = np.empty(k + 1, dtype=np.float64)
    if scratch is None:
        scratch = [None] * (k + 1)

    products = target.dot_multi(vectors[i0:k + 1])
    vk_norm = np.sqrt(products[count])
    hessenberg[i0:k, column] = products[:count]

    _subtract_projections(target, vectors, i0, k, products, coefficients,
                          scratch)
    new_norm = np.sqrt(target.dot(target))

    if new_norm < CLASSICAL_REORTHOGONALIZATION_RATIO * vk_norm:
        products = target.dot_multi(vectors[i0:k])
        hessenberg[i0:k, column] += products
        _subtract_projections(target, vectors, i0, k, products,
                              coefficients, scratch)
        new_norm = np.sqrt(target.dot(target))

    hessenberg[k, column] = new_norm
    return float(new_norm)


def _subtract_projections(target, vectors, i0, k, products, coefficients,
                          scratch):
    """Set ``target -= sum(products[j] * vectors[i0 + j])`` in one call."""
    count = k - i0
    coefficients[0] = 1.0
    scratch[0] = target
    for j in range(count):
        coefficients[j + 1] = -products[j]
        scratch[j + 1] = vectors[i0 + j]
    target.linear_combination(coefficients[:count + 1], scratch[:count + 1])


def orthogonalize(
    kind: GramSchmidtType,
    vectors: Sequence[NVector],
    hessenberg: np.ndarray,
    k: int,
    p: Optional[int] = None,
    coefficients: Optional[np.ndarray] = None,
    scratch: Optional[list] = None,
) -> float:
    """Dispatch to the Gram-Schmidt variant selected by ``kind``."""
    if kind == GramSchmidtType.CLASSICAL:
        return classical_gram_schmidt(vectors, hessenberg, k, p,
                                      coefficients, scratch)
    return modified_gram_schmidt(vectors, hessenberg, k, p)
