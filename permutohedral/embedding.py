"""
Construction of the permutohedral lattice, numpified.
- `embed` places each feature into its enclosing simplex and registers the simplex corners in a vertex store.
- `find_blur_neighbors` derives the per-axis neighbor pairs of every registered vertex.
- `np.float32` and `np.int32` are the default float and integer types of the stored arrays.
"""

import numpy as np


class PermutohedralInitializer:
    def __init__(self, d: int) -> None:
        """
        Precompute the constants that depend on the feature dimension only.

        Args:
            d: the dimension of features, such as 5 for bilateral features, 2 for spatial features.
        """
        if d < 1:
            raise ValueError("Feature dimension must be at least 1, got {}".format(d))
        self.d = d

        canonical = np.zeros((d + 1, d + 1), dtype=np.int32)  # (d + 1, d + 1)
        for i in range(d + 1):
            canonical[i, :d + 1 - i] = i
            canonical[i, d + 1 - i:] = i - (d + 1)
        self.canonical = canonical  # (d + 1, d + 1)

        E = np.vstack(
            [
                np.ones((d,), dtype=np.float64),
                np.diag(-np.arange(d, dtype=np.float64) - 2)
                + np.triu(np.ones((d, d), dtype=np.float64)),
            ]
        )  # (d + 1, d)
        self.E = E  # (d + 1, d)

        # Expected standard deviation of our filter (p.6 in [Adams et al. 2010])
        inv_std_dev = np.sqrt(2.0 / 3.0) * (d + 1)

        # Compute the diagonal part of E (p.5 in [Adams et al 2010])
        self.scale_factor = (
            1.0 / np.sqrt((np.arange(d) + 2) * (np.arange(d) + 1)) * inv_std_dev
        )  # (d, )

        # Upper triangle, each pair of coordinates is compared once
        self.diff_valid = 1 - np.tril(np.ones((d + 1, d + 1), dtype=np.int32))  # (d + 1, d + 1)

        # Alpha is a magic scaling constant (write Andrew if you really wanna understand this)
        self.alpha = np.float32(1.0 / (1.0 + np.power(2.0, -d)))


def embed(features, initializer, store):
    """
    Compute the enclosing simplex of each feature.

    Args:
        features: (N, d), channel-last, finite.
        initializer: `PermutohedralInitializer` of dimension d.
        store: an empty vertex store with key size d, filled in place.

    Returns:
        offsets: (N, d + 1) int32, vertex index of each simplex corner.
        barycentric: (N, d + 1) float32, weight of each simplex corner.
    """
    d = initializer.d
    N = features.shape[0]
    features = features.astype(np.float64)

    # Elevate the feature (y = Ep, see p.5 in [Adams et al. 2010])
    cf = features * initializer.scale_factor[np.newaxis, ...]  # (N, d)
    elevated = np.matmul(cf, initializer.E.T)  # (N, d + 1)

    # Find the closest 0-colored simplex through rounding
    down_factor = 1.0 / (d + 1)
    v = down_factor * elevated  # (N, d + 1)
    up, down = np.ceil(v), np.floor(v)  # (N, d + 1)
    rd = np.where(up * (d + 1) - elevated < elevated - down * (d + 1), up, down).astype(np.int64)  # (N, d + 1)
    rem0 = rd * (d + 1)  # (N, d + 1)
    _sum = rd.sum(axis=-1)  # (N, )

    # Find the simplex we are in and store it in rank (where rank describes what position coordinate i has in the sorted order of the feature values)
    diff = elevated - rem0  # (N, d + 1)
    diff_i = diff[..., np.newaxis]  # (N, d + 1, 1)
    diff_j = diff[..., np.newaxis, :]  # (N, 1, d + 1)
    rank = ((diff_i < diff_j) * initializer.diff_valid[np.newaxis, ...]).sum(axis=-1)  # (N, d + 1)
    rank += ((diff_i >= diff_j) * initializer.diff_valid[np.newaxis, ...]).sum(axis=-2)  # (N, d + 1)

    # If the point doesn't lie on the plane (sum != 0) bring it back
    rank += _sum[..., np.newaxis]  # (N, d + 1)
    ls_zero = rank < 0  # (N, d + 1)
    gt_d = rank > d  # (N, d + 1)
    rank[ls_zero] += d + 1
    rem0[ls_zero] += d + 1
    rank[gt_d] -= d + 1
    rem0[gt_d] -= d + 1

    # Compute the barycentric coordinates (p.10 in [Adams et al. 2010])
    barycentric = np.zeros((N, d + 2), dtype=np.float64)  # (N, d + 2)
    vs = (elevated - rem0) * down_factor  # (N, d + 1)
    rows = np.arange(N)[..., np.newaxis]  # (N, 1)
    barycentric[rows, d - rank] += vs
    barycentric[rows, d - rank + 1] -= vs
    # Wrap around
    barycentric[..., 0] += 1.0 + barycentric[..., d + 1]

    # Compute all vertices and their offset
    remainders = np.arange(d + 1)[np.newaxis, :, np.newaxis]  # (1, d + 1, 1)
    canonical_ext = initializer.canonical[remainders, rank[:, np.newaxis, :d]]  # (N, d + 1, d)
    keys = rem0[:, np.newaxis, :d] + canonical_ext  # (N, d + 1, d)

    # Point by point, corner by corner, so vertex indices follow creation order
    offsets = np.zeros((N * (d + 1), ), dtype=np.int32)
    for n, key in enumerate(keys.reshape((-1, d)).tolist()):
        offsets[n] = store.find(key, create=True)

    return offsets.reshape((N, d + 1)), barycentric[..., :d + 1].astype(np.float32)


def find_blur_neighbors(store, d):
    """
    Find the two neighbors of every vertex along each of the d + 1 axes.

    Returns:
        blur_neighbors: (d + 1, M, 2) int32, -1 where the neighbor is not a lattice vertex.
    """
    keys = store.keys().astype(np.int64)  # (M, d)
    M = keys.shape[0]

    n1s = np.repeat(keys[:, np.newaxis, :], repeats=d + 1, axis=1) - 1  # (M, d + 1, d)
    n2s = np.repeat(keys[:, np.newaxis, :], repeats=d + 1, axis=1) + 1  # (M, d + 1, d)
    # Axis j < d moves coordinate j by d, axis d only moves the implied last coordinate
    axes = np.arange(d)
    n1s[:, axes, axes] = keys + d
    n2s[:, axes, axes] = keys - d

    blur_neighbors = np.full((d + 1, M, 2), -1, dtype=np.int32)  # (d + 1, M, 2)
    for i, (n1_row, n2_row) in enumerate(zip(n1s.tolist(), n2s.tolist())):
        for j in range(d + 1):
            n1 = store.find(n1_row[j])
            n2 = store.find(n2_row[j])
            if n1 is not None:
                blur_neighbors[j, i, 0] = n1
            if n2 is not None:
                blur_neighbors[j, i, 1] = n2

    return blur_neighbors
