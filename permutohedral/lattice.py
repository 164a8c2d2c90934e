"""
Permutohedral lattice in NP, channel-last as well.
- `init()` builds the lattice once per feature set, `compute()` filters any number of value arrays against it.
- Value buffers are shifted by 1 such that the missing neighbor -1 reads the always-zero slot 0.
"""

import logging

import numpy as np

from .embedding import PermutohedralInitializer, embed, find_blur_neighbors
from .hash_table import DictVertexStore

logger = logging.getLogger(__name__)


class Permutohedral:
    def __init__(self, N, d) -> None:
        self.N, self.M, self.d = N, 0, d
        self.initializer = PermutohedralInitializer(d)
        self.alpha = self.initializer.alpha

        self.offsets = None  # (N, d + 1)
        self.barycentric = None  # (N, d + 1)
        self.blur_neighbors = None  # (d + 1, M, 2)

    @property
    def is_built(self):
        return self.offsets is not None

    def init(self, features, vertex_store=None):
        """
        Build the lattice, replacing any previous one.

        Args:
            features: (N, d), channel-last. A flat array is accepted for d = 1.
            vertex_store: optional empty `VertexStore` to register vertices in, a `DictVertexStore` by default.
        """
        features = np.asarray(features)
        if features.ndim == 1 and self.d == 1:
            features = features[..., np.newaxis]
        if features.shape != (self.N, self.d):
            raise ValueError(
                "Expected features of shape {}, got {}".format((self.N, self.d), features.shape))
        if not np.all(np.isfinite(features)):
            raise ValueError("Features must be finite")

        store = vertex_store if vertex_store is not None else DictVertexStore(self.d, self.N * (self.d + 1))
        if store.size() != 0:
            raise ValueError("Vertex store must be empty, it holds {} keys".format(store.size()))

        self.offsets, self.barycentric = embed(features, self.initializer, store)

        # Get the number of vertices in the lattice
        self.M = store.size()
        self.blur_neighbors = find_blur_neighbors(store, self.d)

        logger.debug("Lattice initialized: N=%d, d=%d, M=%d", self.N, self.d, self.M)

    def neighbors(self, axis, vertex):
        """Neighbor pair of `vertex` along `axis`, `None` on the lattice boundary."""
        self._check_built()
        n1, n2 = self.blur_neighbors[axis, vertex]
        return (int(n1) if n1 >= 0 else None, int(n2) if n2 >= 0 else None)

    def splat(self, inp, in_offset=0, in_size=None):
        if in_size is None:
            in_size = self.N - in_offset
        value_size = inp.shape[1]
        os = self.offsets[in_offset:in_offset + in_size].reshape(-1) + 1  # (in_size x (d + 1), )
        ws = self.barycentric[in_offset:in_offset + in_size].reshape(-1)  # (in_size x (d + 1), )

        values = np.zeros((self.M + 2, value_size), dtype=np.float32)
        for v in range(value_size):
            ch = np.repeat(inp[:, v], repeats=self.d + 1)  # (in_size x (d + 1), )
            values[:, v] = np.bincount(os, weights=ch * ws, minlength=self.M + 2)

        return values

    def blur(self, values, reverse=False):
        new_values = np.zeros_like(values)

        j_range = range(self.d, -1, -1) if reverse else range(self.d + 1)
        for j in j_range:
            n1s = self.blur_neighbors[j, :, 0] + 1  # (M, )
            n2s = self.blur_neighbors[j, :, 1] + 1  # (M, )
            new_values[1:self.M + 1] = values[1:self.M + 1] + 0.5 * (values[n1s] + values[n2s])

            values, new_values = new_values, values

        return values

    def slice(self, values, out_offset=0, out_size=None):
        if out_size is None:
            out_size = self.N - out_offset
        value_size = values.shape[1]
        os = self.offsets[out_offset:out_offset + out_size].reshape(-1) + 1  # (out_size x (d + 1), )
        ws = self.barycentric[out_offset:out_offset + out_size].reshape(-1)  # (out_size x (d + 1), )

        out = ws[..., np.newaxis] * values[os]  # (out_size x (d + 1), value_size)
        out = out.reshape((out_size, self.d + 1, value_size)).sum(axis=1)  # (out_size, value_size)

        return out * self.alpha

    def seq_compute(self, out, inp, value_size, in_offset=0, out_offset=0, in_size=None, out_size=None, reverse=False):
        """
        Compute sequentially

        Args:
            out: (out_size, value_size), overwritten.
            inp: (in_size, value_size), values of points [in_offset, in_offset + in_size).
            value_size: value size.
            in_offset, out_offset: first point of the input and output ranges.
            in_size, out_size: number of points, all remaining points by default.
            reverse: indicating the blurring order.
        """
        self._check_built()
        in_size = self._check_range("in", in_offset, in_size)
        out_size = self._check_range("out", out_offset, out_size)
        if inp.shape != (in_size, value_size):
            raise ValueError("Expected input of shape {}, got {}".format((in_size, value_size), inp.shape))
        if out.shape != (out_size, value_size):
            raise ValueError("Expected output of shape {}, got {}".format((out_size, value_size), out.shape))

        # ->> Splat
        values = self.splat(inp, in_offset, in_size)
        # ->> Blur
        values = self.blur(values, reverse)
        # ->> Slice
        out[:] = self.slice(values, out_offset, out_size)

    def compute(self, inp, in_offset=0, out_offset=0, in_size=None, out_size=None, reverse=False):
        inp = np.asarray(inp, dtype=np.float32)
        flat = inp.ndim == 1
        if flat:
            inp = inp[..., np.newaxis]
        value_size = inp.shape[1]
        if out_size is None:
            out_size = self.N - out_offset

        out = np.zeros((out_size, value_size), dtype=np.float32)
        self.seq_compute(out, inp, value_size, in_offset, out_offset, in_size, out_size, reverse)

        return out[..., 0] if flat else out

    def copy(self):
        lattice = Permutohedral(self.N, self.d)
        lattice.M = self.M
        if self.is_built:
            lattice.offsets = self.offsets.copy()
            lattice.barycentric = self.barycentric.copy()
            lattice.blur_neighbors = self.blur_neighbors.copy()
        return lattice

    def __deepcopy__(self, memo):
        return self.copy()

    def _check_built(self):
        if not self.is_built:
            raise RuntimeError("Lattice is not initialized, call `init()` first")

    def _check_range(self, name, offset, size):
        if size is None:
            size = self.N - offset
        if offset < 0 or size < 0 or offset + size > self.N:
            raise ValueError(
                "{}_offset={} and {}_size={} exceed the {} lattice points".format(name, offset, name, size, self.N))
        return size
