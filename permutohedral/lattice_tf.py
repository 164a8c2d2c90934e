"""
This is a tf implementation of the permutohedral filtering step.
The lattice itself is built with NumPy and handed over as constant tensors.
"""

import numpy as np
import tensorflow as tf

from .lattice import Permutohedral


class PermutohedralTF:
    def __init__(self, N: int, d: int) -> None:
        self.lattice = Permutohedral(N, d)
        self.N, self.M, self.d = N, 0, d
        self.alpha = tf.constant(self.lattice.alpha, dtype=tf.float32)
        self.os, self.ws, self.blur_neighbors = None, None, None

    @classmethod
    def from_lattice(cls, lattice: Permutohedral) -> "PermutohedralTF":
        lattice_tf = cls(lattice.N, lattice.d)
        lattice_tf.lattice = lattice.copy()
        lattice_tf._load()
        return lattice_tf

    def init(self, features) -> None:
        if tf.is_tensor(features):
            features = features.numpy()
        self.lattice.init(np.asarray(features))
        self._load()

    def _load(self) -> None:
        self.M = self.lattice.M
        # Shift all values by 1 such that -1 -> 0 (used for blurring)
        self.os = tf.constant(self.lattice.offsets.reshape(-1) + 1, dtype=tf.int32)  # [N x (d + 1), ]
        self.ws = tf.constant(self.lattice.barycentric.reshape(-1), dtype=tf.float32)  # [N x (d + 1), ]
        self.blur_neighbors = tf.constant(self.lattice.blur_neighbors + 1, dtype=tf.int32)  # [d + 1, M, 2]

    def compute(self, inp, reverse=False) -> tf.Tensor:
        """
        Compute.

        Args:
            inp: [N, value_size], channel-last.
            reverse: indicating the blur order.

        Returns:
            out: [N, value_size]
        """
        if self.os is None:
            raise RuntimeError("Lattice is not initialized, call `init()` first")
        inp = tf.convert_to_tensor(inp, dtype=tf.float32)
        value_size = tf.shape(inp)[1]

        # ->> Splat
        inp_ext = tf.repeat(inp, repeats=self.d + 1, axis=0)  # [N x (d + 1), value_size]
        values = tf.math.unsorted_segment_sum(
            inp_ext * self.ws[..., tf.newaxis], self.os, num_segments=self.M + 2)  # [M + 2, value_size]

        # ->> Blur
        j_range = range(self.d, -1, -1) if reverse else range(self.d + 1)
        for j in j_range:
            n1_vals = tf.gather(values, self.blur_neighbors[j, :, 0])  # [M, value_size]
            n2_vals = tf.gather(values, self.blur_neighbors[j, :, 1])  # [M, value_size]
            new_vals = values[1:self.M + 1] + 0.5 * (n1_vals + n2_vals)  # [M, value_size]

            # Sentinel rows stay zero
            new_values = tf.concat([values[:1], new_vals, values[self.M + 1:]], axis=0)
            values, new_values = new_values, values

        # ->> Slice
        out = self.ws[..., tf.newaxis] * tf.gather(values, self.os) * self.alpha  # [N x (d + 1), value_size]
        out = tf.reshape(out, shape=[self.N, self.d + 1, value_size])
        out = tf.reduce_sum(out, axis=1)  # [N, value_size]

        return out
