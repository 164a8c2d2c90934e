# -*- coding: utf-8 -*-

"""
Dense CRF mean-field inference with permutohedral message passing.
`image` and `unary` are channel-last.
"""

import logging

import numpy as np

from .config import Config
from .filters import bilateral_features, spatial_features
from .lattice import Permutohedral

logger = logging.getLogger(__name__)


def unary_from_labels(labels: np.ndarray, n_labels: int, gt_prob: float, zero_unsure=True) -> np.ndarray:
    """
    Simple classifier that is 50% certain that the annotation is correct.
    (same as in the inference example).


    Parameters
    ----------
    labels: numpy.array
        The label-map, i.e. an array of your data's shape where each unique
        value corresponds to a label.
    n_labels: int
        The total number of labels there are.
        If `zero_unsure` is True (the default), this number should not include
        `0` in counting the labels, since `0` is not a label!
    gt_prob: float
        The certainty of the ground-truth (must be within (0,1)).
    zero_unsure: bool
        If `True`, treat the label value `0` as meaning "could be anything",
        i.e. entries with this value will get uniform unary probability.
        If `False`, do not treat the value `0` specially, but just as any
        other class.

    Returns
    -------
    U: numpy.array
        Unary energies, (n_labels, n_pixels).
    """
    assert 0 < gt_prob < 1, "`gt_prob must be in (0,1)."

    labels = labels.flatten()

    n_energy = -np.log((1.0 - gt_prob) / (n_labels - 1))
    p_energy = -np.log(gt_prob)

    # The later assignments overwrite part of the former ones
    U = np.full((n_labels, len(labels)), n_energy, dtype='float32')
    if zero_unsure:
        known = labels > 0
        U[labels[known] - 1, np.arange(U.shape[1])[known]] = p_energy
        # Overwrite 0-labels using uniform probability, i.e. "unsure".
        U[:, ~known] = -np.log(1.0 / n_labels)
    else:
        U[labels, np.arange(U.shape[1])] = p_energy

    return U


def _softmax(x):
    e = np.exp(x - x.max(axis=-1, keepdims=True))
    return e / e.sum(axis=-1, keepdims=True)


def _potts_compatibility(n_classes):
    return -1 * np.eye(n_classes, dtype=np.float32)


def inference(unary, image, config=None, **overrides):
    """
    Mean-field inference.

    Args:
        unary: (h, w, n_classes), unary energies.
        image: (h, w, n_channels), data scale [0, 1].
        config: `Config`, keyword overrides take precedence over it.

    Returns:
        Q: (h, w, n_classes), marginals.
    """
    config = config or Config()
    params = {name: overrides.pop(name, getattr(config, name)) for name in (
        'theta_alpha', 'theta_beta', 'theta_gamma', 'spatial_compat', 'bilateral_compat', 'n_iterations')}
    if overrides:
        raise TypeError("Unknown inference options: {}".format(sorted(overrides)))

    # Check if data scale of `image` is [0, 1]
    assert image.ndim == 3, "`image` must be (h, w, n_channels)."
    assert image.min() >= 0. and image.max() <= 1., "`image` must be in [0, 1]."
    height, width = image.shape[:2]
    num_classes = unary.shape[-1]
    assert unary.shape[:2] == (height, width), "`unary` and `image` must share height and width."

    n_feats = height * width
    compatibility_matrix = _potts_compatibility(num_classes)  # (n_classes, n_classes)

    spatial_feats = spatial_features(height, width, params['theta_gamma'])  # (h x w, 2)
    bilateral_feats = bilateral_features(image, params['theta_alpha'], params['theta_beta'])  # (h x w, d_bifeats)

    spatial_filter = Permutohedral(n_feats, spatial_feats.shape[1])
    bilateral_filter = Permutohedral(n_feats, bilateral_feats.shape[1])
    spatial_filter.init(spatial_feats)
    bilateral_filter.init(bilateral_feats)

    all_ones = np.ones((n_feats, 1), dtype=np.float32)  # (n_feats, 1)

    # Compute symmetric weight
    spatial_norm_vals = spatial_filter.compute(all_ones)  # (n_feats, 1)
    spatial_norm_vals = 1. / (spatial_norm_vals ** .5 + 1e-20)
    bilateral_norm_vals = bilateral_filter.compute(all_ones)  # (n_feats, 1)
    bilateral_norm_vals = 1. / (bilateral_norm_vals ** .5 + 1e-20)

    # Initialize Q
    unary = unary.reshape((-1, num_classes)).astype(np.float32)  # (n_feats, n_classes)
    Q = _softmax(-unary)  # (n_feats, n_classes)

    for i in range(params['n_iterations']):
        tmp1 = -unary  # (n_feats, n_classes)

        # Symmetric normalization and spatial message passing
        spatial_out = spatial_filter.compute(Q * spatial_norm_vals)  # (n_feats, n_classes)
        spatial_out *= spatial_norm_vals

        # Symmetric normalization and bilateral message passing
        bilateral_out = bilateral_filter.compute(Q * bilateral_norm_vals)  # (n_feats, n_classes)
        bilateral_out *= bilateral_norm_vals

        # Message passing
        message_passing = params['spatial_compat'] * spatial_out + params['bilateral_compat'] * bilateral_out

        # Compatibility transform
        pairwise = np.matmul(message_passing, compatibility_matrix)  # (n_feats, n_classes)

        # Local update
        tmp1 = tmp1 - pairwise

        # Normalize
        Q = _softmax(tmp1)  # (n_feats, n_classes)
        logger.debug("Mean-field iteration %d / %d", i + 1, params['n_iterations'])

    return Q.reshape((height, width, num_classes))
