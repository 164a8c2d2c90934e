"""
Gaussian image filters on top of the permutohedral lattice.
`image` is channel-last, (h, w, n_channels), with data scale [0, 1].
"""

import numpy as np

from .config import Config
from .lattice import Permutohedral


def spatial_features(height, width, theta_gamma):
    ys, xs = np.meshgrid(np.arange(height), np.arange(width), indexing='ij')  # (h, w) and (h, w)
    feats = np.stack([xs, ys], axis=-1).astype(np.float32) / theta_gamma  # (h, w, 2)
    return feats.reshape((height * width, 2))  # (h x w, 2)


def bilateral_features(image, theta_alpha, theta_beta):
    height, width, n_channels = image.shape
    ys, xs = np.meshgrid(np.arange(height), np.arange(width), indexing='ij')  # (h, w) and (h, w)
    feats = np.concatenate(
        [np.stack([xs, ys], axis=-1) / theta_alpha, image / theta_beta], axis=-1)  # (h, w, 2 + n_channels)
    return feats.reshape((height * width, 2 + n_channels)).astype(np.float32)  # (h x w, 2 + n_channels)


def normalized_filter(lattice, values):
    """
    Filter `values` and divide by the filter response of an all-ones signal.
    """
    all_ones = np.ones((lattice.N, 1), dtype=np.float32)
    norms = lattice.compute(all_ones)  # (N, 1)
    return lattice.compute(values) / norms


def bilateral_filter(image, theta_alpha=None, theta_beta=None, config=None):
    config = config or Config()
    theta_alpha = config.theta_alpha if theta_alpha is None else theta_alpha
    theta_beta = config.theta_beta if theta_beta is None else theta_beta

    height, width, n_channels = image.shape
    features = bilateral_features(image, theta_alpha, theta_beta)
    lattice = Permutohedral(height * width, features.shape[1])
    lattice.init(features)

    dst = normalized_filter(lattice, image.reshape((-1, n_channels)))
    return dst.reshape((height, width, n_channels))


def spatial_filter(image, theta_gamma=None, config=None):
    config = config or Config()
    theta_gamma = config.theta_gamma if theta_gamma is None else theta_gamma

    height, width, n_channels = image.shape
    lattice = Permutohedral(height * width, 2)
    lattice.init(spatial_features(height, width, theta_gamma))

    dst = normalized_filter(lattice, image.reshape((-1, n_channels)))
    return dst.reshape((height, width, n_channels))
