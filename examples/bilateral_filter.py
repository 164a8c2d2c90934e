"""
Bilateral filtering of an image with the permutohedral lattice.

Usage: python bilateral_filter.py input.jpg output.png [theta_alpha theta_beta]
"""

import logging
import sys

import numpy as np
from PIL import Image

from permutohedral import Config
from permutohedral.filters import bilateral_filter


def main(argv):
    if len(argv) not in (3, 5):
        print(__doc__)
        return 1
    config = Config()
    if len(argv) == 5:
        config.theta_alpha, config.theta_beta = float(argv[3]), float(argv[4])

    im = Image.open(argv[1]).convert('RGB')
    im = np.array(im, dtype=np.float32) / 255.

    dst = bilateral_filter(im, config=config)
    dst = (dst - dst.min()) / (dst.max() - dst.min() + 1e-5)

    Image.fromarray((dst * 255.).astype(np.uint8)).save(argv[2])
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG)
    sys.exit(main(sys.argv))
