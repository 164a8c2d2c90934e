"""
Permutohedral lattice for fast high-dimensional Gaussian filtering [Adams et al. 2010].
"""

from .config import Config
from .hash_table import DictVertexStore, HashTable, VertexStore
from .lattice import Permutohedral

__all__ = ["Config", "DictVertexStore", "HashTable", "Permutohedral", "VertexStore"]
