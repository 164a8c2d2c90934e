"""
Vertex stores of the permutohedral lattice.
- A store maps integer lattice keys to dense vertex indices, in creation order.
- Only the first `d` coordinates of a key are stored, the last one is implied by the zero-sum structure.
"""

import abc
import logging

import numpy as np

logger = logging.getLogger(__name__)

_HASH_MASK = 0xFFFFFFFFFFFFFFFF


class VertexStore(abc.ABC):
    """
    Insert-or-lookup capability consumed by the lattice construction.
    """

    def __init__(self, key_size, n_elements) -> None:
        self.key_size_ = key_size

    @abc.abstractmethod
    def find(self, k, create=False):
        """
        Find the index of key `k`.

        Args:
            k: integer sequence, only the first `key_size` entries are used.
            create: insert `k` with the next index if it is absent.

        Returns:
            The dense index of `k`, or `None` if `k` is absent and `create` is False.
        """

    @abc.abstractmethod
    def size(self):
        """Number of keys created so far."""

    @abc.abstractmethod
    def get_key(self, i):
        """Key used to create index `i`."""

    def keys(self):
        """All keys in index order, (size, key_size)."""
        keys = np.zeros((self.size(), self.key_size_), dtype=np.int32)
        for i in range(self.size()):
            keys[i] = self.get_key(i)
        return keys


class HashTable(VertexStore):
    """
    Open addressing with linear probing, as in the densecrf lattice.
    """

    def __init__(self, key_size, n_elements) -> None:
        super().__init__(key_size, n_elements)
        self.filled_ = 0
        self.capacity_ = max(2 * n_elements, 2)
        self.keys_ = np.zeros((self.capacity_ // 2 + 10, self.key_size_), dtype=np.int32)
        self.table_ = np.full((self.capacity_, ), -1, dtype=np.int32)

    def grow(self):
        # Create the new memory and copy the values in
        logger.debug("Hashtable grows from %d to %d slots", self.capacity_, 2 * self.capacity_)
        old_capacity = self.capacity_
        self.capacity_ *= 2
        old_keys = np.zeros((self.capacity_ // 2 + 10, self.key_size_), dtype=np.int32)
        old_keys[:self.filled_] = self.keys_[:self.filled_]
        old_table = np.full((self.capacity_, ), -1, dtype=np.int32)

        # Swap the memory
        self.table_, old_table = old_table, self.table_
        self.keys_, old_keys = old_keys, self.keys_

        # Reinsert each element
        for i in range(old_capacity):
            e = int(old_table[i])
            if e >= 0:
                h = self.hash(self.keys_[e]) % self.capacity_
                while self.table_[h] >= 0:
                    h = h + 1 if h < self.capacity_ - 1 else 0
                self.table_[h] = e

    def hash(self, k):
        r = 0
        for i in range(self.key_size_):
            r = ((r + int(k[i])) * 1664525) & _HASH_MASK
        return r

    def size(self):
        return self.filled_

    def reset(self):
        self.filled_ = 0
        self.table_.fill(-1)

    def find(self, k, create=False):
        if self.capacity_ <= 2 * self.filled_:
            self.grow()
        # Get the hash value
        h = self.hash(k) % self.capacity_
        # Find the element with the right key, using linear probing
        while True:
            e = int(self.table_[h])
            if e == -1:
                if not create:
                    return None
                # Insert a new key and return the new id
                self.keys_[self.filled_] = k[:self.key_size_]
                self.table_[h] = self.filled_
                self.filled_ += 1
                return self.filled_ - 1
            # Check if the current key is The One
            if np.array_equal(self.keys_[e], k[:self.key_size_]):
                return e
            # Continue searching
            h += 1
            if h == self.capacity_:
                h = 0

    def get_key(self, i):
        if not 0 <= i < self.filled_:
            raise IndexError("Vertex index {} out of range [0, {})".format(i, self.filled_))
        return self.keys_[i].copy()

    def keys(self):
        return self.keys_[:self.filled_].copy()


class DictVertexStore(VertexStore):
    """
    Store backed by a Python dict keyed by coordinate tuples.
    """

    def __init__(self, key_size, n_elements) -> None:
        super().__init__(key_size, n_elements)
        self.table_ = {}
        self.keys_ = []

    def find(self, k, create=False):
        key = tuple(int(v) for v in k[:self.key_size_])
        e = self.table_.get(key)
        if e is None and create:
            e = len(self.keys_)
            self.table_[key] = e
            self.keys_.append(key)
        return e

    def size(self):
        return len(self.keys_)

    def reset(self):
        self.table_.clear()
        self.keys_ = []

    def get_key(self, i):
        if not 0 <= i < len(self.keys_):
            raise IndexError("Vertex index {} out of range [0, {})".format(i, len(self.keys_)))
        return np.array(self.keys_[i], dtype=np.int32)

    def keys(self):
        return np.array(self.keys_, dtype=np.int32).reshape((-1, self.key_size_))
