"""
Tests for the lattice construction
"""

import pytest
import numpy as np

from permutohedral import DictVertexStore, HashTable
from permutohedral.embedding import PermutohedralInitializer, embed, find_blur_neighbors


def reference_embed(features, d):
    """Point-by-point embedding, one coordinate at a time."""
    canonical = np.zeros((d + 1, d + 1), dtype=np.int64)
    for i in range(d + 1):
        canonical[i, :d + 1 - i] = i
        canonical[i, d + 1 - i:] = i - (d + 1)
    inv_std_dev = np.sqrt(2. / 3.) * (d + 1)
    scale_factor = [1. / np.sqrt((i + 2.) * (i + 1.)) * inv_std_dev for i in range(d)]

    vertices = {}
    offsets = np.zeros((len(features), d + 1), dtype=np.int64)
    barycentrics = np.zeros((len(features), d + 1))
    for k, f in enumerate(features):
        elevated = np.zeros(d + 1)
        sm = 0.
        for j in range(d, 0, -1):
            cf = f[j - 1] * scale_factor[j - 1]
            elevated[j] = sm - j * cf
            sm += cf
        elevated[0] = sm

        rem0 = np.zeros(d + 1)
        total = 0
        for i in range(d + 1):
            rd = int(np.floor(elevated[i] / (d + 1) + 0.5))
            rem0[i] = rd * (d + 1)
            total += rd

        rank = [0] * (d + 1)
        for i in range(d):
            di = elevated[i] - rem0[i]
            for j in range(i + 1, d + 1):
                if di < elevated[j] - rem0[j]:
                    rank[i] += 1
                else:
                    rank[j] += 1

        for i in range(d + 1):
            rank[i] += total
            if rank[i] < 0:
                rank[i] += d + 1
                rem0[i] += d + 1
            elif rank[i] > d:
                rank[i] -= d + 1
                rem0[i] -= d + 1

        barycentric = np.zeros(d + 2)
        for i in range(d + 1):
            v = (elevated[i] - rem0[i]) / (d + 1)
            barycentric[d - rank[i]] += v
            barycentric[d - rank[i] + 1] -= v
        barycentric[0] += 1. + barycentric[d + 1]

        for remainder in range(d + 1):
            key = tuple(int(rem0[i] + canonical[remainder, rank[i]]) for i in range(d))
            offsets[k, remainder] = vertices.setdefault(key, len(vertices))
            barycentrics[k, remainder] = barycentric[remainder]

    return offsets, barycentrics, len(vertices)


@pytest.fixture(params=[1, 2, 3, 5])
def d(request):
    return request.param


@pytest.fixture
def features(d):
    rng = np.random.RandomState(d)
    return rng.uniform(-3., 3., size=(40, d)).astype(np.float32)


class TestInitializer:
    def test_canonical_simplex(self):
        init = PermutohedralInitializer(2)
        np.testing.assert_array_equal(init.canonical, [[0, 0, 0], [1, 1, -2], [2, -1, -1]])

    def test_elevation_lies_on_plane(self, d):
        init = PermutohedralInitializer(d)
        np.testing.assert_allclose(init.E.sum(axis=0), 0., atol=1e-12)

    def test_alpha(self, d):
        assert PermutohedralInitializer(d).alpha == pytest.approx(1. / (1. + 2. ** -d))

    def test_zero_dimension_rejected(self):
        with pytest.raises(ValueError):
            PermutohedralInitializer(0)


class TestEmbed:
    def test_matches_reference(self, d, features):
        store = DictVertexStore(d, len(features) * (d + 1))
        offsets, barycentric = embed(features, PermutohedralInitializer(d), store)
        ref_offsets, ref_barycentric, ref_M = reference_embed(features.astype(np.float64), d)

        assert store.size() == ref_M
        np.testing.assert_array_equal(offsets, ref_offsets)
        np.testing.assert_allclose(barycentric, ref_barycentric, atol=1e-6)

    def test_barycentric_is_convex(self, d, features):
        store = DictVertexStore(d, len(features) * (d + 1))
        _, barycentric = embed(features, PermutohedralInitializer(d), store)

        assert barycentric.shape == (len(features), d + 1)
        np.testing.assert_allclose(barycentric.sum(axis=1), 1., atol=1e-5)
        assert barycentric.min() >= -1e-6

    def test_corners_are_distinct_vertices(self, d, features):
        store = DictVertexStore(d, len(features) * (d + 1))
        offsets, _ = embed(features, PermutohedralInitializer(d), store)

        assert offsets.min() >= 0 and offsets.max() < store.size()
        for row in offsets:
            assert len(set(row.tolist())) == d + 1

    def test_identical_features_share_simplex(self, d):
        rng = np.random.RandomState(7)
        point = rng.normal(size=(1, d))
        features = np.vstack([point, rng.normal(size=(3, d)), point])
        store = HashTable(d, len(features) * (d + 1))
        offsets, barycentric = embed(features, PermutohedralInitializer(d), store)

        np.testing.assert_array_equal(offsets[0], offsets[-1])
        np.testing.assert_array_equal(barycentric[0], barycentric[-1])

    def test_stores_agree(self, d, features):
        init = PermutohedralInitializer(d)
        dict_store, hash_store = DictVertexStore(d, 1), HashTable(d, 1)
        offsets_a, barycentric_a = embed(features, init, dict_store)
        offsets_b, barycentric_b = embed(features, init, hash_store)

        np.testing.assert_array_equal(offsets_a, offsets_b)
        np.testing.assert_array_equal(barycentric_a, barycentric_b)
        np.testing.assert_array_equal(dict_store.keys(), hash_store.keys())


class TestBlurNeighbors:
    def _build(self, d, features):
        store = HashTable(d, len(features) * (d + 1))
        embed(features, PermutohedralInitializer(d), store)
        return store, find_blur_neighbors(store, d)

    def test_shape_and_range(self, d, features):
        store, blur_neighbors = self._build(d, features)

        assert blur_neighbors.shape == (d + 1, store.size(), 2)
        assert blur_neighbors.min() >= -1
        assert blur_neighbors.max() < store.size()

    def test_neighbor_keys(self, d, features):
        store, blur_neighbors = self._build(d, features)
        keys = store.keys()

        for j in range(d + 1):
            for i in range(store.size()):
                n1, n2 = keys[i] - 1, keys[i] + 1
                if j < d:
                    n1[j], n2[j] = keys[i][j] + d, keys[i][j] - d
                for candidate, found in ((n1, blur_neighbors[j, i, 0]), (n2, blur_neighbors[j, i, 1])):
                    if found >= 0:
                        np.testing.assert_array_equal(keys[found], candidate)
                    else:
                        assert store.find(candidate) is None

    def test_neighbor_relation_is_symmetric(self, d, features):
        store, blur_neighbors = self._build(d, features)

        for j in range(d + 1):
            for i in range(store.size()):
                n1 = blur_neighbors[j, i, 0]
                if n1 >= 0:
                    assert blur_neighbors[j, n1, 1] == i

    def test_lookup_does_not_insert(self, d, features):
        store = HashTable(d, len(features) * (d + 1))
        embed(features, PermutohedralInitializer(d), store)
        M = store.size()
        find_blur_neighbors(store, d)
        assert store.size() == M
