import unittest
from array import array

from spiralvec import (
    FLOAT32,
    FLOAT64,
    DenseMatrix,
    PackedMatrix,
    PreconditionError,
    RandomSource,
    SymmetricPackedMatrix,
    Transpose,
    TriangularPackedMatrix,
    VectorIndexError,
)
from spiralvec.matrix import as_transpose


class DenseMatrixTests(unittest.TestCase):
    def test_rows_respect_stride_and_offset(self) -> None:
        data = array("d", [9.0, 1.0, 2.0, 9.0, 3.0, 4.0, 9.0])
        m = DenseMatrix(2, 2, data, stride=3, offset=1)
        self.assertEqual(m.shape, (2, 2))
        self.assertEqual(m.tolist(), [[1.0, 2.0], [3.0, 4.0]])
        self.assertEqual(m[(1, 0)], 3.0)
        self.assertIs(m.dtype, FLOAT64)
        with self.assertRaises(VectorIndexError):
            m[(2, 0)]

    def test_invalid_geometry_is_rejected(self) -> None:
        with self.assertRaises(PreconditionError):
            DenseMatrix(2, 3, stride=2)
        with self.assertRaises(PreconditionError):
            DenseMatrix(2, 2, array("f", [0.0] * 3))
        with self.assertRaises(PreconditionError):
            DenseMatrix(-1, 2)
        with self.assertRaises(PreconditionError):
            DenseMatrix(1, 1, array("f", [0.0]), dtype=FLOAT64)
        with self.assertRaises(PreconditionError):
            DenseMatrix.from_rows([[1.0, 2.0], [3.0]])

    def test_from_rows_allocates_requested_width(self) -> None:
        m = DenseMatrix.from_rows([[0.1, 0.2]], FLOAT32, stride=4)
        self.assertEqual(m.data.typecode, "f")
        self.assertEqual(len(m.data), 4)
        self.assertEqual(m[(0, 0)], FLOAT32.round(0.1))


class PackedMatrixTests(unittest.TestCase):
    def test_packed_layout_is_lower_row_major(self) -> None:
        p = PackedMatrix.from_lower([[1.0], [2.0, 3.0], [4.0, 5.0, 6.0]], FLOAT64)
        self.assertEqual(p.size, 6)
        self.assertEqual(list(p.data), [1.0, 2.0, 3.0, 4.0, 5.0, 6.0])
        self.assertEqual(p.packed_index(2, 1), 4)
        self.assertEqual(p[(0, 2)], 0.0)

    def test_symmetric_and_triangular_reads(self) -> None:
        rows = [[1.0], [2.0, 3.0]]
        self.assertEqual(SymmetricPackedMatrix.from_lower(rows)[(0, 1)], 2.0)
        self.assertEqual(TriangularPackedMatrix.from_lower(rows)[(0, 1)], 0.0)
        with self.assertRaises(PreconditionError):
            PackedMatrix.from_lower([[1.0], [2.0]])
        with self.assertRaises(VectorIndexError):
            SymmetricPackedMatrix.from_lower(rows)[(2, 0)]

    def test_transpose_coercion(self) -> None:
        self.assertIs(as_transpose(True), Transpose.TRANS)
        self.assertIs(as_transpose(False), Transpose.NO_TRANS)
        self.assertIs(as_transpose(Transpose.TRANS), Transpose.TRANS)
        self.assertTrue(Transpose.TRANS.transposed)


class RandomSourceTests(unittest.TestCase):
    def test_seeded_sources_repeat(self) -> None:
        a = RandomSource(42)
        b = RandomSource(42)
        self.assertEqual([a.uniform() for _ in range(5)], [b.uniform() for _ in range(5)])
        self.assertEqual(a.gauss2(), b.gauss2())
        a.seed(1)
        b.seed(1)
        self.assertEqual(a.gauss(), b.gauss())

    def test_uniform_is_in_open_interval(self) -> None:
        source = RandomSource(0)
        for _ in range(1000):
            value = source.uniform()
            self.assertGreater(value, 0.0)
            self.assertLess(value, 1.0)
