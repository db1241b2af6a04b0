#!/usr/bin/env python
import numpy
import scipy.sparse
from numpy.testing import assert_array_equal

from contexthmm.util import NullWriter, matrix_from_dict, matrix_to_dict


class TestNullWriter():

    def test_write_discards_output(self):
        writer = NullWriter()
        assert writer.write("anything") is None
        writer.flush()
        writer.close()


class TestMatrixSerialization():

    @classmethod
    def setup_class(cls):
        cls.testmat = numpy.array([
            [0.0, 0.5, 0.5],
            [1.0, 0.0, 0.0],
            [0.0, 0.25, 0.75],
        ])
        cls.testdict = {
            "shape": (3, 3),
            "row": [0, 0, 1, 2, 2],
            "col": [1, 2, 0, 1, 2],
            "data": [0.5, 0.5, 1.0, 0.25, 0.75],
        }

    def test_matrix_to_dict(self):
        found = matrix_to_dict(self.testmat)
        assert found["shape"] == self.testdict["shape"]
        assert found["row"] == self.testdict["row"]
        assert found["col"] == self.testdict["col"]
        assert found["data"] == self.testdict["data"]

    def test_matrix_to_dict_sparse_input(self):
        found = matrix_to_dict(scipy.sparse.csr_matrix(self.testmat))
        assert found["data"] == self.testdict["data"]

    def test_matrix_from_dict_dense(self):
        assert_array_equal(matrix_from_dict(self.testdict, dense=True), self.testmat)

    def test_matrix_from_dict_sparse(self):
        found = matrix_from_dict(self.testdict)
        assert scipy.sparse.issparse(found)
        assert_array_equal(found.toarray(), self.testmat)
