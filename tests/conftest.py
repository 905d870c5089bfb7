# tests/conftest.py
"""
Shared fixtures: small networks and an in-process stand-in for the
native solver library.

FakeTheseus exposes the same theseus_* functions as the shared library.
Array arguments arrive as numpy arrays (argtypes are only configured on a
real ctypes.CDLL), so the fake can inspect inputs and fill outputs in
place. Its optimize() runs the scipy reference solver so results are real
equilibrium states.
"""

import ctypes

import numpy as np
import pytest

from cablenet.construct import build_network
from cablenet.generative import square_loop
from cablenet.kernel.assemble import SolverData
from cablenet.kernel.solve import solve_forward_fdm


class FakeTheseus:
    def __init__(self, fail_create=False, fail_on=None, error="native failure", rc=7, iterations=5):
        self.fail_create = fail_create
        self.fail_on = fail_on
        self.error = error
        self.rc = rc
        self.iterations = iterations

        self.created = []
        self.freed = []
        self.objectives = []
        self.options = None
        self.callback = None
        self.frequency = None
        self.callback_calls = []
        self.data = None
        self._last_error = b""

    # -- error channel --------------------------------------------------------

    def theseus_last_error(self, buf, buf_len):
        msg = self._last_error[:buf_len - 1]
        buf.value = msg
        return len(msg)

    def _status(self, name):
        if self.fail_on == name:
            self._last_error = self.error.encode('utf-8')
            return self.rc
        return 0

    # -- lifecycle ------------------------------------------------------------

    def theseus_create(self, n_edges, n_nodes, n_free, rows, cols, vals, nnz,
                       free, fixed, n_fixed, loads, fixed_pos, q, lower, upper):
        if self.fail_create:
            self._last_error = self.error.encode('utf-8')
            return None
        assert nnz == len(rows) == 2 * n_edges
        assert n_fixed == len(fixed)
        self.data = SolverData(
            n_edges=int(n_edges), n_nodes=int(n_nodes), n_free=int(n_free),
            rows=np.array(rows, dtype=np.int64), cols=np.array(cols, dtype=np.int64),
            vals=np.array(vals, dtype=float),
            free_nodes=np.array(free, dtype=np.int64), fixed_nodes=np.array(fixed, dtype=np.int64),
            loads=np.array(loads, dtype=float), fixed_positions=np.array(fixed_pos, dtype=float),
            q=np.array(q, dtype=float), lower_bounds=np.array(lower, dtype=float),
            upper_bounds=np.array(upper, dtype=float),
        )
        handle = 0x1000 + len(self.created)
        self.created.append(handle)
        return handle

    def theseus_free(self, handle):
        self.freed.append(handle)

    # -- objectives -----------------------------------------------------------

    def __getattr__(self, name):
        if name.startswith('theseus_add_'):
            kind = name[len('theseus_add_'):]

            def add(handle, weight, indices, n, *params):
                assert n == len(indices)
                self.objectives.append((kind, weight, np.array(indices), params))
                return self._status(name)
            return add
        raise AttributeError(name)

    # -- options / callback ---------------------------------------------------

    def theseus_set_solver_options(self, handle, max_iterations, abs_tol, rel_tol, barrier_weight, barrier_sharpness):
        self.options = (max_iterations, abs_tol, rel_tol, barrier_weight, barrier_sharpness)
        return self._status('theseus_set_solver_options')

    def theseus_set_progress_callback(self, handle, callback, frequency):
        self.callback = callback
        self.frequency = frequency
        return self._status('theseus_set_progress_callback')

    # -- solves ---------------------------------------------------------------

    def _fill(self, raw, xyz, lengths, forces, q, reactions):
        xyz[:] = raw.xyz
        lengths[:] = raw.lengths
        forces[:] = raw.forces
        q[:] = raw.q
        reactions[:] = raw.reactions

    def theseus_solve_forward(self, handle, xyz, lengths, forces, q, reactions):
        status = self._status('theseus_solve_forward')
        if status:
            return status
        self._fill(solve_forward_fdm(self.data), xyz, lengths, forces, q, reactions)
        return 0

    def theseus_optimize(self, handle, xyz, lengths, forces, q, reactions, iterations, converged):
        status = self._status('theseus_optimize')
        if status:
            return status
        raw = solve_forward_fdm(self.data)
        self._fill(raw, xyz, lengths, forces, q, reactions)

        done, ok = self.iterations, 1
        if self.callback is not None:
            max_iter = self.options[0] if self.options else 500
            for it in range(self.frequency, max_iter + 1, self.frequency):
                self.callback_calls.append(it)
                keep_going = self.callback(
                    it, 1.0 / it,
                    raw.xyz.ctypes.data_as(ctypes.POINTER(ctypes.c_double)), self.data.n_nodes,
                    raw.q.ctypes.data_as(ctypes.POINTER(ctypes.c_double)), self.data.n_edges,
                )
                if not keep_going:
                    done, ok = it, 0
                    break
        iterations.contents.value = done
        converged.contents.value = ok
        return 0


@pytest.fixture
def fake_lib():
    return FakeTheseus()


@pytest.fixture
def make_lib():
    """Factory for FakeTheseus instances configured to fail."""
    return FakeTheseus


@pytest.fixture
def square_network():
    """Unit square, anchors at (0,0,0) and (1,1,0), tolerance 0.01."""
    segments, anchors = square_loop(1.0)
    return build_network(segments, anchors, edge_tolerance=0.01, anchor_tolerance=0.01)
