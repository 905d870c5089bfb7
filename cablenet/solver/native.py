# cablenet/solver/native.py
"""
NATIVE SOLVER BOUNDARY (ctypes)
===============================

PURPOSE:
--------
Thin wrapper over the separately built force density optimizer (the
`theseus` shared library). The library owns the sparse factorization,
the gradients and the barrier-penalty optimization loop; this module
only marshals SolverData and ResolvedObjectives across the C ABI.

C ABI (all integers are size_t, all reals double, status 0 = ok):
-----------------------------------------------------------------
    theseus_last_error(buf, buf_len) -> n_bytes
    theseus_create(n_edges, n_nodes, n_free,
                   coo_rows, coo_cols, coo_vals, nnz,
                   free_idx, fixed_idx, n_fixed,
                   loads, fixed_xyz, q_init, lower, upper) -> handle | NULL
    theseus_free(handle)
    theseus_add_<kind>(handle, weight, indices, n, <params...>) -> status
    theseus_set_solver_options(handle, max_iter, abs_tol, rel_tol,
                               barrier_weight, barrier_sharpness) -> status
    theseus_set_progress_callback(handle, callback, frequency) -> status
    theseus_optimize(handle, xyz, lengths, forces, q, reactions,
                     *iterations, *converged) -> status
    theseus_solve_forward(handle, xyz, lengths, forces, q, reactions) -> status

RESOURCE CONTRACT:
------------------
Every handle returned by theseus_create is freed exactly once. Use the
solver as a context manager; close() is idempotent and __del__ frees a
handle that was never closed.

    with NativeSolver.create(data) as solver:
        solver.add_objective(resolved)
        solver.set_options(options)
        raw = solver.optimize()
"""

import ctypes
import ctypes.util
import logging
import threading
from ctypes import CFUNCTYPE, POINTER, c_double, c_int, c_size_t, c_uint8, c_void_p
from typing import Callable, Optional

import numpy as np
from numpy.ctypeslib import ndpointer

from ..config import CONFIG
from ..kernel.assemble import SolverData
from ..kernel.solve import RawSolution

logger = logging.getLogger(__name__)

ERROR_BUFFER_SIZE = 2048

# (iteration, loss, xyz, n_nodes, q, n_edges) -> continue?
PROGRESS_CALLBACK = CFUNCTYPE(c_uint8, c_size_t, c_double, POINTER(c_double), c_size_t, POINTER(c_double), c_size_t)

ProgressFn = Callable[[int, float, np.ndarray, np.ndarray], bool]


class NativeSolverError(RuntimeError):
    """A native call returned a non-zero status (or create returned NULL, code -1)."""

    def __init__(self, message: str, code: int):
        self.message = message or "unknown native solver error"
        self.code = code
        super().__init__(f"{self.message} (code {code})")


# Parameter order of each theseus_add_<kind> call after (handle, weight, indices, n)
OBJECTIVE_PARAMS = {
    'target_xyz': ('target_xyz',),
    'target_xy': ('target_xy',),
    'target_plane': ('target_xyz', 'origin', 'x_axis', 'y_axis'),
    'planar_constraint_along_direction': ('origin', 'x_axis', 'y_axis', 'direction'),
    'rigid_set_compare': ('target_xyz',),
    'reaction_direction': ('target_dirs',),
    'reaction_direction_magnitude': ('target_dirs', 'target_mags'),
    'target_length': ('targets',),
    'length_variation': ('sharpness',),
    'force_variation': ('sharpness',),
    'sum_force_length': (),
    'min_length': ('thresholds', 'sharpness'),
    'max_length': ('thresholds', 'sharpness'),
    'min_force': ('thresholds', 'sharpness'),
    'max_force': ('thresholds', 'sharpness'),
}

_SCALAR_PARAMS = {'sharpness'}


def _configure(lib: ctypes.CDLL) -> None:
    U = ndpointer(dtype=np.uintp, flags='C_CONTIGUOUS')
    D = ndpointer(dtype=np.float64, flags='C_CONTIGUOUS')

    lib.theseus_last_error.restype = c_int
    lib.theseus_last_error.argtypes = [ctypes.c_char_p, c_size_t]

    lib.theseus_create.restype = c_void_p
    lib.theseus_create.argtypes = [
        c_size_t, c_size_t, c_size_t,
        U, U, D, c_size_t,
        U, U, c_size_t,
        D, D, D, D, D,
    ]

    lib.theseus_free.restype = None
    lib.theseus_free.argtypes = [c_void_p]

    for kind, params in OBJECTIVE_PARAMS.items():
        fn = getattr(lib, f'theseus_add_{kind}')
        fn.restype = c_int
        fn.argtypes = [c_void_p, c_double, U, c_size_t] + [
            c_double if p in _SCALAR_PARAMS else D for p in params
        ]

    lib.theseus_set_solver_options.restype = c_int
    lib.theseus_set_solver_options.argtypes = [c_void_p, c_size_t, c_double, c_double, c_double, c_double]

    lib.theseus_set_progress_callback.restype = c_int
    lib.theseus_set_progress_callback.argtypes = [c_void_p, PROGRESS_CALLBACK, c_size_t]

    lib.theseus_optimize.restype = c_int
    lib.theseus_optimize.argtypes = [c_void_p, D, D, D, D, D, POINTER(c_size_t), POINTER(c_uint8)]

    lib.theseus_solve_forward.restype = c_int
    lib.theseus_solve_forward.argtypes = [c_void_p, D, D, D, D, D]


_lib_cache = {}
_lib_lock = threading.Lock()


def load_library(path: Optional[str] = None):
    """
    Load and configure the native solver library.

    Resolution order: `path`, CONFIG.solver_library (env
    CABLENET_SOLVER_LIB), then a system search for "theseus".

    Raises:
        NativeSolverError: if no library can be found or loaded (code -1)
    """
    target = path or CONFIG.solver_library or ctypes.util.find_library('theseus')
    if not target:
        raise NativeSolverError(
            "Native solver library not found. Set CABLENET_SOLVER_LIB to the theseus shared library.", -1
        )

    with _lib_lock:
        lib = _lib_cache.get(target)
        if lib is None:
            try:
                lib = ctypes.CDLL(target)
                _configure(lib)
            except (OSError, AttributeError) as e:
                raise NativeSolverError(f"Cannot load native solver library {target!r}: {e}", -1) from e
            _lib_cache[target] = lib
            logger.info("Loaded native solver library %s", target)
    return lib


def native_available(path: Optional[str] = None) -> bool:
    """True when load_library() would succeed."""
    try:
        load_library(path)
    except NativeSolverError:
        return False
    return True


def _indices(values) -> np.ndarray:
    return np.ascontiguousarray(values, dtype=np.uintp)


def _doubles(values) -> np.ndarray:
    return np.ascontiguousarray(values, dtype=np.float64)


def last_error(lib) -> str:
    buf = ctypes.create_string_buffer(ERROR_BUFFER_SIZE)
    n = lib.theseus_last_error(buf, len(buf))
    if not n or n <= 0:
        return ""
    return buf.raw[:min(int(n), len(buf))].decode('utf-8', errors='replace')


class NativeSolver:
    """
    One native solver handle.

    Parameters:
    -----------
    lib : ctypes.CDLL (or any object exposing the theseus_* functions)
    handle : opaque handle from theseus_create
    n_nodes, n_edges : int
        Output array sizes
    """

    def __init__(self, lib, handle, n_nodes: int, n_edges: int):
        self._lib = lib
        self._handle = handle
        self.n_nodes = int(n_nodes)
        self.n_edges = int(n_edges)
        self._callback = None

    @classmethod
    def create(cls, data: SolverData, lib=None) -> "NativeSolver":
        """Create a handle for `data`. A NULL handle raises NativeSolverError(..., -1)."""
        lib = load_library() if lib is None else lib
        handle = lib.theseus_create(
            data.n_edges, data.n_nodes, data.n_free,
            _indices(data.rows), _indices(data.cols), _doubles(data.vals), len(data.rows),
            _indices(data.free_nodes), _indices(data.fixed_nodes), len(data.fixed_nodes),
            _doubles(data.loads), _doubles(data.fixed_positions),
            _doubles(data.q), _doubles(data.lower_bounds), _doubles(data.upper_bounds),
        )
        if not handle:
            raise NativeSolverError(last_error(lib), -1)
        return cls(lib, handle, data.n_nodes, data.n_edges)

    @property
    def closed(self) -> bool:
        return self._handle is None

    def _check(self, rc: int) -> None:
        if rc != 0:
            raise NativeSolverError(last_error(self._lib), int(rc))

    def _live_handle(self):
        if self._handle is None:
            raise NativeSolverError("Solver handle is closed", -1)
        return self._handle

    def add_objective(self, objective) -> None:
        """Register a ResolvedObjective through its theseus_add_<kind> call."""
        handle = self._live_handle()
        try:
            names = OBJECTIVE_PARAMS[objective.kind]
        except KeyError:
            raise ValueError(f"Unknown objective kind: {objective.kind!r}") from None

        idx = _indices(objective.indices)
        args = [
            float(objective.params[p]) if p in _SCALAR_PARAMS else _doubles(objective.params[p])
            for p in names
        ]
        fn = getattr(self._lib, f'theseus_add_{objective.kind}')
        self._check(fn(handle, float(objective.weight), idx, len(idx), *args))

    def set_options(self, options) -> None:
        self._check(self._lib.theseus_set_solver_options(
            self._live_handle(),
            int(options.max_iterations),
            float(options.abs_tol),
            float(options.rel_tol),
            float(options.barrier_weight),
            float(options.barrier_sharpness),
        ))

    def set_progress_callback(self, progress: ProgressFn, frequency: int) -> None:
        """
        Invoke `progress(iteration, loss, xyz, q)` every `frequency`
        evaluations; xyz is (n_nodes, 3). Returning False cancels.
        """
        handle = self._live_handle()

        def trampoline(iteration, loss, xyz_ptr, n_nodes, q_ptr, n_edges):
            try:
                xyz = np.ctypeslib.as_array(xyz_ptr, shape=(n_nodes * 3,)).copy() if n_nodes else np.zeros(0)
                q = np.ctypeslib.as_array(q_ptr, shape=(n_edges,)).copy() if n_edges else np.zeros(0)
                return 1 if progress(int(iteration), float(loss), xyz.reshape(-1, 3), q) else 0
            except Exception:
                # Cannot propagate through the C frame; cancel instead
                logger.exception("Progress callback raised; cancelling optimization")
                return 0

        # Keep a reference for as long as the handle may call it
        self._callback = PROGRESS_CALLBACK(trampoline)
        self._check(self._lib.theseus_set_progress_callback(handle, self._callback, int(frequency)))

    def _outputs(self):
        return (
            np.zeros(self.n_nodes * 3, dtype=np.float64),
            np.zeros(self.n_edges, dtype=np.float64),
            np.zeros(self.n_edges, dtype=np.float64),
            np.zeros(self.n_edges, dtype=np.float64),
            np.zeros(self.n_nodes * 3, dtype=np.float64),
        )

    def optimize(self) -> RawSolution:
        handle = self._live_handle()
        xyz, lengths, forces, q, reactions = self._outputs()
        iterations = ctypes.pointer(c_size_t(0))
        converged = ctypes.pointer(c_uint8(0))

        self._check(self._lib.theseus_optimize(
            handle, xyz, lengths, forces, q, reactions, iterations, converged
        ))
        return RawSolution(
            xyz=xyz, lengths=lengths, forces=forces, q=q, reactions=reactions,
            iterations=int(iterations.contents.value),
            converged=bool(converged.contents.value),
        )

    def solve_forward(self) -> RawSolution:
        handle = self._live_handle()
        xyz, lengths, forces, q, reactions = self._outputs()
        self._check(self._lib.theseus_solve_forward(handle, xyz, lengths, forces, q, reactions))
        return RawSolution(xyz=xyz, lengths=lengths, forces=forces, q=q, reactions=reactions,
                           iterations=1, converged=True)

    def close(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            self._lib.theseus_free(handle)
        self._callback = None

    def __enter__(self) -> "NativeSolver":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __del__(self):
        if getattr(self, '_handle', None) is not None:
            self.close()
