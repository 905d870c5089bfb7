# tests/test_service.py
"""
OPTIMIZATION SERVICE TESTS
==========================

optimize() wires objectives, options and the progress callback into one
native handle and turns the raw output into a SolveResult. The native
library is FakeTheseus (tests/conftest.py).
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from cablenet import ConstructionError, InvalidNetworkError, NativeSolverError, Segment, build_network
from cablenet.cache import ResultCache
from cablenet.generative import square_loop
from cablenet.solver import (
    CancellationToken,
    LengthVariationObjective,
    PlanarConstraintAlongDirectionObjective,
    SolverInputs,
    SolverOptions,
    TargetXYObjective,
    optimize,
    solve_forward,
    solve_key,
    submit_optimize,
)


@pytest.fixture
def inputs():
    return SolverInputs.with_default_bounds(
        q=[10.0], loads=[(0, 0, -1)],
        objectives=[TargetXYObjective(), LengthVariationObjective(weight=0.5)],
    )


class TestOptimize:
    def test_result_and_registration(self, square_network, inputs, fake_lib):
        result = optimize(square_network, inputs, SolverOptions(max_iterations=50), lib=fake_lib)

        assert [o[0] for o in fake_lib.objectives] == ['target_xy', 'length_variation']
        assert fake_lib.options[0] == 50
        assert fake_lib.callback is None
        assert fake_lib.freed == fake_lib.created

        assert result.converged
        assert result.iterations == 5
        forward = solve_forward(square_network, SolverInputs(q=[10.0], loads=[(0, 0, -1)]), engine='python')
        assert np.allclose(result.xyz, forward.xyz)
        assert result.network is not square_network

    def test_invalid_objective_skipped(self, square_network, fake_lib):
        inputs = SolverInputs.with_default_bounds(objectives=[
            PlanarConstraintAlongDirectionObjective(direction=(1, 0, 0)),
            LengthVariationObjective(),
        ])
        optimize(square_network, inputs, lib=fake_lib)
        assert [o[0] for o in fake_lib.objectives] == ['length_variation']

    def test_bounds_required(self, square_network, fake_lib):
        with pytest.raises(ConstructionError):
            optimize(square_network, SolverInputs(), lib=fake_lib)
        assert fake_lib.created == []

    def test_invalid_network(self, fake_lib):
        segments, _ = square_loop()
        network = build_network(segments, [], 0.01, 0.01)
        with pytest.raises(InvalidNetworkError):
            optimize(network, SolverInputs.with_default_bounds(), lib=fake_lib)

    def test_native_failure_frees_handle(self, square_network, inputs, make_lib):
        lib = make_lib(fail_on='theseus_optimize', error="line search failed", rc=5)
        with pytest.raises(NativeSolverError) as excinfo:
            optimize(square_network, inputs, lib=lib)
        assert excinfo.value.code == 5
        assert lib.freed == lib.created

    def test_progress_forwarded(self, square_network, inputs, fake_lib):
        iterations = []

        def progress(iteration, loss, xyz, q):
            iterations.append(iteration)
            return True

        optimize(square_network, inputs, SolverOptions(max_iterations=40, report_frequency=20),
                 progress=progress, lib=fake_lib)
        assert fake_lib.frequency == 20
        assert iterations == [20, 40]


class TestBackground:
    def test_completes(self, square_network, inputs, fake_lib):
        with ThreadPoolExecutor(max_workers=1) as pool:
            future, token = submit_optimize(square_network, inputs, lib=fake_lib, executor=pool)
            result = future.result(timeout=30)
        assert result.converged
        assert not token.cancelled

    def test_cancel_stops_at_next_report(self, square_network, inputs, fake_lib):
        """
        The first report blocks until the test has cancelled; the second
        report then sees the token and stops the run.
        """
        gate = threading.Event()

        def progress(iteration, loss, xyz, q):
            gate.wait(timeout=30)
            return True

        options = SolverOptions(max_iterations=50, report_frequency=10)
        with ThreadPoolExecutor(max_workers=1) as pool:
            future, token = submit_optimize(square_network, inputs, options, progress, lib=fake_lib, executor=pool)
            token.cancel()
            gate.set()
            result = future.result(timeout=30)

        assert not result.converged
        assert result.iterations in (10, 20)
        assert fake_lib.freed == fake_lib.created

    def test_errors_surface_through_future(self, square_network, fake_lib):
        with ThreadPoolExecutor(max_workers=1) as pool:
            future, _ = submit_optimize(square_network, SolverInputs(), lib=fake_lib, executor=pool)
            with pytest.raises(ConstructionError):
                future.result(timeout=30)


def test_cancellation_token():
    token = CancellationToken()
    assert not token.cancelled
    token.cancel()
    assert token.cancelled


class TestSolveCache:
    def test_forward_hit(self, square_network):
        cache = ResultCache()
        inputs = SolverInputs(q=[10.0], loads=[(0, 0, -1)])
        first = solve_forward(square_network, inputs, engine='python', cache=cache)
        second = solve_forward(square_network, SolverInputs(q=[10.0], loads=[(0, 0, -1)]),
                               engine='python', cache=cache)
        assert second is first
        assert (cache.hits, len(cache)) == (1, 1)

    def test_forward_key_follows_inputs(self, square_network):
        cache = ResultCache()
        a = solve_forward(square_network, SolverInputs(q=[10.0], loads=[(0, 0, -1)]), engine='python', cache=cache)
        b = solve_forward(square_network, SolverInputs(q=[5.0], loads=[(0, 0, -1)]), engine='python', cache=cache)
        assert b is not a
        assert not np.allclose(a.xyz, b.xyz)
        assert len(cache) == 2

    def test_optimize_hit_skips_native(self, square_network, inputs, fake_lib):
        cache = ResultCache()
        options = SolverOptions(max_iterations=50)
        first = optimize(square_network, inputs, options, lib=fake_lib, cache=cache)
        second = optimize(square_network, inputs, SolverOptions(max_iterations=50), lib=fake_lib, cache=cache)
        assert second is first
        assert len(fake_lib.created) == 1

    def test_options_are_part_of_key(self, square_network, inputs, fake_lib):
        cache = ResultCache()
        optimize(square_network, inputs, SolverOptions(max_iterations=50), lib=fake_lib, cache=cache)
        optimize(square_network, inputs, SolverOptions(max_iterations=60), lib=fake_lib, cache=cache)
        assert len(fake_lib.created) == 2

    def test_cancelled_run_not_stored(self, square_network, inputs, fake_lib):
        cache = ResultCache()
        options = SolverOptions(max_iterations=100, report_frequency=10)
        result = optimize(square_network, inputs, options, progress=lambda *args: False, lib=fake_lib, cache=cache)
        assert not result.converged
        assert len(cache) == 0

    def test_key_covers_edge_sources(self, square_network):
        inputs = SolverInputs(q=[10.0], loads=[(0, 0, -1)])
        relabelled = build_network(
            [Segment(s.start, s.end, f"curve-{i}") for i, s in enumerate(square_loop()[0])],
            square_loop()[1], 0.01, 0.01,
        )
        assert solve_key(square_network, inputs) != solve_key(relabelled, inputs)
