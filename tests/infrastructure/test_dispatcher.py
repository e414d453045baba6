import unittest
import warnings
from concurrent.futures import Future

import numpy as np

from convref import (
    Algorithm,
    ArgKind,
    ArgumentMap,
    ConvProblem,
    ConvRefDispatcher,
    DeconvReference,
    DelegatedKernelError,
    Direction,
    DispatchState,
    InvariantViolationError,
    Memory,
    RefConfig,
    ReferenceKernel,
    TransformDomainReference,
    compute_ref,
)

from .ops._conv_test_utils import naive_bwd_d, naive_bwd_w, naive_fwd, random_ints


CFG = RefConfig(num_workers=1)


def problem(**kwargs):
    base = dict(mb=2, ic=2, oc=3, input_size=(5, 5), kernel_size=(3, 3), padding=(1, 1))
    base.update(kwargs)
    return ConvProblem.from_spatial(**base)


def full_args(prb, rng, src_dt="f32"):
    """Every role any direction of `prb` may touch."""
    args = ArgumentMap()
    args.set(ArgKind.SRC, Memory(prb.src_dims, src_dt, random_ints(rng, prb.src_dims, 0, 4)))
    args.set(ArgKind.WEIGHTS, Memory(prb.wei_dims, data=random_ints(rng, prb.wei_dims)))
    args.set(ArgKind.BIAS, Memory(prb.bia_dims, data=random_ints(rng, prb.bia_dims)))
    args.set(ArgKind.DST, Memory(prb.dst_dims))
    args.set(ArgKind.DIFF_SRC, Memory(prb.src_dims))
    args.set(ArgKind.DIFF_WEIGHTS, Memory(prb.wei_dims))
    args.set(ArgKind.DIFF_BIAS, Memory(prb.bia_dims))
    args.set(
        ArgKind.DIFF_DST, Memory(prb.dst_dims, data=random_ints(rng, prb.dst_dims))
    )
    return args


class RecordingStrategy:
    def __init__(self):
        self.calls = []

    def compute_ref(self, prb, args, config=None):
        self.calls.append((prb, args, config))


class RecordingKernel:
    def __init__(self, handle=None, error=None):
        self.calls = []
        self.handle = handle
        self.error = error

    def execute(self, args):
        self.calls.append(args)
        if self.error is not None:
            raise self.error
        return self.handle


class TestDispatcherDirect(unittest.TestCase):
    def setUp(self) -> None:
        self.rng = np.random.default_rng(6)

    def test_forward_route(self):
        prb = problem()
        args = full_args(prb, self.rng)
        compute_ref(prb, args, config=CFG)
        expected = naive_fwd(
            prb,
            args[ArgKind.SRC].to_numpy(),
            args[ArgKind.WEIGHTS].to_numpy(),
            args[ArgKind.BIAS].to_numpy(),
        )
        np.testing.assert_array_equal(args[ArgKind.DST].to_numpy(), expected)
        self.assertFalse(args[ArgKind.DIFF_SRC].to_numpy().any())

    def test_backward_data_route(self):
        prb = problem(dir=Direction.BWD_D)
        args = full_args(prb, self.rng)
        compute_ref(prb, args, config=CFG)
        expected = naive_bwd_d(
            prb, args[ArgKind.DIFF_DST].to_numpy(), args[ArgKind.WEIGHTS].to_numpy()
        )
        np.testing.assert_array_equal(args[ArgKind.DIFF_SRC].to_numpy(), expected)
        self.assertFalse(args[ArgKind.DST].to_numpy().any())

    def test_backward_weights_route_includes_bias(self):
        prb = problem(dir=Direction.BWD_WB)
        args = full_args(prb, self.rng)
        compute_ref(prb, args, config=CFG)
        diff_dst = args[ArgKind.DIFF_DST].to_numpy()
        np.testing.assert_array_equal(
            args[ArgKind.DIFF_WEIGHTS].to_numpy(),
            naive_bwd_w(prb, args[ArgKind.SRC].to_numpy(), diff_dst),
        )
        np.testing.assert_array_equal(
            args[ArgKind.DIFF_BIAS].to_numpy(), diff_dst.sum(axis=(0, 2, 3))
        )

    def test_backward_weights_without_bias_leaves_diff_bias(self):
        prb = problem(dir=Direction.BWD_W)
        args = full_args(prb, self.rng)
        compute_ref(prb, args, config=CFG)
        self.assertTrue(args[ArgKind.DIFF_WEIGHTS].to_numpy().any())
        self.assertFalse(args[ArgKind.DIFF_BIAS].to_numpy().any())

    def test_dispatch_is_logged(self):
        prb = problem()
        args = full_args(prb, self.rng)
        with self.assertLogs("convref.infrastructure._dispatcher", level="DEBUG") as cm:
            compute_ref(prb, args, config=CFG)
        self.assertTrue(any("direct fwd evaluator" in line for line in cm.output))


class TestDispatcherState(unittest.TestCase):
    def setUp(self) -> None:
        self.rng = np.random.default_rng(7)

    def test_state_priorities(self):
        prb = problem()
        args = full_args(prb, self.rng)
        kernel = RecordingKernel()
        self.assertIs(ConvRefDispatcher(prb, args)._state, DispatchState.DIRECT)
        self.assertIs(
            ConvRefDispatcher(prb, args, kernel)._state, DispatchState.DELEGATE
        )

        wino = problem(alg=Algorithm.WINO)
        self.assertIs(
            ConvRefDispatcher(wino, args)._state, DispatchState.SELECT_ALGORITHM
        )

        deconv = ConvProblem.from_spatial(
            mb=1, ic=1, oc=1, input_size=(3,), kernel_size=(2,), is_deconv=True
        )
        self.assertIs(ConvRefDispatcher(deconv, args)._state, DispatchState.DECONV)
        self.assertIs(
            ConvRefDispatcher(deconv, args, kernel)._state, DispatchState.DELEGATE
        )

    def test_strategies_satisfy_protocols(self):
        self.assertIsInstance(RecordingKernel(), ReferenceKernel)
        self.assertIsInstance(RecordingStrategy(), DeconvReference)
        self.assertIsInstance(RecordingStrategy(), TransformDomainReference)


class TestDispatcherDelegation(unittest.TestCase):
    def setUp(self) -> None:
        self.rng = np.random.default_rng(8)
        self.prb = problem()
        self.args = full_args(self.prb, self.rng)

    def test_delegation_bypasses_evaluators_and_waits(self):
        fut = Future()
        fut.set_result(None)
        kernel = RecordingKernel(handle=fut)
        compute_ref(self.prb, self.args, kernel, config=CFG)
        self.assertEqual(len(kernel.calls), 1)
        self.assertIs(kernel.calls[0], self.args)
        self.assertFalse(self.args[ArgKind.DST].to_numpy().any())

    def test_delegation_waits_on_wait_handles(self):
        class Handle:
            waited = False

            def wait(self):
                Handle.waited = True

        compute_ref(self.prb, self.args, RecordingKernel(handle=Handle()), config=CFG)
        self.assertTrue(Handle.waited)

    def test_plain_callable_kernel(self):
        seen = []

        def kernel(args):
            seen.append(args)
            args[ArgKind.DST].flat[:] = 1.0

        compute_ref(self.prb, self.args, kernel, config=CFG)
        self.assertEqual(len(seen), 1)
        self.assertTrue((self.args[ArgKind.DST].to_numpy() == 1.0).all())

    def test_kernel_failure_is_wrapped(self):
        cause = OSError("device lost")
        kernel = RecordingKernel(error=cause)
        with self.assertRaises(DelegatedKernelError) as ctx:
            compute_ref(self.prb, self.args, kernel, config=CFG)
        self.assertIs(ctx.exception.__cause__, cause)
        self.assertIn("device lost", str(ctx.exception))

    def test_failed_future_is_wrapped(self):
        fut = Future()
        fut.set_exception(ValueError("bad result"))
        with self.assertRaises(DelegatedKernelError) as ctx:
            compute_ref(self.prb, self.args, RecordingKernel(handle=fut), config=CFG)
        self.assertIsInstance(ctx.exception.__cause__, ValueError)


class TestDispatcherStrategies(unittest.TestCase):
    def setUp(self) -> None:
        self.rng = np.random.default_rng(9)

    def test_deconv_forwarded_to_registered_strategy(self):
        prb = ConvProblem.from_spatial(
            mb=1, ic=2, oc=2, input_size=(3, 3), kernel_size=(2, 2), is_deconv=True
        )
        args = ArgumentMap()
        strategy = RecordingStrategy()
        compute_ref(prb, args, deconv_ref=strategy, config=CFG)
        self.assertEqual(len(strategy.calls), 1)
        self.assertIs(strategy.calls[0][0], prb)
        self.assertIs(strategy.calls[0][2], CFG)

    def test_deconv_default_strategy(self):
        prb = ConvProblem.from_spatial(
            mb=1,
            ic=1,
            oc=1,
            input_size=(2,),
            kernel_size=(2,),
            is_deconv=True,
            dir=Direction.FWD_D,
        )
        args = ArgumentMap(
            {
                ArgKind.SRC: Memory(prb.src_dims, data=np.array([1.0, 2.0])),
                ArgKind.WEIGHTS: Memory(prb.wei_dims, data=np.array([3.0, 4.0])),
                ArgKind.DST: Memory(prb.dst_dims),
            }
        )
        compute_ref(prb, args, config=CFG)
        # scatter: y[0] = 1*3, y[1] = 1*4 + 2*3, y[2] = 2*4
        np.testing.assert_array_equal(
            args[ArgKind.DST].to_numpy().reshape(-1), [3.0, 10.0, 8.0]
        )

    def test_wino_uses_registered_strategy_for_f32(self):
        prb = problem(alg=Algorithm.WINO)
        args = full_args(prb, self.rng)
        strategy = RecordingStrategy()
        compute_ref(prb, args, wino_ref=strategy, config=CFG)
        self.assertEqual(len(strategy.calls), 1)
        self.assertFalse(args[ArgKind.DST].to_numpy().any())

    def test_wino_without_strategy_warns_and_falls_back(self):
        prb = problem(alg=Algorithm.WINO)
        args = full_args(prb, self.rng)
        with self.assertWarns(RuntimeWarning):
            compute_ref(prb, args, config=CFG)
        expected = naive_fwd(
            prb,
            args[ArgKind.SRC].to_numpy(),
            args[ArgKind.WEIGHTS].to_numpy(),
            args[ArgKind.BIAS].to_numpy(),
        )
        np.testing.assert_array_equal(args[ArgKind.DST].to_numpy(), expected)

    def test_wino_on_integer_source_uses_direct_path(self):
        prb = problem(alg=Algorithm.WINO)
        args = full_args(prb, self.rng, src_dt="u8")
        strategy = RecordingStrategy()
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            compute_ref(prb, args, wino_ref=strategy, config=CFG)
        self.assertEqual(strategy.calls, [])
        self.assertTrue(args[ArgKind.DST].to_numpy().any())

    def test_invariant_errors_are_not_wrapped(self):
        prb = problem()
        args = full_args(prb, self.rng)
        args.set(ArgKind.DST, Memory((1,)))
        with self.assertRaises(InvariantViolationError):
            compute_ref(prb, args, config=CFG)


if __name__ == "__main__":
    unittest.main()
