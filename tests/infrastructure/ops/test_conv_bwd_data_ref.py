import unittest

import numpy as np

from convref.domain import (
    MASK_PER_CHANNEL,
    ArgKind,
    Attributes,
    BwdDataStrategy,
    ConvProblem,
    Direction,
    EltwiseAlg,
    EltwisePostOp,
    RefConfig,
    ZeroPoint,
)
from convref.infrastructure.ops import (
    compute_ref_direct_bwd_d,
    precompute_ok,
    use_precomputed_table,
)

from ._conv_test_utils import make_args, naive_bwd_d, random_ints


def bwd_d_args(prb, diff_dst, wei, dts=None):
    return make_args(
        {ArgKind.DIFF_DST: diff_dst, ArgKind.WEIGHTS: wei},
        {
            ArgKind.DIFF_SRC: prb.src_dims,
            ArgKind.WEIGHTS: prb.wei_dims,
            ArgKind.DIFF_DST: prb.dst_dims,
        },
        dts,
    )


def bwd_d_problem(**kwargs):
    kwargs.setdefault("dir", Direction.BWD_D)
    return ConvProblem.from_spatial(**kwargs)


class TestPrecomputeTable(unittest.TestCase):
    def test_valid_pairs_for_strided_axis(self):
        # i = 3, O = 3, K = 3, S = 2, P = 1, D = 1
        self.assertEqual(precompute_ok(3, 3, 3, 2, 1, 1), ([0, 2], [2, 1]))

    def test_no_pairs_outside_output(self):
        self.assertEqual(precompute_ok(0, 2, 2, 1, 0, 1), ([0], [0]))
        self.assertEqual(precompute_ok(5, 2, 2, 1, 0, 1), ([], []))

    def test_table_matches_brute_force(self):
        for I, K, S, P, D in [(7, 3, 2, 1, 1), (9, 4, 3, 2, 2), (5, 1, 1, 0, 1)]:
            O = (I + 2 * P - ((K - 1) * D + 1)) // S + 1
            for i in range(I):
                expected = [
                    (k, (i - k * D + P) // S)
                    for k in range(K)
                    if (i - k * D + P) >= 0
                    and (i - k * D + P) % S == 0
                    and (i - k * D + P) // S < O
                ]
                ks, os_ = precompute_ok(i, O, K, S, P, D)
                self.assertEqual(list(zip(ks, os_)), expected)

    def test_strategy_selection(self):
        prb = bwd_d_problem(mb=1, ic=1, oc=1, input_size=(20,), kernel_size=(17,))
        small = bwd_d_problem(mb=1, ic=1, oc=1, input_size=(20,), kernel_size=(3,))
        self.assertFalse(use_precomputed_table(prb, RefConfig(num_workers=1)))
        self.assertTrue(use_precomputed_table(small, RefConfig(num_workers=1)))
        self.assertTrue(
            use_precomputed_table(
                prb, RefConfig(num_workers=1, bwd_d_strategy=BwdDataStrategy.TABLE)
            )
        )
        self.assertFalse(
            use_precomputed_table(
                small, RefConfig(num_workers=1, bwd_d_strategy=BwdDataStrategy.DIRECT)
            )
        )
        self.assertTrue(
            use_precomputed_table(prb, RefConfig(num_workers=1, precompute_size=17))
        )


class TestConvBwdData(unittest.TestCase):
    def setUp(self) -> None:
        self.rng = np.random.default_rng(2)

    def _run(self, prb, diff_dst, wei, strategy, dts=None):
        args = bwd_d_args(prb, diff_dst, wei, dts)
        cfg = RefConfig(num_workers=1, bwd_d_strategy=strategy)
        compute_ref_direct_bwd_d(prb, args, cfg)
        return args[ArgKind.DIFF_SRC].to_numpy()

    def test_both_strategies_match_scatter_adjoint(self):
        cases = [
            dict(input_size=(9,), kernel_size=(3,), stride=(2,), padding=(1,)),
            dict(input_size=(7, 6), kernel_size=(3, 2), stride=(2, 2), padding=(1, 0)),
            dict(
                input_size=(8, 8),
                kernel_size=(3, 3),
                stride=(3, 1),
                padding=(2, 1),
                padding_r=(1, 2),
                dilation=(1, 1),
            ),
            dict(input_size=(4, 5, 4), kernel_size=(2, 3, 2), stride=(2, 1, 2)),
        ]
        for i, kw in enumerate(cases):
            for g, ic, oc in [(1, 2, 3), (2, 4, 2)]:
                prb = bwd_d_problem(mb=2, g=g, ic=ic, oc=oc, **kw)
                diff_dst = random_ints(self.rng, prb.dst_dims)
                wei = random_ints(self.rng, prb.wei_dims)
                expected = naive_bwd_d(prb, diff_dst, wei)
                for strategy in (BwdDataStrategy.TABLE, BwdDataStrategy.DIRECT):
                    with self.subTest(case=i, groups=g, strategy=strategy.value):
                        np.testing.assert_array_equal(
                            self._run(prb, diff_dst, wei, strategy), expected
                        )

    def test_strategies_agree_bitwise_on_non_integer_data(self):
        prb = bwd_d_problem(
            mb=1, ic=3, oc=5, input_size=(9, 9), kernel_size=(3, 3), stride=(2, 2)
        )
        diff_dst = self.rng.standard_normal(prb.dst_dims).astype(np.float32)
        wei = self.rng.standard_normal(prb.wei_dims).astype(np.float32)
        table = self._run(prb, diff_dst, wei, BwdDataStrategy.TABLE)
        direct = self._run(prb, diff_dst, wei, BwdDataStrategy.DIRECT)
        self.assertEqual(table.tobytes(), direct.tobytes())

    def test_zero_points_use_swapped_roles(self):
        # The forward source zero point shifts diff_dst values; the forward
        # destination zero point is added to the stored diff_src.
        attr = Attributes.build(
            zero_points={
                ArgKind.SRC: ZeroPoint((1, 2, 3), MASK_PER_CHANNEL),
                ArgKind.DST: 4,
            }
        )
        prb = bwd_d_problem(
            mb=1,
            ic=2,
            oc=3,
            input_size=(5, 5),
            kernel_size=(3, 3),
            padding=(1, 1),
            attr=attr,
        )
        diff_dst = random_ints(self.rng, prb.dst_dims, 0, 9)
        wei = random_ints(self.rng, prb.wei_dims)
        shifted = diff_dst - np.array([1.0, 2.0, 3.0], dtype=np.float32).reshape(
            1, 3, 1, 1
        )
        expected = naive_bwd_d(prb, shifted, wei) + 4.0
        for strategy in (BwdDataStrategy.TABLE, BwdDataStrategy.DIRECT):
            with self.subTest(strategy=strategy.value):
                np.testing.assert_array_equal(
                    self._run(prb, diff_dst, wei, strategy), expected
                )

    def test_scale_post_op_and_rounding_on_diff_src(self):
        attr = Attributes.build(
            scales=0.25, post_ops=[EltwisePostOp(EltwiseAlg.ABS, scale=2.0)]
        )
        prb = bwd_d_problem(
            mb=2, ic=2, oc=2, input_size=(4, 4), kernel_size=(2, 2), attr=attr
        )
        diff_dst = random_ints(self.rng, prb.dst_dims, -9, 10)
        wei = random_ints(self.rng, prb.wei_dims, -9, 10)
        out = self._run(
            prb, diff_dst, wei, BwdDataStrategy.AUTO, dts={ArgKind.DIFF_SRC: "s8"}
        )
        expected = np.clip(
            np.rint(2.0 * np.abs(naive_bwd_d(prb, diff_dst, wei) * 0.25)), -128, 127
        )
        np.testing.assert_array_equal(out, expected)

    def test_parallel_lanes_match_inline(self):
        prb = bwd_d_problem(
            mb=2, ic=4, oc=3, input_size=(12, 12), kernel_size=(3, 3), padding=(1, 1)
        )
        diff_dst = random_ints(self.rng, prb.dst_dims)
        wei = random_ints(self.rng, prb.wei_dims)
        outs = []
        for workers in (1, 3):
            args = bwd_d_args(prb, diff_dst, wei)
            compute_ref_direct_bwd_d(prb, args, RefConfig(num_workers=workers))
            outs.append(args[ArgKind.DIFF_SRC].to_numpy())
        np.testing.assert_array_equal(outs[0], outs[1])


if __name__ == "__main__":
    unittest.main()
