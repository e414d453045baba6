import unittest

import numpy as np

from convref.domain import ArgKind, ConvProblem, Direction, MissingArgumentError, RefConfig
from convref.infrastructure.ops import (
    compute_bounds,
    compute_ref_bwd_bias,
    compute_ref_direct_bwd_w,
)

from ._conv_test_utils import make_args, naive_bwd_w, random_ints


def bwd_w_args(prb, src, diff_dst, with_bias=True, dts=None):
    dims = {
        ArgKind.SRC: prb.src_dims,
        ArgKind.DIFF_WEIGHTS: prb.wei_dims,
        ArgKind.DIFF_DST: prb.dst_dims,
    }
    if with_bias:
        dims[ArgKind.DIFF_BIAS] = prb.bia_dims
    return make_args({ArgKind.SRC: src, ArgKind.DIFF_DST: diff_dst}, dims, dts)


def bwd_w_problem(**kwargs):
    kwargs.setdefault("dir", Direction.BWD_WB)
    return ConvProblem.from_spatial(**kwargs)


class TestComputeBounds(unittest.TestCase):
    def test_bounds_equal_bounds_checked_scan(self):
        for I in (1, 4, 7):
            for k, S, P, D in [
                (0, 1, 0, 1),
                (2, 2, 1, 1),
                (1, 3, 2, 2),
                (3, 2, -1, 1),
                (0, 2, -2, 3),
                (4, 1, 5, 2),
            ]:
                O = 6
                with self.subTest(I=I, k=k, S=S, P=P, D=D):
                    o_s, o_e = compute_bounds(I, O, k, S, P, D)
                    valid = [o for o in range(O) if 0 <= o * S + k * D - P < I]
                    self.assertEqual(list(range(o_s, o_e)), valid)

    def test_empty_range(self):
        o_s, o_e = compute_bounds(2, 3, 5, 1, 0, 1)
        self.assertLessEqual(o_e, o_s)


class TestConvBwdWeights(unittest.TestCase):
    def setUp(self) -> None:
        self.rng = np.random.default_rng(3)
        self.cfg = RefConfig(num_workers=1)

    def _check(self, prb):
        src = random_ints(self.rng, prb.src_dims)
        diff_dst = random_ints(self.rng, prb.dst_dims)
        args = bwd_w_args(prb, src, diff_dst, with_bias=prb.has_bias)
        compute_ref_direct_bwd_w(prb, args, self.cfg)
        np.testing.assert_array_equal(
            args[ArgKind.DIFF_WEIGHTS].to_numpy(), naive_bwd_w(prb, src, diff_dst)
        )
        if prb.has_bias:
            expected_bias = diff_dst.astype(np.float64).sum(
                axis=tuple(i for i in range(diff_dst.ndim) if i != 1)
            )
            np.testing.assert_array_equal(
                args[ArgKind.DIFF_BIAS].to_numpy(), expected_bias
            )

    def test_shape_grid(self):
        cases = [
            dict(input_size=(9,), kernel_size=(3,), stride=(2,), padding=(1,)),
            dict(input_size=(7, 6), kernel_size=(3, 2), stride=(2, 1), dilation=(0, 2)),
            dict(
                input_size=(8, 7),
                kernel_size=(3, 3),
                stride=(3, 2),
                padding=(2, 1),
                padding_r=(0, 2),
            ),
            dict(input_size=(4, 5, 4), kernel_size=(2, 3, 2), padding=(1, 0, 1)),
        ]
        for i, kw in enumerate(cases):
            for g, ic, oc in [(1, 2, 3), (2, 4, 2)]:
                with self.subTest(case=i, groups=g):
                    self._check(bwd_w_problem(mb=2, g=g, ic=ic, oc=oc, **kw))

    def test_negative_padding(self):
        self._check(
            bwd_w_problem(
                mb=2,
                ic=2,
                oc=2,
                input_size=(8, 9),
                kernel_size=(3, 2),
                stride=(2, 1),
                padding=(-1, -2),
            )
        )

    def test_weights_only_direction_does_not_touch_bias(self):
        prb = bwd_w_problem(
            mb=1, ic=2, oc=2, input_size=(5, 5), kernel_size=(3, 3), dir=Direction.BWD_W
        )
        self.assertFalse(prb.has_bias)
        src = random_ints(self.rng, prb.src_dims)
        diff_dst = random_ints(self.rng, prb.dst_dims)
        args = bwd_w_args(prb, src, diff_dst, with_bias=False)
        compute_ref_direct_bwd_w(prb, args, self.cfg)
        self.assertNotIn(ArgKind.DIFF_BIAS, args)

    def test_missing_diff_bias_when_required(self):
        prb = bwd_w_problem(mb=1, ic=1, oc=1, input_size=(4,), kernel_size=(2,))
        args = bwd_w_args(
            prb,
            np.zeros(prb.src_dims),
            np.zeros(prb.dst_dims),
            with_bias=False,
        )
        with self.assertRaises(MissingArgumentError):
            compute_ref_direct_bwd_w(prb, args, self.cfg)

    def test_diff_weights_saturated_to_data_type(self):
        prb = bwd_w_problem(
            mb=4, ic=1, oc=1, input_size=(6, 6), kernel_size=(2, 2), dir="bwd_w"
        )
        src = random_ints(self.rng, prb.src_dims, 5, 9)
        diff_dst = random_ints(self.rng, prb.dst_dims, 5, 9)
        args = bwd_w_args(prb, src, diff_dst, False, dts={ArgKind.DIFF_WEIGHTS: "s8"})
        compute_ref_direct_bwd_w(prb, args, self.cfg)
        # every product is >= 25 over 100 terms, far above the s8 range
        np.testing.assert_array_equal(
            args[ArgKind.DIFF_WEIGHTS].to_numpy(), np.full(prb.wei_dims, 127.0)
        )

    def test_parallel_lanes_match_inline(self):
        prb = bwd_w_problem(
            mb=1, ic=8, oc=8, input_size=(6, 6), kernel_size=(3, 3), padding=(1, 1)
        )
        src = random_ints(self.rng, prb.src_dims)
        diff_dst = random_ints(self.rng, prb.dst_dims)
        outs = []
        for workers in (1, 2):
            args = bwd_w_args(prb, src, diff_dst)
            compute_ref_direct_bwd_w(prb, args, RefConfig(num_workers=workers))
            outs.append(args[ArgKind.DIFF_WEIGHTS].to_numpy())
        np.testing.assert_array_equal(outs[0], outs[1])


class TestConvBwdBias(unittest.TestCase):
    def test_bias_gradient_sums_in_double_precision(self):
        prb = bwd_w_problem(mb=1, ic=1, oc=1, input_size=(6,), kernel_size=(1,))
        big = 2.0**24
        diff_dst = np.array([[[big, 1.0, 1.0, 1.0, 1.0, -big]]], dtype=np.float32)
        args = bwd_w_args(prb, np.zeros(prb.src_dims), diff_dst)
        compute_ref_bwd_bias(prb, args, RefConfig(num_workers=1))

        # A float32 running sum would absorb every 1.0 into 2**24.
        f32 = np.float32(0.0)
        for v in diff_dst.reshape(-1):
            f32 = np.float32(f32 + v)
        self.assertEqual(f32, 0.0)
        self.assertEqual(args[ArgKind.DIFF_BIAS].get_elem(0), 4.0)

    def test_bias_gradient_per_group_channel(self):
        prb = bwd_w_problem(mb=3, g=2, ic=2, oc=4, input_size=(3, 3), kernel_size=(1, 1))
        diff_dst = np.arange(np.prod(prb.dst_dims), dtype=np.float32).reshape(
            prb.dst_dims
        )
        args = bwd_w_args(prb, np.zeros(prb.src_dims), diff_dst)
        compute_ref_bwd_bias(prb, args, RefConfig(num_workers=1))
        np.testing.assert_array_equal(
            args[ArgKind.DIFF_BIAS].to_numpy(), diff_dst.sum(axis=(0, 2, 3))
        )


if __name__ == "__main__":
    unittest.main()
