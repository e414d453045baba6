"""
Convolution problem descriptor.

`ConvProblem` is the immutable description of one convolution instance:
shapes, hyper-parameters, direction, algorithm and attributes. Every
evaluator reads it and none modifies it.

Tensor layout
-------------
All tensors are dense, row-major, channels-first:

- src / diff_src : (MB, IC, [ID,] [IH,] IW)
- weights        : (G, OCG, ICG, [KD,] [KH,] KW), or (OC, IC, ...) when G == 1
- bias           : (OC,)
- dst / diff_dst : (MB, OC, [OD,] [OH,] OW)

Internally every problem is 3D: unused leading spatial axes have extent 1,
stride 1, zero padding and zero dilation.

Spatial arithmetic
------------------
For convolution, with `D = gap + 1`:

    O = (I + P_l + P_r - ((K - 1) * D + 1)) // S + 1

For deconvolution the same relation holds with I and O exchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Optional, Sequence, Tuple

from ._attributes import Attributes
from ._direction import Algorithm, Direction, DirectionKind, resolve_direction
from ._errors import InvariantViolationError


def _conv_out(i: int, k: int, s: int, p_l: int, p_r: int, gap: int) -> int:
    ext = (k - 1) * (gap + 1) + 1
    return (i + p_l + p_r - ext) // s + 1


def _deconv_out(i: int, k: int, s: int, p_l: int, p_r: int, gap: int) -> int:
    ext = (k - 1) * (gap + 1) + 1
    return (i - 1) * s - p_l - p_r + ext


def _pad3(v: Sequence[int], fill: int, name: str) -> Tuple[int, int, int]:
    v = tuple(int(x) for x in v)
    if not 1 <= len(v) <= 3:
        raise InvariantViolationError(f"{name} must have 1 to 3 entries, got {v}")
    return (fill,) * (3 - len(v)) + v


@dataclass(frozen=True, kw_only=True)
class ConvProblem:
    """
    Immutable convolution problem descriptor.

    Output extents left as `None` are derived from the spatial arithmetic;
    supplied extents are checked against it. Right padding defaults to the
    front padding.

    Raises
    ------
    InvariantViolationError
        On non-divisible channel counts, non-positive extents, output
        extents inconsistent with the arithmetic, or unused spatial axes
        that are not trivial.
    """

    mb: int
    g: int = 1
    ic: int
    oc: int
    id: int = 1
    ih: int = 1
    iw: int
    kd: int = 1
    kh: int = 1
    kw: int
    od: Optional[int] = None
    oh: Optional[int] = None
    ow: Optional[int] = None
    sd: int = 1
    sh: int = 1
    sw: int = 1
    pd: int = 0
    ph: int = 0
    pw: int = 0
    pd_r: Optional[int] = None
    ph_r: Optional[int] = None
    pw_r: Optional[int] = None
    dd: int = 0
    dh: int = 0
    dw: int = 0
    ndims: int = 4
    dir: Direction = Direction.FWD_B
    alg: Algorithm = Algorithm.DIRECT
    attr: Attributes = field(default_factory=Attributes)
    is_deconv: bool = False

    kind: DirectionKind = field(init=False)
    has_bias: bool = field(init=False)

    def __post_init__(self) -> None:
        set_ = object.__setattr__
        set_(self, "dir", Direction.parse(self.dir))
        set_(self, "alg", Algorithm(self.alg))
        kind, has_bias = resolve_direction(self.dir)
        set_(self, "kind", kind)
        set_(self, "has_bias", has_bias)

        if self.ndims not in (3, 4, 5):
            raise InvariantViolationError(f"ndims must be 3, 4 or 5, got {self.ndims}")
        for name in ("mb", "g", "ic", "oc", "id", "ih", "iw", "kd", "kh", "kw"):
            if getattr(self, name) <= 0:
                raise InvariantViolationError(f"{name} must be positive")
        for name in ("sd", "sh", "sw"):
            if getattr(self, name) <= 0:
                raise InvariantViolationError(f"{name} must be positive")
        for name in ("dd", "dh", "dw"):
            if getattr(self, name) < 0:
                raise InvariantViolationError(f"{name} must be non-negative")
        if self.ic % self.g or self.oc % self.g:
            raise InvariantViolationError(
                f"channels must divide by groups: ic={self.ic}, oc={self.oc}, g={self.g}"
            )

        for axis in ("d", "h", "w"):
            if getattr(self, f"p{axis}_r") is None:
                set_(self, f"p{axis}_r", getattr(self, f"p{axis}"))

        unused = {3: ("d", "h"), 4: ("d",), 5: ()}[self.ndims]
        for axis in unused:
            trivial = (
                getattr(self, f"i{axis}") == 1
                and getattr(self, f"k{axis}") == 1
                and getattr(self, f"s{axis}") == 1
                and getattr(self, f"p{axis}") == 0
                and getattr(self, f"p{axis}_r") == 0
                and getattr(self, f"d{axis}") == 0
                and getattr(self, f"o{axis}") in (None, 1)
            )
            if not trivial:
                raise InvariantViolationError(
                    f"spatial axis '{axis}' is unused for ndims={self.ndims} "
                    "and must be trivial"
                )

        for axis in ("d", "h", "w"):
            i = getattr(self, f"i{axis}")
            k = getattr(self, f"k{axis}")
            s = getattr(self, f"s{axis}")
            p_l = getattr(self, f"p{axis}")
            p_r = getattr(self, f"p{axis}_r")
            gap = getattr(self, f"d{axis}")
            o = getattr(self, f"o{axis}")
            if self.is_deconv:
                if o is None:
                    o = _deconv_out(i, k, s, p_l, p_r, gap)
                consistent = o > 0 and _conv_out(o, k, s, p_l, p_r, gap) == i
            else:
                expected = _conv_out(i, k, s, p_l, p_r, gap)
                if o is None:
                    o = expected
                consistent = o > 0 and o == expected
            if not consistent:
                raise InvariantViolationError(
                    f"o{axis}={o} is inconsistent with i{axis}={i}, k{axis}={k}, "
                    f"s{axis}={s}, p{axis}=({p_l}, {p_r}), d{axis}={gap}"
                )
            set_(self, f"o{axis}", o)

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------
    @classmethod
    def from_spatial(
        cls,
        *,
        mb: int,
        ic: int,
        oc: int,
        input_size: Sequence[int],
        kernel_size: Sequence[int],
        g: int = 1,
        stride: Optional[Sequence[int]] = None,
        padding: Optional[Sequence[int]] = None,
        padding_r: Optional[Sequence[int]] = None,
        dilation: Optional[Sequence[int]] = None,
        output_size: Optional[Sequence[int]] = None,
        **kwargs,
    ) -> "ConvProblem":
        """
        Build a problem from per-axis sequences of length 1, 2 or 3.

        `dilation` holds gaps (0 means dense). The number of spatial axes
        given in `input_size` decides `ndims`.
        """
        nsp = len(tuple(input_size))
        if len(tuple(kernel_size)) != nsp:
            raise InvariantViolationError("kernel_size rank must match input_size")

        i = _pad3(input_size, 1, "input_size")
        k = _pad3(kernel_size, 1, "kernel_size")
        s = _pad3(stride if stride is not None else [1] * nsp, 1, "stride")
        p = _pad3(padding if padding is not None else [0] * nsp, 0, "padding")
        pr = _pad3(padding_r, 0, "padding_r") if padding_r is not None else p
        dl = _pad3(dilation if dilation is not None else [0] * nsp, 0, "dilation")
        if output_size is None:
            o: Tuple[Optional[int], ...] = (None, None, None)
        else:
            o = _pad3(output_size, 1, "output_size")

        return cls(
            mb=mb,
            g=g,
            ic=ic,
            oc=oc,
            id=i[0],
            ih=i[1],
            iw=i[2],
            kd=k[0],
            kh=k[1],
            kw=k[2],
            od=o[0],
            oh=o[1],
            ow=o[2],
            sd=s[0],
            sh=s[1],
            sw=s[2],
            pd=p[0],
            ph=p[1],
            pw=p[2],
            pd_r=pr[0],
            ph_r=pr[1],
            pw_r=pr[2],
            dd=dl[0],
            dh=dl[1],
            dw=dl[2],
            ndims=nsp + 2,
            **kwargs,
        )

    def transposed(self) -> "ConvProblem":
        """
        Convolution problem equivalent to this deconvolution.

        Input and output channels and extents are exchanged; the returned
        problem is a plain convolution.
        """
        if not self.is_deconv:
            raise InvariantViolationError("transposed() requires a deconvolution")
        return replace(
            self,
            ic=self.oc,
            oc=self.ic,
            id=self.od,
            ih=self.oh,
            iw=self.ow,
            od=self.id,
            oh=self.ih,
            ow=self.iw,
            is_deconv=False,
        )

    # ------------------------------------------------------------------
    # Derived sizes and layouts
    # ------------------------------------------------------------------
    @property
    def icg(self) -> int:
        return self.ic // self.g

    @property
    def ocg(self) -> int:
        return self.oc // self.g

    def _spatial(self, values: Tuple[int, int, int]) -> Tuple[int, ...]:
        return values[5 - self.ndims :]

    @property
    def src_dims(self) -> Tuple[int, ...]:
        return (self.mb, self.ic) + self._spatial((self.id, self.ih, self.iw))

    @property
    def dst_dims(self) -> Tuple[int, ...]:
        return (self.mb, self.oc) + self._spatial((self.od, self.oh, self.ow))

    @property
    def wei_dims(self) -> Tuple[int, ...]:
        k = self._spatial((self.kd, self.kh, self.kw))
        if self.g > 1:
            return (self.g, self.ocg, self.icg) + k
        return (self.oc, self.ic) + k

    @property
    def bia_dims(self) -> Tuple[int, ...]:
        return (self.oc,)

    def src_off(self, mb: int, g: int, ic: int, id: int, ih: int, iw: int) -> int:
        c = g * self.icg + ic
        return (((mb * self.ic + c) * self.id + id) * self.ih + ih) * self.iw + iw

    def dst_off(self, mb: int, g: int, oc: int, od: int, oh: int, ow: int) -> int:
        c = g * self.ocg + oc
        return (((mb * self.oc + c) * self.od + od) * self.oh + oh) * self.ow + ow

    def wei_off(
        self, g: int, oc: int, ic: int, kd: int, kh: int, kw: int
    ) -> int:
        base = (g * self.ocg + oc) * self.icg + ic
        return ((base * self.kd + kd) * self.kh + kh) * self.kw + kw

    def bia_off(self, g: int, oc: int) -> int:
        return g * self.ocg + oc
