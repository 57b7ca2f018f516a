"""The ``[net]`` section: network-wide training hyperparameters.

Two record types describe the section. :class:`RawNetConfig` mirrors the
text one key per field, optional keys as ``None``. :class:`NetConfig` is the
canonical form: derived defaults filled in, the Adam and policy sub-fields
folded into structured values, and the input shape resolved to one of
:class:`~darknet_cfg.types.Flat` / :class:`~darknet_cfg.types.Hwc`.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import ClassVar

from darknet_cfg.codec.fields import (
    BOOL,
    FLOAT,
    FLOAT_LIST,
    POSITIVE,
    UINT,
    UINT_LIST,
    enum_codec,
)
from darknet_cfg.codec.records import option
from darknet_cfg.errors import ValidationError
from darknet_cfg.types import Flat, Hwc, MixUp, PolicyKind, Shape

DEFAULT_STEP = 1
DEFAULT_SCALE = 1.0
DEFAULT_GAMMA = 1.0


@dataclass(frozen=True)
class Adam:
    """Adam optimizer parameters, present only when ``adam=1``."""

    b1: float = 0.9
    b2: float = 0.999
    eps: float = 0.000001


# Learning rate policies. Each kind keeps only the parameters it reads.


@dataclass(frozen=True)
class RandomPolicy:
    kind: ClassVar[PolicyKind] = PolicyKind.RANDOM


@dataclass(frozen=True)
class PolyPolicy:
    kind: ClassVar[PolicyKind] = PolicyKind.POLY


@dataclass(frozen=True)
class ConstantPolicy:
    kind: ClassVar[PolicyKind] = PolicyKind.CONSTANT


@dataclass(frozen=True)
class StepPolicy:
    kind: ClassVar[PolicyKind] = PolicyKind.STEP

    step: int = DEFAULT_STEP
    scale: float = DEFAULT_SCALE


@dataclass(frozen=True)
class ExpPolicy:
    kind: ClassVar[PolicyKind] = PolicyKind.EXP

    gamma: float = DEFAULT_GAMMA


@dataclass(frozen=True)
class SigmoidPolicy:
    kind: ClassVar[PolicyKind] = PolicyKind.SIGMOID

    gamma: float = DEFAULT_GAMMA
    step: int = DEFAULT_STEP


def _check_schedule(
    steps: tuple[int, ...], scales: tuple[float, ...], seq_scales: tuple[float, ...]
) -> None:
    if len(steps) != len(scales):
        raise ValidationError(
            f"the length of steps and scales must be equal ({len(steps)} != {len(scales)})",
            key="scales",
        )
    if len(steps) != len(seq_scales):
        raise ValidationError(
            f"the length of steps and seq_scales must be equal ({len(steps)} != {len(seq_scales)})",
            key="seq_scales",
        )


@dataclass(frozen=True)
class StepsPolicy:
    """Multi-step schedule. ``seq_scales`` defaults to all ones."""

    kind: ClassVar[PolicyKind] = PolicyKind.STEPS

    steps: tuple[int, ...]
    scales: tuple[float, ...]
    seq_scales: tuple[float, ...] | None = None

    def __post_init__(self) -> None:
        seq_scales = (1.0,) * len(self.steps) if self.seq_scales is None else self.seq_scales
        object.__setattr__(self, "steps", tuple(self.steps))
        object.__setattr__(self, "scales", tuple(self.scales))
        object.__setattr__(self, "seq_scales", tuple(seq_scales))
        _check_schedule(self.steps, self.scales, self.seq_scales)


@dataclass(frozen=True)
class SgdrPolicy:
    kind: ClassVar[PolicyKind] = PolicyKind.SGDR


@dataclass(frozen=True)
class SgdrCustomPolicy:
    """SGDR with explicit restart points. Missing scales default to ones."""

    kind: ClassVar[PolicyKind] = PolicyKind.SGDR

    steps: tuple[int, ...]
    scales: tuple[float, ...] | None = None
    seq_scales: tuple[float, ...] | None = None

    def __post_init__(self) -> None:
        ones = (1.0,) * len(self.steps)
        object.__setattr__(self, "steps", tuple(self.steps))
        object.__setattr__(self, "scales", ones if self.scales is None else tuple(self.scales))
        object.__setattr__(
            self, "seq_scales", ones if self.seq_scales is None else tuple(self.seq_scales)
        )
        _check_schedule(self.steps, self.scales, self.seq_scales)


Policy = (
    RandomPolicy
    | PolyPolicy
    | ConstantPolicy
    | StepPolicy
    | ExpPolicy
    | SigmoidPolicy
    | StepsPolicy
    | SgdrPolicy
    | SgdrCustomPolicy
)


@dataclass(frozen=True)
class RawNetConfig:
    """``[net]`` section as written."""

    max_batches: int = option(UINT, default=0)
    batch: int = option(UINT, default=1)
    learning_rate: float = option(FLOAT, default=0.001)
    learning_rate_min: float = option(FLOAT, default=0.00001)
    sgdr_cycle: int | None = option(UINT, default=None)
    sgdr_mult: int = option(UINT, default=2)
    momentum: float = option(FLOAT, default=0.9)
    decay: float = option(FLOAT, default=0.0001)
    subdivisions: int = option(UINT, default=1)
    time_steps: int = option(UINT, default=1)
    track: int = option(UINT, default=1)
    augment_speed: int = option(UINT, default=2)
    sequential_subdivisions: int | None = option(UINT, default=None)
    try_fix_nan: bool = option(BOOL, default=False)
    loss_scale: float = option(FLOAT, default=1.0)
    dynamic_minibatch: bool = option(BOOL, default=False)
    optimized_memory: bool = option(BOOL, default=False)
    workspace_size_limit_mb: int = option(UINT, key="workspace_size_limit_MB", default=1024)
    adam: bool = option(BOOL, default=False)
    b1: float = option(FLOAT, key="B1", default=0.9)
    b2: float = option(FLOAT, key="B2", default=0.999)
    eps: float = option(FLOAT, default=0.000001)
    width: int | None = option(POSITIVE, default=None)
    height: int | None = option(POSITIVE, default=None)
    channels: int | None = option(POSITIVE, default=None)
    inputs: int | None = option(POSITIVE, default=None)
    max_crop: int | None = option(UINT, default=None)
    min_crop: int | None = option(UINT, default=None)
    flip: bool = option(BOOL, default=True)
    blur: bool = option(BOOL, default=False)
    gaussian_noise: bool = option(BOOL, default=False)
    mixup: MixUp = option(enum_codec(MixUp), default=MixUp.RANDOM)
    cutmux: bool = option(BOOL, default=False)
    mosaic: bool = option(BOOL, default=False)
    letter_box: bool = option(BOOL, default=False)
    mosaic_bound: bool = option(BOOL, default=False)
    contrastive: bool = option(BOOL, default=False)
    contrastive_jit_flip: bool = option(BOOL, default=False)
    contrastive_color: bool = option(BOOL, default=False)
    unsupervised: bool = option(BOOL, default=False)
    label_smooth_eps: float = option(FLOAT, default=0.0)
    resize_step: int = option(UINT, default=32)
    attention: bool = option(BOOL, default=False)
    adversarial_lr: float = option(FLOAT, default=0.0)
    max_chart_loss: float = option(FLOAT, default=20.0)
    angle: float = option(FLOAT, default=0.0)
    aspect: float = option(FLOAT, default=1.0)
    saturation: float = option(FLOAT, default=1.0)
    exposure: float = option(FLOAT, default=1.0)
    hue: float = option(FLOAT, default=0.0)
    power: float = option(FLOAT, default=4.0)
    policy: PolicyKind = option(enum_codec(PolicyKind), default=PolicyKind.CONSTANT)
    burn_in: int = option(UINT, default=0)
    step: int = option(UINT, default=DEFAULT_STEP)
    scale: float = option(FLOAT, default=DEFAULT_SCALE)
    steps: tuple[int, ...] | None = option(UINT_LIST, default=None)
    scales: tuple[float, ...] | None = option(FLOAT_LIST, default=None)
    seq_scales: tuple[float, ...] | None = option(FLOAT_LIST, default=None)
    gamma: float = option(FLOAT, default=DEFAULT_GAMMA)


@dataclass(frozen=True)
class NetConfig:
    """Canonical ``[net]`` section.

    Attributes:
        input_size: Network input, ``Hwc`` for images or ``Flat`` for vectors.
        adam: Adam parameters, or None when SGD is used.
        policy: Learning rate schedule with only the parameters it reads.
    """

    input_size: Shape
    max_batches: int = 0
    batch: int = 1
    learning_rate: float = 0.001
    learning_rate_min: float = 0.00001
    sgdr_cycle: int = 0
    sgdr_mult: int = 2
    momentum: float = 0.9
    decay: float = 0.0001
    subdivisions: int = 1
    time_steps: int = 1
    track: int = 1
    augment_speed: int = 2
    sequential_subdivisions: int = 1
    try_fix_nan: bool = False
    loss_scale: float = 1.0
    dynamic_minibatch: bool = False
    optimized_memory: bool = False
    workspace_size_limit_mb: int = 1024
    adam: Adam | None = None
    max_crop: int = 0
    min_crop: int = 0
    flip: bool = True
    blur: bool = False
    gaussian_noise: bool = False
    mixup: MixUp = MixUp.RANDOM
    cutmux: bool = False
    mosaic: bool = False
    letter_box: bool = False
    mosaic_bound: bool = False
    contrastive: bool = False
    contrastive_jit_flip: bool = False
    contrastive_color: bool = False
    unsupervised: bool = False
    label_smooth_eps: float = 0.0
    resize_step: int = 32
    attention: bool = False
    adversarial_lr: float = 0.0
    max_chart_loss: float = 20.0
    angle: float = 0.0
    aspect: float = 1.0
    saturation: float = 1.0
    exposure: float = 1.0
    hue: float = 0.0
    power: float = 4.0
    policy: Policy = ConstantPolicy()
    burn_in: int = 0

    def __post_init__(self) -> None:
        match self.input_size:
            case Hwc(height=h, width=w, channels=c):
                if min(h, w, c) < 1:
                    raise ValidationError(
                        f"input dimensions must be positive, got {self.input_size}"
                    )
            case Flat(size=n):
                if n < 1:
                    raise ValidationError(f"input size must be positive, got {n}", key="inputs")
            case _:
                raise ValidationError(f"input_size must be Hwc or Flat, got {self.input_size!r}")


# Fields copied unchanged between the two forms; "adam" and "policy" change type
_SHARED_FIELDS = tuple(
    f.name
    for f in fields(NetConfig)
    if f.name in {g.name for g in fields(RawNetConfig)} and f.name not in {"adam", "policy"}
)


def _input_size(raw: RawNetConfig) -> Shape:
    match (raw.inputs, raw.height, raw.width, raw.channels):
        case (int(inputs), None, None, None):
            return Flat(inputs)
        case (None, int(height), int(width), int(channels)):
            return Hwc(height, width, channels)
        case _:
            raise ValidationError(
                "either inputs or height/width/channels must be specified, but not both"
            )


def _policy(raw: RawNetConfig) -> Policy:
    match raw.policy:
        case PolicyKind.RANDOM:
            return RandomPolicy()
        case PolicyKind.POLY:
            return PolyPolicy()
        case PolicyKind.CONSTANT:
            return ConstantPolicy()
        case PolicyKind.STEP:
            return StepPolicy(step=raw.step, scale=raw.scale)
        case PolicyKind.EXP:
            return ExpPolicy(gamma=raw.gamma)
        case PolicyKind.SIGMOID:
            return SigmoidPolicy(gamma=raw.gamma, step=raw.step)
        case PolicyKind.STEPS:
            if raw.steps is None:
                raise ValidationError("steps must be specified for the steps policy", key="steps")
            if raw.scales is None:
                raise ValidationError("scales must be specified for the steps policy", key="scales")
            return StepsPolicy(raw.steps, raw.scales, raw.seq_scales)
        case PolicyKind.SGDR:
            if raw.steps is not None:
                return SgdrCustomPolicy(raw.steps, raw.scales, raw.seq_scales)
            if raw.scales is not None or raw.seq_scales is not None:
                raise ValidationError(
                    "scales and seq_scales of the sgdr policy require steps", key="steps"
                )
            return SgdrPolicy()
    raise ValidationError(f"unsupported policy {raw.policy!r}")


def normalize_net(raw: RawNetConfig) -> NetConfig:
    """Derive the canonical ``[net]`` section.

    ``sgdr_cycle`` falls back to ``max_batches``, ``sequential_subdivisions``
    to ``subdivisions``, and the crop bounds to multiples of ``width``.

    Raises:
        ValidationError: On an ambiguous or absent input shape, or an
            incomplete or inconsistent policy schedule.
    """
    width = raw.width or 0
    shared = {name: getattr(raw, name) for name in _SHARED_FIELDS}
    shared.update(
        input_size=_input_size(raw),
        sgdr_cycle=raw.max_batches if raw.sgdr_cycle is None else raw.sgdr_cycle,
        sequential_subdivisions=(
            raw.subdivisions
            if raw.sequential_subdivisions is None
            else raw.sequential_subdivisions
        ),
        adam=Adam(b1=raw.b1, b2=raw.b2, eps=raw.eps) if raw.adam else None,
        max_crop=width * 2 if raw.max_crop is None else raw.max_crop,
        min_crop=width if raw.min_crop is None else raw.min_crop,
        policy=_policy(raw),
    )
    return NetConfig(**shared)


def denormalize_net(net: NetConfig) -> RawNetConfig:
    """Spell a canonical ``[net]`` section back into raw fields.

    Derived values are written explicitly, so parsing the result yields
    ``net`` again. Policy parameters the policy does not use are reset to
    their defaults.
    """
    shared = {name: getattr(net, name) for name in _SHARED_FIELDS}

    adam = net.adam or Adam()
    match net.input_size:
        case Hwc(height=h, width=w, channels=c):
            shape = dict(height=h, width=w, channels=c)
        case Flat(size=n):
            shape = dict(inputs=n)

    step, scale, gamma = DEFAULT_STEP, DEFAULT_SCALE, DEFAULT_GAMMA
    steps = scales = seq_scales = None
    match net.policy:
        case StepPolicy():
            step, scale = net.policy.step, net.policy.scale
        case ExpPolicy():
            gamma = net.policy.gamma
        case SigmoidPolicy():
            gamma, step = net.policy.gamma, net.policy.step
        case StepsPolicy() | SgdrCustomPolicy():
            steps, scales, seq_scales = (
                net.policy.steps,
                net.policy.scales,
                net.policy.seq_scales,
            )

    return RawNetConfig(
        **shared,
        **shape,
        adam=net.adam is not None,
        b1=adam.b1,
        b2=adam.b2,
        eps=adam.eps,
        policy=net.policy.kind,
        step=step,
        scale=scale,
        gamma=gamma,
        steps=steps,
        scales=scales,
        seq_scales=seq_scales,
    )
