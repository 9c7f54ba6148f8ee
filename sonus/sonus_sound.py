"""
The signal algebra: immutable Sound expression trees and the iterators that
stream them as samples.

A Sound denotes a real-valued function of time in seconds. Building one
never computes a sample. `shift` rewrites a tree in closed form so that
`s.shift(t)` at time x equals `s` at time x + t, and `iter` turns a tree into
a stateful iterator producing one sample per tick at a fixed sample rate.
Iterators never raise StopIteration; callers decide how many samples to take.
"""
import cmath
import math
import random
from dataclasses import dataclass
from typing import Any, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from sonus.sonus_datatypes import RealFunction

TAU = 2 * math.pi
NOISE_LOW = -1.0
NOISE_HIGH = 1.0
_NAN_PHASOR = complex(math.nan, math.nan)


# -----------------------------------------------------------------
# IEEE-754 helpers
# -----------------------------------------------------------------

def _is_odd_integer(x: float) -> bool:
    return math.isfinite(x) and float(x).is_integer() and int(x) % 2 == 1


def ieee_div(a: float, b: float) -> float:
    """a / b with infinities and NaN in place of ZeroDivisionError."""
    try:
        return a / b
    except ZeroDivisionError:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)


def ieee_pow(a: float, b: float) -> float:
    """a ** b that never raises and never returns a complex number."""
    try:
        result = a ** b
    except ZeroDivisionError:
        # 0 ** negative
        if _is_odd_integer(b):
            return math.copysign(math.inf, a)
        return math.inf
    except OverflowError:
        if a < 0 and _is_odd_integer(b):
            return -math.inf
        return math.inf
    if isinstance(result, complex):
        return math.nan
    return float(result)


def ieee_exp(x: float) -> float:
    try:
        return math.exp(x)
    except OverflowError:
        return math.inf


# -----------------------------------------------------------------
# Sound nodes
# -----------------------------------------------------------------

def _coerce(value: Any) -> Optional['Sound']:
    if isinstance(value, Sound):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return Const(float(value))
    return None


def lift(value: Any) -> 'Sound':
    """Turns a real into a constant Sound; Sounds pass through unchanged."""
    sound = _coerce(value)
    if sound is None:
        raise TypeError(f"cannot lift {type(value).__name__} to a Sound")
    return sound


class Sound:
    """Base class for signal expression nodes.

    The arithmetic operators only build nodes, mirroring the language:
    `Sin(440) * 0.5` is `Mul(Sin(440), Const(0.5))`.
    """

    def shift(self, t: float) -> 'Sound':
        raise NotImplementedError

    def iter(self, samplerate: float) -> 'SoundIter':
        raise NotImplementedError

    def _binary(self, node_type, other, reflected=False):
        other = _coerce(other)
        if other is None:
            return NotImplemented
        return node_type(other, self) if reflected else node_type(self, other)

    def __add__(self, other): return self._binary(Add, other)
    def __radd__(self, other): return self._binary(Add, other, reflected=True)
    def __sub__(self, other): return self._binary(Sub, other)
    def __rsub__(self, other): return self._binary(Sub, other, reflected=True)
    def __mul__(self, other): return self._binary(Mul, other)
    def __rmul__(self, other): return self._binary(Mul, other, reflected=True)
    def __truediv__(self, other): return self._binary(Div, other)
    def __rtruediv__(self, other): return self._binary(Div, other, reflected=True)
    def __pow__(self, other): return self._binary(Pow, other)
    def __rpow__(self, other): return self._binary(Pow, other, reflected=True)
    def __neg__(self): return Minus(self)
    def __pos__(self): return self


@dataclass(frozen=True)
class Const(Sound):
    value: float

    def shift(self, t):
        return self

    def iter(self, samplerate):
        return ConstIter(self.value)


@dataclass(frozen=True)
class Linear(Sound):
    """slope * t + intercept"""
    slope: float
    intercept: float

    def shift(self, t):
        return Linear(self.slope, self.intercept + self.slope * t)

    def iter(self, samplerate):
        return LinearIter(self.intercept, ieee_div(self.slope, samplerate))


@dataclass(frozen=True)
class Sin(Sound):
    """sin(2 pi frequency t + phase)"""
    frequency: float
    phase: float = 0.0

    def shift(self, t):
        return Sin(self.frequency, self.phase + TAU * self.frequency * t)

    def iter(self, samplerate):
        step = TAU * ieee_div(self.frequency, samplerate)
        # cmath.rect rejects infinite angles; such a sine is NaN at every sample
        if not (math.isfinite(self.phase) and math.isfinite(step)):
            return SinIter(_NAN_PHASOR, _NAN_PHASOR)
        return SinIter(cmath.rect(1.0, self.phase), cmath.rect(1.0, step))


@dataclass(frozen=True)
class Exp(Sound):
    """intercept * exp(coefficient * t)"""
    coefficient: float
    intercept: float = 1.0

    def shift(self, t):
        return Exp(self.coefficient, self.intercept * ieee_exp(self.coefficient * t))

    def iter(self, samplerate):
        return ExpIter(self.intercept, ieee_exp(ieee_div(self.coefficient, samplerate)))


@dataclass(frozen=True)
class Rand(Sound):
    """White noise, uniform in [-1, 1). Time-invariant, so shifting is a no-op.

    Every iterator gets its own generator; a seed makes streams reproducible.
    """
    seed: Optional[int] = None

    def shift(self, t):
        return self

    def iter(self, samplerate):
        return RandIter(random.Random(self.seed))


@dataclass(frozen=True)
class Minus(Sound):
    sound: Sound

    def shift(self, t):
        return Minus(self.sound.shift(t))

    def iter(self, samplerate):
        return MinusIter(self.sound.iter(samplerate))


@dataclass(frozen=True)
class Reciprocal(Sound):
    sound: Sound

    def shift(self, t):
        return Reciprocal(self.sound.shift(t))

    def iter(self, samplerate):
        return ReciprocalIter(self.sound.iter(samplerate))


@dataclass(frozen=True)
class _Combinator(Sound):
    left: Sound
    right: Sound

    symbol = '?'
    iterator = None

    def shift(self, t):
        return type(self)(self.left.shift(t), self.right.shift(t))

    def iter(self, samplerate):
        return self.iterator(self.left.iter(samplerate), self.right.iter(samplerate))


def _shift_arg(value: Any, t: float) -> Any:
    return value.shift(t) if isinstance(value, Sound) else value


@dataclass(frozen=True)
class FunctionSound(Sound):
    """A real function applied pointwise to its arguments.

    Built when a RealFunction is called with at least one Sound argument.
    Reals stay fixed; Sound arguments are streamed and fed to the function
    sample by sample.
    """
    function: 'RealFunction'
    positional: Tuple[Any, ...] = ()
    named: Tuple[Tuple[str, Any], ...] = ()

    def shift(self, t):
        return FunctionSound(
            self.function,
            tuple(_shift_arg(v, t) for v in self.positional),
            tuple((k, _shift_arg(v, t)) for k, v in self.named),
        )

    def iter(self, samplerate):
        binding = self.function.bind(self.positional, dict(self.named))
        children = tuple(
            (slot, value.iter(samplerate))
            for slot, value in enumerate(binding.slots)
            if isinstance(value, Sound)
        )
        return FunctionIter(self.function, binding, children)


# -----------------------------------------------------------------
# Iterators
# -----------------------------------------------------------------

class SoundIter:
    """A stateful, infinite stream of samples. `next(it)` yields the next one."""
    __slots__ = ()

    def __iter__(self):
        return self

    def __next__(self) -> float:
        raise NotImplementedError


class ConstIter(SoundIter):
    __slots__ = ('value',)

    def __init__(self, value):
        self.value = value

    def __next__(self):
        return self.value


class LinearIter(SoundIter):
    __slots__ = ('current', 'step')

    def __init__(self, start, step):
        self.current = start
        self.step = step

    def __next__(self):
        value = self.current
        self.current += self.step
        return value


class SinIter(SoundIter):
    """Rotates a unit phasor; the sample is its imaginary part."""
    __slots__ = ('current', 'rotation')

    def __init__(self, start: complex, rotation: complex):
        self.current = start
        self.rotation = rotation

    def __next__(self):
        value = self.current.imag
        self.current *= self.rotation
        return value


class ExpIter(SoundIter):
    __slots__ = ('current', 'ratio')

    def __init__(self, start, ratio):
        self.current = start
        self.ratio = ratio

    def __next__(self):
        value = self.current
        self.current *= self.ratio
        return value


class RandIter(SoundIter):
    __slots__ = ('rng',)

    def __init__(self, rng: random.Random):
        self.rng = rng

    def __next__(self):
        return NOISE_LOW + (NOISE_HIGH - NOISE_LOW) * self.rng.random()


class MinusIter(SoundIter):
    __slots__ = ('inner',)

    def __init__(self, inner):
        self.inner = inner

    def __next__(self):
        return -next(self.inner)


class ReciprocalIter(SoundIter):
    __slots__ = ('inner',)

    def __init__(self, inner):
        self.inner = inner

    def __next__(self):
        return ieee_div(1.0, next(self.inner))


class _PairIter(SoundIter):
    __slots__ = ('left', 'right')

    def __init__(self, left, right):
        self.left = left
        self.right = right


class AddIter(_PairIter):
    __slots__ = ()

    def __next__(self):
        return next(self.left) + next(self.right)


class SubIter(_PairIter):
    __slots__ = ()

    def __next__(self):
        return next(self.left) - next(self.right)


class MulIter(_PairIter):
    __slots__ = ()

    def __next__(self):
        return next(self.left) * next(self.right)


class DivIter(_PairIter):
    __slots__ = ()

    def __next__(self):
        return ieee_div(next(self.left), next(self.right))


class PowIter(_PairIter):
    __slots__ = ()

    def __next__(self):
        return ieee_pow(next(self.left), next(self.right))


class FunctionIter(SoundIter):
    """Advances the Sound arguments in argument order, writes each sample into
    its slot of a private Binding, then invokes the function once."""
    __slots__ = ('function', 'binding', 'children')

    def __init__(self, function, binding, children):
        self.function = function
        self.binding = binding
        self.children = children

    def __next__(self):
        slots = self.binding.slots
        for slot, child in self.children:
            slots[slot] = next(child)
        return self.function.invoke(self.binding)


# Combinator node types; defined after their iterators so the class
# attribute can refer to them directly.

@dataclass(frozen=True)
class Add(_Combinator):
    symbol = '+'
    iterator = AddIter


@dataclass(frozen=True)
class Sub(_Combinator):
    symbol = '-'
    iterator = SubIter


@dataclass(frozen=True)
class Mul(_Combinator):
    symbol = '*'
    iterator = MulIter


@dataclass(frozen=True)
class Div(_Combinator):
    symbol = '/'
    iterator = DivIter


@dataclass(frozen=True)
class Pow(_Combinator):
    symbol = '^'
    iterator = PowIter
