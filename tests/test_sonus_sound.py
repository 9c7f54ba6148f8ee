import math
import itertools
import pytest

from sonus.sonus_sound import (
    Sound, Const, Linear, Sin, Exp, Rand, Minus, Reciprocal,
    Add, Sub, Mul, Div, Pow, FunctionSound, TAU,
    ieee_div, ieee_pow, lift,
)
from sonus.sonus_datatypes import RealFunction


def take(sound, samplerate, n):
    return list(itertools.islice(sound.iter(samplerate), n))


def hypot_fn():
    return RealFunction("hypot", lambda a, b: math.hypot(a, b), ["a", "b"])


SHIFT_CASES = [
    ("const", Const(0.25)),
    ("linear", Linear(2.0, -1.0)),
    ("sin", Sin(440.0)),
    ("sin_phase", Sin(3.0, 0.7)),
    ("exp", Exp(-4.0, 1.0)),
    ("rand", Rand(7)),
    ("minus", Minus(Sin(5.0))),
    ("reciprocal", Reciprocal(Linear(1.0, 2.0))),
    ("mix", Add(Mul(Sin(2.0), Exp(-1.0)), Const(0.5))),
    ("pow", Pow(Linear(0.5, 1.0), Const(2.0))),
    ("function", FunctionSound(hypot_fn(), (Sin(2.0), 3.0))),
]


@pytest.mark.parametrize("t1, t2", [(0.0, 0.0), (0.25, 0.5), (1.5, -0.75), (-2.0, 0.125)])
@pytest.mark.parametrize("name, sound", SHIFT_CASES, ids=[c[0] for c in SHIFT_CASES])
def test_shift_is_associative(name, sound, t1, t2):
    twice = sound.shift(t1).shift(t2)
    once = sound.shift(t1 + t2)
    assert type(twice) is type(once)
    for a, b in zip(take(twice, 100, 50), take(once, 100, 50)):
        assert a == pytest.approx(b, abs=1e-9)


def test_shift_closed_forms():
    assert Const(3.0).shift(10.0) == Const(3.0)
    assert Linear(2.0, 1.0).shift(3.0) == Linear(2.0, 7.0)
    shifted = Sin(2.0, 0.5).shift(0.25)
    assert shifted.frequency == 2.0
    assert shifted.phase == pytest.approx(0.5 + TAU * 2.0 * 0.25)
    decayed = Exp(-2.0, 3.0).shift(1.0)
    assert decayed.coefficient == -2.0
    assert decayed.intercept == pytest.approx(3.0 * math.exp(-2.0))


def test_rand_is_shift_invariant():
    noise = Rand()
    assert noise.shift(12.5) is noise


def test_shift_recurses_structurally():
    s = Sub(Sin(1.0), Div(Linear(1.0, 0.0), Const(2.0)))
    shifted = s.shift(2.0)
    assert shifted == Sub(Sin(1.0, TAU * 2.0), Div(Linear(1.0, 2.0), Const(2.0)))


def test_function_shift_only_touches_sound_arguments():
    fn = hypot_fn()
    s = FunctionSound(fn, (Linear(1.0, 0.0), 4.0), (("b", Const(1.0)),))
    shifted = s.shift(3.0)
    assert shifted.function is fn
    assert shifted.positional == (Linear(1.0, 3.0), 4.0)
    assert shifted.named == (("b", Const(1.0)),)


@pytest.mark.parametrize("samplerate", [1, 10, 44100, 0.5])
def test_const_iter_is_time_invariant(samplerate):
    assert take(Const(0.5), samplerate, 100) == [0.5] * 100


def test_linear_iter_matches_closed_form():
    sr = 8000
    for n, value in enumerate(take(Linear(3.0, -1.0), sr, 1000)):
        assert value == pytest.approx(-1.0 + 3.0 * n / sr, abs=1e-9)


def test_sin_iter_matches_closed_form_within_accumulating_tolerance():
    sr = 44100
    n_samples = 44100
    for n, value in enumerate(take(Sin(440.0), sr, n_samples)):
        bound = (n + 1) * 1e-14 * 10
        assert abs(value - math.sin(TAU * 440.0 * n / sr)) <= bound


def test_sin_iter_starts_at_phase():
    first = next(Sin(1.0, math.pi / 2).iter(100))
    assert first == pytest.approx(1.0)


def test_exp_iter_is_geometric():
    sr = 1000
    for n, value in enumerate(take(Exp(-5.0, 2.0), sr, 500)):
        assert value == pytest.approx(2.0 * math.exp(-5.0 * n / sr), rel=1e-9)


def test_rand_iter_range_and_seeding():
    values = take(Rand(), 44100, 2000)
    assert all(-1.0 <= v < 1.0 for v in values)
    assert take(Rand(42), 44100, 20) == take(Rand(42), 44100, 20)
    assert take(Rand(1), 44100, 20) != take(Rand(2), 44100, 20)


def test_each_iterator_owns_its_state():
    s = Linear(1.0, 0.0)
    first = s.iter(10)
    next(first); next(first)
    assert next(s.iter(10)) == 0.0
    assert next(first) == pytest.approx(0.2)


def test_combinator_iterators():
    sr = 10
    assert take(Add(Const(1.0), Linear(10.0, 0.0)), sr, 3) == pytest.approx([1.0, 2.0, 3.0])
    assert take(Sub(Const(1.0), Const(3.0)), sr, 2) == [-2.0, -2.0]
    assert take(Mul(Const(2.0), Linear(10.0, 1.0)), sr, 3) == pytest.approx([2.0, 4.0, 6.0])
    assert take(Div(Const(1.0), Linear(10.0, 0.0)), sr, 2) == [math.inf, 1.0]
    assert take(Pow(Const(2.0), Linear(10.0, 0.0)), sr, 3) == pytest.approx([1.0, 2.0, 4.0])
    assert take(Minus(Const(2.0)), sr, 1) == [-2.0]
    assert take(Reciprocal(Const(4.0)), sr, 1) == [0.25]


class Recorder(Sound):
    """A test-only Sound that logs each pull so evaluation order is observable."""
    def __init__(self, name, log):
        self.name = name
        self.log = log

    def iter(self, samplerate):
        recorder = self

        class _It:
            def __next__(self):
                recorder.log.append(recorder.name)
                return 0.0
        return _It()


def test_combinators_pull_left_before_right():
    log = []
    it = Add(Recorder("l", log), Mul(Recorder("m", log), Recorder("r", log))).iter(10)
    next(it); next(it)
    assert log == ["l", "m", "r", "l", "m", "r"]


def test_function_iter_advances_sound_arguments_and_keeps_reals_fixed():
    calls = []

    def fn(a, b):
        calls.append((a, b))
        return a + b

    f = RealFunction("f", fn, ["a", "b"])
    it = FunctionSound(f, (Linear(10.0, 0.0), 100.0)).iter(10)
    assert [next(it) for _ in range(3)] == pytest.approx([100.0, 101.0, 102.0])
    assert [b for _, b in calls] == [100.0, 100.0, 100.0]


def test_function_iter_binds_named_arguments():
    f = RealFunction("f", lambda a, b: a - b, ["a", "b"])
    it = FunctionSound(f, (Const(1.0),), (("b", Linear(10.0, 0.0)),)).iter(10)
    assert [next(it) for _ in range(3)] == pytest.approx([1.0, 0.0, -1.0])


def test_operator_sugar_builds_nodes():
    assert 1 + Sin(440.0) == Add(Const(1.0), Sin(440.0))
    assert Sin(440.0) * 0.5 == Mul(Sin(440.0), Const(0.5))
    assert 2 / Sin(1.0) == Div(Const(2.0), Sin(1.0))
    assert Sin(1.0) ** 2 == Pow(Sin(1.0), Const(2.0))
    assert -Sin(1.0) == Minus(Sin(1.0))
    assert 3 - Linear(1.0, 0.0) == Sub(Const(3.0), Linear(1.0, 0.0))


def test_operator_sugar_rejects_non_numbers():
    with pytest.raises(TypeError):
        Sin(1.0) + "a"
    with pytest.raises(TypeError):
        lift(True)


def test_sounds_are_immutable_and_hashable():
    s = Add(Sin(1.0), Const(2.0))
    with pytest.raises(AttributeError):
        s.left = Const(0.0)
    assert hash(s) == hash(Add(Sin(1.0), Const(2.0)))
    assert Add(Sin(1.0), Const(2.0)) != Sub(Sin(1.0), Const(2.0))


@pytest.mark.parametrize("a, b, expected", [
    (1.0, 0.0, math.inf),
    (-1.0, 0.0, -math.inf),
    (1.0, -0.0, -math.inf),
    (6.0, 3.0, 2.0),
])
def test_ieee_div(a, b, expected):
    assert ieee_div(a, b) == expected


def test_ieee_div_zero_by_zero_is_nan():
    assert math.isnan(ieee_div(0.0, 0.0))


def test_ieee_pow_never_raises():
    assert ieee_pow(2.0, 10.0) == 1024.0
    assert ieee_pow(0.0, -1.0) == math.inf
    assert ieee_pow(10.0, 1000.0) == math.inf
    assert ieee_pow(-10.0, 1001.0) == -math.inf
    assert math.isnan(ieee_pow(-8.0, 1 / 3))


@pytest.mark.parametrize("sound", [
    Sin(ieee_div(1.0, 0.0)),
    Sin(440.0).shift(1e306),
    Sin(1.0, math.nan),
], ids=["infinite_frequency", "infinite_phase", "nan_phase"])
def test_sin_with_non_finite_angle_streams_nan(sound):
    values = take(sound, 10, 3)
    assert len(values) == 3
    assert all(math.isnan(v) for v in values)
