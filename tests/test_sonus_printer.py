import math
import pytest

from sonus.sonus_printer import Printer
from sonus.sonus_datatypes import RealFunction, UserFunction, Environment, Identifier
from sonus.sonus_sound import (
    Const, Linear, Sin, Exp, Rand, Minus, Reciprocal,
    Add, Sub, Mul, Div, Pow, FunctionSound,
)


@pytest.fixture
def printer():
    return Printer()


def _max():
    return RealFunction("max", max, ["a", "b"])


# Test cases: (id, object, expected_string)
FORMAT_TEST_CASES = [
    ("integral_real", 3.0, "3"),
    ("negative_integral_real", -2.0, "-2"),
    ("fraction", 0.25, "0.25"),
    ("int", 7, "7"),
    ("huge_real", 1e20, "1e+20"),
    ("nan", math.nan, "nan"),
    ("inf", math.inf, "inf"),
    ("neg_inf", -math.inf, "-inf"),
    ("bool_true", True, "true"),
    ("bool_false", False, "false"),
    ("string", "abc", '"abc"'),
    ("none", None, "()"),
    ("real_function", RealFunction("sin", math.sin, ["x"]), "<function sin(x)>"),
    ("user_function", UserFunction("f", ["a", "b"], Identifier("a"), Environment()), "<function f(a, b)>"),
    ("const", Const(0.5), "0.5"),
    ("linear", Linear(2.0, 1.0), "Linear(2, 1)"),
    ("sin", Sin(440.0), "Sin(440)"),
    ("sin_with_phase", Sin(1.0, 0.5), "Sin(1, 0.5)"),
    ("exp", Exp(-2.0, 1.0), "Exp{-2, 1}"),
    ("rand", Rand(), "Rand()"),
    ("seeded_rand", Rand(3), "Noise(3)"),
    ("add", Add(Sin(1.0), Const(2.0)), "Sin(1) + 2"),
    ("mul_over_add", Add(Sin(1.0), Mul(Const(2.0), Sin(3.0))), "Sin(1) + 2 * Sin(3)"),
    ("add_under_mul", Mul(Add(Sin(1.0), Const(1.0)), Const(0.5)), "(Sin(1) + 1) * 0.5"),
    ("sub_left_assoc", Sub(Sub(Const(1.0), Sin(2.0)), Sin(3.0)), "1 - Sin(2) - Sin(3)"),
    ("sub_right_group", Sub(Const(1.0), Sub(Sin(2.0), Sin(3.0))), "1 - (Sin(2) - Sin(3))"),
    ("div_right_group", Div(Sin(1.0), Mul(Const(2.0), Sin(3.0))), "Sin(1) / (2 * Sin(3))"),
    ("pow_right_assoc", Pow(Sin(1.0), Pow(Const(2.0), Const(3.0))), "Sin(1) ^ 2 ^ 3"),
    ("pow_left_group", Pow(Pow(Sin(1.0), Const(2.0)), Const(3.0)), "(Sin(1) ^ 2) ^ 3"),
    ("minus", Minus(Sin(1.0)), "-Sin(1)"),
    ("minus_of_sum", Minus(Add(Sin(1.0), Const(1.0))), "-(Sin(1) + 1)"),
    ("reciprocal", Reciprocal(Linear(1.0, 0.0)), "/Linear(1, 0)"),
    ("negative_const_in_sum", Add(Sin(1.0), Const(-2.0)), "Sin(1) + -2"),
    ("negative_const_in_pow", Pow(Const(-2.0), Sin(1.0)), "(-2) ^ Sin(1)"),
    ("function_sound", FunctionSound(_max(), (Sin(2.0), 0.5)), "max(Sin(2), 0.5)"),
    ("function_sound_named", FunctionSound(_max(), (Sin(2.0),), (("b", Const(1.0)),)), "max(Sin(2), b=1)"),
    ("function_sound_in_sum", Add(FunctionSound(_max(), (Sin(2.0), 0.5)), Const(1.0)), "max(Sin(2), 0.5) + 1"),
]


@pytest.mark.parametrize("obj, expected", [c[1:] for c in FORMAT_TEST_CASES], ids=[c[0] for c in FORMAT_TEST_CASES])
def test_pformat(printer, obj, expected):
    assert printer.pformat(obj) == expected


def test_pformat_unknown_objects_fall_back_to_repr(printer):
    assert printer.pformat([1, 2]) == "[1, 2]"
