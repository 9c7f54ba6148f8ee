"""
A pretty-printer for Sonus values.
"""
import math

from sonus.sonus_datatypes import Function
from sonus.sonus_sound import (
    Sound, Const, Linear, Sin, Exp, Rand, Minus, Reciprocal,
    Add, Sub, Mul, Div, Pow, FunctionSound,
)

# Binding strength of each Sound node when printed as an expression
_PRECEDENCE = {
    Add: 1, Sub: 1,
    Mul: 2, Div: 2,
    Minus: 3, Reciprocal: 3,
    Pow: 4,
}
_ATOM = 5


class Printer:
    """Formats Sonus values the way the REPL shows them.

    Reals print without a trailing `.0` when integral, bools as
    `true`/`false`, and Sounds as the expression that builds them.
    """

    def __init__(self):
        self._handlers = self._create_handlers()

    def pformat(self, obj) -> str:
        """Public entry point to format an object."""
        return self._get_handler(obj)(obj)

    def _get_handler(self, obj):
        handler = self._handlers.get(type(obj))
        if handler is not None:
            return handler
        if isinstance(obj, Function):
            return self._pformat_function
        if isinstance(obj, Sound):
            return self._pformat_sound
        return repr

    def _create_handlers(self):
        return {
            float: self._pformat_real,
            int: self._pformat_real,
            bool: self._pformat_bool,
            str: self._pformat_str,
            type(None): lambda o: "()",
        }

    def _pformat_real(self, obj):
        if math.isnan(obj):
            return "nan"
        if math.isinf(obj):
            return "inf" if obj > 0 else "-inf"
        if float(obj).is_integer() and abs(obj) < 1e16:
            return str(int(obj))
        return repr(float(obj))

    def _pformat_bool(self, obj):
        return "true" if obj else "false"

    def _pformat_str(self, obj):
        return f'"{obj}"'

    def _pformat_function(self, obj):
        params = ", ".join(p.name for p in obj.params)
        return f"<function {obj.name}({params})>"

    # --- Sounds ---

    def _pformat_sound(self, obj, parent_prec=0, right_side=False):
        prec = _PRECEDENCE.get(type(obj), _ATOM)
        if isinstance(obj, Const) and obj.value < 0:
            prec = _PRECEDENCE[Minus]
        text = self._sound_text(obj, prec)
        # Left-associative levels need parentheses for an equal-precedence right child,
        # the right-associative '^' for an equal-precedence left child.
        needs_parens = prec < parent_prec or (
            prec == parent_prec and prec != _ATOM and right_side != (type(obj) is Pow)
        )
        return f"({text})" if needs_parens else text

    def _sound_text(self, obj, prec):
        r = self._pformat_real
        match obj:
            case Const(value):
                return r(value)
            case Linear(slope, intercept):
                return f"Linear({r(slope)}, {r(intercept)})"
            case Sin(frequency, phase):
                if phase == 0:
                    return f"Sin({r(frequency)})"
                return f"Sin({r(frequency)}, {r(phase)})"
            case Exp(coefficient, intercept):
                return f"Exp{{{r(coefficient)}, {r(intercept)}}}"
            case Rand(seed):
                return "Rand()" if seed is None else f"Noise({seed})"
            case Minus(sound):
                return f"-{self._pformat_sound(sound, prec, right_side=True)}"
            case Reciprocal(sound):
                return f"/{self._pformat_sound(sound, prec, right_side=True)}"
            case FunctionSound(function, positional, named):
                args = [self.pformat(v) for v in positional]
                args += [f"{k}={self.pformat(v)}" for k, v in named]
                return f"{function.name}({', '.join(args)})"
            case Add(left, right) | Sub(left, right) | Mul(left, right) | Div(left, right) | Pow(left, right):
                lhs = self._pformat_sound(left, prec, right_side=False)
                rhs = self._pformat_sound(right, prec, right_side=True)
                return f"{lhs} {obj.symbol} {rhs}"
        return repr(obj)
