"""
The core Sonus interpreter: a tree-walking Evaluator over sonus_datatypes nodes.
"""
import os
import sys
from typing import Any, Dict, List

from sonus.sonus_datatypes import (
    Environment, Function, RealFunction, UserFunction,
    Number, String, Identifier, Unary, Binary, KeywordArgument,
    Invocation, Assignment, Definition, Empty,
    EvalError, UndefinedVariable, TypeMismatch, NotAFunction,
    EmptyExpression, UnknownParameter, type_name,
)
from sonus.sonus_sound import (
    Add, Sub, Mul, Div, Pow, Minus, Reciprocal, FunctionSound,
    ieee_div, ieee_pow, lift,
)

# Reals closer than this compare equal with == and !=
EQUALITY_EPSILON = 1e-6

_ARITHMETIC = {
    '+': (lambda a, b: a + b, Add),
    '-': (lambda a, b: a - b, Sub),
    '*': (lambda a, b: a * b, Mul),
    '/': (ieee_div, Div),
    '^': (ieee_pow, Pow),
}


def reals_equal(a: float, b: float) -> bool:
    return a == b or abs(a - b) < EQUALITY_EPSILON


class Evaluator:
    """The Sonus execution engine."""

    def __init__(self):
        self.current_node = None
        self.call_stack: List[Dict[str, Any]] = []

    def _push_frame(self, name, function, args, call_site_node):
        self.call_stack.append({
            'name': name,
            'func': function,
            'args': args,
            'call_site': getattr(call_site_node, 'loc', None),
        })

    def _pop_frame(self):
        if self.call_stack:
            self.call_stack.pop()

    def _dbg(self, *parts):
        if os.environ.get("SONUS_DEBUG"):
            print("[DBG]", *parts, file=sys.stderr)

    def eval(self, node: Any, env: Environment) -> Any:
        """Public entry point for evaluation."""
        self.current_node = node
        return self._eval(node, env)

    def _eval(self, node: Any, env: Environment) -> Any:
        try:
            match node:
                case Number(value):
                    return value
                case String(text):
                    return text
                case Identifier(name):
                    try:
                        return env[name]
                    except KeyError:
                        raise UndefinedVariable(name) from None
                case Unary():
                    return self._eval_unary(node, env)
                case Binary(op='&&' | '||'):
                    return self._eval_logical(node, env)
                case Binary(op, left, right):
                    return self.apply_binary(op, self._eval(left, env), self._eval(right, env))
                case Invocation():
                    return self._eval_invocation(node, env)
                case Assignment(name, value):
                    result = self._eval(value, env)
                    env[name] = result
                    self._dbg("ASSIGN", name, type_name(result))
                    return result
                case Definition(name, params, body):
                    function = UserFunction(name, params, body, env)
                    env[name] = function
                    self._dbg("DEFINE", name, params)
                    return function
                case Empty():
                    raise EmptyExpression()
                case list():
                    result = None
                    for statement in node:
                        self.current_node = statement
                        result = self._eval(statement, env)
                    return result
            raise TypeError(f"Cannot evaluate node {node!r}")
        except EvalError as e:
            if e.node is None:
                e.node = node
            raise

    # --- Operators ---

    def apply_binary(self, op: str, left: Any, right: Any) -> Any:
        """Applies a non-short-circuit binary operator to two evaluated operands."""
        kinds = (type_name(left), type_name(right))
        if op in _ARITHMETIC:
            real_op, combinator = _ARITHMETIC[op]
            match kinds:
                case ('real', 'real'):
                    return real_op(left, right)
                case ('real' | 'Sound', 'real' | 'Sound'):
                    return combinator(lift(left), lift(right))
                case ('string', 'string') if op == '+':
                    return left + right
        elif op in ('==', '!='):
            match kinds:
                case ('real', 'real'):
                    equal = reals_equal(left, right)
                case ('bool', 'bool') | ('string', 'string'):
                    equal = left == right
                case _:
                    raise TypeMismatch(op, (left, right))
            return equal if op == '==' else not equal
        elif op in ('<', '>'):
            if kinds == ('real', 'real'):
                return left < right if op == '<' else left > right
        raise TypeMismatch(op, (left, right))

    def _eval_logical(self, node: Binary, env: Environment) -> bool:
        left = self._eval(node.left, env)
        if not isinstance(left, bool):
            raise TypeMismatch(node.op, (left,))
        if node.op == '&&' and not left:
            return False
        if node.op == '||' and left:
            return True
        right = self._eval(node.right, env)
        if not isinstance(right, bool):
            raise TypeMismatch(node.op, (left, right))
        return right

    def _eval_unary(self, node: Unary, env: Environment) -> Any:
        operand = self._eval(node.operand, env)
        match node.op, type_name(operand):
            case ('+', 'real' | 'Sound'):
                return operand
            case ('-', 'real'):
                return -operand
            case ('-', 'Sound'):
                return Minus(operand)
            case ('/', 'real'):
                return ieee_div(1.0, operand)
            case ('/', 'Sound'):
                return Reciprocal(operand)
            case ('!', 'bool'):
                return not operand
        raise TypeMismatch(node.op, (operand,))

    # --- Calls ---

    def _eval_invocation(self, node: Invocation, env: Environment) -> Any:
        callee = self._eval(node.callee, env)
        if not isinstance(callee, Function):
            raise NotAFunction(callee)
        positional = []
        named: Dict[str, Any] = {}
        for arg in node.args:
            if isinstance(arg, KeywordArgument):
                if arg.name in named:
                    raise UnknownParameter(callee.name, arg.name, "got a second value for parameter")
                named[arg.name] = self._eval(arg.value, env)
            else:
                positional.append(self._eval(arg, env))
        return self.invoke(callee, positional, named, call_site=node)

    def invoke(self, function: Function, positional: List[Any], named: Dict[str, Any] = None, call_site=None) -> Any:
        """Binds arguments to a function and calls it.

        A RealFunction receiving any Sound argument is not called: the result
        is a FunctionSound that applies it pointwise when streamed.
        """
        named = named or {}
        binding = function.bind(positional, named)
        if isinstance(function, RealFunction) and binding.has_sound():
            self._dbg("PROMOTE", function.name, [type_name(v) for v in binding.slots])
            return FunctionSound(function, tuple(positional), tuple(named.items()))
        self._push_frame(function.name, function, binding.slots, call_site)
        result = self.call(function, binding)
        self._pop_frame()
        return result

    def call(self, function: Function, binding) -> Any:
        """Runs a function on an already-validated Binding."""
        self._dbg("Evaluator.call", type(function).__name__, function.name, "argc", len(binding))
        if isinstance(function, UserFunction):
            call_env = Environment(parent=function.closure)
            for param, value in zip(function.params, binding.slots):
                call_env[param.name] = value
            return self._eval(function.body, call_env)
        return function.invoke(binding)
