"""
Defines the core data types for the Sonus language runtime.

A Sonus value is one of: a real (Python float), a bool, a string, a Sound
(see sonus_sound) or a Function. This module provides the function model
(parameters, argument bindings, the three kinds of callables), lexical
environments, the semantic AST produced by the transformer, and the error
hierarchy raised by the evaluator.
"""

from abc import ABC
from typing import List, Dict, Any, Optional, Sequence

from sonus.sonus_sound import Sound, lift


def is_real(value: Any) -> bool:
    """True for numbers the evaluator treats as reals (bools excluded)."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def type_name(value: Any) -> str:
    """The user-facing type of a Sonus value."""
    if isinstance(value, bool):
        return "bool"
    if is_real(value):
        return "real"
    if isinstance(value, str):
        return "string"
    if isinstance(value, Sound):
        return "Sound"
    if isinstance(value, Function):
        return "function"
    return type(value).__name__


def describe(value: Any) -> str:
    """Short `type value` rendering used in error messages."""
    match value:
        case bool():
            return f"bool {'true' if value else 'false'}"
        case int() | float():
            return f"real {value:g}"
        case str():
            return f'string "{value}"'
        case Function():
            return f"function {value.name}"
        case _:
            return type_name(value)


# =================================================================
# Errors
# =================================================================

class ParseError(Exception):
    """Raised when source text does not match the grammar."""
    def __init__(self, message: str, line: Optional[int] = None, col: Optional[int] = None):
        super().__init__(message)
        self.line = line
        self.col = col


class EvalError(Exception):
    """Base class for errors raised while evaluating a statement.

    `node` is filled in with the innermost AST node being evaluated when the
    error surfaced, so the runner can point at the offending source.
    """
    def __init__(self, message: str):
        super().__init__(message)
        self.node = None


class UndefinedVariable(EvalError):
    def __init__(self, name: str):
        super().__init__(f"undefined variable '{name}'")
        self.name = name


class TypeMismatch(EvalError):
    """An operator or built-in received operands of the wrong kinds."""
    def __init__(self, operator: str, operands: Sequence[Any]):
        rendered = ", ".join(describe(v) for v in operands)
        super().__init__(f"'{operator}' cannot be applied to ({rendered})")
        self.operator = operator
        self.operand_types = tuple(type_name(v) for v in operands)


class ArityMismatch(EvalError):
    def __init__(self, expected: int, found: int, function_name: Optional[str] = None):
        where = f" for '{function_name}'" if function_name else ""
        super().__init__(f"expected {expected} argument(s){where}, found {found}")
        self.expected = expected
        self.found = found


class NotAFunction(EvalError):
    def __init__(self, value: Any):
        super().__init__(f"{describe(value)} is not callable")
        self.value = value


class EmptyExpression(EvalError):
    def __init__(self):
        super().__init__("empty expression '()' has no value")


class UnknownParameter(EvalError):
    def __init__(self, function_name: str, name: str, reason: str = "has no parameter"):
        super().__init__(f"'{function_name}' {reason} '{name}'")
        self.function_name = function_name
        self.name = name


class DuplicateParameter(EvalError):
    """A definition names the same parameter twice."""
    def __init__(self, function_name: str, name: str):
        super().__init__(f"'{function_name}' declares parameter '{name}' more than once")
        self.function_name = function_name
        self.name = name


# =================================================================
# Environments
# =================================================================

class Environment:
    """A lexical scope: a mapping from names to values with a parent link.

    Lookups walk outwards through the parents; assignment always binds in the
    receiving environment, so a definition inside a function body never
    clobbers an outer name.
    """
    def __init__(self, parent: Optional['Environment'] = None):
        self.bindings: Dict[str, Any] = {}
        self.parent = parent

    def __setitem__(self, key: str, value: Any):
        if not isinstance(key, str):
            raise TypeError(f"Environment key must be a str, not {type(key)}")
        self.bindings[key] = value

    def __getitem__(self, key: str) -> Any:
        owner = self.find_owner(key)
        if owner is not None:
            return owner.bindings[key]
        raise KeyError(key)

    def __contains__(self, key: Any) -> bool:
        return isinstance(key, str) and self.find_owner(key) is not None

    def find_owner(self, key: str) -> Optional['Environment']:
        """Finds the Environment in the parent chain that binds key."""
        env = self
        while env is not None:
            if key in env.bindings:
                return env
            env = env.parent
        return None

    def __repr__(self) -> str:
        return f"<Environment bindings={list(self.bindings.keys())}>"


# =================================================================
# Functions
# =================================================================

_UNBOUND = object()


class Parameter:
    """A named, kinded parameter slot.

    Kinds: 'real', 'bool', 'string', 'sound' (a Sound, reals are lifted to a
    constant) and 'any'. A parameter with a default may be left out of a call.
    """
    def __init__(self, name: str, kind: str = 'real', default: Any = _UNBOUND):
        self.name = name
        self.kind = kind
        self.default = default

    @property
    def required(self) -> bool:
        return self.default is _UNBOUND

    def __repr__(self) -> str:
        suffix = "" if self.required else f"={self.default!r}"
        return f"Parameter<{self.name}:{self.kind}{suffix}>"

    def __eq__(self, other):
        return (isinstance(other, Parameter) and self.name == other.name
                and self.kind == other.kind and self.default == other.default)

    def __hash__(self):
        return hash((self.name, self.kind))


class Binding:
    """The argument slots of one invocation, indexed by parameter position.

    A Binding is owned by exactly one call (or one FunctionIter); the sample
    loop overwrites slots in place before every invoke.
    """
    __slots__ = ('function', 'slots')

    def __init__(self, function: 'Function', slots: List[Any]):
        self.function = function
        self.slots = slots

    def __len__(self) -> int:
        return len(self.slots)

    def has_sound(self) -> bool:
        return any(isinstance(v, Sound) for v in self.slots)

    def __repr__(self) -> str:
        return f"<Binding {self.function.name} {self.slots!r}>"


class Function(ABC):
    """Base class for all callables in Sonus.

    Subclasses share the binding protocol (`bind`); how a bound call runs
    is up to the subclass, except UserFunction bodies, which the evaluator
    runs itself.
    """
    def __init__(self, name: str, params: List[Parameter]):
        self.name = name
        self.params = list(params)

    @property
    def arity(self) -> int:
        return len(self.params)

    def slot_index(self, name: str) -> int:
        for index, param in enumerate(self.params):
            if param.name == name:
                return index
        raise UnknownParameter(self.name, name)

    def bind(self, positional: Sequence[Any], named: Optional[Dict[str, Any]] = None) -> Binding:
        """Maps call arguments onto parameter slots, checking arity, names and kinds."""
        named = named or {}
        found = len(positional) + len(named)
        if found > self.arity:
            raise ArityMismatch(self.arity, found, self.name)
        slots: List[Any] = list(positional) + [_UNBOUND] * (self.arity - len(positional))
        for name, value in named.items():
            index = self.slot_index(name)
            if slots[index] is not _UNBOUND:
                raise UnknownParameter(self.name, name, "got a second value for parameter")
            slots[index] = value
        for index, param in enumerate(self.params):
            if slots[index] is _UNBOUND:
                if param.required:
                    required = sum(1 for p in self.params if p.required)
                    raise ArityMismatch(required, found, self.name)
                slots[index] = param.default
            slots[index] = self._accept(param, slots[index])
        return Binding(self, slots)

    def _accept(self, param: Parameter, value: Any) -> Any:
        match param.kind:
            case 'real' if is_real(value):
                return float(value)
            case 'sound' if isinstance(value, Sound):
                return value
            case 'sound' if is_real(value):
                return lift(value)
            case 'bool' if isinstance(value, bool):
                return value
            case 'string' if isinstance(value, str):
                return value
            case 'any':
                return value
        raise TypeMismatch(self.name, (value,))

    def invoke(self, binding: Binding) -> Any:
        raise NotImplementedError(f"{type(self).__name__} cannot be invoked directly")

    def __repr__(self) -> str:
        params = ", ".join(p.name for p in self.params)
        return f"<function {self.name}({params})>"


class RealFunction(Function):
    """A built-in mapping reals to a real.

    Called with any Sound argument it is not invoked at all; the evaluator
    builds a FunctionSound node that invokes it once per sample instead.
    """
    def __init__(self, name: str, fn, param_names: Sequence[str]):
        super().__init__(name, [Parameter(n, 'real') for n in param_names])
        self.fn = fn

    def _accept(self, param: Parameter, value: Any) -> Any:
        if isinstance(value, Sound):
            return value
        return super()._accept(param, value)

    def invoke(self, binding: Binding) -> float:
        return self.fn(*binding.slots)


class PrimitiveFunction(Function):
    """A built-in whose Python implementation returns any Sonus value."""
    def __init__(self, name: str, fn, params: List[Parameter]):
        super().__init__(name, params)
        self.fn = fn

    def invoke(self, binding: Binding) -> Any:
        return self.fn(*binding.slots)


class UserFunction(Function):
    """A function defined in source with `name(params) = body`.

    A closure: the body is evaluated in a child of the environment the
    definition was evaluated in.
    """
    def __init__(self, name: str, param_names: Sequence[str], body: Any, closure: Environment):
        seen = set()
        for param_name in param_names:
            if param_name in seen:
                raise DuplicateParameter(name, param_name)
            seen.add(param_name)
        super().__init__(name, [Parameter(n, 'any') for n in param_names])
        self.body = body
        self.closure = closure


# =================================================================
# Semantic AST
# =================================================================

class Node:
    """Base class for AST nodes. The transformer attaches `loc` to each."""
    loc: Optional[Dict[str, Any]] = None


class Number(Node):
    __match_args__ = ('value',)

    def __init__(self, value: float):
        self.value = value

    def __repr__(self) -> str:
        return f"Number<{self.value!r}>"

    def __eq__(self, other):
        return isinstance(other, Number) and self.value == other.value


class String(Node):
    __match_args__ = ('text',)

    def __init__(self, text: str):
        self.text = text

    def __repr__(self) -> str:
        return f"String<{self.text!r}>"

    def __eq__(self, other):
        return isinstance(other, String) and self.text == other.text


class Identifier(Node):
    __match_args__ = ('name',)

    def __init__(self, name: str):
        self.name = name

    def __repr__(self) -> str:
        return f"Identifier<{self.name!r}>"

    def __eq__(self, other):
        return isinstance(other, Identifier) and self.name == other.name


class Unary(Node):
    """A prefix operator: one of '+', '-', '/' (reciprocal) or '!'."""
    __match_args__ = ('op', 'operand')

    def __init__(self, op: str, operand: Node):
        self.op = op
        self.operand = operand

    def __repr__(self) -> str:
        return f"Unary<{self.op} {self.operand!r}>"

    def __eq__(self, other):
        return isinstance(other, Unary) and self.op == other.op and self.operand == other.operand


class Binary(Node):
    __match_args__ = ('op', 'left', 'right')

    def __init__(self, op: str, left: Node, right: Node):
        self.op = op
        self.left = left
        self.right = right

    def __repr__(self) -> str:
        return f"Binary<{self.left!r} {self.op} {self.right!r}>"

    def __eq__(self, other):
        return (isinstance(other, Binary) and self.op == other.op
                and self.left == other.left and self.right == other.right)


class KeywordArgument(Node):
    """A `name = expr` argument inside a call."""
    __match_args__ = ('name', 'value')

    def __init__(self, name: str, value: Node):
        self.name = name
        self.value = value

    def __repr__(self) -> str:
        return f"KeywordArgument<{self.name}={self.value!r}>"

    def __eq__(self, other):
        return isinstance(other, KeywordArgument) and self.name == other.name and self.value == other.value


class Invocation(Node):
    __match_args__ = ('callee', 'args')

    def __init__(self, callee: Node, args: List[Node]):
        self.callee = callee
        self.args = list(args)

    def __repr__(self) -> str:
        return f"Invocation<{self.callee!r} {self.args!r}>"

    def __eq__(self, other):
        return isinstance(other, Invocation) and self.callee == other.callee and self.args == other.args


class Assignment(Node):
    __match_args__ = ('name', 'value')

    def __init__(self, name: str, value: Node):
        self.name = name
        self.value = value

    def __repr__(self) -> str:
        return f"Assignment<{self.name} = {self.value!r}>"

    def __eq__(self, other):
        return isinstance(other, Assignment) and self.name == other.name and self.value == other.value


class Definition(Node):
    """`name(params) = body`: binds a UserFunction closing over the current environment."""
    __match_args__ = ('name', 'params', 'body')

    def __init__(self, name: str, params: List[str], body: Node):
        self.name = name
        self.params = list(params)
        self.body = body

    def __repr__(self) -> str:
        return f"Definition<{self.name}({', '.join(self.params)}) = {self.body!r}>"

    def __eq__(self, other):
        return (isinstance(other, Definition) and self.name == other.name
                and self.params == other.params and self.body == other.body)


class Empty(Node):
    """The empty expression `()`."""
    def __repr__(self) -> str:
        return "Empty<>"

    def __eq__(self, other):
        return isinstance(other, Empty)
