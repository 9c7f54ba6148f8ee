import re
import inspect
import math
import functools
from pathlib import Path
from typing import Any, List, Optional, Literal, Dict
from dataclasses import dataclass

from koine import Parser
from sonus.sonus_transformer import SonusTransformer
from sonus.sonus_interpreter import Evaluator
from sonus.sonus_datatypes import (
    Environment, Parameter, RealFunction, PrimitiveFunction,
    EvalError, ParseError, Function,
)
from sonus.sonus_sound import Sound, Sin, Exp, Linear, Rand, ieee_div, ieee_exp
from sonus.sonus_render import DEFAULT_SAMPLERATE, write_wav


# ===================================================================
# 1. Built-in registration
# ===================================================================

def real_function(func):
    """Marks a StdLib method as a real function of real parameters.

    Domain and range errors from the math module become NaN and infinity,
    so a per-sample invoke never raises.
    """
    @functools.wraps(func)
    def wrapper(self, *args):
        try:
            return float(func(self, *args))
        except ValueError:
            return math.nan
        except OverflowError:
            return math.inf
    wrapper._sonus_kinds = None
    return wrapper


def value_function(*kinds):
    """Marks a StdLib method as a built-in taking parameters of the given kinds."""
    def decorate(func):
        func._sonus_kinds = kinds
        return func
    return decorate


class StdLib:
    """Contains Python implementations for all Sonus built-ins.

    Python defaults on a method become optional Sonus parameters.
    """

    # --- Real functions (become a Sound when given one) ---
    @real_function
    def _sin(self, x): return math.sin(x)
    @real_function
    def _cos(self, x): return math.cos(x)
    @real_function
    def _tan(self, x): return math.tan(x)
    @real_function
    def _exp(self, x): return ieee_exp(x)
    @real_function
    def _sqrt(self, x): return math.sqrt(x)
    @real_function
    def _abs(self, x): return abs(x)
    @real_function
    def _floor(self, x): return math.floor(x) if math.isfinite(x) else x
    @real_function
    def _max(self, a, b): return max(a, b)
    @real_function
    def _min(self, a, b): return min(a, b)

    @real_function
    def _ln(self, x):
        if x == 0:
            return -math.inf
        return math.log(x)

    # --- Sound constructors ---
    @value_function('real', 'real')
    def _Sin(self, frequency, phase=0.0):
        return Sin(frequency, phase)

    @value_function('real')
    def _Exp(self, tau):
        # Decays by a factor of e every tau seconds
        return Exp(ieee_div(-1.0, tau), 1.0)

    @value_function('real', 'real')
    def _Linear(self, slope, intercept):
        return Linear(slope, intercept)

    @value_function()
    def _Rand(self):
        return Rand()

    @value_function('real')
    def _Noise(self, seed):
        """Reproducible noise: the same seed always streams the same samples."""
        return Rand(int(seed)) if math.isfinite(seed) else Rand()

    @value_function('sound')
    def _Const(self, value):
        return value

    @value_function('sound', 'real')
    def _shift(self, sound, seconds):
        return sound.shift(seconds)


CONSTANTS: Dict[str, Any] = {
    'PI': math.pi,
    'E': math.e,
    'true': True,
    'false': False,
}


# ===================================================================
# 2. Script Execution
# ===================================================================

Token = Dict[str, Any]

@dataclass
class ExecutionResult:
    """The structured result of executing one statement."""
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error_token: Optional[Token] = None

    def format_error(self) -> str:
        """Formats an error message with line and column if available."""
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        if self.error_token and 'line' in self.error_token:
            line = self.error_token.get('line')
            col = self.error_token.get('col')
            if not msg.startswith("Error on line "):
                col_info = f", col {col}" if col is not None else ""
                return f"Error on line {line}{col_info}: {msg}"
        return msg


_LOCATION = re.compile(r"L(\d+):C(\d+)")


class ScriptRunner:
    """Parses, transforms, and executes Sonus code.

    Each runner owns an Evaluator and a root Environment holding the
    built-ins, the constants and (unless `load_prelude` is off) the
    definitions from prelude.snd. Definitions persist across calls to
    `handle_script`, which is what the REPL relies on.
    """

    _parser: Optional[Parser] = None
    _transformer: Optional[SonusTransformer] = None
    _prelude_ast: Optional[list] = None

    def __init__(self, load_prelude: bool = True, samplerate: int = DEFAULT_SAMPLERATE):
        self.samplerate = samplerate
        self.root_env = Environment()

        if ScriptRunner._parser is None:
            grammar_path = Path(__file__).parent / "grammar" / "sonus_grammar.yaml"
            ScriptRunner._parser = Parser.from_file(str(grammar_path))

        if ScriptRunner._transformer is None:
            ScriptRunner._transformer = SonusTransformer()

        self.parser = ScriptRunner._parser
        self.transformer = ScriptRunner._transformer
        self.evaluator = Evaluator()

        # Load stdlib
        self.stdlib = StdLib()
        for name, member in inspect.getmembers(self.stdlib):
            if not hasattr(member, '_sonus_kinds') or name.startswith('__'):
                continue
            sonus_name = name[1:]
            signature = list(inspect.signature(member).parameters.values())
            kinds = member._sonus_kinds
            if kinds is None:
                self.root_env[sonus_name] = RealFunction(sonus_name, member, [p.name for p in signature])
            else:
                params = [
                    Parameter(p.name, k) if p.default is inspect.Parameter.empty else Parameter(p.name, k, p.default)
                    for p, k in zip(signature, kinds)
                ]
                self.root_env[sonus_name] = PrimitiveFunction(sonus_name, member, params)
        for name, value in CONSTANTS.items():
            self.root_env[name] = value

        if load_prelude:
            self._load_prelude()

    def _load_prelude(self):
        """Evaluates prelude.snd into the root environment. The AST is parsed once per process."""
        if ScriptRunner._prelude_ast is None:
            prelude_path = Path(__file__).parent / "prelude.snd"
            source = prelude_path.read_text(encoding="utf-8")
            try:
                ScriptRunner._prelude_ast = self.parse(source)
            except ParseError as e:
                raise RuntimeError(f"Failed to parse prelude.snd:\n{e}") from e
        self.evaluator.eval(ScriptRunner._prelude_ast, self.root_env)

    def parse(self, source: str) -> list:
        """Parses source text into a list of statement nodes. Raises ParseError."""
        parse_out = self.parser.parse(source)
        if parse_out.get('status') != 'success':
            message = parse_out.get('message') or str(parse_out)
            match = _LOCATION.search(message)
            if match:
                raise ParseError(message, int(match.group(1)), int(match.group(2)))
            raise ParseError(message)
        return self.transformer.transform(parse_out['ast'])

    def evaluate(self, source: str) -> Any:
        """Runs source in the root environment and returns the last statement's value.

        Unlike handle_script, errors propagate as ParseError or EvalError.
        """
        self.evaluator.call_stack.clear()
        return self.evaluator.eval(self.parse(source), self.root_env)

    def handle_script(self, source_code: str) -> List[ExecutionResult]:
        """The main entry point to execute a script.

        Returns one result per statement. A failing statement does not stop
        the ones after it; a parse error yields a single error result.
        """
        try:
            statements = self.parse(source_code)
        except ParseError as e:
            return [ExecutionResult(
                status='error',
                error_message=self._format_parse_error(e, source_code),
                error_token={'line': e.line, 'col': e.col} if e.line is not None else None,
            )]

        results = []
        for statement in statements:
            self.evaluator.call_stack.clear()
            try:
                value = self.evaluator.eval(statement, self.root_env)
            except Exception as e:
                node = getattr(e, 'node', None) or self.evaluator.current_node
                msg, token = self._format_runtime_error(e, source_code, node)
                results.append(ExecutionResult(status='error', error_message=msg, error_token=token))
                continue
            results.append(ExecutionResult(status='success', value=value))
        return results

    def render_to_wav(self, path, value: Any, seconds: float) -> int:
        """Writes `seconds` of a Sound (or a real, as a constant) to a WAV file."""
        return write_wav(path, value, seconds, self.samplerate)

    # --- Error formatting ---

    def _format_parse_error(self, e: ParseError, source: str) -> str:
        if e.line is not None:
            return f"ParseError: {e}\n{self._source_context(source, e.line, e.col)}"
        return f"ParseError: {e}"

    def _format_runtime_error(self, e, source: str, node) -> tuple[str, Optional[dict]]:
        match e:
            case EvalError():
                msg = f"{type(e).__name__}: {e}"
            case RecursionError():
                msg = "RecursionError: maximum call depth exceeded"
            case _:
                msg = f"InternalError: {e}"

        token = None
        loc = getattr(node, 'loc', None) if node is not None else None
        if loc and isinstance(loc, dict):
            line = loc.get('line'); col = loc.get('col')
            token = {'line': line, 'col': col, 'tag': loc.get('tag'), 'text': loc.get('text')}
            if line is not None and col is not None:
                msg = f"{msg}\n(line {line}, col {col})\n{self._source_context(source, line, col)}"

        st = self._format_stacktrace()
        if st:
            msg += "\n" + st
        return msg, token

    def _source_context(self, source: str, line: int, col: Optional[int], radius: int = 2) -> str:
        lines = source.splitlines()
        if not line or line < 1 or line > len(lines):
            return ""
        start = max(1, line - radius)
        end = min(len(lines), line + radius)
        width = len(str(end))
        out = []
        for i in range(start, end + 1):
            prefix = ">" if i == line else " "
            ln = str(i).rjust(width)
            out.append(f"{prefix} {ln} | {lines[i - 1]}")
            if i == line and col is not None:
                caret = " " * max(col - 1, 0)
                out.append(f"  {' ' * width} | {caret}^")
        return "\n".join(out)

    def _format_stacktrace(self) -> str:
        stack = self.evaluator.call_stack
        if not stack:
            return ""
        from sonus.sonus_printer import Printer
        pf = Printer().pformat

        def fmt(arg):
            match arg:
                case Sound():
                    return "Sound"
                case Function():
                    return arg.name
                case _:
                    return pf(arg)

        frames = []
        for frame in stack:
            args_s = " ".join(fmt(a) for a in frame.get('args') or [])
            frames.append(f"({frame.get('name') or '<call>'}{' ' + args_s if args_s else ''})")
        return "Sonus stacktrace: " + " ".join(frames)
