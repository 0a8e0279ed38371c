# bean_runtime.py

import math
import os
import re
import inspect
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Literal, Mapping, Optional, Union

from bean.bean_datatypes import (
    BeanError, BeanReferenceError, BeanTypeError, BeanMemoryError, ReductionLimitError,
    Value, Number, String, Boolean, Memory, Node, FunctionCall, Block,
    NativeFunction, CustomFunction, Scope, CallContext, type_name,
)
from bean.bean_interpreter import Evaluator, max_reduction_steps
from bean.bean_printer import Printer, stringify
from bean.bean_serialize import deserialize, read_document
from bean.bean_transformer import BeanTransformer

ModuleFactory = Callable[[], Scope]
MODULE_SUFFIXES = ('.json', '.yaml', '.yml')

_LEADING_INT = re.compile(r'^\s*([+-]?\d+)')


def _memory_arg(evaluator: Evaluator, value, context: CallContext) -> Memory:
    """Checks that a builtin received a Memory literal and that it carries a slot."""
    if not isinstance(value, Memory):
        evaluator.fail(BeanTypeError(f"Expected Memory, instead got {type_name(value)}."))
    if value.slot is None:
        value = Memory(value.value, context.scope.create_slot(value.value))
    return value


def _truthy(evaluator: Evaluator, value) -> bool:
    if not isinstance(value, Value):
        evaluator.fail(BeanTypeError(f"{type_name(value)} is not type cast-able to boolean."))
    return bool(value.value)


def _number_value(q):
    # Integral results of true division stay ints (6 / 2 is 3, not 3.0).
    if isinstance(q, float) and q.is_integer():
        return int(q)
    return q


def _repeat_to_length(text: str, count) -> str:
    target = len(text) * count
    if not text or not target > 0:
        return ""
    target = int(target)
    return (text * (target // len(text) + 1))[:target]


# ===================================================================
# 1. The Builtin Library
# ===================================================================

class BuiltinLibrary:
    """Contains Python implementations for all bean built-ins.

    Every method named `_<name>` is exposed to programs as `<name>`. Builtins
    receive their already-evaluated arguments positionally, plus the caller's
    context and the raw (unevaluated) yield subtree as keywords.
    """
    def __init__(self, evaluator: Evaluator):
        self.evaluator = evaluator

    def functions(self) -> Dict[str, NativeFunction]:
        out = {}
        for name, member in inspect.getmembers(self):
            if name.startswith('_') and not name.startswith('__') and callable(member):
                bean_name = name[1:]
                out[bean_name] = NativeFunction(bean_name, member)
        return out

    # --- Definition and Mutation ---
    def _def(self, memory=None, *_, context: CallContext, yield_function=None):
        ev = self.evaluator
        memory = _memory_arg(ev, ev.execute(memory, context), context)
        if memory.slot.scope.has_local(memory.value):
            ev.fail(BeanMemoryError(f"Value <{memory.value}> is already defined."))
        # The body stays unevaluated until the function is called
        memory.slot.set(CustomFunction(closure=context.scope, body=yield_function))

    def _defI(self, memory=None, *_, context: CallContext, yield_function=None):
        ev = self.evaluator
        memory = _memory_arg(ev, ev.execute(memory, context), context)
        if memory.slot.scope.has_local(memory.value):
            ev.fail(BeanMemoryError(f"Value <{memory.value}> is already defined."))
        value = ev.reduce_to_literal(yield_function, context)
        memory.slot.set(CustomFunction(closure=context.scope, body=value))

    def _set(self, memory=None, *_, context: CallContext, yield_function=None):
        ev = self.evaluator
        memory = _memory_arg(ev, memory, context)
        # No chain ascent: only names bound in the current scope can be set
        if not context.scope.has_local(memory.value):
            ev.fail(BeanMemoryError(f"Value <{memory.value}> is not defined."))
        value = ev.reduce_to_literal(yield_function, context)
        context.scope.set_function(memory.value, CustomFunction(closure=context.scope, body=value))

    # --- Side Effects and I/O ---
    def _print(self, value=None, *_, context: CallContext, yield_function=None):
        text = stringify(self.evaluator.execute(value, context))
        self.evaluator.runtime.write(text)

    # --- Calls, Blocks and Returns ---
    def _param(self, index=None, *_, context: CallContext, yield_function=None):
        if not isinstance(index, Number):
            return None
        i = index.value
        if isinstance(i, float):
            if not i.is_integer():
                return None
            i = int(i)
        if 0 <= i < len(context.parameters):
            return context.parameters[i]
        return None

    def _yield(self, *_, context: CallContext, yield_function=None):
        return self.evaluator.execute(context.yield_function, context)

    def _return(self, value=None, *_, context: CallContext, yield_function=None):
        # Sibling statements still run; the block reports the value when it exits.
        context.scope.set_return(value)
        return value

    # --- Math ---
    def _add(self, *values, context: CallContext, yield_function=None):
        ev = self.evaluator
        if not values:
            ev.fail(BeanTypeError("Nothing to add."))
        first = values[0]
        for v in values[1:]:
            if type(v) is not type(first):
                ev.fail(BeanTypeError(
                    f"Cannot add a {type_name(v)} to a {type_name(first)}. Please type cast using str()"
                ))
        match first:
            case Number():
                return Number(sum(v.value for v in values))
            case String():
                return String("".join(v.value for v in values))
            case _:
                ev.fail(BeanTypeError(f"Cannot add values of type {type_name(first)}."))

    def _sub(self, a=None, b=None, *_, context: CallContext, yield_function=None):
        if not isinstance(a, Number) or not isinstance(b, Number):
            self.evaluator.fail(BeanTypeError("To subtract, both objects must be numbers."))
        return Number(a.value - b.value)

    def _mul(self, a=None, b=None, *_, context: CallContext, yield_function=None):
        ev = self.evaluator
        if not isinstance(b, Number):
            ev.fail(BeanTypeError("To multiply, the second object must be a number."))
        match a:
            case Number():
                return Number(a.value * b.value)
            case String():
                return String(_repeat_to_length(a.value, b.value))
            case _:
                ev.fail(BeanTypeError(f"Cannot multiply a {type_name(a)}."))

    def _div(self, a=None, b=None, *_, context: CallContext, yield_function=None):
        ev = self.evaluator
        if not isinstance(a, Number) or not isinstance(b, Number):
            ev.fail(BeanTypeError("To divide, both objects must be numbers."))
        if b.value == 0:
            # IEEE results: x/0 is a signed infinity, 0/0 is NaN
            if a.value == 0 or math.isnan(a.value):
                return Number(math.nan)
            return Number(math.copysign(math.inf, a.value) * math.copysign(1.0, b.value))
        return Number(_number_value(a.value / b.value))

    # --- Conversions ---
    def _str(self, value=None, *_, context: CallContext, yield_function=None):
        return String(stringify(value))

    def _num(self, value=None, *_, context: CallContext, yield_function=None):
        ev = self.evaluator
        if isinstance(value, Number):
            try:
                return Number(int(value.value))
            except (ValueError, OverflowError):
                ev.fail(BeanTypeError(f"Cannot convert {stringify(value)} to a number."))
        if not isinstance(value, Value):
            ev.fail(BeanTypeError(f"{type_name(value)} cannot be converted to a number."))
        m = _LEADING_INT.match(stringify(value))
        if m is None:
            ev.fail(BeanTypeError(f"Cannot convert '{stringify(value)}' to a number."))
        return Number(int(m.group(1)))

    # --- Objects and Namespaces ---
    def _obj(self, memory=None, *_, context: CallContext, yield_function=None):
        ev = self.evaluator
        memory = _memory_arg(ev, memory, context)
        block = yield_function
        limit = max_reduction_steps()
        steps = 0
        while isinstance(block, FunctionCall):
            if steps >= limit:
                ev.fail(ReductionLimitError(f"Yield to obj did not reduce to a block within {limit} steps."))
            block = ev.execute(block, context)
            steps += 1
        if not isinstance(block, Block):
            ev.fail(BeanTypeError(f"Yield to obj must be a block. Instead, I got a {type_name(block)}."))
        context.scope.child_scopes[memory.value] = ev.execute(block, replace(context, return_scope=True))

    # --- Control Flow and Logic ---
    def _if(self, condition=None, *_, context: CallContext, yield_function=None):
        ev = self.evaluator
        if _truthy(ev, ev.execute(condition, context)):
            ev.execute(yield_function, context)
            return Boolean(True)
        return Boolean(False)

    def _unless(self, condition=None, *_, context: CallContext, yield_function=None):
        ev = self.evaluator
        if not _truthy(ev, ev.execute(condition, context)):
            ev.execute(yield_function, context)
            return Boolean(True)
        return Boolean(False)

    def _not(self, value=None, *_, context: CallContext, yield_function=None):
        ev = self.evaluator
        return Boolean(not _truthy(ev, ev.execute(value, context)))

    def _exists(self, name=None, *_, context: CallContext, yield_function=None):
        if not isinstance(name, (Memory, String)):
            self.evaluator.fail(BeanTypeError(f"Expected Memory, instead got {type_name(name)}."))
        return Boolean(context.scope.has_function(name.value))

    def _is(self, value=None, *_, context: CallContext, yield_function=None):
        ev = self.evaluator
        left = ev.execute(value, context)
        right = ev.execute(yield_function, context)
        if isinstance(left, Value) and isinstance(right, Value):
            return Boolean(type(left) is type(right) and left.value == right.value)
        return Boolean(left is right)


# ===================================================================
# 2. Modules
# ===================================================================

class ModuleRegistry:
    """Named prebuilt scopes, attached into a program's root scope on first import.

    A module is registered either as a ready Scope or as a zero-argument
    factory; factories run once, on the first import, and the result is kept.
    Local (file) modules are cached by resolved path.
    """
    def __init__(self):
        self.registered: Dict[str, Union[Scope, ModuleFactory]] = {}
        self._sources: Dict[str, Any] = {}
        self.local: Dict[Path, Scope] = {}
        self.loading: set = set()

    def register(self, name: str, module: Union[Scope, ModuleFactory]):
        if not isinstance(module, Scope) and not callable(module):
            raise TypeError(f"Module '{name}' must be a Scope or a factory returning one")
        if self._sources.get(name) is module:
            return
        self._sources[name] = module
        self.registered[name] = module

    def get(self, name: str) -> Optional[Scope]:
        module = self.registered.get(name)
        if module is None or isinstance(module, Scope):
            return module
        scope = module()
        if not isinstance(scope, Scope):
            raise TypeError(f"Module factory for '{name}' returned {type(scope).__name__}, not a Scope")
        self.registered[name] = scope
        return scope

    def __contains__(self, name: str) -> bool:
        return name in self.registered

    def names(self) -> List[str]:
        return list(self.registered)


def make_module(functions: Mapping[str, Callable[..., Any]], parent: Optional[Scope] = None) -> Scope:
    """Build a module scope from host procedures (native call convention)."""
    scope = Scope(parent=parent)
    for name, proc in functions.items():
        entry = proc if isinstance(proc, (NativeFunction, CustomFunction)) else NativeFunction(name, proc)
        scope.set_function(name, entry)
    return scope


# ===================================================================
# 3. The Runtime
# ===================================================================

class Runtime:
    """An isolated interpreter instance: root scope, module registry, evaluator and sinks.

    `output(text)` receives everything `print` writes; by default it is
    recorded as a stdout side effect. `error_sink(message, kind)` is told
    about every fatal error before the error is raised.
    """
    def __init__(
        self,
        *,
        output: Optional[Callable[[str], Any]] = None,
        error_sink: Optional[Callable[[str, str], Any]] = None,
        registry: Optional[ModuleRegistry] = None,
        source_dir: Optional[str] = None,
    ):
        self.root_scope = Scope()
        self.modules = registry if registry is not None else ModuleRegistry()
        self.output = output
        self.error_sink = error_sink
        self.source_dir = source_dir
        self.side_effects: List[Dict] = []
        self.evaluator = Evaluator(self)
        self.builtins = BuiltinLibrary(self.evaluator)
        for name, fn in self.builtins.functions().items():
            self.root_scope.set_function(name, fn)

    def write(self, text: str):
        if self.output is not None:
            self.output(text)
        else:
            self.side_effects.append({'topics': ['stdout'], 'message': text})

    def run(self, ast: Any, named_modules: Optional[Mapping[str, Any]] = None):
        """Register the named modules, then evaluate ast against the root scope."""
        for name, module in (named_modules or {}).items():
            self.modules.register(name, module)
        return self.evaluator.execute(ast, self.evaluator.root_context())

    def _find_module_file(self, target: Path) -> Optional[Path]:
        if target.suffix.lower() in MODULE_SUFFIXES and target.is_file():
            return target
        for suffix in MODULE_SUFFIXES:
            candidate = target.with_name(target.name + suffix)
            if candidate.is_file():
                return candidate
        return None

    def load_local_module(self, name: str) -> Scope:
        """Load `./name` from an AST document next to the running program."""
        ev = self.evaluator
        base = Path(self.source_dir or os.getcwd())
        path = self._find_module_file((base / name).resolve())
        if path is None:
            ev.fail(BeanReferenceError(f"Module {name} does not exist."))
        cached = self.modules.local.get(path)
        if cached is not None:
            return cached
        if path in self.modules.loading:
            ev.fail(BeanReferenceError("Trying to load from a file that is currently being loaded."))

        try:
            ast = BeanTransformer().transform_document(read_document(path))
        except (OSError, ValueError, TypeError, KeyError) as e:
            ev.fail(BeanReferenceError(f"Error reading file {path}: {e}"))

        # Evaluate in an isolated runtime; its root scope becomes the module
        module = Runtime(
            output=self.write,
            error_sink=self.error_sink,
            registry=self.modules,
            source_dir=str(path.parent),
        )
        self.modules.loading.add(path)
        try:
            module.run(ast)
        finally:
            self.modules.loading.discard(path)
        self.modules.local[path] = module.root_scope
        return module.root_scope


# ===================================================================
# 4. Script Execution
# ===================================================================

Token = Dict[str, Any]

@dataclass
class ExecutionResult:
    """The structured result of a program execution."""
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error_kind: Optional[str] = None
    error_token: Optional[Token] = None
    side_effects: List[Dict] = field(default_factory=list)

    def format_error(self) -> str:
        """Formats an error message with line and column if available."""
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        if self.error_token and self.error_token.get('line') is not None:
            line = self.error_token.get('line')
            col = self.error_token.get('col')
            if not msg.startswith("Error on line "):
                col_info = f", col {col}" if col is not None else ""
                return f"Error on line {line}{col_info}: {msg}"
        return msg

    @property
    def stdout(self) -> List[str]:
        return [e.get('message', '') for e in self.side_effects if e.get('topics') == ['stdout']]


class ScriptRunner:
    """Transforms and executes bean AST documents on one Runtime."""

    _transformer: Optional[BeanTransformer] = None

    def __init__(self, runtime: Optional[Runtime] = None, modules: Optional[Mapping[str, Any]] = None):
        self.runtime = runtime if runtime is not None else Runtime()
        self.named_modules: Dict[str, Any] = dict(modules or {})
        self.source_dir = None  # directory of the current document, if known

        if ScriptRunner._transformer is None:
            ScriptRunner._transformer = BeanTransformer()
        self.transformer = ScriptRunner._transformer

    @property
    def evaluator(self) -> Evaluator:
        return self.runtime.evaluator

    def load(self, document: Any) -> Node:
        """Decode (if textual) and transform an AST document."""
        if isinstance(document, Node):
            return document
        if isinstance(document, (str, bytes, bytearray)):
            document = deserialize(document)
        return self.transformer.transform_document(document)

    def _format_stacktrace(self, trace: List[str]) -> str:
        if not trace:
            return ""
        return "bean stacktrace: " + " ".join(f"({name})" for name in trace)

    def _format_runtime_error(self, e: Exception) -> tuple[str, Optional[str], Optional[Token]]:
        kind = None
        match e:
            case BeanError():
                kind = e.kind
                msg = f"{e.kind}Error: {e.message}"
            case RecursionError():
                msg = "RecursionError: maximum evaluation depth exceeded"
            case _:
                msg = f"InternalError: {e}"

        token = None
        node = getattr(e, 'node', None) or self.evaluator.current_node
        loc = getattr(node, 'loc', None)
        if isinstance(loc, dict) and loc.get('line') is not None:
            token = {'line': loc.get('line'), 'col': loc.get('col'), 'type': loc.get('type')}
        if isinstance(node, FunctionCall) and not isinstance(e, RecursionError):
            # Show the call itself, not the block it was given
            msg = f"{msg}\nAt {Printer().pformat(replace(node, yield_function=None))}"

        st = self._format_stacktrace(getattr(e, 'trace', None) or [])
        if st:
            msg += "\n" + st
        return msg, kind, token

    def _error_result(self, msg, kind=None, token=None) -> ExecutionResult:
        side_effects = self.runtime.side_effects
        side_effects.append({'topics': ['stderr'], 'message': msg})
        return ExecutionResult(
            status='error',
            error_message=msg,
            error_kind=kind,
            error_token=token,
            side_effects=side_effects,
        )

    def handle_document(self, document: Any) -> ExecutionResult:
        """The main entry point to execute a program."""
        rt = self.runtime
        # A fresh list per run; results already handed out keep their own
        rt.side_effects = []
        rt.evaluator.call_stack.clear()
        rt.source_dir = self.source_dir or os.getcwd()

        # 1. Decode and transform
        try:
            ast = self.load(document)
        except (ValueError, TypeError, KeyError) as e:
            return self._error_result(f"DocumentError: {e}")

        # 2. Evaluate
        try:
            value = rt.run(ast, self.named_modules)
        except Exception as e:
            msg, kind, token = self._format_runtime_error(e)
            return self._error_result(msg, kind, token)

        return ExecutionResult(status='success', value=value, side_effects=rt.side_effects)

    def run_file(self, path: Union[str, Path]) -> ExecutionResult:
        """Run an AST document file; local modules resolve next to it."""
        p = Path(path)
        try:
            document = read_document(p)
        except (OSError, ValueError) as e:
            self.runtime.side_effects = []
            return self._error_result(f"DocumentError: {e}")
        self.source_dir = str(p.parent.resolve())
        return self.handle_document(document)
