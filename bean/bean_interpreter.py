"""
The core bean interpreter: the Evaluator and its recursive dispatcher.
"""
import os
import sys
from dataclasses import replace
from typing import Any, List, Optional, TYPE_CHECKING

from bean.bean_datatypes import (
    BeanError, BeanReferenceError, BeanTypeError, ReductionLimitError,
    Value, Memory, Node, LiteralNode, MemoryLiteral,
    FunctionCall, Block, Program, ParameterBlock, ModuleImport,
    NativeFunction, CustomFunction, FunctionEntry,
    Scope, CallContext, literal_to_value, type_name,
)

if TYPE_CHECKING:
    from bean.bean_runtime import Runtime

DEFAULT_MAX_REDUCTION_STEPS = 10000


def max_reduction_steps() -> int:
    """Step limit for literal reduction; configurable via BEAN_MAX_REDUCTION_STEPS."""
    try:
        raw = os.environ.get("BEAN_MAX_REDUCTION_STEPS")
        return int(raw) if raw is not None else DEFAULT_MAX_REDUCTION_STEPS
    except ValueError:
        return DEFAULT_MAX_REDUCTION_STEPS


class Evaluator:
    """The bean execution engine. One per Runtime."""
    def __init__(self, runtime: 'Runtime'):
        self.runtime = runtime
        self.current_node = None
        # FunctionCall nodes currently being executed, outermost first
        self.call_stack: List[FunctionCall] = []

    def _dbg(self, *parts):
        if os.environ.get("BEAN_DEBUG"):
            print("[DBG]", *parts, file=sys.stderr)

    def root_context(self) -> CallContext:
        return CallContext(scope=self.runtime.root_scope)

    def fail(self, error: BeanError):
        """Report a fatal error to the runtime's error sink, then raise it."""
        if error.node is None:
            error.node = self.call_stack[-1] if self.call_stack else self.current_node
        error.trace = [call.name for call in self.call_stack]
        sink = self.runtime.error_sink
        if sink is not None:
            sink(error.message, error.kind)
        raise error

    # -----------------------------------------------------------------
    # Dispatch
    # -----------------------------------------------------------------

    def execute(self, node: Any, context: Optional[CallContext] = None) -> Any:
        """Evaluate one node and return a Value, a Scope, or None."""
        if context is None:
            context = self.root_context()
        if node is None:
            return None
        if isinstance(node, Node):
            self.current_node = node

        match node:
            case FunctionCall():
                return self._call(node, context)

            case Block():
                return self._block(node, context)

            case Program():
                for stmt in node.body:
                    self.execute(stmt, context)
                return None

            case ParameterBlock():
                result = None
                for expr in node.body:
                    result = self.execute(expr, context)
                return result

            case ModuleImport():
                return self._import(node)

            case MemoryLiteral():
                slot = context.scope.create_slot(node.value)
                return Memory(node.value, slot)

            case LiteralNode():
                return literal_to_value(node)

            case _:
                # Values (and anything else) evaluate to themselves
                return node

    def _block(self, node: Block, context: CallContext):
        scope = node.scope if node.scope is not None else Scope(parent=context.scope)
        inner = replace(context, scope=scope, return_scope=False)
        for stmt in node.body:
            self.execute(stmt, inner)
        if context.return_scope:
            return scope
        return scope.return_value

    def _import(self, node: ModuleImport) -> Scope:
        name = node.name
        if name.startswith(("./", "../")):
            scope = self.runtime.load_local_module(name)
        else:
            scope = self.runtime.modules.get(name)
        if scope is None:
            self.fail(BeanReferenceError(f"Unknown module '{name}'.", node))
        self._dbg("import", name)
        self.runtime.root_scope.child_scopes[name] = scope
        return scope

    # -----------------------------------------------------------------
    # Function calls
    # -----------------------------------------------------------------

    def resolve_function(self, name: str, scope: Scope) -> FunctionEntry:
        """Finds the entry for a call name: lexical chain first, then `namespace.member`."""
        entry = scope.get_function(name)
        if entry is not None:
            return entry
        if "." in name:
            path, _, member = name.rpartition(".")
            namespace = self.resolve_namespace(path, scope)
            if namespace is None:
                self.fail(BeanReferenceError(f"Unknown namespace \"{path}\"."))
            # Members come from the namespace's own table only
            entry = namespace.functions.get(member)
            if entry is not None:
                return entry
        self.fail(BeanReferenceError(f"Unknown value or function \"{name}\"."))

    def resolve_namespace(self, path: str, scope: Scope) -> Optional[Scope]:
        """Finds a module or `obj` namespace; `a.b` looks for `b` inside namespace `a`."""
        namespace = scope.get_namespace(path)
        if namespace is not None or "." not in path:
            return namespace
        parent_path, _, last = path.rpartition(".")
        parent = self.resolve_namespace(parent_path, scope)
        return parent.child_scopes.get(last) if parent is not None else None

    def _call(self, node: FunctionCall, context: CallContext):
        self.call_stack.append(node)
        try:
            entry = self.resolve_function(node.name, context.scope)
            match entry:
                case NativeFunction():
                    args = [self.execute(p, context) for p in node.parameters]
                    self._dbg("native call", node.name, "argc", len(args), "types", [type_name(a) for a in args])
                    return entry(*args, context=context, yield_function=node.yield_function)

                case CustomFunction():
                    if node.parameters:
                        params = tuple(self.execute(p, context) for p in node.parameters)
                    else:
                        # No explicit arguments: forward the caller's own parameters
                        params = context.parameters
                    self._dbg("custom call", node.name, "argc", len(params), "forwarded", not node.parameters)
                    call_context = CallContext(
                        scope=entry.closure,
                        parameters=params,
                        yield_function=node.yield_function,
                    )
                    return self.execute(entry.body, call_context)

                case _:
                    self.fail(BeanTypeError(f"\"{node.name}\" is not callable."))
        finally:
            self.call_stack.pop()

    # -----------------------------------------------------------------
    # Literal reduction
    # -----------------------------------------------------------------

    def reduce_to_literal(self, node: Any, context: CallContext) -> Value:
        """Evaluate node repeatedly until it produces a literal value."""
        limit = max_reduction_steps()
        steps = 0
        current = node
        while not isinstance(current, Value):
            if not isinstance(current, Node):
                self.fail(BeanTypeError(f"Expected a literal, instead got {type_name(current)}."))
            if steps >= limit:
                self.fail(ReductionLimitError(
                    f"Value did not reduce to a literal within {limit} steps."
                ))
            current = self.execute(current, context)
            steps += 1
        return current
