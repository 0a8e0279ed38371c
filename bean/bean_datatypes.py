"""
Defines the core data types for the bean language runtime.

Runtime values, AST nodes, scopes, storage slots and function entries all
live here so the evaluator, the transformer and the printer share one model.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Union


# =================================================================
# Errors
# =================================================================

class BeanError(Exception):
    """Base class for all fatal evaluation errors."""
    kind = "Internal"

    def __init__(self, message: str, node: Any = None):
        super().__init__(message)
        self.message = message
        self.node = node
        # Names of the calls active when the error was raised, outermost first
        self.trace: List[str] = []


class BeanReferenceError(BeanError):
    """Unknown function name or unknown module."""
    kind = "Reference"


class BeanTypeError(BeanError):
    """An operator or control construct received the wrong kind of value."""
    kind = "Type"


class BeanMemoryError(BeanError):
    """Duplicate definition, or mutation of an undefined name."""
    kind = "Memory"


class ReductionLimitError(BeanTypeError):
    """Literal reduction did not reach a value within the configured step limit."""


ERROR_CLASSES = {
    "Reference": BeanReferenceError,
    "Type": BeanTypeError,
    "Memory": BeanMemoryError,
}


# =================================================================
# Runtime Values
# =================================================================

class Value:
    """Base class for first-class runtime values. Evaluating a value yields itself."""
    __slots__ = ()
    type_name = "Value"


@dataclass(frozen=True)
class Number(Value):
    value: Union[int, float]
    type_name = "Number"


@dataclass(frozen=True)
class String(Value):
    value: str
    type_name = "String"


@dataclass(frozen=True)
class Boolean(Value):
    value: bool
    type_name = "Boolean"


@dataclass(frozen=True)
class Memory(Value):
    """A name plus the slot it resolved to in the scope that evaluated it."""
    value: str
    slot: Optional['Slot'] = field(default=None, compare=False, repr=False)
    type_name = "Memory"


# =================================================================
# AST Nodes
# =================================================================

class Node:
    """Base class for AST nodes. `loc` is filled in by the transformer when known."""
    loc: Optional[Dict[str, Any]] = None


class LiteralNode(Node):
    """Literal syntax: maps one-to-one onto a runtime Value."""


@dataclass(eq=True)
class NumberLiteral(LiteralNode):
    value: Union[int, float]


@dataclass(eq=True)
class StringLiteral(LiteralNode):
    value: str


@dataclass(eq=True)
class BooleanLiteral(LiteralNode):
    value: bool


@dataclass(eq=True)
class MemoryLiteral(LiteralNode):
    value: str


@dataclass(eq=True)
class FunctionCall(Node):
    name: str
    parameters: List[Any] = field(default_factory=list)
    yield_function: Any = None


@dataclass(eq=True)
class Block(Node):
    body: List[Any] = field(default_factory=list)
    # A pre-attached scope is reused every time the block is evaluated.
    scope: Optional['Scope'] = field(default=None, compare=False, repr=False)


@dataclass(eq=True)
class Program(Node):
    body: List[Any] = field(default_factory=list)


@dataclass(eq=True)
class ParameterBlock(Node):
    body: List[Any] = field(default_factory=list)


@dataclass(eq=True)
class ModuleImport(Node):
    name: str


_LITERAL_TO_VALUE = {
    NumberLiteral: Number,
    StringLiteral: String,
    BooleanLiteral: Boolean,
}

_VALUE_TO_LITERAL = {
    Number: NumberLiteral,
    String: StringLiteral,
    Boolean: BooleanLiteral,
    Memory: MemoryLiteral,
}


def literal_to_value(node: LiteralNode, slot: Optional['Slot'] = None) -> Value:
    """Map a literal node onto its runtime value. Memory literals take the resolved slot."""
    if isinstance(node, MemoryLiteral):
        return Memory(node.value, slot)
    try:
        return _LITERAL_TO_VALUE[type(node)](node.value)
    except KeyError:
        raise TypeError(f"Not a literal node: {type(node).__name__}") from None


def value_to_literal(value: Value) -> LiteralNode:
    """Map a runtime value back onto literal syntax (a Memory's slot is dropped)."""
    try:
        return _VALUE_TO_LITERAL[type(value)](value.value)
    except KeyError:
        raise TypeError(f"Not a runtime value: {type(value).__name__}") from None


def type_name(obj: Any) -> str:
    """Human-readable kind of a value, node or scope, used in error messages."""
    if obj is None:
        return "absent"
    if isinstance(obj, Value):
        return obj.type_name
    return type(obj).__name__


# =================================================================
# Functions
# =================================================================

@dataclass
class NativeFunction:
    """A host procedure: called with evaluated arguments plus keyword-only context and yield subtree."""
    name: str
    procedure: Callable[..., Any]

    def __call__(self, *args, context: 'CallContext', yield_function: Any = None):
        return self.procedure(*args, context=context, yield_function=yield_function)

    def __repr__(self) -> str:
        return f"<NativeFunction {self.name}>"


@dataclass
class CustomFunction:
    """A user-defined function: an AST body closed over the scope that defined it."""
    closure: 'Scope'
    body: Any

    def __repr__(self) -> str:
        return f"<CustomFunction body={type_name(self.body)}>"


FunctionEntry = Union[NativeFunction, CustomFunction]


# =================================================================
# Scopes and Slots
# =================================================================

class Scope:
    """A lexical environment.

    Holds the function table searched by name resolution, the child-scope
    table used for modules and `obj` namespaces, the value captured by
    `return`, and a non-owning link to the enclosing scope.
    """
    def __init__(self, parent: Optional['Scope'] = None):
        self.functions: Dict[str, FunctionEntry] = {}
        self.child_scopes: Dict[str, 'Scope'] = {}
        self.return_value: Optional[Value] = None
        self.parent = parent

    def has_local(self, name: str) -> bool:
        """True if this scope itself defines name."""
        return name in self.functions

    def find_owner(self, name: str) -> Optional['Scope']:
        """Finds the nearest scope in the chain (self → parent → ...) that defines name."""
        scope = self
        while scope is not None:
            if name in scope.functions:
                return scope
            scope = scope.parent
        return None

    def has_function(self, name: str) -> bool:
        return self.find_owner(name) is not None

    def get_function(self, name: str) -> Optional[FunctionEntry]:
        owner = self.find_owner(name)
        if owner is None:
            return None
        return owner.functions[name]

    def set_function(self, name: str, entry: FunctionEntry):
        self.functions[name] = entry

    def delete_function(self, name: str):
        self.functions.pop(name, None)

    def create_slot(self, name: str) -> 'Slot':
        return Slot(self, name)

    def set_return(self, value: Optional[Value]):
        self.return_value = value

    def get_namespace(self, name: str) -> Optional['Scope']:
        """Looks a name up in the child-scope tables, walking the parent chain."""
        scope = self
        while scope is not None:
            if name in scope.child_scopes:
                return scope.child_scopes[name]
            scope = scope.parent
        return None

    def __contains__(self, name: str) -> bool:
        return self.has_function(name)

    def __repr__(self) -> str:
        names = ', '.join(self.functions.keys())
        children = ', '.join(self.child_scopes.keys())
        parent_id = f", parent=#{id(self.parent)}" if self.parent else ""
        return f"<Scope functions=[{names}] children=[{children}]{parent_id}>"


class Slot:
    """A handle on one name in one scope. Creating a slot does not bind anything."""
    __slots__ = ("scope", "name")

    def __init__(self, scope: Scope, name: str):
        self.scope = scope
        self.name = name

    def get(self) -> Optional[FunctionEntry]:
        return self.scope.functions.get(self.name)

    def set(self, entry: FunctionEntry):
        self.scope.set_function(self.name, entry)

    @property
    def is_bound(self) -> bool:
        return self.scope.has_local(self.name)

    def __eq__(self, other):
        return isinstance(other, Slot) and self.scope is other.scope and self.name == other.name

    def __hash__(self):
        return hash((id(self.scope), self.name))

    def __repr__(self) -> str:
        return f"<Slot {self.name!r} in #{id(self.scope)}>"


# =================================================================
# Call Context
# =================================================================

@dataclass(frozen=True)
class CallContext:
    """Per-call evaluation state. Replaced, never mutated."""
    scope: Scope
    parameters: Tuple[Any, ...] = ()
    yield_function: Any = None
    return_scope: bool = False
