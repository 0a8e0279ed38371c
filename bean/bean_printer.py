"""
A pretty-printer for bean data structures.
"""
import math

from bean.bean_datatypes import (
    Value, Number, String, Boolean, Memory,
    NumberLiteral, StringLiteral, BooleanLiteral, MemoryLiteral,
    FunctionCall, Block, Program, ParameterBlock, ModuleImport,
    NativeFunction, CustomFunction, Scope,
)


def format_number(value) -> str:
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
    return str(value)


def stringify(value) -> str:
    """Display text of a runtime value, as written by `print` and produced by `str`."""
    match value:
        case Number(value=v):
            return format_number(v)
        case String(value=v):
            return v
        case Boolean(value=v):
            return "true" if v else "false"
        case Memory(value=name):
            return f"<{name}>"
        case _:
            return "[null]"


class Printer:
    """Formats bean nodes and values into readable, source-like text."""

    def __init__(self, indent_width=2):
        self._indent_char = " " * indent_width
        self._handlers = self._create_handlers()

    def pformat(self, obj, level=0):
        """Public entry point to format an object."""
        handler = self._get_handler(obj)
        return handler(obj, level)

    def _get_handler(self, obj):
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        if isinstance(obj, Scope):
            return self._pformat_scope
        if isinstance(obj, list):
            return self._pformat_statements
        return lambda o, l: repr(o)

    def _create_handlers(self):
        return {
            type(None): self._pformat_none,
            Number: self._pformat_number,
            NumberLiteral: self._pformat_number,
            String: self._pformat_string,
            StringLiteral: self._pformat_string,
            Boolean: self._pformat_boolean,
            BooleanLiteral: self._pformat_boolean,
            Memory: self._pformat_memory,
            MemoryLiteral: self._pformat_memory,
            FunctionCall: self._pformat_call,
            Block: self._pformat_block,
            Program: self._pformat_program,
            ParameterBlock: self._pformat_parameter_block,
            ModuleImport: self._pformat_import,
            NativeFunction: self._pformat_native,
            CustomFunction: self._pformat_custom,
        }

    def _pformat_none(self, obj, level):
        return "[null]"

    def _pformat_number(self, obj, level):
        return format_number(obj.value)

    def _pformat_string(self, obj, level):
        escaped = obj.value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
        return f'"{escaped}"'

    def _pformat_boolean(self, obj, level):
        return "true" if obj.value else "false"

    def _pformat_memory(self, obj, level):
        return f"<{obj.value}>"

    def _pformat_call(self, obj, level):
        args = ", ".join(self.pformat(p, level) for p in obj.parameters)
        out = f"{obj.name}({args})"
        if obj.yield_function is not None:
            out += ": " + self.pformat(obj.yield_function, level)
        return out

    def _pformat_statements(self, statements, level):
        indent = self._indent_char * level
        return "\n".join(indent + self.pformat(s, level) for s in statements)

    def _pformat_block(self, obj, level):
        if not obj.body:
            return "{}"
        inner = self._pformat_statements(obj.body, level + 1)
        closing = self._indent_char * level
        return "{\n" + inner + "\n" + closing + "}"

    def _pformat_program(self, obj, level):
        return self._pformat_statements(obj.body, level)

    def _pformat_parameter_block(self, obj, level):
        return "(" + ", ".join(self.pformat(e, level) for e in obj.body) + ")"

    def _pformat_import(self, obj, level):
        return f"need {obj.name}"

    def _pformat_native(self, obj, level):
        return f"[native {obj.name}]"

    def _pformat_custom(self, obj, level):
        return f"[function {self.pformat(obj.body, level)}]"

    def _pformat_scope(self, obj, level):
        names = list(obj.functions) + [f"{k}.*" for k in obj.child_scopes]
        if not names:
            return "[scope]"
        return "[scope " + ", ".join(names) + "]"
