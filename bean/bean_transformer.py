"""
Transforms the raw parser AST document into a semantic AST using bean_datatypes.

The parser is an external collaborator. It hands over plain dicts keyed by
`type` (as loaded from JSON or YAML), e.g.

    {"type": "FunctionCall", "name": "add",
     "parameters": [{"type": "NumberLiteral", "value": 2}],
     "yieldFunction": {"type": "Block", "body": [...]}}
"""

from bean.bean_datatypes import (
    Node, NumberLiteral, StringLiteral, BooleanLiteral, MemoryLiteral,
    FunctionCall, Block, Program, ParameterBlock, ModuleImport,
)


class BeanTransformer:
    def _attach_loc(self, obj, node):
        line = node.get('line'); col = node.get('col')
        if line is not None and col is not None and isinstance(obj, Node):
            obj.loc = {'line': line, 'col': col, 'type': node.get('type')}
        return obj

    def _number(self, node):
        raw = node.get('value')
        # Parsers that keep the token text hand numbers over as strings.
        if isinstance(raw, str):
            txt = raw.strip()
            try:
                return int(txt) if '.' not in txt and 'e' not in txt.lower() else float(txt)
            except ValueError:
                raise ValueError(f"Invalid number literal: {raw!r}") from None
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            raise ValueError(f"Invalid number literal: {raw!r}")
        return raw

    def _boolean(self, node):
        raw = node.get('value')
        if isinstance(raw, str) and raw in ('true', 'false'):
            return raw == 'true'
        if not isinstance(raw, bool):
            raise ValueError(f"Invalid boolean literal: {raw!r}")
        return raw

    def _body(self, node):
        body = node.get('body') or []
        if not isinstance(body, list):
            raise ValueError(f"{node.get('type')} body must be a list")
        return [self.transform(n) for n in body]

    def transform(self, node: object) -> object:
        # Lists: transform each item
        if isinstance(node, list):
            return [self.transform(n) for n in node]

        # Already-transformed nodes and absent subtrees pass through
        if node is None or isinstance(node, Node):
            return node

        if not isinstance(node, dict):
            raise TypeError(f"Unexpected AST element: {node!r}")

        tag = node.get('type')
        match tag:
            # Literals
            case 'NumberLiteral':
                obj = NumberLiteral(self._number(node))
            case 'StringLiteral':
                obj = StringLiteral(str(node.get('value', '')))
            case 'BooleanLiteral':
                obj = BooleanLiteral(self._boolean(node))
            case 'MemoryLiteral':
                obj = MemoryLiteral(str(node['value']))

            # Structural nodes
            case 'FunctionCall':
                params = node.get('parameters') or []
                obj = FunctionCall(
                    str(node['name']),
                    [self.transform(p) for p in params],
                    self.transform(node.get('yieldFunction')),
                )
            case 'Block':
                obj = Block(self._body(node))
            case 'Program':
                obj = Program(self._body(node))
            case 'ParameterBlock':
                obj = ParameterBlock(self._body(node))
            # Older parsers call the import node NeedOperator and keep the name in `value`.
            case 'ModuleImport' | 'NeedOperator':
                name = node.get('name', node.get('value'))
                if not name:
                    raise ValueError("Module import requires a module name.")
                obj = ModuleImport(str(name))

            case None:
                raise ValueError(f"AST node without a type: {node!r}")
            case _:
                raise ValueError(f"Unknown AST node type: {tag!r}")

        return self._attach_loc(obj, node)

    def transform_document(self, document: object) -> Node:
        """Transform a whole document; a bare statement list becomes a Program."""
        if isinstance(document, list):
            return Program(self.transform(document))
        result = self.transform(document)
        if not isinstance(result, Node):
            raise ValueError("AST document is empty.")
        return result
