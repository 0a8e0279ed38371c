import pytest

from bean.bean_transformer import BeanTransformer
from bean.bean_datatypes import (
    NumberLiteral, StringLiteral, BooleanLiteral, MemoryLiteral,
    FunctionCall, Block, Program, ParameterBlock, ModuleImport,
)

# --- Fixtures ---

@pytest.fixture(scope="module")
def transformer():
    """Returns a BeanTransformer instance."""
    return BeanTransformer()

# --- Test Cases ---

TRANSFORMER_TEST_CASES = [
    (
        "literals",
        [
            {"type": "NumberLiteral", "value": 1},
            {"type": "StringLiteral", "value": "raw"},
            {"type": "BooleanLiteral", "value": True},
            {"type": "MemoryLiteral", "value": "x"},
        ],
        [NumberLiteral(1), StringLiteral("raw"), BooleanLiteral(True), MemoryLiteral("x")],
    ),
    (
        "numbers_from_token_text",
        [
            {"type": "NumberLiteral", "value": "42"},
            {"type": "NumberLiteral", "value": "-2.5"},
            {"type": "BooleanLiteral", "value": "false"},
        ],
        [NumberLiteral(42), NumberLiteral(-2.5), BooleanLiteral(False)],
    ),
    (
        "call_with_yield_block",
        {
            "type": "FunctionCall", "name": "def",
            "parameters": [{"type": "MemoryLiteral", "value": "f"}],
            "yieldFunction": {"type": "Block", "body": [
                {"type": "FunctionCall", "name": "print",
                 "parameters": [{"type": "StringLiteral", "value": "hi"}]},
            ]},
        },
        FunctionCall("def", [MemoryLiteral("f")], Block([
            FunctionCall("print", [StringLiteral("hi")]),
        ])),
    ),
    (
        "call_without_parameters_key",
        {"type": "FunctionCall", "name": "yield"},
        FunctionCall("yield", [], None),
    ),
    (
        "parameter_block",
        {"type": "ParameterBlock", "body": [
            {"type": "NumberLiteral", "value": 1},
            {"type": "NumberLiteral", "value": 2},
        ]},
        ParameterBlock([NumberLiteral(1), NumberLiteral(2)]),
    ),
    (
        "program_and_imports",
        {"type": "Program", "body": [
            {"type": "ModuleImport", "name": "math"},
            {"type": "NeedOperator", "value": "web"},
        ]},
        Program([ModuleImport("math"), ModuleImport("web")]),
    ),
]


@pytest.mark.parametrize("test_id, document, expected", TRANSFORMER_TEST_CASES, ids=[t[0] for t in TRANSFORMER_TEST_CASES])
def test_transformer(transformer, test_id, document, expected):
    assert transformer.transform(document) == expected


def test_transform_attaches_location(transformer):
    node = transformer.transform({
        "type": "FunctionCall", "name": "add", "line": 3, "col": 7,
        "parameters": [{"type": "NumberLiteral", "value": 1, "line": 3, "col": 11}],
    })
    assert node.loc == {"line": 3, "col": 7, "type": "FunctionCall"}
    assert node.parameters[0].loc["col"] == 11


def test_transform_without_location_leaves_loc_unset(transformer):
    node = transformer.transform({"type": "NumberLiteral", "value": 1})
    assert node.loc is None


def test_transform_document_wraps_statement_lists(transformer):
    doc = [{"type": "FunctionCall", "name": "a"}, {"type": "FunctionCall", "name": "b"}]
    assert transformer.transform_document(doc) == Program([FunctionCall("a"), FunctionCall("b")])


def test_transform_passes_nodes_through(transformer):
    node = NumberLiteral(5)
    assert transformer.transform(node) is node
    assert transformer.transform(None) is None


@pytest.mark.parametrize("document", [
    {"type": "Nope"},
    {"value": 1},
    {"type": "NumberLiteral", "value": "abc"},
    {"type": "NumberLiteral", "value": True},
    {"type": "BooleanLiteral", "value": "yes"},
    {"type": "ModuleImport"},
])
def test_transform_rejects_malformed_nodes(transformer, document):
    with pytest.raises(ValueError):
        transformer.transform(document)


def test_transform_rejects_non_dict_elements(transformer):
    with pytest.raises(TypeError):
        transformer.transform(42)


def test_transform_document_rejects_empty(transformer):
    with pytest.raises(ValueError):
        transformer.transform_document(None)
