"""
Safe expression evaluation for conditional nodes.

Conditions are short Python expressions evaluated against the graph's
accumulated state. Only a whitelisted AST subset is accepted:

- literals, names from the context, and list/tuple/dict/set displays
- boolean, comparison, arithmetic and unary operators (no sequence repetition)
- subscripts (``results['search']['count']``) and attribute access, where
  attribute access on a dict is a key lookup (``results.search.count``)
- calls to a small set of pure builtins (len, min, max, ...)

No imports, assignment, lambdas, comprehensions or dunder access.
"""

import ast
import operator
from typing import Any

SAFE_FUNCTIONS: dict[str, Any] = {
    "len": len,
    "min": min,
    "max": max,
    "sum": sum,
    "any": any,
    "all": all,
    "abs": abs,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "sorted": sorted,
}

_BIN_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}

# Multiplying these repeats them; an untrusted count can exhaust memory
_SEQUENCE_TYPES = (str, bytes, list, tuple)

_UNARY_OPS = {
    ast.Not: operator.not_,
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}

_COMPARE_OPS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}


class SafeEvalError(ValueError):
    """Raised for disallowed syntax or names missing from the context."""

    pass


class _Evaluator:
    def __init__(self, context: dict[str, Any]):
        self.context = context

    def visit(self, node: ast.AST) -> Any:
        method = getattr(self, f"visit_{type(node).__name__}", None)
        if method is None:
            raise SafeEvalError(f"Unsupported expression element: {type(node).__name__}")
        return method(node)

    def visit_Expression(self, node: ast.Expression) -> Any:
        return self.visit(node.body)

    def visit_Constant(self, node: ast.Constant) -> Any:
        return node.value

    def visit_Name(self, node: ast.Name) -> Any:
        if node.id in self.context:
            return self.context[node.id]
        if node.id in SAFE_FUNCTIONS:
            return SAFE_FUNCTIONS[node.id]
        raise SafeEvalError(f"Unknown name: {node.id}")

    def visit_List(self, node: ast.List) -> list:
        return [self.visit(e) for e in node.elts]

    def visit_Tuple(self, node: ast.Tuple) -> tuple:
        return tuple(self.visit(e) for e in node.elts)

    def visit_Set(self, node: ast.Set) -> set:
        return {self.visit(e) for e in node.elts}

    def visit_Dict(self, node: ast.Dict) -> dict:
        if any(k is None for k in node.keys):
            raise SafeEvalError("Dict unpacking is not allowed")
        return {self.visit(k): self.visit(v) for k, v in zip(node.keys, node.values, strict=True)}

    def visit_BoolOp(self, node: ast.BoolOp) -> Any:
        if isinstance(node.op, ast.And):
            value: Any = True
            for operand in node.values:
                value = self.visit(operand)
                if not value:
                    return value
            return value
        value = False
        for operand in node.values:
            value = self.visit(operand)
            if value:
                return value
        return value

    def visit_UnaryOp(self, node: ast.UnaryOp) -> Any:
        op = _UNARY_OPS.get(type(node.op))
        if op is None:
            raise SafeEvalError(f"Unsupported operator: {type(node.op).__name__}")
        return op(self.visit(node.operand))

    def visit_BinOp(self, node: ast.BinOp) -> Any:
        op = _BIN_OPS.get(type(node.op))
        if op is None:
            raise SafeEvalError(f"Unsupported operator: {type(node.op).__name__}")
        left, right = self.visit(node.left), self.visit(node.right)
        if isinstance(node.op, ast.Mult) and (
            isinstance(left, _SEQUENCE_TYPES) or isinstance(right, _SEQUENCE_TYPES)
        ):
            raise SafeEvalError("Sequence repetition is not allowed")
        return op(left, right)

    def visit_Compare(self, node: ast.Compare) -> bool:
        left = self.visit(node.left)
        for op_node, comparator in zip(node.ops, node.comparators, strict=True):
            op = _COMPARE_OPS.get(type(op_node))
            if op is None:
                raise SafeEvalError(f"Unsupported comparison: {type(op_node).__name__}")
            right = self.visit(comparator)
            if not op(left, right):
                return False
            left = right
        return True

    def visit_IfExp(self, node: ast.IfExp) -> Any:
        return self.visit(node.body) if self.visit(node.test) else self.visit(node.orelse)

    def visit_Subscript(self, node: ast.Subscript) -> Any:
        container = self.visit(node.value)
        if isinstance(node.slice, ast.Slice):
            raise SafeEvalError("Slicing is not allowed")
        return container[self.visit(node.slice)]

    def visit_Attribute(self, node: ast.Attribute) -> Any:
        if node.attr.startswith("_"):
            raise SafeEvalError(f"Access to private attribute '{node.attr}' is not allowed")
        target = self.visit(node.value)
        if isinstance(target, dict):
            if node.attr not in target:
                raise SafeEvalError(f"Key not found: {node.attr}")
            return target[node.attr]
        return getattr(target, node.attr)

    def visit_Call(self, node: ast.Call) -> Any:
        if not isinstance(node.func, ast.Name) or node.func.id not in SAFE_FUNCTIONS:
            raise SafeEvalError("Only whitelisted builtin functions may be called")
        if node.keywords:
            raise SafeEvalError("Keyword arguments are not allowed")
        func = SAFE_FUNCTIONS[node.func.id]
        return func(*(self.visit(arg) for arg in node.args))


def safe_eval(expression: str, context: dict[str, Any] | None = None) -> Any:
    """
    Evaluate ``expression`` against ``context`` using the safe AST subset.

    Raises:
        SafeEvalError: syntax outside the whitelist or unknown names
        SyntaxError: expression does not parse
    """
    tree = ast.parse(expression.strip(), mode="eval")
    return _Evaluator(context or {}).visit(tree)
