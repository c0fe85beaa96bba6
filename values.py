"""Runtime values and the operator semantics of the supported subset.

Every value is a ``Value`` tagged with one of a closed set of kinds. Each
operator below performs an explicit case analysis over the kinds of its
operands; any pair that is not handled falls through to a ``TypeError``-kind
failure instead of being coerced.
"""

from __future__ import annotations
import operator
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from lexer import MiniPyError


TYPE_INT = "INT"
TYPE_FLT = "FLT"
TYPE_STR = "STR"
TYPE_BOOL = "BOOL"
TYPE_NONE = "NONE"

# Type names as Python spells them in error messages.
PY_TYPE_NAMES = {
    TYPE_INT: "int",
    TYPE_FLT: "float",
    TYPE_STR: "str",
    TYPE_BOOL: "bool",
    TYPE_NONE: "NoneType",
}

NUMERIC_TYPES = frozenset({TYPE_INT, TYPE_FLT, TYPE_BOOL})
INTEGRAL_TYPES = frozenset({TYPE_INT, TYPE_BOOL})


@dataclass(frozen=True)
class Value:
    type: str
    value: Any


TRUE = Value(TYPE_BOOL, True)
FALSE = Value(TYPE_BOOL, False)
NONE = Value(TYPE_NONE, None)


class MiniPyRuntimeError(MiniPyError):
    """Raised for runtime faults."""

    kind = "RuntimeError"

    def __init__(
        self,
        message: str,
        *,
        location: Optional[Any] = None,
        rule: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.location = location
        self.rule = rule
        self.step_index: Optional[int] = None


class UndefinedNameError(MiniPyRuntimeError):
    kind = "NameError"


class OperandTypeError(MiniPyRuntimeError):
    kind = "TypeError"


class DivisionByZeroError(MiniPyRuntimeError):
    kind = "ZeroDivisionError"


class NumericValueError(MiniPyRuntimeError):
    kind = "ValueError"


class NumericOverflowError(MiniPyRuntimeError):
    kind = "OverflowError"


Number = Union[int, float]


def type_name(value: Value) -> str:
    return PY_TYPE_NAMES[value.type]


def from_python(obj: Any) -> Value:
    """Wrap a native result; ``bool`` is checked before ``int`` since it subclasses it."""
    if obj is None:
        return NONE
    if isinstance(obj, bool):
        return TRUE if obj else FALSE
    if isinstance(obj, int):
        return Value(TYPE_INT, obj)
    if isinstance(obj, float):
        return Value(TYPE_FLT, obj)
    if isinstance(obj, str):
        return Value(TYPE_STR, obj)
    if isinstance(obj, complex):
        raise NumericValueError("complex results are not supported")
    raise MiniPyRuntimeError(f"Cannot represent {obj.__class__.__name__} value")


def is_number(value: Value) -> bool:
    return value.type in NUMERIC_TYPES


def _numeric(value: Value) -> Number:
    if value.type == TYPE_BOOL:
        return 1 if value.value else 0
    return value.value


def truthy(value: Value) -> bool:
    vtype = value.type
    if vtype == TYPE_BOOL:
        return bool(value.value)
    if vtype == TYPE_INT:
        return value.value != 0
    if vtype == TYPE_FLT:
        return value.value != 0.0
    if vtype == TYPE_STR:
        return value.value != ""
    if vtype == TYPE_NONE:
        return False
    raise MiniPyRuntimeError(f"Unsupported type in condition: {vtype}")


def to_repr(value: Value) -> str:
    """Canonical display text, identical to Python's ``repr``."""
    vtype = value.type
    if vtype == TYPE_INT:
        return str(value.value)
    if vtype == TYPE_FLT:
        return repr(float(value.value))
    if vtype == TYPE_STR:
        return repr(value.value)
    if vtype == TYPE_BOOL:
        return "True" if value.value else "False"
    if vtype == TYPE_NONE:
        return "None"
    raise MiniPyRuntimeError(f"Unsupported type for display: {vtype}")


def _unsupported(op: str, left: Value, right: Value, location: Any) -> OperandTypeError:
    return OperandTypeError(
        f"unsupported operand type(s) for {op}: '{type_name(left)}' and '{type_name(right)}'",
        location=location,
        rule=op,
    )


def _arith(fn: Callable[[Number, Number], Any], op: str, left: Value, right: Value, location: Any) -> Value:
    try:
        result = fn(_numeric(left), _numeric(right))
    except OverflowError as exc:
        raise NumericOverflowError(str(exc) or "numeric overflow", location=location, rule=op)
    try:
        return from_python(result)
    except MiniPyRuntimeError as err:
        err.location = location
        err.rule = op
        raise


def _repeat(text: str, count: Value) -> Value:
    return Value(TYPE_STR, text * max(_numeric(count), 0))


def _add(left: Value, right: Value, location: Any) -> Value:
    if is_number(left) and is_number(right):
        return _arith(operator.add, "+", left, right, location)
    if left.type == TYPE_STR and right.type == TYPE_STR:
        return Value(TYPE_STR, left.value + right.value)
    if left.type == TYPE_STR:
        raise OperandTypeError(
            f'can only concatenate str (not "{type_name(right)}") to str', location=location, rule="+"
        )
    raise _unsupported("+", left, right, location)


def _sub(left: Value, right: Value, location: Any) -> Value:
    if is_number(left) and is_number(right):
        return _arith(operator.sub, "-", left, right, location)
    raise _unsupported("-", left, right, location)


def _mul(left: Value, right: Value, location: Any) -> Value:
    if is_number(left) and is_number(right):
        return _arith(operator.mul, "*", left, right, location)
    if left.type == TYPE_STR and right.type in INTEGRAL_TYPES:
        return _repeat(left.value, right)
    if left.type in INTEGRAL_TYPES and right.type == TYPE_STR:
        return _repeat(right.value, left)
    if left.type == TYPE_STR or right.type == TYPE_STR:
        other = right if left.type == TYPE_STR else left
        raise OperandTypeError(
            f"can't multiply sequence by non-int of type '{type_name(other)}'", location=location, rule="*"
        )
    raise _unsupported("*", left, right, location)


def _zero_divisor(right: Value) -> bool:
    return is_number(right) and _numeric(right) == 0


def _true_div(left: Value, right: Value, location: Any) -> Value:
    if is_number(left) and is_number(right):
        if _zero_divisor(right):
            floats = TYPE_FLT in (left.type, right.type)
            raise DivisionByZeroError(
                "float division by zero" if floats else "division by zero", location=location, rule="/"
            )
        return _arith(operator.truediv, "/", left, right, location)
    raise _unsupported("/", left, right, location)


def _floor_div(left: Value, right: Value, location: Any) -> Value:
    if is_number(left) and is_number(right):
        if _zero_divisor(right):
            floats = TYPE_FLT in (left.type, right.type)
            raise DivisionByZeroError(
                "float floor division by zero" if floats else "integer division or modulo by zero",
                location=location,
                rule="//",
            )
        return _arith(operator.floordiv, "//", left, right, location)
    raise _unsupported("//", left, right, location)


def _mod(left: Value, right: Value, location: Any) -> Value:
    if is_number(left) and is_number(right):
        if _zero_divisor(right):
            floats = TYPE_FLT in (left.type, right.type)
            raise DivisionByZeroError(
                "float modulo by zero" if floats else "integer modulo by zero", location=location, rule="%"
            )
        return _arith(operator.mod, "%", left, right, location)
    raise _unsupported("%", left, right, location)


def _pow(left: Value, right: Value, location: Any) -> Value:
    if is_number(left) and is_number(right):
        base, exponent = _numeric(left), _numeric(right)
        if base == 0 and exponent < 0:
            raise DivisionByZeroError(
                "0.0 cannot be raised to a negative power", location=location, rule="**"
            )
        # int ** negative int yields float natively; complex results are rejected by from_python.
        return _arith(operator.pow, "**", left, right, location)
    raise _unsupported("** or pow()", left, right, location)


BINARY_OPS: Dict[str, Callable[[Value, Value, Any], Value]] = {
    "+": _add,
    "-": _sub,
    "*": _mul,
    "/": _true_div,
    "//": _floor_div,
    "%": _mod,
    "**": _pow,
}

COMPARISONS: Dict[str, Callable[[Any, Any], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}


def binary_op(op: str, left: Value, right: Value, location: Any = None) -> Value:
    impl = BINARY_OPS.get(op)
    if impl is None:
        raise MiniPyRuntimeError(f"Unsupported operator '{op}'", location=location, rule=op)
    return impl(left, right, location)


def unary_op(op: str, operand: Value, location: Any = None) -> Value:
    if op not in ("-", "+"):
        raise MiniPyRuntimeError(f"Unsupported unary operator '{op}'", location=location, rule=op)
    if is_number(operand):
        number = _numeric(operand)
        return from_python(-number if op == "-" else +number)
    raise OperandTypeError(
        f"bad operand type for unary {op}: '{type_name(operand)}'", location=location, rule=op
    )


def compare(op: str, left: Value, right: Value, location: Any = None) -> bool:
    """Compare a single adjacent pair of a comparison chain."""
    fn = COMPARISONS.get(op)
    if fn is None:
        raise MiniPyRuntimeError(f"Unsupported comparison '{op}'", location=location, rule=op)
    if is_number(left) and is_number(right):
        return bool(fn(_numeric(left), _numeric(right)))
    if left.type == TYPE_STR and right.type == TYPE_STR:
        return bool(fn(left.value, right.value))
    if left.type == TYPE_NONE and right.type == TYPE_NONE and op in ("==", "!="):
        return op == "=="
    raise OperandTypeError(
        f"'{op}' not supported between instances of '{type_name(left)}' and '{type_name(right)}'",
        location=location,
        rule=op,
    )
