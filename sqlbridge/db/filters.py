"""Immutable filter expressions rendered into WHERE-clause fragments."""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Optional, Tuple, Union

from sqlbridge.exceptions import StatementError

if TYPE_CHECKING:
    from sqlbridge.db.formatter import SqlFormatter

Environment = Optional[Mapping[str, Any]]


class Expression:
    """Base class of every filter expression node."""

    @property
    def is_true(self) -> bool:
        """True only for the always-true condition, which callers may omit."""
        return False

    def to_sql(self, formatter: "SqlFormatter", environment: Environment = None) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class Field(Expression):
    name: str

    def to_sql(self, formatter, environment=None):
        return self.name


@dataclass(frozen=True)
class Constant(Expression):
    value: Any

    def to_sql(self, formatter, environment=None):
        return formatter.quote(self.value, True)


@dataclass(frozen=True)
class EnvValue(Expression):
    """A value looked up in the environment mapping at render time."""
    name: str

    def to_sql(self, formatter, environment=None):
        if environment is None or self.name not in environment:
            raise StatementError(f"Environment variable '{self.name}' is not available")
        return formatter.quote(environment[self.name], True)


@dataclass(frozen=True)
class BooleanConstant(Expression):
    value: bool

    @property
    def is_true(self) -> bool:
        return self.value

    def to_sql(self, formatter, environment=None):
        return '(1=1)' if self.value else '(1=0)'


@dataclass(frozen=True)
class Comparison(Expression):
    operator: str
    left: Expression
    right: Expression

    def to_sql(self, formatter, environment=None):
        return (
            f"({self.left.to_sql(formatter, environment)}{self.operator}"
            f"{self.right.to_sql(formatter, environment)})"
        )


@dataclass(frozen=True)
class NullCheck(Expression):
    operand: Expression
    negate: bool = False

    def to_sql(self, formatter, environment=None):
        check = 'IS NOT NULL' if self.negate else 'IS NULL'
        return f"({self.operand.to_sql(formatter, environment)} {check})"


@dataclass(frozen=True)
class InList(Expression):
    operand: Expression
    values: Tuple[Expression, ...]

    def to_sql(self, formatter, environment=None):
        if not self.values:
            return '(1=0)'
        rendered = ','.join(v.to_sql(formatter, environment) for v in self.values)
        return f"({self.operand.to_sql(formatter, environment)} IN ({rendered}))"


@dataclass(frozen=True)
class Logical(Expression):
    operator: str
    operands: Tuple[Expression, ...]

    def to_sql(self, formatter, environment=None):
        joiner = f" {self.operator} "
        return '(' + joiner.join(op.to_sql(formatter, environment) for op in self.operands) + ')'


@dataclass(frozen=True)
class Not(Expression):
    operand: Expression

    def to_sql(self, formatter, environment=None):
        return f"NOT({self.operand.to_sql(formatter, environment)})"


ALWAYS_TRUE = BooleanConstant(True)
ALWAYS_FALSE = BooleanConstant(False)

Operand = Union[Expression, str]


def _field(value: Operand) -> Expression:
    return value if isinstance(value, Expression) else Field(value)


def _value(value: Any) -> Expression:
    return value if isinstance(value, Expression) else Constant(value)


def field(name: str) -> Field:
    return Field(name)


def constant(value: Any) -> Constant:
    return Constant(value)


def env(name: str) -> EnvValue:
    return EnvValue(name)


def eq(left: Operand, right: Any) -> Expression:
    """``left = right``; comparing with None renders ``IS NULL``."""
    if right is None:
        return NullCheck(_field(left))
    return Comparison('=', _field(left), _value(right))


def ne(left: Operand, right: Any) -> Expression:
    if right is None:
        return NullCheck(_field(left), negate=True)
    return Comparison('<>', _field(left), _value(right))


def lt(left: Operand, right: Any) -> Expression:
    return Comparison('<', _field(left), _value(right))


def le(left: Operand, right: Any) -> Expression:
    return Comparison('<=', _field(left), _value(right))


def gt(left: Operand, right: Any) -> Expression:
    return Comparison('>', _field(left), _value(right))


def ge(left: Operand, right: Any) -> Expression:
    return Comparison('>=', _field(left), _value(right))


def like(left: Operand, pattern: Any) -> Expression:
    return Comparison(' LIKE ', _field(left), _value(pattern))


def is_null(operand: Operand) -> Expression:
    return NullCheck(_field(operand))


def is_not_null(operand: Operand) -> Expression:
    return NullCheck(_field(operand), negate=True)


def in_list(operand: Operand, values: Iterable[Any]) -> Expression:
    return InList(_field(operand), tuple(_value(v) for v in values))


def _logical(operator: str, identity: BooleanConstant, operands: Tuple[Expression, ...]) -> Expression:
    absorbing = ALWAYS_FALSE if identity.value else ALWAYS_TRUE
    kept = []
    for operand in operands:
        if operand == identity:
            continue
        if operand == absorbing:
            return absorbing
        kept.append(operand)
    if not kept:
        return identity
    if len(kept) == 1:
        return kept[0]
    return Logical(operator, tuple(kept))


def and_(*operands: Expression) -> Expression:
    """Conjunction; always-true operands are dropped."""
    return _logical('AND', ALWAYS_TRUE, operands)


def or_(*operands: Expression) -> Expression:
    """Disjunction; always-false operands are dropped."""
    return _logical('OR', ALWAYS_FALSE, operands)


def not_(operand: Expression) -> Expression:
    if isinstance(operand, BooleanConstant):
        return BooleanConstant(not operand.value)
    return Not(operand)
