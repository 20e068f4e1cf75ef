"""Runtime IR spec - instruction tree loaded from compiled code."""

from dataclasses import dataclass, field
from types import CodeType
from typing import List, Optional, Union

from tagplate.runtime.expressions import Expr, Statement

# Code region delimiters in compiled code.
OPEN = "<?py"
CLOSE = "?>"


@dataclass
class Text:
    """Literal output."""

    value: str


@dataclass
class Echo:
    """Write the value of an expression."""

    expr: Expr


@dataclass
class Exec:
    """Run a statement for its side effects."""

    statement: Statement


@dataclass
class Break:
    pass


@dataclass
class Continue:
    pass


@dataclass
class Return:
    value: Optional[Expr] = None


@dataclass
class Branch:
    """One arm of an if/elseif/else chain. ``condition`` is None for else."""

    condition: Optional[Expr]
    body: List["Node"] = field(default_factory=list)


@dataclass
class If:
    branches: List[Branch] = field(default_factory=list)


@dataclass
class Foreach:
    iterable: Expr
    value: str
    key: Optional[str] = None
    body: List["Node"] = field(default_factory=list)


@dataclass
class For:
    init: List[Statement]
    condition: Optional[Expr]
    step: List[Statement]
    body: List["Node"] = field(default_factory=list)


@dataclass
class While:
    condition: Expr
    body: List["Node"] = field(default_factory=list)


@dataclass
class Case:
    """A switch label. ``label`` is None for default."""

    label: Optional[Expr]
    body: List["Node"] = field(default_factory=list)


@dataclass
class Switch:
    subject: Expr
    cases: List[Case] = field(default_factory=list)


@dataclass
class Function:
    """A template-defined function."""

    name: str
    binder: CodeType
    body: List["Node"] = field(default_factory=list)


Node = Union[
    Text, Echo, Exec, Break, Continue, Return, If, Foreach, For, While, Switch, Function
]


@dataclass
class Program:
    """Loaded compiled code, ready to execute."""

    nodes: List[Node] = field(default_factory=list)
