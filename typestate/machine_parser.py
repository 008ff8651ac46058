"""
Machine Definition Parser

Parses typestate machine definitions and builds the syntax tree used for
code generation.

Example definition:

    Order : Cart {
      init Created { pay => Paid },
      Paid : Receipt { ship => Shipped },
      Shipped { }
    }
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from lark import Lark, Transformer, UnexpectedInput

logger = logging.getLogger(__name__)

GRAMMAR = r"""
machine: NAME [data_type] "{" states "}"

states: (state ("," state)* ","?)?

state: [INIT] NAME [data_type] "{" transitions "}"

transitions: (transition ("," transition)* ","?)?

transition: NAME "=>" NAME

data_type: ":" NAME

INIT: "init"
NAME: /[A-Za-z_][A-Za-z0-9_]*/
COMMENT: /\/\/[^\n]*/

%import common.WS
%ignore WS
%ignore COMMENT
"""


@dataclass
class StateTransition:
    """Transition edge: `event => next_state`"""
    event: str
    next_state: str
    line: int = 0
    column: int = 0


@dataclass
class StateDefinition:
    """State block: `init? Name (: DataType)? { transitions }`"""
    name: str
    init: bool = False
    associated_data_type: Optional[str] = None
    transitions: List[StateTransition] = field(default_factory=list)
    line: int = 0
    column: int = 0


@dataclass
class Machine:
    """Whole machine definition, states kept in declaration order"""
    name: str
    shared_data_type: Optional[str] = None
    states: List[StateDefinition] = field(default_factory=list)
    source: str = "<string>"
    line: int = 0
    column: int = 0


class MachineSyntaxError(ValueError):
    """Malformed machine definition, located at line/column of the source"""

    def __init__(self, message: str, source: str, line: int, column: int, context: str = ""):
        self.source = source
        self.line = line
        self.column = column
        self.context = context
        super().__init__(f"{source}:{line}:{column}: {message}")


class _TreeBuilder(Transformer):
    """Turns the lark parse tree into Machine/StateDefinition/StateTransition"""

    def transition(self, children):
        event, next_state = children
        return StateTransition(
            event=str(event),
            next_state=str(next_state),
            line=event.line,
            column=event.column
        )

    def transitions(self, children):
        return list(children)

    def data_type(self, children):
        return str(children[0])

    def state(self, children):
        init_token, name, data_type, transitions = children
        return StateDefinition(
            name=str(name),
            init=init_token is not None,
            associated_data_type=data_type,
            transitions=transitions,
            line=name.line,
            column=name.column
        )

    def states(self, children):
        return list(children)

    def machine(self, children):
        name, data_type, states = children
        return Machine(
            name=str(name),
            shared_data_type=data_type,
            states=states,
            line=name.line,
            column=name.column
        )


class MachineParser:
    """
    Parser for the machine definition language

    Only the grammar is checked here; naming and reference checks are done
    by semantics.check().
    """

    _lark = None

    def __init__(self):
        # Grammar compilation is shared by every parser instance
        if MachineParser._lark is None:
            MachineParser._lark = Lark(
                GRAMMAR,
                start='machine',
                parser='lalr',
                maybe_placeholders=True
            )

    def parse_text(self, text: str, source: str = "<string>") -> Machine:
        """
        Parse definition text and return the machine syntax tree

        Args:
            text: Definition source
            source: Name used in error locations (usually a file path)

        Returns:
            Machine with states in declaration order

        Raises:
            MachineSyntaxError: text does not match the grammar
        """
        try:
            tree = self._lark.parse(text)
        except UnexpectedInput as e:
            raise MachineSyntaxError(
                self._describe(e),
                source,
                e.line,
                e.column,
                e.get_context(text)
            ) from e

        machine = _TreeBuilder().transform(tree)
        machine.source = source
        logger.debug("Parsed machine %s from %s: %d states",
                     machine.name, source, len(machine.states))
        return machine

    def parse_file(self, path) -> Machine:
        """Parse a definition file"""
        path = Path(path)
        return self.parse_text(path.read_text(encoding='utf-8'), source=str(path))

    @staticmethod
    def _describe(error: UnexpectedInput) -> str:
        token = getattr(error, 'token', None)
        if token is not None:
            if token.type == '$END':
                return "unexpected end of input"
            expected = sorted(getattr(error, 'expected', None) or [])
            if expected:
                return f"unexpected {token!s:.20} (expected one of: {', '.join(expected)})"
            return f"unexpected {token!s:.20}"
        char = getattr(error, 'char', None)
        if char is not None:
            return f"unexpected character {char!r}"
        return "unexpected end of input"
