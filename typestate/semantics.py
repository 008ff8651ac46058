"""
Semantic model of a parsed machine

Derives the lookup tables shared by every template (initial states, state
data types, generated names) and checks the definition for mistakes the
grammar cannot catch.
"""

import keyword
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from .machine_parser import Machine, StateDefinition

logger = logging.getLogger(__name__)

# Names of the generated instance API; an event method may not shadow them
RESERVED_EVENT_NAMES = {'init', 'id', 'data', 'state', 'observer', 'consumed', 'to_record', 'STATE'}

# Names imported or defined by every generated module
RUNTIME_NAMES = {
    'annotations', 'Enum', 'Any', 'ClassVar', 'Dict', 'Generic', 'Optional', 'Type', 'TypeVar', 'Union',
    'CtxT', 'ObserverT', 'StateT',
    'DataStateValue', 'Encoded', 'EmptyIdError', 'InitObserverError', 'InvalidStateError',
    'MachineInstance', 'Retriever', 'RetrieveRestoreError', 'RetrieverError', 'RestoreError',
    'StateValue', 'TransitionError', 'decode_payload', 'reject_payload',
    'restore', 'retrieve', 'InvalidIdError', '_RESTORERS',
}

# Parameters and locals of generated methods; a bare state, class or data type
# name equal to one of these would be shadowed inside the method body
GENERATED_LOCALS = {
    'self', 'cls', 'ctx', 'observer', 'id', 'data', 'state_data', 'resolved', 'exc',
    'shared', 'own', 'restorer', 'state_name', 'retriever',
}

_SNAKE_BOUNDARY = re.compile(r'(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])')


def snake_case(name: str) -> str:
    """Convert a state name to the snake_case used in hook names (HTTPError -> http_error)"""
    return _SNAKE_BOUNDARY.sub('_', name).lower()


@dataclass
class Diagnostic:
    """Single problem found in a machine definition"""
    severity: str  # "error" or "warning"
    message: str
    line: int = 0
    column: int = 0

    def format(self, source: str) -> str:
        return f"{source}:{self.line}:{self.column}: {self.severity}: {self.message}"


class MachineDefinitionError(ValueError):
    """Machine definition parsed but cannot be generated"""

    def __init__(self, source: str, diagnostics: List[Diagnostic]):
        self.source = source
        self.diagnostics = diagnostics
        super().__init__("\n".join(d.format(source) for d in diagnostics))


@dataclass
class SemanticModel:
    """Lookup structures derived from the syntax tree"""
    machine: Machine
    init_states: Set[str] = field(default_factory=set)
    state_data_types: Dict[str, str] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.machine.name

    @property
    def shared_data_type(self) -> Optional[str]:
        return self.machine.shared_data_type

    @property
    def states(self) -> List[StateDefinition]:
        return self.machine.states

    @property
    def state_names(self) -> List[str]:
        return [state.name for state in self.machine.states]

    @property
    def wrapped_name(self) -> str:
        return f"Wrapped{self.machine.name}"

    @property
    def observer_name(self) -> str:
        return f"{self.machine.name}Observer"

    def instance_name(self, state_name: str) -> str:
        """Class name of the machine instance sitting in `state_name`"""
        return f"{self.machine.name}{state_name}"

    def is_init(self, state_name: str) -> bool:
        return state_name in self.init_states

    def data_type(self, state_name: str) -> Optional[str]:
        return self.state_data_types.get(state_name)

    def data_type_names(self) -> List[str]:
        """Every distinct data type referenced by the machine, in declaration order"""
        names = []
        if self.machine.shared_data_type:
            names.append(self.machine.shared_data_type)
        for state in self.machine.states:
            dt = state.associated_data_type
            if dt and dt not in names:
                names.append(dt)
        return names

    def generated_names(self) -> Set[str]:
        """Top-level names defined by the generated module"""
        names = {'State', self.machine.name, self.observer_name, self.wrapped_name}
        for state in self.machine.states:
            names.add(state.name)
            names.add(self.instance_name(state.name))
            names.add(f"restore_{snake_case(state.name)}")
        return names


def analyze(machine: Machine) -> SemanticModel:
    """Walk the syntax tree once and collect initial states and state data types"""
    model = SemanticModel(machine=machine)
    for state in machine.states:
        if state.init:
            model.init_states.add(state.name)
        if state.associated_data_type:
            model.state_data_types[state.name] = state.associated_data_type
    return model


def validate(machine: Machine) -> List[Diagnostic]:
    """
    Check a machine definition for problems the grammar accepts

    Returns:
        Diagnostics in source order; empty list when the definition is clean
    """
    diagnostics: List[Diagnostic] = []

    def error(message, node):
        diagnostics.append(Diagnostic('error', message, node.line, node.column))

    declared: Dict[str, StateDefinition] = {}
    hook_names: Dict[str, str] = {}

    if keyword.iskeyword(machine.name):
        error(f"machine name '{machine.name}' is a Python keyword", machine)
    for type_name in filter(None, [machine.shared_data_type] + [s.associated_data_type for s in machine.states]):
        if keyword.iskeyword(type_name):
            error(f"data type '{type_name}' is a Python keyword", machine)

    for state in machine.states:
        if state.name in declared:
            first = declared[state.name]
            error(f"state '{state.name}' already declared at line {first.line}", state)
            continue
        declared[state.name] = state

        if keyword.iskeyword(state.name):
            error(f"state name '{state.name}' is a Python keyword", state)

        hook = snake_case(state.name)
        if hook in hook_names:
            error(f"state '{state.name}' and state '{hook_names[hook]}' both map to hooks "
                  f"on_enter_{hook}/on_exit_{hook}", state)
        else:
            hook_names[hook] = state.name

    model = analyze(machine)
    generated = model.generated_names()
    fixed_names = {'State', machine.name, model.observer_name, model.wrapped_name}
    for state in declared.values():
        if state.name in fixed_names or state.name in RUNTIME_NAMES:
            error(f"state name '{state.name}' collides with a generated name", state)
        elif state.name in GENERATED_LOCALS or state.name == 'init':
            error(f"state name '{state.name}' is reserved by the generated methods", state)
        for other in declared.values():
            if model.instance_name(other.name) == state.name:
                error(f"state name '{state.name}' collides with the class of state '{other.name}'", state)

        class_name = model.instance_name(state.name)
        if class_name in fixed_names or class_name in RUNTIME_NAMES or class_name in GENERATED_LOCALS:
            error(f"class '{class_name}' of state '{state.name}' collides with a generated name", state)

    for type_name in model.data_type_names():
        if (type_name in declared or type_name in generated or type_name in RUNTIME_NAMES
                or type_name in GENERATED_LOCALS):
            error(f"data type '{type_name}' collides with a generated name", machine)

    for state in machine.states:
        events: Dict[str, int] = {}
        for transition in state.transitions:
            if transition.event in events:
                error(f"event '{transition.event}' declared twice on state '{state.name}' "
                      f"(first at line {events[transition.event]})", transition)
            else:
                events[transition.event] = transition.line

            if keyword.iskeyword(transition.event):
                error(f"event name '{transition.event}' is a Python keyword", transition)
            elif transition.event in RESERVED_EVENT_NAMES or transition.event.startswith('_'):
                error(f"event name '{transition.event}' is reserved by the instance API", transition)

            if transition.next_state not in declared:
                error(f"transition '{transition.event}' targets undeclared state "
                      f"'{transition.next_state}'", transition)

    if not model.init_states:
        diagnostics.append(Diagnostic(
            'warning',
            f"machine '{machine.name}' has no initial state; instances can only be restored",
            machine.line,
            machine.column
        ))

    diagnostics.sort(key=lambda d: (d.line, d.column))
    return diagnostics


def check(machine: Machine, strict: bool = False) -> SemanticModel:
    """
    Validate the machine and derive its semantic model

    Args:
        machine: Parsed machine
        strict: Treat warnings as errors

    Raises:
        MachineDefinitionError: definition has errors (or warnings when strict)
    """
    diagnostics = validate(machine)
    for diagnostic in diagnostics:
        if diagnostic.severity == 'warning':
            logger.warning(diagnostic.format(machine.source))

    failing = [d for d in diagnostics if d.severity == 'error' or strict]
    if failing:
        raise MachineDefinitionError(machine.source, failing)
    return analyze(machine)
