"""Compile typestate machine definitions into typed Python modules."""

__version__ = "0.3.0"

from .machine_parser import Machine, MachineParser, MachineSyntaxError, StateDefinition, StateTransition  # noqa: E402
from .semantics import Diagnostic, MachineDefinitionError, SemanticModel, analyze, check, validate  # noqa: E402
from .codegen import CodeGenerator, load_machine  # noqa: E402

__all__ = [
    "CodeGenerator",
    "Diagnostic",
    "Machine",
    "MachineDefinitionError",
    "MachineParser",
    "MachineSyntaxError",
    "SemanticModel",
    "StateDefinition",
    "StateTransition",
    "analyze",
    "check",
    "load_machine",
    "validate",
]
