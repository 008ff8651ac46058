#!/usr/bin/env python3
"""
Typestate Code Generator (Python + Jinja2)

Generates typed Python state machine modules from machine definitions.
Every state becomes its own class and every event a method of the states
that declare it, so an undeclared transition is a missing attribute (and a
type-checker error) rather than a runtime branch.
"""

import argparse
import builtins
import logging
import sys
from pathlib import Path
from types import ModuleType
from typing import Any, Dict, List, Optional, Tuple

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .header_config import GENERATOR_CONFIG, get_generated_code_header
from .machine_parser import Machine, MachineParser, MachineSyntaxError
from .semantics import MachineDefinitionError, SemanticModel, analyze, check, snake_case

logger = logging.getLogger(__name__)


class CodeGenerator:
    """
    Code generator for typestate machines

    Uses Jinja2 templates to generate Python code from parsed machine
    definitions. The templates share one SemanticModel:

        states.jinja2       State enum and per-state value classes
        observer.jinja2     lifecycle hook contract
        instance.jinja2     machine instance classes and init entry points
        transitions.jinja2  one method per declared event
        persistence.jinja2  restore_<state>, restore and retrieve
    """

    def __init__(self, template_dir=None, strict: bool = False):
        if template_dir is None:
            template_dir = Path(__file__).parent / 'templates'

        # Setup Jinja2 environment
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=select_autoescape(['html', 'xml']),
            trim_blocks=True,
            lstrip_blocks=True
        )

        # Add custom filters
        self.env.filters['snake'] = snake_case

        self.strict = strict
        self.parser = MachineParser()

    def _collect_imports(self, model: SemanticModel, types_module: Optional[str]) -> List[Tuple[str, List[str]]]:
        """
        Build the import lines for the data types a machine references

        Builtin names (str, int, dict, ...) never need an import. Without a
        types module the remaining names must be injected into the module
        namespace, which is what load() does.
        """
        names = [name for name in model.data_type_names() if not hasattr(builtins, name)]
        if not names or not types_module:
            return []
        return [(types_module, names)]

    def _analyze(self, machine: Machine) -> SemanticModel:
        model = check(machine, strict=self.strict)
        logger.debug("Machine %s: %d states, initial states %s, state data %s",
                     model.name, len(model.states), sorted(model.init_states), model.state_data_types)
        return model

    def render(self, machine: Machine, types_module: Optional[str] = None) -> str:
        """
        Render the Python module for a parsed machine

        Args:
            machine: Parsed machine definition
            types_module: Module the data types are imported from

        Returns:
            Python source code

        Raises:
            MachineDefinitionError: definition fails the semantic checks
        """
        model = self._analyze(machine)
        template = self.env.get_template('machine.py.jinja2')
        return template.render(
            model=model,
            header=get_generated_code_header(machine.source),
            runtime_module=GENERATOR_CONFIG['generated_code_header']['runtime_module'],
            imports=self._collect_imports(model, types_module)
        )

    def render_text(self, text: str, types_module: Optional[str] = None, source: str = "<string>") -> str:
        """Parse definition text and render its module"""
        return self.render(self.parser.parse_text(text, source=source), types_module=types_module)

    def load(self, text: str, types: Any = None, module_name: Optional[str] = None,
             source: str = "<string>") -> ModuleType:
        """
        Compile definition text straight into a module object

        The rendered source is the same text generate() writes to disk. It is
        executed in a fresh ModuleType whose namespace is pre-filled with the
        data types, so no file or import path is needed and each call yields
        an independent module.

        Args:
            text: Machine definition
            types: Mapping (or module) providing the data types by name
            module_name: Name of the created module (default: snake_case machine name)
            source: Name used in error locations

        Returns:
            Module exposing the generated API

        Raises:
            MachineSyntaxError, MachineDefinitionError: invalid definition
            NameError: a referenced data type was not supplied
        """
        machine = self.parser.parse_text(text, source=source)
        code = self.render(machine)

        namespace = self._resolve_types(machine, types)
        module = ModuleType(module_name or f"{snake_case(machine.name)}_sm")
        module.__dict__.update(namespace)
        exec(compile(code, f"<typestate {machine.source}>", 'exec'), module.__dict__)
        return module

    def _resolve_types(self, machine: Machine, types: Any) -> Dict[str, Any]:
        model = analyze(machine)

        if types is None:
            types = {}
        elif not isinstance(types, dict):
            types = vars(types)

        namespace = {}
        missing = []
        for name in model.data_type_names():
            if name in types:
                namespace[name] = types[name]
            elif not hasattr(builtins, name):
                missing.append(name)
        if missing:
            raise NameError(f"no type supplied for {', '.join(missing)} (machine {machine.name})")
        return namespace

    def generate(self, definition_path: str, output_dir: str, types_module: Optional[str] = None) -> bool:
        """
        Generate a Python module from a machine definition file

        Args:
            definition_path: Path to the machine definition
            output_dir: Directory for the generated module
            types_module: Module the data types are imported from

        Returns:
            True if generation succeeded, False otherwise
        """
        try:
            machine = self.parser.parse_file(definition_path)

            print(f"Generating code for: {machine.name}")
            print(f"  States: {len(machine.states)}")
            print(f"  Events: {sum(len(s.transitions) for s in machine.states)}")

            output = self.render(machine, types_module=types_module)

            unresolved = [name for name in analyze(machine).data_type_names() if not hasattr(builtins, name)]
            if unresolved and not types_module:
                print(f"  Warning: no types module given; {', '.join(unresolved)} must be importable "
                      f"names in the generated module")

            # Use input filename (without extension) for output filename
            input_stem = Path(definition_path).stem
            output_path = Path(output_dir) / f"{input_stem}_sm.py"
            output_path.parent.mkdir(parents=True, exist_ok=True)

            with open(output_path, 'w', encoding='utf-8') as f:
                f.write(output)

            print(f"  ✓ Generated: {output_path}")
            return True

        except (MachineSyntaxError, MachineDefinitionError) as e:
            print(f"Error generating code:\n{e}", file=sys.stderr)
            return False
        except OSError as e:
            print(f"Error generating code: {e}", file=sys.stderr)
            return False

    def check_file(self, definition_path: str) -> bool:
        """Parse and validate a definition file without writing anything"""
        try:
            machine = self.parser.parse_file(definition_path)
            self._analyze(machine)
        except (MachineSyntaxError, MachineDefinitionError) as e:
            print(f"{e}", file=sys.stderr)
            return False
        except OSError as e:
            print(f"Error reading definition: {e}", file=sys.stderr)
            return False
        print(f"✓ {definition_path}: {machine.name} ({len(machine.states)} states)")
        return True


def load_machine(text: str, types: Any = None, module_name: Optional[str] = None,
                 strict: bool = False) -> ModuleType:
    """Compile a machine definition into a module object (see CodeGenerator.load)"""
    return CodeGenerator(strict=strict).load(text, types=types, module_name=module_name)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='Generate typed Python state machine modules from machine definitions'
    )
    parser.add_argument('definition_file', help='Input machine definition file')
    parser.add_argument('-o', '--output-dir', default='.',
                        help='Output directory for generated files')
    parser.add_argument('-t', '--template-dir', default=None,
                        help='Template directory (default: bundled templates)')
    parser.add_argument('-m', '--types-module', default=None,
                        help='Module the data types are imported from (e.g. orders.models)')
    parser.add_argument('--check', action='store_true',
                        help='Only parse and validate the definition')
    parser.add_argument('--strict', action='store_true',
                        help='Treat definition warnings as errors')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable debug logging')

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s'
    )

    # Check input file exists
    if not Path(args.definition_file).exists():
        print(f"Error: machine definition not found: {args.definition_file}", file=sys.stderr)
        return 1

    generator = CodeGenerator(template_dir=args.template_dir, strict=args.strict)
    if args.check:
        return 0 if generator.check_file(args.definition_file) else 1

    success = generator.generate(args.definition_file, args.output_dir, types_module=args.types_module)
    return 0 if success else 1


if __name__ == '__main__':
    sys.exit(main())
