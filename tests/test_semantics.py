"""Semantic model derivation and definition diagnostics."""

from __future__ import annotations

import logging

import pytest

from typestate.machine_parser import Machine, MachineParser, StateDefinition
from typestate.semantics import MachineDefinitionError, analyze, check, snake_case, validate

from conftest import ORDER_DEFINITION


def parse(text: str):
    return MachineParser().parse_text(text, source="m.fsm")


def messages(text: str, severity: str = "error"):
    return [d.message for d in validate(parse(text)) if d.severity == severity]


def test_analyze_collects_initial_states_and_state_data_types() -> None:
    model = analyze(parse("""
    Flow : Shared {
      init A : Alpha { go => B },
      init B { back => A },
      C : Gamma { },
    }
    """))

    assert model.init_states == {"A", "B"}
    assert model.state_data_types == {"A": "Alpha", "C": "Gamma"}
    assert model.data_type_names() == ["Shared", "Alpha", "Gamma"]
    assert model.instance_name("A") == "FlowA"
    assert model.wrapped_name == "WrappedFlow"
    assert model.observer_name == "FlowObserver"
    assert model.is_init("B") and not model.is_init("C")
    assert model.data_type("B") is None


def test_order_example_is_clean() -> None:
    assert validate(parse(ORDER_DEFINITION)) == []


@pytest.mark.parametrize(
    "name, expected",
    [
        ("Created", "created"),
        ("ShippedToCustomer", "shipped_to_customer"),
        ("HTTPError", "http_error"),
        ("Step2Done", "step2_done"),
        ("already_snake", "already_snake"),
    ],
)
def test_snake_case(name: str, expected: str) -> None:
    assert snake_case(name) == expected


def test_duplicate_state_is_reported_with_location() -> None:
    diagnostics = validate(parse("M {\n  init A { },\n  A { }\n}"))

    assert len(diagnostics) == 1
    assert diagnostics[0].severity == "error"
    assert diagnostics[0].line == 3
    assert "state 'A' already declared at line 2" in diagnostics[0].message


def test_undeclared_transition_target() -> None:
    assert messages("M { init A { go => Nowhere } }") == [
        "transition 'go' targets undeclared state 'Nowhere'"
    ]


def test_event_declared_twice_on_one_state() -> None:
    errors = messages("M { init A { go => B, go => A }, B { } }")

    assert len(errors) == 1
    assert "event 'go' declared twice on state 'A'" in errors[0]


def test_same_event_on_different_states_is_fine() -> None:
    assert messages("M { init A { go => B }, B { go => A } }") == []


@pytest.mark.parametrize("event", ["data", "id", "init_", "state", "observer", "to_record", "_hidden"])
def test_event_names_reserved_by_the_instance_api(event: str) -> None:
    errors = messages(f"M {{ init A {{ {event} => A }} }}")

    if event == "init_":
        assert errors == []
    else:
        assert errors == [f"event name '{event}' is reserved by the instance API"]


def test_python_keywords_are_rejected() -> None:
    errors = messages("M { init A { pass => A }, lambda { } }")

    assert "event name 'pass' is a Python keyword" in errors
    assert "state name 'lambda' is a Python keyword" in errors


def test_states_with_colliding_hook_names() -> None:
    errors = messages("M { init FooBar { }, Foo_bar { } }")

    assert errors == ["state 'Foo_bar' and state 'FooBar' both map to hooks on_enter_foo_bar/on_exit_foo_bar"]


def test_names_colliding_with_generated_code() -> None:
    assert messages("M { init State { } }") == ["state name 'State' collides with a generated name"]
    assert messages("M { init A : A { } }") == ["data type 'A' collides with a generated name"]
    assert messages("M { init B { }, MB { } }") == ["state name 'MB' collides with the class of state 'B'"]
    assert messages("Review { init Draft { submit => Observer }, Observer { } }") == [
        "class 'ReviewObserver' of state 'Observer' collides with a generated name"
    ]
    assert messages("W { init rappedW { } }") == ["class 'WrappedW' of state 'rappedW' collides with a generated name"]
    assert messages("Job : data { init A { } }") == ["data type 'data' collides with a generated name"]


@pytest.mark.parametrize("name", ["observer", "id", "data", "state_data", "self", "ctx", "resolved", "exc"])
def test_state_names_used_inside_generated_methods(name: str) -> None:
    errors = messages(f"Job {{ init queued {{ start => {name} }}, {name} {{ }} }}")

    assert errors == [f"state name '{name}' is reserved by the generated methods"]


def test_init_cannot_name_a_state() -> None:
    machine = Machine("Job", states=[StateDefinition("init", init=True, line=1, column=10)], line=1, column=1)

    assert [d.message for d in validate(machine)] == ["state name 'init' is reserved by the generated methods"]


def test_missing_initial_state_is_a_warning() -> None:
    machine = parse("M { A { go => A } }")

    diagnostics = validate(machine)
    assert [d.severity for d in diagnostics] == ["warning"]
    assert "has no initial state" in diagnostics[0].message


def test_check_logs_warnings_and_returns_model(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="typestate.semantics"):
        model = check(parse("M { A { } }"))

    assert model.name == "M"
    assert "m.fsm:1:1: warning: machine 'M' has no initial state" in caplog.text


def test_check_strict_turns_warnings_into_errors() -> None:
    with pytest.raises(MachineDefinitionError) as excinfo:
        check(parse("M { A { } }"), strict=True)

    assert [d.severity for d in excinfo.value.diagnostics] == ["warning"]


def test_check_raises_with_every_error() -> None:
    with pytest.raises(MachineDefinitionError) as excinfo:
        check(parse("M {\n  init A { go => X },\n  A { }\n}"))

    error = excinfo.value
    assert isinstance(error, ValueError)
    assert [d.line for d in error.diagnostics] == [2, 3]
    assert str(error).splitlines()[0].startswith("m.fsm:2:")
