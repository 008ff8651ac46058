"""Shared fixtures: example machines, their data types and a recording observer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

import pytest

from typestate import load_machine

ORDER_DEFINITION = """
Order : Cart {
  init Created { pay => Paid },
  Paid : Receipt { ship => Shipped },
  Shipped { }
}
"""

# Door has no shared data; Closed is initial and also a transition target
DOOR_DEFINITION = """
Door {
  init Closed { open => Opened, lock => Locked },
  Opened { close => Closed },
  Locked : Key { unlock => Closed },
}
"""

# Job's initial state carries its own data
JOB_DEFINITION = """
Job {
  init Queued : Ticket { start => Running },
  Running { finish => Done },
  Done { }
}
"""


@dataclass
class Cart:
    items: List[str] = field(default_factory=list)
    total: int = 0


@dataclass
class Receipt:
    number: str
    amount: int


@dataclass
class Key:
    code: str


@dataclass
class Ticket:
    priority: int


class HookFailed(Exception):
    pass


def make_recorder(base, init_id: Optional[str] = None, fail_on: Optional[str] = None,
                  error_type=Exception, failure=HookFailed):
    """
    Build an observer subclassing a generated `<Machine>Observer` that records
    every hook call as (hook name, positional args after ctx).
    """

    class Recorder(base):
        def __init__(self):
            self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
            self.fail_on = fail_on

    Recorder.error_type = error_type

    def wrap(name):
        parent = getattr(base, name)

        async def hook(self, ctx, *args):
            self.calls.append((name, args))
            if name == self.fail_on:
                raise failure(name)
            if name == "on_init" and init_id is not None:
                return init_id
            return await parent(self, ctx, *args)

        return hook

    for name in dir(base):
        if name.startswith("on_"):
            setattr(Recorder, name, wrap(name))
    return Recorder()


@pytest.fixture
def order_sm():
    return load_machine(ORDER_DEFINITION, types={"Cart": Cart, "Receipt": Receipt})


@pytest.fixture
def door_sm():
    return load_machine(DOOR_DEFINITION, types={"Key": Key})


@pytest.fixture
def job_sm():
    return load_machine(JOB_DEFINITION, types={"Ticket": Ticket})


@pytest.fixture
def cart() -> Cart:
    return Cart(items=["book", "pen"], total=42)


@pytest.fixture
def receipt() -> Receipt:
    return Receipt(number="R-1", amount=42)


@pytest.fixture
def ctx() -> dict:
    return {}
