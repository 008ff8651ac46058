"""
Runtime support for generated typestate machines

Generated modules import their base classes, error types and payload
helpers from here. Nothing in this module knows about a particular machine.
"""

from __future__ import annotations

import abc
import enum
import functools
from dataclasses import dataclass
from typing import Any, ClassVar, Generic, NamedTuple, Optional, Tuple, Type, TypeVar

from pydantic import TypeAdapter, ValidationError

CtxT = TypeVar("CtxT")
DataT = TypeVar("DataT")
StateT = TypeVar("StateT", bound="StateValue")
ObserverT = TypeVar("ObserverT")


# ---------- errors ----------

class MachineError(Exception):
    """Base class of every error raised by generated machine code"""


class InitError(MachineError):
    """init() did not produce an instance"""


class EmptyIdError(InitError):
    """Neither the caller nor Observer.on_init supplied an id"""

    def __init__(self):
        super().__init__("no id supplied by the caller or returned by on_init")


class InitObserverError(InitError):
    """An observer hook failed during init()"""

    def __init__(self, error: BaseException):
        self.error = error
        super().__init__(f"observer failed during init: {error!r}")


class TransitionError(MachineError):
    """
    An observer hook failed during a transition

    `instance` is the source instance, released again so the caller can
    retry or persist it.
    """

    def __init__(self, error: BaseException, instance: "MachineInstance"):
        self.error = error
        self.instance = instance
        super().__init__(f"observer failed during transition from {instance.STATE}: {error!r}")


class RestoreError(MachineError):
    """Persisted state could not be turned back into an instance"""


class EmptyDataError(RestoreError):
    """State requires a payload that was not supplied"""


class UnexpectedDataError(RestoreError):
    """Payload supplied for a state or machine that declares none"""


class InvalidDataError(RestoreError):
    """Payload does not decode into the declared type"""


class InvalidIdError(RestoreError):
    """Persisted record carries an empty instance id"""

    def __init__(self, id: Any):
        self.id = id
        super().__init__(f"invalid instance id {id!r}")


class InvalidStateError(RestoreError):
    """State name does not match any declared state"""

    def __init__(self, state_name: Any):
        self.state_name = state_name
        super().__init__(f"unknown state {state_name!r}")


class RetrieveError(MachineError):
    """retrieve() did not produce an instance"""

    def __init__(self, error: BaseException):
        self.error = error
        super().__init__(f"{type(self).__name__}: {error!r}")


class RetrieveRestoreError(RetrieveError):
    """Stored data was fetched but could not be restored; `error` is the RestoreError"""


class RetrieverError(RetrieveError):
    """Retriever.on_retrieve failed; `error` is the retriever's exception"""


class ConsumedInstanceError(MachineError):
    """An instance was used after a transition consumed it"""

    def __init__(self, instance: "MachineInstance"):
        super().__init__(f"{type(instance).__name__} {instance.id()!r} was already consumed by a transition")


# ---------- encoded payloads ----------

class Encoding(enum.Enum):
    """Representation of a persisted payload"""
    JSON = "json"


@functools.lru_cache(maxsize=None)
def _adapter(type_: Any) -> TypeAdapter:
    return TypeAdapter(type_)


@dataclass(frozen=True)
class Encoded:
    """Tagged container for a persisted payload"""
    encoding: Encoding
    value: Any

    @classmethod
    def json(cls, value: Any) -> "Encoded":
        """Wrap a JSON-compatible value (dicts, lists, strings, numbers, ...)"""
        return cls(Encoding.JSON, value)

    @classmethod
    def encode(cls, obj: Any, type_: Any = None) -> "Encoded":
        """Dump `obj` as a JSON-compatible value using its declared type"""
        adapter = _adapter(type_ if type_ is not None else type(obj))
        return cls(Encoding.JSON, adapter.dump_python(obj, mode="json"))


def decode_payload(encoded: Optional[Encoded], type_: Any) -> Any:
    """
    Decode a required payload into `type_`

    Raises:
        EmptyDataError: no payload supplied
        InvalidDataError: payload does not validate against `type_`
    """
    if encoded is None:
        raise EmptyDataError(f"missing {getattr(type_, '__name__', type_)} payload")
    if not isinstance(encoded, Encoded):
        raise InvalidDataError(f"expected an Encoded payload, got {type(encoded).__name__}")

    if encoded.encoding is Encoding.JSON:
        try:
            return _adapter(type_).validate_python(encoded.value)
        except ValidationError as e:
            raise InvalidDataError(str(e)) from e
    raise InvalidDataError(f"unsupported encoding {encoded.encoding!r}")


def reject_payload(encoded: Optional[Encoded], what: str = "state") -> None:
    """Raise UnexpectedDataError when a payload is supplied where none is declared"""
    if encoded is not None:
        raise UnexpectedDataError(f"unexpected {what} payload")


class PersistedRecord(NamedTuple):
    """Stored form of an instance, the same triple Retriever.on_retrieve returns"""
    state: str
    data: Optional[Encoded]
    state_data: Optional[Encoded]


# ---------- state values ----------

class StateValue:
    """Per-state value of a state without data"""

    __slots__ = ()

    tag: ClassVar[enum.Enum]

    def encode(self) -> Optional[Encoded]:
        return None

    def __eq__(self, other):
        return type(other) is type(self)

    def __hash__(self):
        return hash(type(self))

    def __repr__(self):
        return f"{type(self).__name__}()"


class DataStateValue(StateValue, Generic[DataT]):
    """Per-state value owning one value of the state's declared data type"""

    __slots__ = ("_data",)

    data_type: ClassVar[Any]

    def __init__(self, data: DataT):
        self._data = data

    def data(self) -> DataT:
        return self._data

    def encode(self) -> Optional[Encoded]:
        return Encoded.encode(self._data, self.data_type)

    def __eq__(self, other):
        return type(other) is type(self) and other._data == self._data

    __hash__ = None

    def __repr__(self):
        return f"{type(self).__name__}({self._data!r})"


# ---------- machine instances ----------

class MachineInstance(Generic[StateT, CtxT, ObserverT]):
    """
    Machine instance sitting in one state

    Transitions consume the instance and return a new one; using a consumed
    instance raises ConsumedInstanceError.
    """

    __slots__ = ("_observer", "_id", "_state", "_consumed")

    STATE: ClassVar[enum.Enum]

    def __init__(self, observer: ObserverT, id: str, state: StateT):
        if not id:
            raise ValueError("machine instance requires a non-empty id")
        self._observer = observer
        self._id = id
        self._state = state
        self._consumed = False

    def id(self) -> str:
        return self._id

    @property
    def state(self) -> StateT:
        return self._state

    @property
    def observer(self) -> ObserverT:
        return self._observer

    @property
    def consumed(self) -> bool:
        return self._consumed

    def to_record(self) -> PersistedRecord:
        """Encode this instance into what Retriever.on_retrieve hands back to restore()"""
        return PersistedRecord(self.STATE.value, self._encode_data(), self._state.encode())

    def _encode_data(self) -> Optional[Encoded]:
        return None

    def _consume(self) -> None:
        if self._consumed:
            raise ConsumedInstanceError(self)
        self._consumed = True

    def _release(self) -> None:
        self._consumed = False

    def _fields(self) -> Tuple[Any, ...]:
        return (self._id, self._state)

    def __eq__(self, other):
        # observer identity is not part of the instance's value
        return type(other) is type(self) and other._fields() == self._fields()

    __hash__ = None

    def __repr__(self):
        return f"{type(self).__name__}({', '.join(repr(f) for f in self._fields())})"


# ---------- persistence store ----------

class Retriever(abc.ABC, Generic[CtxT]):
    """
    Store capability used by the generated retrieve()

    Implementations fetch the persisted record of an id. The retriever is also
    used as the observer of the restored instance.
    """

    retriever_error_type: ClassVar[Type[BaseException]] = Exception

    @abc.abstractmethod
    async def on_retrieve(self, ctx: CtxT, id: str) -> Tuple[str, Optional[Encoded], Optional[Encoded]]:
        """Return (state name, encoded shared data, encoded state data) for `id`"""
