"""Continuation engine for ``action=query`` and its submodules.

One query carries any number of submodules (``list=``, ``meta=``,
``prop=`` modules). Each round trip sends the call's parameters plus the
current continuation cursor, lets every submodule parse the response,
and stops once the server omits the ``continue`` object.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, ClassVar, Generic, Protocol, TypeVar, overload

from mwaction import actions
from mwaction.call import Call, format_param
from mwaction.exceptions import DuplicateSubmoduleError, ProtocolMisuseError
from mwaction.logging import get_logger
from mwaction.permissions import PermissionRule
from mwaction.response import ErrorHandler, ResponseEnvelope

LOG = get_logger(__name__)

R = TypeVar("R")

# Query parameters whose values several submodules share, pipe-joined.
_MODULE_SLOTS = ("list", "meta", "prop")


class Dispatcher(Protocol):
    """What the engine needs from a site connection."""

    def check_permissions(self, call: Call) -> None: ...

    def send(
        self,
        call: Call,
        *,
        extra_query: Mapping[str, str] | None = None,
        handlers: Mapping[str, ErrorHandler] | None = None,
    ) -> ResponseEnvelope[Any]: ...


class ContinuationState:
    """The server's resumption cursor for one logical query.

    Starts empty and "has more"; once a response arrives without a
    ``continue`` object it is exhausted for good.
    """

    def __init__(self) -> None:
        self._cursor: dict[str, str] = {}
        self._exhausted = False

    @property
    def cursor(self) -> Mapping[str, str]:
        return MappingProxyType(self._cursor)

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    def advance(self, marker: Mapping[str, Any] | None) -> None:
        """Take the ``continue`` object of the latest response.

        The new cursor replaces the previous one entirely; the server
        always sends the complete set of keys to echo back.

        Raises:
            ProtocolMisuseError: If the state is already exhausted.
        """
        if self._exhausted:
            raise ProtocolMisuseError("Continuation is exhausted and cannot advance")
        if marker is None:
            self._cursor = {}
            self._exhausted = True
            return
        cursor: dict[str, str] = {}
        for key, value in marker.items():
            formatted = format_param(value)
            if formatted is not None:
                cursor[str(key)] = formatted
        self._cursor = cursor


@dataclass(frozen=True)
class ResponseChain(Sequence[ResponseEnvelope[Any]]):
    """The responses of one finished continuation, in round order.

    Unless the query stored every response, only the head is kept.

    Attributes:
        responses: Stored envelopes; the first is always the head.
        rounds: Number of round trips performed.
    """

    responses: tuple[ResponseEnvelope[Any], ...]
    rounds: int

    @property
    def head(self) -> ResponseEnvelope[Any]:
        return self.responses[0]

    @property
    def complete(self) -> bool:
        """Whether every round's response was stored."""
        return len(self.responses) == self.rounds

    @overload
    def __getitem__(self, index: int) -> ResponseEnvelope[Any]: ...

    @overload
    def __getitem__(self, index: slice) -> Sequence[ResponseEnvelope[Any]]: ...

    def __getitem__(self, index: int | slice) -> Any:
        return self.responses[index]

    def __len__(self) -> int:
        return len(self.responses)

    def __iter__(self) -> Iterator[ResponseEnvelope[Any]]:
        return iter(self.responses)


class Submodule(Generic[R]):
    """A named contributor to a query with its own result container.

    Subclasses set ``module_type`` (``"list"``, ``"meta"``, ``"prop"``
    or None), ``module_name`` and ``prefix``, and implement
    ``new_result()`` and ``parse()``. Parameters are namespaced with the
    prefix; once responses start arriving, new parameters are ignored
    with a warning.
    """

    module_type: ClassVar[str | None] = None
    module_name: ClassVar[str] = ""
    prefix: ClassVar[str] = ""

    def __init__(self) -> None:
        self._params: dict[str, str] = {}
        self._rules: list[PermissionRule] = []
        self._parsing = False
        self.result: R = self.new_result()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(params={self._params!r})"

    def new_result(self) -> R:
        """Create the empty result container."""
        raise NotImplementedError

    def parse(self, response: ResponseEnvelope[Any]) -> None:
        """Fold one round trip's response into ``self.result``."""
        raise NotImplementedError

    # -- parameters ------------------------------------------------------------

    def _late(self, what: str) -> bool:
        if self._parsing:
            LOG.warning(
                "submodule_late_parameter",
                submodule=type(self).__name__,
                parameter=what,
                detail="added during the parsing phase; it will not be applied",
            )
        return self._parsing

    def set(self, name: str, value: Any, *, prefixed: bool = True) -> Submodule[R]:
        """Set ``<prefix><name>``; ``prefixed=False`` sets *name* verbatim."""
        key = f"{self.prefix}{name}" if prefixed else name
        if self._late(key):
            return self
        formatted = format_param(value)
        if formatted is not None:
            self._params[key] = formatted
        return self

    def limit(self, n: int) -> Submodule[R]:
        """Page size: positive values are explicit, others ask for the maximum."""
        return self.set("limit", n if n > 0 else "max")

    def require(self, *capabilities: str) -> Submodule[R]:
        if not self._late("required rights"):
            self._rules.append(PermissionRule.all_of(*capabilities))
        return self

    def require_rule(self, rule: PermissionRule) -> Submodule[R]:
        if not self._late("required rights"):
            self._rules.append(rule)
        return self

    @property
    def params(self) -> Mapping[str, str]:
        return MappingProxyType(self._params)

    @property
    def rules(self) -> tuple[PermissionRule, ...]:
        return tuple(self._rules)

    def begin_parsing(self) -> None:
        self._parsing = True

    # -- helpers for parse() -----------------------------------------------------

    @staticmethod
    def section(response: ResponseEnvelope[Any], *path: str) -> Any:
        """Walk ``path`` into the structured body; None if any step is missing."""
        node: Any = response.structured()
        for key in path:
            if not isinstance(node, Mapping) or key not in node:
                return None
            node = node[key]
        return node


class Query:
    """Drives one logical query across as many round trips as the server needs.

    Args:
        dispatcher: Site connection used to check rights and send calls.
        description: Verb phrase for errors and logs.
        keep_responses: Store every round's envelope in the returned
            chain; otherwise only the head is kept.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        description: str = "query information",
        *,
        keep_responses: bool = False,
    ) -> None:
        self.call = Call(actions.QUERY, description)
        self.keep_responses = keep_responses
        self._dispatcher = dispatcher
        self._submodules: dict[type[Submodule[Any]], Submodule[Any]] = {}
        self._started = False

    def add(self, submodule: Submodule[R]) -> Submodule[R]:
        """Register a submodule and return it for chaining.

        Raises:
            DuplicateSubmoduleError: If one of the same kind is registered.
            ProtocolMisuseError: If the query has already started.
        """
        kind = type(submodule)
        if kind in self._submodules:
            raise DuplicateSubmoduleError(f"{kind.__name__} is already part of this query")
        if self._started:
            raise ProtocolMisuseError("Cannot add submodules to a query that has started")
        self._submodules[kind] = submodule
        return submodule

    @property
    def submodules(self) -> tuple[Submodule[Any], ...]:
        return tuple(self._submodules.values())

    def _prepare(self) -> None:
        """Fold submodule module names, parameters and rights into the call."""
        slots: dict[str, list[str]] = {slot: [] for slot in _MODULE_SLOTS}
        for submodule in self._submodules.values():
            if submodule.module_type in slots and submodule.module_name:
                slots[submodule.module_type].append(submodule.module_name)
            self.call.update_query(submodule.params)
            for rule in submodule.rules:
                self.call.require_rule(rule)
        for slot, names in slots.items():
            if names:
                self.call.set_query(slot, names)

    def iter_responses(self) -> Iterator[ResponseEnvelope[Any]]:
        """Run the query lazily, yielding each round's envelope after parsing.

        Permissions are checked once, before the first round trip.
        """
        if self._started:
            raise ProtocolMisuseError(f"'{self.call.description}' has already run")
        self._started = True
        self._prepare()
        self._dispatcher.check_permissions(self.call)

        state = ContinuationState()
        rounds = 0
        while not state.exhausted:
            rounds += 1
            LOG.debug(
                "continuation_round",
                action=self.call.description,
                round=rounds,
                cursor=dict(state.cursor),
            )
            envelope = self._dispatcher.send(self.call, extra_query=state.cursor)
            envelope.parse()
            for submodule in self._submodules.values():
                submodule.begin_parsing()
                submodule.parse(envelope)

            marker = envelope.structured().get("continue")
            state.advance(marker if isinstance(marker, Mapping) else None)
            yield envelope

    def run(self) -> ResponseChain:
        """Run the query to completion and return its response chain."""
        stored: list[ResponseEnvelope[Any]] = []
        rounds = 0
        for envelope in self.iter_responses():
            rounds += 1
            if self.keep_responses or not stored:
                stored.append(envelope)
        LOG.debug("continuation_done", action=self.call.description, rounds=rounds)
        return ResponseChain(tuple(stored), rounds)
