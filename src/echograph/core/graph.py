# ABOUTME: Workflow graph builder and superstep executor with conditional edges and Send fan-out
# ABOUTME: Branch results join at a barrier and merge into the StateStore in dispatch order

import asyncio
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from echograph.core.state import PipelineState, StateStore
from echograph.errors import GraphError, GraphRecursionError
from echograph.utils.logging import get_logger

logger = get_logger(__name__)

START = "__start__"
END = "__end__"

NodeFn = Callable[[PipelineState, Any], Awaitable[Mapping[str, Any] | None]]


@dataclass(frozen=True)
class Send:
    """Route one payload to one activation of ``node``."""

    node: str
    payload: Any = None


Route = str | Send
Router = Callable[[PipelineState], Route | Sequence[Route]]


@dataclass(frozen=True)
class Node:
    name: str
    fn: NodeFn
    # Bounds the whole activation group of this node within a superstep
    deadline: float | None = None


@dataclass(frozen=True)
class Adjacency:
    static: tuple[str, ...] = ()
    router: Router | None = None


@dataclass(frozen=True)
class _Activation:
    node: str
    payload: Any = None
    fanned_out: bool = False


_PENDING = object()
_DROPPED = object()


class StateGraph:
    """Mutable builder for a workflow graph."""

    def __init__(self) -> None:
        self._nodes: dict[str, Node] = {}
        self._edges: dict[str, list[str]] = {}
        self._routers: dict[str, Router] = {}
        self._entry_point: str | None = None

    def add_node(self, name: str, fn: NodeFn, *, deadline: float | None = None) -> "StateGraph":
        if name in (START, END):
            raise GraphError(f"'{name}' is a reserved node name")
        if name in self._nodes:
            raise GraphError(f"Node '{name}' is already defined")
        if deadline is not None and deadline <= 0:
            raise GraphError(f"Deadline for node '{name}' must be positive")

        self._nodes[name] = Node(name=name, fn=fn, deadline=deadline)
        return self

    def add_edge(self, src: str, dst: str) -> "StateGraph":
        self._edges.setdefault(src, []).append(dst)
        return self

    def add_conditional_edges(self, src: str, router: Router) -> "StateGraph":
        if src in self._routers:
            raise GraphError(f"Node '{src}' already has a router")
        self._routers[src] = router
        return self

    def set_entry_point(self, name: str) -> "StateGraph":
        self._entry_point = name
        return self

    def compile(self) -> "CompiledGraph":
        """Validate the definition and freeze it.

        Raises:
            GraphError: For unknown edge endpoints, a missing entry point, or
                nodes without any outgoing edge
        """
        if self._entry_point is None:
            raise GraphError("Graph has no entry point")
        if self._entry_point not in self._nodes:
            raise GraphError(f"Entry point '{self._entry_point}' is not a node")

        for src, targets in self._edges.items():
            if src not in self._nodes:
                raise GraphError(f"Edge source '{src}' is not a node")
            for dst in targets:
                if dst != END and dst not in self._nodes:
                    raise GraphError(f"Edge target '{dst}' is not a node")

        for src in self._routers:
            if src not in self._nodes:
                raise GraphError(f"Router source '{src}' is not a node")

        for name in self._nodes:
            if not self._edges.get(name) and name not in self._routers:
                raise GraphError(f"Node '{name}' has no outgoing edge")

        names = tuple(self._nodes)
        return CompiledGraph(
            nodes=tuple(self._nodes[name] for name in names),
            index={name: position for position, name in enumerate(names)},
            adjacency=tuple(
                Adjacency(static=tuple(dict.fromkeys(self._edges.get(name, ()))), router=self._routers.get(name))
                for name in names
            ),
            entry_point=self._entry_point,
        )


@dataclass(frozen=True)
class CompiledGraph:
    """Immutable arena of nodes addressed by name or index."""

    nodes: tuple[Node, ...]
    index: Mapping[str, int]
    adjacency: tuple[Adjacency, ...]
    entry_point: str

    def node(self, name: str) -> Node:
        try:
            return self.nodes[self.index[name]]
        except KeyError:
            raise GraphError(f"Unknown node '{name}'") from None

    def edges(self, name: str) -> Adjacency:
        return self.adjacency[self.index[name]]

    async def invoke(self, state: PipelineState | StateStore, *, recursion_limit: int = 25) -> PipelineState:
        """Run the graph to completion.

        Args:
            state: Initial state, or a store to accumulate into
            recursion_limit: Maximum number of supersteps

        Returns:
            The final merged state

        Raises:
            GraphRecursionError: If the run needs more than ``recursion_limit`` supersteps
            Exception: The first error raised by a statically activated node
        """
        store = state if isinstance(state, StateStore) else StateStore(state)
        frontier = [_Activation(self.entry_point)]
        step = 0

        while frontier:
            if step >= recursion_limit:
                raise GraphRecursionError(f"Recursion limit of {recursion_limit} supersteps reached")
            step += 1

            snapshot = store.snapshot()
            results = await self._run_superstep(frontier, snapshot, step)

            # Join barrier passed: merge in dispatch order
            for result in results:
                if isinstance(result, Mapping):
                    await store.apply(result)

            frontier = self._next_frontier(frontier, store.snapshot())

        return store.snapshot()

    async def _run_superstep(self, frontier: list[_Activation], snapshot: PipelineState, step: int) -> list[Any]:
        results: list[Any] = [_PENDING] * len(frontier)

        groups: dict[str, list[int]] = {}
        for position, activation in enumerate(frontier):
            groups.setdefault(activation.node, []).append(position)

        logger.debug("Running superstep", step=step, nodes=list(groups), activations=len(frontier))

        try:
            async with asyncio.TaskGroup() as tg:
                for name, positions in groups.items():
                    tg.create_task(self._run_group(self.node(name), positions, frontier, snapshot, results))
        except BaseExceptionGroup as eg:
            raise _first_error(eg) from None

        return results

    async def _run_group(
        self,
        node: Node,
        positions: list[int],
        frontier: list[_Activation],
        snapshot: PipelineState,
        results: list[Any],
    ) -> None:
        try:
            async with asyncio.timeout(node.deadline):
                async with asyncio.TaskGroup() as tg:
                    for position in positions:
                        tg.create_task(self._run_activation(node, frontier[position], position, snapshot, results))
        except TimeoutError:
            pending = [position for position in positions if results[position] is _PENDING]
            logger.warning(
                "Node deadline exceeded, dropping pending branches",
                node=node.name,
                deadline_seconds=node.deadline,
                dropped=len(pending),
            )
            if any(not frontier[position].fanned_out for position in pending):
                raise
            for position in pending:
                results[position] = _DROPPED

        dropped = sum(results[position] is _DROPPED for position in positions)
        if dropped:
            logger.info("Node finished with dropped branches", node=node.name, branches=len(positions), dropped=dropped)

    async def _run_activation(
        self,
        node: Node,
        activation: _Activation,
        position: int,
        snapshot: PipelineState,
        results: list[Any],
    ) -> None:
        try:
            update = await node.fn(snapshot, activation.payload)
        except Exception as e:
            if not activation.fanned_out:
                raise
            logger.warning(
                "Dropping failed branch", node=node.name, error=str(e), error_type=type(e).__name__
            )
            results[position] = _DROPPED
            return

        if update is not None and not isinstance(update, Mapping):
            raise GraphError(f"Node '{node.name}' returned {type(update).__name__}, expected a mapping")
        results[position] = dict(update or {})

    def _next_frontier(self, frontier: list[_Activation], state: PipelineState) -> list[_Activation]:
        activations: list[_Activation] = []
        seen_static: set[str] = set()

        def _activate(route: Route) -> None:
            if isinstance(route, Send):
                if route.node not in self.index:
                    raise GraphError(f"Send targets unknown node '{route.node}'")
                activations.append(_Activation(route.node, route.payload, fanned_out=True))
            elif route == END:
                return
            elif route in self.index:
                if route not in seen_static:
                    seen_static.add(route)
                    activations.append(_Activation(route))
            else:
                raise GraphError(f"Route targets unknown node '{route}'")

        # Each node that ran this superstep contributes its successors once
        for name in dict.fromkeys(activation.node for activation in frontier):
            adjacency = self.edges(name)
            for target in adjacency.static:
                _activate(target)
            if adjacency.router is not None:
                routed = adjacency.router(state)
                for route in [routed] if isinstance(routed, str | Send) else routed:
                    _activate(route)

        return activations


def _first_error(eg: BaseExceptionGroup) -> BaseException:
    error: BaseException = eg
    while isinstance(error, BaseExceptionGroup):
        error = error.exceptions[0]
    return error
