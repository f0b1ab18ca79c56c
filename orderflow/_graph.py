"""
Pipelines — nodnod graphs compiled once at startup and run per delivery.

    pipeline = Pipeline.compile(WebhookResultNode)
    result = await pipeline.run(Delivery(raw, signature), deps)

Every input lands in a fresh scope under its runtime type, so nodes ask
for `delivery: Delivery` and get exactly that object.
"""

from __future__ import annotations

from typing import Any, cast

from nodnod import EventLoopAgent, Node, Scope, Value, scalar_node as node


class Pipeline[T]:
    __slots__ = ("_target", "_agent")

    def __init__(self, target: type[T], agent: EventLoopAgent) -> None:
        self._target = target
        self._agent = agent

    @classmethod
    def compile(cls, target: type[T]) -> Pipeline[T]:
        """Walks every node reachable from target."""
        roots = {cast(type[Node[Any, Any]], target)}
        return cls(target, EventLoopAgent.build(roots))

    @property
    def target(self) -> type[T]:
        return self._target

    async def run(self, *inputs: object) -> T:
        scope = Scope(detail=self._target.__name__)
        async with scope:
            for value in inputs:
                scope.push(Value(cast(type[Any], type(value)), value))

            await self._agent.run(scope, {})  # type: ignore[attr-defined]

            found = scope.get(self._target)
            if found is None:
                raise LookupError(f"{self._target.__name__} was not produced")
            return cast(T, found.value)


__all__ = ("node", "Pipeline")
