"""Tests for SpecResolver: lookup order, unknown names, scoped and nested specs."""

import pytest

from modelchain.core.errors import StepFactoryError
from modelchain.execution.context import ExecutionContext
from modelchain.execution.executor import ChainExecutor
from modelchain.execution.registry import StepRegistry
from modelchain.execution.resolver import SpecResolver
from modelchain.execution.scope import Scope
from modelchain.execution.spec import Bare, Configured, Nested


@pytest.fixture
def log():
    return []


@pytest.fixture
def recording_registry(log, recorder):
    registry = StepRegistry()
    for name in ("a", "b", "c", "main"):
        registry.register(name, recorder(log, name))
    registry.register("server_only", recorder(log, "server_only"), Scope.PRIVILEGED)
    registry.register("client_only", recorder(log, "client_only"), Scope.RESTRICTED)
    return registry


@pytest.fixture
def executor(recording_registry):
    return ChainExecutor(recording_registry)


@pytest.fixture
def resolver(recording_registry, executor):
    return SpecResolver(recording_registry, executor)


class TestResolveAll:
    """Per-entry resolution."""

    @pytest.mark.asyncio
    async def test_bare_and_configured(self, resolver):
        steps = await resolver.resolve_all(["a", {"name": "b", "args": {"x": 1}}], Scope.RESTRICTED)
        assert [s.name for s in steps] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_unknown_name_is_dropped(self, resolver, log, executor):
        ctx = ExecutionContext("create", "post", scope="restricted")
        outcome = await executor.execute_chain(["a", "missing", "b"], ctx)

        assert log == ["a:before", "b:before", "b:after", "a:after"]
        assert not outcome.is_terminated()

    @pytest.mark.asyncio
    async def test_scope_specific_lookup(self, resolver):
        privileged = await resolver.resolve_all(["server_only", "client_only"], Scope.PRIVILEGED)
        restricted = await resolver.resolve_all(["server_only", "client_only"], Scope.RESTRICTED)
        assert [s.name for s in privileged] == ["server_only"]
        assert [s.name for s in restricted] == ["client_only"]

    @pytest.mark.asyncio
    async def test_configured_scope_mismatch_skipped(self, resolver):
        specs = [Configured("a", None, Scope.PRIVILEGED), Configured("b", None, Scope.RESTRICTED)]
        steps = await resolver.resolve_all(specs, Scope.RESTRICTED)
        assert [s.name for s in steps] == ["b"]

    @pytest.mark.asyncio
    async def test_factory_receives_args(self):
        received = []

        def factory(args):
            received.append(args)

            async def step(view, call_next):
                return await call_next()

            return step

        registry = StepRegistry()
        registry.register("x", factory)
        resolver = SpecResolver(registry, ChainExecutor(registry))
        await resolver.resolve_all([Bare("x"), Configured("x", {"k": 1})], Scope.PRIVILEGED)
        assert received == [None, {"k": 1}]

    @pytest.mark.asyncio
    async def test_factory_failure(self):
        def broken(args):
            raise ValueError("bad args")

        registry = StepRegistry()
        registry.register("broken", broken)
        resolver = SpecResolver(registry, ChainExecutor(registry))
        with pytest.raises(StepFactoryError) as exc_info:
            await resolver.resolve_all(["broken"], Scope.PRIVILEGED)
        assert isinstance(exc_info.value.cause, ValueError)

    @pytest.mark.asyncio
    async def test_awaits_loaders(self, log, recorder):
        registry = StepRegistry()
        registry.add_loader(lambda reg: reg.register("late", recorder(log, "late")))
        resolver = SpecResolver(registry, ChainExecutor(registry))
        steps = await resolver.resolve_all(["late"], Scope.RESTRICTED)
        assert [s.name for s in steps] == ["late"]

    @pytest.mark.asyncio
    async def test_resolve_single(self, resolver):
        assert (await resolver.resolve("a", "server")).name == "a"
        assert await resolver.resolve("nope", "server") is None


class TestNested:
    """Nested specs: children only in the privileged environment."""

    @pytest.mark.asyncio
    async def test_privileged_runs_children_then_main(self, executor, log, environment):
        ctx = ExecutionContext("create", "post", environment_handle=environment)
        await executor.execute_chain([Nested("main", None, (Bare("a"), Bare("b"))), "c"], ctx)

        assert log == [
            "a:before",
            "b:before",
            "b:after",
            "a:after",
            "main:before",
            "c:before",
            "c:after",
            "main:after",
        ]

    @pytest.mark.asyncio
    async def test_restricted_skips_children(self, executor, log):
        ctx = ExecutionContext("create", "post", scope="restricted")
        await executor.execute_chain([Nested("main", None, (Bare("a"),)), "c"], ctx)
        assert log == ["main:before", "c:before", "c:after", "main:after"]

    @pytest.mark.asyncio
    async def test_missing_main_just_continues(self, executor, log, environment):
        ctx = ExecutionContext("create", "post", environment_handle=environment)
        await executor.execute_chain([Nested("unknown", None, (Bare("a"),)), "c"], ctx)
        assert log == ["a:before", "a:after", "c:before", "c:after"]

    @pytest.mark.asyncio
    async def test_nested_children_share_context(self, environment):
        def writer(args):
            async def step(view, call_next):
                view.state["written_by_child"] = True
                return await call_next()

            return step

        def reader(args):
            async def step(view, call_next):
                return view.terminate(view.state.get("written_by_child"))

            return step

        registry = StepRegistry()
        registry.register("writer", writer)
        registry.register("reader", reader)
        ctx = ExecutionContext("create", "post", environment_handle=environment)
        outcome = await ChainExecutor(registry).execute_chain([Nested("reader", None, (Bare("writer"),))], ctx)
        assert outcome.payload is True
