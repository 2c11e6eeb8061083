"""Tests for the chain builder: onion ordering, short-circuit, one-shot continuations."""

import pytest

from modelchain.core.errors import CompositionError
from modelchain.execution.chain import BoundStep, Continuation, build_chain, compose
from modelchain.execution.context import ExecutionContext
from modelchain.execution.outcome import Terminated


def recording_step(log, label):
    async def step(ctx, call_next):
        log.append(f"{label}:before")
        outcome = await call_next()
        log.append(f"{label}:after")
        return outcome

    return BoundStep(label, step)


@pytest.fixture
def ctx():
    return ExecutionContext("create", "post", scope="restricted")


class TestOnionOrdering:
    """Before in declaration order, after in reverse."""

    @pytest.mark.asyncio
    async def test_three_steps(self, ctx):
        log = []
        chain = build_chain([recording_step(log, "a"), recording_step(log, "b"), recording_step(log, "c")])

        outcome = await chain(ctx)

        assert log == ["a:before", "b:before", "c:before", "c:after", "b:after", "a:after"]
        assert not outcome.is_terminated()
        assert len(chain) == 3
        assert chain.names == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_empty_chain(self, ctx):
        outcome = await build_chain([])(ctx)
        assert not outcome.is_terminated()

    @pytest.mark.asyncio
    async def test_plain_functions_are_steps(self, ctx):
        seen = []

        async def step(c, call_next):
            seen.append(c.key)
            return await call_next()

        await build_chain([step])(ctx)
        assert seen == ["post.create"]


class TestShortCircuit:
    """A step that does not continue stops the chain."""

    @pytest.mark.asyncio
    async def test_no_continue_skips_rest(self, ctx):
        log = []

        async def gate(c, call_next):
            log.append("gate")
            return c.terminate("denied")

        chain = build_chain([recording_step(log, "a"), BoundStep("gate", gate), recording_step(log, "b")])
        outcome = await chain(ctx)

        assert log == ["a:before", "gate", "a:after"]
        assert outcome == Terminated("denied")

    @pytest.mark.asyncio
    async def test_returned_terminated_outcome_terminates_context(self, ctx):
        async def answer(c, call_next):
            return Terminated(42)

        outcome = await build_chain([answer])(ctx)
        assert outcome.payload == 42
        assert ctx.payload == 42

    @pytest.mark.asyncio
    async def test_outer_steps_see_downstream_outcome(self, ctx):
        seen = []

        async def outer(c, call_next):
            outcome = await call_next()
            seen.append(outcome)
            return outcome

        async def inner(c, call_next):
            return c.terminate("done")

        await build_chain([outer, inner])(ctx)
        assert seen == [Terminated("done")]

    @pytest.mark.asyncio
    async def test_first_payload_wins_across_steps(self, ctx):
        async def late(c, call_next):
            await call_next()
            c.terminate("second")

        async def early(c, call_next):
            c.terminate("first")
            return await call_next()

        outcome = await build_chain([late, early])(ctx)
        assert outcome.payload == "first"


class TestContinuationGuard:
    """The continuation is one-shot."""

    @pytest.mark.asyncio
    async def test_second_call_raises(self, ctx):
        async def twice(c, call_next):
            await call_next()
            await call_next()

        with pytest.raises(CompositionError, match="multiple times"):
            await build_chain([BoundStep("twice", twice)])(ctx)

    @pytest.mark.asyncio
    async def test_error_names_step(self, ctx):
        async def twice(c, call_next):
            await call_next()
            await call_next()

        with pytest.raises(CompositionError) as exc_info:
            await build_chain([BoundStep("twice", twice)])(ctx)
        assert exc_info.value.context.step == "twice"

    @pytest.mark.asyncio
    async def test_renew_gives_fresh_handle(self, ctx):
        runs = []

        async def runner():
            runs.append(1)
            return ctx.outcome

        cont = Continuation(runner)
        await cont()
        renewed = cont.renew()
        assert not renewed.called
        await renewed()
        assert len(runs) == 2
        with pytest.raises(CompositionError):
            await renewed()


class TestCompose:
    """compose merges steps into one bound step."""

    @pytest.mark.asyncio
    async def test_compose_orders_inner_then_outer_continuation(self, ctx):
        log = []
        merged = compose(recording_step(log, "a"), recording_step(log, "b"), name="ab")
        chain = build_chain([merged, recording_step(log, "c")])

        await chain(ctx)

        assert merged.name == "ab"
        assert log == ["a:before", "b:before", "c:before", "c:after", "b:after", "a:after"]

    @pytest.mark.asyncio
    async def test_compose_guard(self, ctx):
        async def twice(c, call_next):
            await call_next()
            await call_next()

        with pytest.raises(CompositionError):
            await build_chain([compose(twice)])(ctx)

    @pytest.mark.asyncio
    async def test_compose_short_circuit(self, ctx):
        log = []

        async def stop(c, call_next):
            return c.terminate("cached")

        chain = build_chain([compose(stop), recording_step(log, "after")])
        outcome = await chain(ctx)

        assert log == []
        assert outcome.payload == "cached"
