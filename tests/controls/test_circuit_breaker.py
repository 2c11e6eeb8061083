"""Tests for the circuit_breaker control step."""

import asyncio

import pytest

from modelchain.controls.circuit_breaker import CircuitBreakerConfig
from modelchain.controls.state import CircuitState
from modelchain.core.errors import CircuitOpenError, InvalidConfigError, StepTimeoutError
from modelchain.execution.spec import circuit_breaker

KEY = "post.list"


@pytest.fixture
def backend(registry):
    """``backend`` fails while ``health["up"]`` is False."""
    health = {"up": False, "calls": 0, "delay": 0.0}

    def factory(args):
        async def step(view, call_next):
            health["calls"] += 1
            if health["delay"]:
                await asyncio.sleep(health["delay"])
                return await call_next()
            if not health["up"]:
                raise ConnectionError("backend down")
            return view.terminate("fresh")

        return step

    registry.register("backend", factory)
    return health


def breaker(**kwargs):
    options = {"failure_threshold": 2, "reset_timeout": 0.1}
    options.update(kwargs)
    return [circuit_breaker(**options), "backend"]


async def trip(invoke):
    for _ in range(2):
        with pytest.raises(ConnectionError):
            await invoke(breaker())


class TestCircuitBreakerConfig:
    def test_defaults(self):
        config = CircuitBreakerConfig.from_args(None)
        assert config.failure_threshold == 5
        assert config.success_threshold == 2
        assert config.timeout == 10.0
        assert config.reset_timeout == 30.0

    def test_camel_case(self):
        config = CircuitBreakerConfig.from_args({"failureThreshold": 3, "resetTimeout": 5})
        assert config.failure_threshold == 3
        assert config.reset_timeout == 5

    @pytest.mark.parametrize(
        "bad",
        [
            {"failure_threshold": 0},
            {"success_threshold": "2"},
            {"timeout": 0},
            {"reset_timeout": -1},
            {"fallback": "cached"},
            [1, 2],
        ],
    )
    def test_invalid(self, bad):
        with pytest.raises(InvalidConfigError):
            CircuitBreakerConfig.from_args(bad)


class TestCircuitBreaker:
    """State machine, driven by the fake clock."""

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self, invoke, backend, control_state):
        await trip(invoke)

        assert control_state.circuits.get(KEY).phase is CircuitState.OPEN
        with pytest.raises(CircuitOpenError) as exc_info:
            await invoke(breaker())
        assert backend["calls"] == 2
        assert exc_info.value.retry_after == pytest.approx(0.1)

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, invoke, backend, control_state):
        with pytest.raises(ConnectionError):
            await invoke(breaker())
        backend["up"] = True
        await invoke(breaker())
        backend["up"] = False
        with pytest.raises(ConnectionError):
            await invoke(breaker())

        assert control_state.circuits.get(KEY).phase is CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_trial_closes(self, invoke, backend, control_state, fake_clock):
        await trip(invoke)
        fake_clock.advance(0.1)
        backend["up"] = True

        first = await invoke(breaker())
        assert first.payload == "fresh"
        assert control_state.circuits.get(KEY).phase is CircuitState.HALF_OPEN

        await invoke(breaker())
        assert control_state.circuits.get(KEY).phase is CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_admits_one_call(self, invoke, backend, registry, control_state, fake_clock):
        release = asyncio.Event()

        def gate(args):
            async def step(view, call_next):
                await release.wait()
                return view.terminate("gated")

            return step

        registry.register("gate", gate)
        await trip(invoke)
        fake_clock.advance(0.1)

        first = asyncio.create_task(invoke([circuit_breaker(failure_threshold=2, reset_timeout=0.1), "gate"]))
        while not control_state.circuits.get(KEY).trial_in_flight:
            await asyncio.sleep(0)

        with pytest.raises(CircuitOpenError, match="half_open"):
            await invoke(breaker())
        fallback = await invoke(breaker(fallback=lambda view: "stale"))

        release.set()
        assert (await first).payload == "gated"
        assert fallback.payload == "stale"
        assert backend["calls"] == 2
        assert not control_state.circuits.get(KEY).trial_in_flight

    @pytest.mark.asyncio
    async def test_trial_flag_cleared_after_failure(self, invoke, backend, control_state, fake_clock):
        await trip(invoke)
        fake_clock.advance(0.1)
        with pytest.raises(ConnectionError):
            await invoke(breaker())
        fake_clock.advance(0.1)
        backend["up"] = True

        outcome = await invoke(breaker())

        assert outcome.payload == "fresh"
        assert not control_state.circuits.get(KEY).trial_in_flight

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self, invoke, backend, control_state, fake_clock):
        await trip(invoke)
        fake_clock.advance(0.1)

        with pytest.raises(ConnectionError):
            await invoke(breaker())

        record = control_state.circuits.get(KEY)
        assert record.phase is CircuitState.OPEN
        assert record.next_attempt_at == pytest.approx(fake_clock.now + 0.1)

    @pytest.mark.asyncio
    async def test_fallback_while_open(self, invoke, backend):
        await trip(invoke)
        outcome = await invoke(breaker(fallback=lambda view: ["stale"]))

        assert outcome.payload == ["stale"]
        assert backend["calls"] == 2

    @pytest.mark.asyncio
    async def test_async_fallback(self, invoke, backend):
        async def fallback(view):
            return {"key": view.key}

        await trip(invoke)
        outcome = await invoke(breaker(fallback=fallback))
        assert outcome.payload == {"key": KEY}

    @pytest.mark.asyncio
    async def test_fallback_none_skips_downstream(self, invoke, backend):
        await trip(invoke)
        outcome = await invoke(breaker(fallback=lambda view: None))

        assert not outcome.is_terminated()
        assert backend["calls"] == 2

    @pytest.mark.slow
    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self, invoke, backend, control_state):
        backend["delay"] = 0.1

        with pytest.raises(StepTimeoutError):
            await invoke(breaker(timeout=0.02))

        assert control_state.circuits.get(KEY).failure_count == 1
        # let the disregarded attempt finish
        await asyncio.sleep(0.15)
