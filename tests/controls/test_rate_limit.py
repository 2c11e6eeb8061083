"""Tests for the rate_limit control step."""

import pytest

from modelchain.controls.rate_limit import EXCEEDED_CODE, RateLimitConfig, create_rate_limit
from modelchain.core.errors import InvalidConfigError
from modelchain.execution.spec import rate_limit


@pytest.fixture
def calls(registry):
    """Downstream step registered as ``fetch``; fails when asked to."""
    log: list[dict] = []

    def factory(args):
        async def fetch(view, call_next):
            log.append(dict(view.arguments))
            if view.arguments.get("fail"):
                raise ConnectionError("backend down")
            return view.terminate(["post"])

        return fetch

    registry.register("fetch", factory)
    return log


class TestRateLimitConfig:
    """Argument parsing."""

    def test_defaults(self):
        config = RateLimitConfig.from_args(None)
        assert config.max_requests == 100
        assert config.window == 60.0
        assert config.key_generator is None
        assert not config.skip_successful

    def test_camel_case(self):
        config = RateLimitConfig.from_args(
            {"maxRequests": 5, "windowSeconds": 2, "keyGenerator": str, "skipSuccessful": True}
        )
        assert config.max_requests == 5
        assert config.window == 2
        assert config.key_generator is str
        assert config.skip_successful

    def test_constructor_args(self):
        spec = rate_limit(3, window=1.5, skip_successful=True)
        assert spec.name == "rate_limit"
        assert spec.args == {"max_requests": 3, "window": 1.5, "skip_successful": True}

    @pytest.mark.parametrize(
        "bad",
        [
            {"max_requests": 0},
            {"max_requests": True},
            {"window": 0},
            {"window": "1m"},
            {"key_generator": "user"},
            [10, 60],
        ],
    )
    def test_invalid(self, bad):
        with pytest.raises(InvalidConfigError):
            create_rate_limit(bad)


class TestRateLimit:
    """Fixed-window counting, driven by the fake clock."""

    @pytest.mark.asyncio
    async def test_accepts_up_to_max(self, invoke, calls):
        for _ in range(3):
            outcome = await invoke([rate_limit(3, window=10), "fetch"])
            assert outcome.payload == ["post"]
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_rejects_past_max_with_payload(self, invoke, calls, fake_clock):
        await invoke([rate_limit(2, window=10), "fetch"])
        await invoke([rate_limit(2, window=10), "fetch"])
        fake_clock.advance(2.5)

        outcome = await invoke([rate_limit(2, window=10), "fetch"])

        assert outcome.is_terminated()
        assert outcome.payload == {
            "status": 429,
            "code": EXCEEDED_CODE,
            "message": "Too many requests. Try again in 8 seconds.",
            "retry_after": 8,
        }
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_window_resets(self, invoke, calls, fake_clock):
        await invoke([rate_limit(1, window=1), "fetch"])
        rejected = await invoke([rate_limit(1, window=1), "fetch"])
        assert rejected.payload["status"] == 429

        fake_clock.advance(1.01)
        outcome = await invoke([rate_limit(1, window=1), "fetch"])

        assert outcome.payload == ["post"]
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_window_still_open_at_its_end(self, invoke, calls, fake_clock):
        await invoke([rate_limit(1, window=1), "fetch"])
        fake_clock.advance(1)

        outcome = await invoke([rate_limit(1, window=1), "fetch"])

        assert outcome.payload["code"] == EXCEEDED_CODE

    @pytest.mark.asyncio
    async def test_rejected_calls_count(self, invoke, calls, control_state):
        for _ in range(4):
            await invoke([rate_limit(2, window=10), "fetch"])
        assert control_state.rate_limits.get("restricted:post.list").count == 4

    @pytest.mark.asyncio
    async def test_scopes_have_separate_windows(self, invoke, calls, environment):
        await invoke([rate_limit(1, window=10), "fetch"])

        outcome = await invoke([rate_limit(1, window=10), "fetch"], scope="privileged", environment_handle=environment)

        assert outcome.payload == ["post"]
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_key_generator(self, invoke, calls, control_state):
        per_user = rate_limit(1, window=10, key_generator=lambda view: view.arguments["user"])

        await invoke([per_user, "fetch"], {"user": "ann"})
        await invoke([per_user, "fetch"], {"user": "bob"})
        rejected = await invoke([per_user, "fetch"], {"user": "ann"})

        assert [c["user"] for c in calls] == ["ann", "bob"]
        assert rejected.payload["status"] == 429
        assert sorted(control_state.rate_limits.keys()) == ["ann", "bob"]

    @pytest.mark.asyncio
    async def test_skip_successful_returns_slot(self, invoke, calls):
        for _ in range(3):
            outcome = await invoke([rate_limit(1, window=10, skip_successful=True), "fetch"])
            assert outcome.payload == ["post"]
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_failure_keeps_slot_and_propagates(self, invoke, calls, control_state):
        with pytest.raises(ConnectionError):
            await invoke([rate_limit(1, window=10, skip_successful=True), "fetch"], {"fail": True})

        outcome = await invoke([rate_limit(1, window=10, skip_successful=True), "fetch"])

        assert outcome.payload["status"] == 429
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_skip_successful_leaves_newer_window_alone(self, invoke, calls, registry, fake_clock, control_state):
        def slow(args):
            async def step(view, call_next):
                fake_clock.advance(5)
                await invoke([rate_limit(5, window=1), "fetch"])
                return view.terminate("done")

            return step

        registry.register("slow", slow)

        await invoke([rate_limit(5, window=1, skip_successful=True), "slow"])

        record = control_state.rate_limits.get("restricted:post.list")
        assert record.count == 1
        assert record.reset_at == pytest.approx(1006.0)
