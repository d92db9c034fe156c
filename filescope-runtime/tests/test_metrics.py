import asyncio
import logging

from filescope_runtime.config import ContextSelectorConfig
from filescope_runtime.metrics import SelectionMetrics, SelectionMetricsEmitter, TokenUsage


def test_token_usage_from_langchain_metadata() -> None:
    usage = TokenUsage.from_metadata({"input_tokens": 10, "output_tokens": 4})

    assert usage == TokenUsage(prompt_tokens=10, completion_tokens=4, total_tokens=14)
    assert TokenUsage.from_metadata(None) == TokenUsage()


def test_counters_and_hit_rate() -> None:
    metrics = SelectionMetrics()
    metrics.record_miss()
    metrics.record_hit()
    metrics.record_hit(via_arbiter=True)
    metrics.record_hit()
    metrics.record_usage(TokenUsage(prompt_tokens=3, completion_tokens=2, total_tokens=5))

    snapshot = metrics.snapshot()

    assert snapshot.hits == 3
    assert snapshot.misses == 1
    assert snapshot.arbiter_matches == 1
    assert metrics.hit_rate == 0.75
    assert snapshot.to_dict()["total_tokens"] == 5


def test_hit_rate_without_lookups_is_zero() -> None:
    assert SelectionMetrics().hit_rate == 0.0


def test_disabled_emitter_only_records_locally(caplog) -> None:
    emitter = SelectionMetricsEmitter(ContextSelectorConfig(metrics_enabled=False))

    with caplog.at_level(logging.INFO, logger="filescope_runtime.metrics.emitter"):
        asyncio.run(emitter.emit("cache_hit", {"key": "k"}))

    assert emitter.recent[-1]["event"] == "cache_hit"
    assert not caplog.records


def test_log_mode_writes_json_record(caplog) -> None:
    emitter = SelectionMetricsEmitter(
        ContextSelectorConfig(metrics_enabled=True, metrics_emit_mode="log"), history=2
    )

    with caplog.at_level(logging.INFO, logger="filescope_runtime.metrics.emitter"):
        for index in range(3):
            asyncio.run(emitter.emit("selection", {"index": index}))

    assert [record["payload"]["index"] for record in emitter.recent] == [1, 2]
    assert '"event": "selection"' in caplog.messages[-1]


class _FakeRedis:
    instances: list = []

    def __init__(self, url: str, *, reachable: bool = True) -> None:
        self.url = url
        self.reachable = reachable
        self.entries: list = []
        self.closed = False

    @classmethod
    def from_url(cls, url: str, **_):
        client = cls(url, reachable="unreachable" not in url)
        cls.instances.append(client)
        return client

    async def ping(self) -> bool:
        if not self.reachable:
            raise ConnectionError("connection refused")
        return True

    async def xadd(self, key, fields, **kwargs) -> str:
        self.entries.append((key, fields, kwargs))
        return "0-1"

    async def aclose(self) -> None:
        self.closed = True


def test_stream_mode_publishes_to_redis(monkeypatch) -> None:
    _FakeRedis.instances = []
    monkeypatch.setattr("filescope_runtime.metrics.emitter.Redis", _FakeRedis)
    emitter = SelectionMetricsEmitter(
        ContextSelectorConfig(metrics_emit_mode="stream", metrics_redis_url="redis://metrics:6379/0")
    )

    async def scenario():
        await emitter.emit("cache_miss", {"key": "k"})
        await emitter.emit("selection", {"files": ["src/App.tsx"]})
        await emitter.close()

    asyncio.run(scenario())

    (client,) = _FakeRedis.instances
    assert [fields["event"] for _, fields, _ in client.entries] == ["cache_miss", "selection"]
    key, fields, options = client.entries[1]
    assert key == "filescope:selection:metrics"
    assert fields["payload"] == '{"files": ["src/App.tsx"]}'
    assert options["approximate"] is True
    assert client.closed
    assert emitter.counts == {"cache_miss": 1, "selection": 1}


def test_unreachable_stream_drops_events(monkeypatch) -> None:
    _FakeRedis.instances = []
    monkeypatch.setattr("filescope_runtime.metrics.emitter.Redis", _FakeRedis)
    emitter = SelectionMetricsEmitter(
        ContextSelectorConfig(metrics_emit_mode="stream", metrics_redis_url="redis://unreachable:1/0")
    )

    asyncio.run(emitter.emit("cache_hit", {"key": "k"}))

    assert emitter.recent[-1]["event"] == "cache_hit"
    assert _FakeRedis.instances[0].closed
    assert not _FakeRedis.instances[0].entries


def test_invalid_stream_url_is_logged_not_raised(caplog) -> None:
    emitter = SelectionMetricsEmitter(
        ContextSelectorConfig(metrics_emit_mode="stream", metrics_redis_url="not-a-redis-url")
    )

    with caplog.at_level(logging.WARNING, logger="filescope_runtime.metrics.emitter"):
        asyncio.run(emitter.emit("cache_miss", {"key": "k"}))

    assert emitter.recent[-1]["event"] == "cache_miss"
    assert any("not-a-redis-url" in message for message in caplog.messages)


def test_concurrent_emits_share_one_connection(monkeypatch) -> None:
    class SlowPingRedis(_FakeRedis):
        async def ping(self) -> bool:
            await asyncio.sleep(0.01)
            return True

    SlowPingRedis.instances = []
    monkeypatch.setattr("filescope_runtime.metrics.emitter.Redis", SlowPingRedis)
    emitter = SelectionMetricsEmitter(
        ContextSelectorConfig(metrics_emit_mode="stream", metrics_redis_url="redis://metrics:6379/0")
    )

    async def scenario():
        await asyncio.gather(*(emitter.emit("cache_hit", {"index": index}) for index in range(3)))

    asyncio.run(scenario())

    (client,) = SlowPingRedis.instances
    assert len(client.entries) == 3
