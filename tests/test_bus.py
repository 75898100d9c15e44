"""Tests for the local message bus and codecs."""

import threading
from typing import Any

import pytest
from pydantic import BaseModel

from topicbridge.bus.codecs import (
    BytesCodec,
    Codec,
    CodecRegistry,
    JsonCodec,
    ModelCodec,
    StringCodec,
)
from topicbridge.bus.message_bus import MessageBus
from topicbridge.core.errors import (
    ConfigError,
    DecodeError,
    EncodeError,
    ExitCode,
    TypeTagMismatch,
)


class Twist(BaseModel):
    linear: float
    angular: float


class TestMessageBus:
    def test_publish_and_spin(self) -> None:
        bus = MessageBus()
        received: list[Any] = []
        bus.subscribe("/chatter", "string", received.append)
        handle = bus.advertise("/chatter", "string")

        assert bus.publish(handle, "one")
        assert bus.publish(handle, "two")
        assert bus.pending == 2

        assert bus.spin_once() == 2
        assert received == ["one", "two"]
        assert bus.stats.total_messages_delivered == 2

    def test_only_matching_topic_delivered(self) -> None:
        bus = MessageBus()
        received: list[Any] = []
        bus.subscribe("/a", "json", received.append)
        other = bus.advertise("/b", "json")

        bus.publish(other, {"x": 1})
        bus.spin_once()

        assert received == []

    def test_type_tag_mismatch(self) -> None:
        bus = MessageBus()
        bus.advertise("/odom", "json")
        with pytest.raises(TypeTagMismatch):
            bus.subscribe("/odom", "string", lambda m: None)
        with pytest.raises(ConfigError):
            bus.advertise("/odom", "bytes")

    def test_type_tag_released_when_unused(self) -> None:
        bus = MessageBus()
        handle = bus.advertise("/odom", "json")
        assert bus.unadvertise(handle)
        bus.advertise("/odom", "string")

    def test_publish_without_advertise(self) -> None:
        bus = MessageBus()
        assert not bus.publish("missing", "x")
        assert bus.pending == 0

    def test_unadvertise_and_unsubscribe_unknown(self) -> None:
        bus = MessageBus()
        assert not bus.unadvertise("nope")
        assert not bus.unsubscribe("nope")

    def test_unsubscribe_stops_delivery(self) -> None:
        bus = MessageBus()
        received: list[Any] = []
        sub = bus.subscribe("/t", "json", received.append)
        pub = bus.advertise("/t", "json")

        assert bus.unsubscribe(sub)
        bus.publish(pub, 1)
        bus.spin_once()

        assert received == []
        assert bus.get_subscriptions("/t") == []

    def test_handler_failure_isolated(self) -> None:
        bus = MessageBus()
        received: list[Any] = []

        def broken(message: Any) -> None:
            raise ValueError("boom")

        bus.subscribe("/t", "json", broken)
        bus.subscribe("/t", "json", received.append)
        pub = bus.advertise("/t", "json")

        bus.publish(pub, 42)
        bus.spin_once()

        assert received == [42]
        assert bus.stats.total_errors == 1

    def test_dispatch_thread(self) -> None:
        bus = MessageBus()
        done = threading.Event()
        received: list[Any] = []

        def on_message(message: Any) -> None:
            received.append((message, threading.current_thread().name))
            if len(received) == 3:
                done.set()

        bus.subscribe("/t", "json", on_message)
        pub = bus.advertise("/t", "json")
        bus.start()
        assert bus.is_running
        try:
            for i in range(3):
                bus.publish(pub, i)
            assert done.wait(2.0)
        finally:
            bus.stop()

        assert not bus.is_running
        assert [m for m, _ in received] == [0, 1, 2]
        assert all(name == "message-bus" for _, name in received)

    def test_stop_drains_queue(self) -> None:
        bus = MessageBus()
        received: list[Any] = []
        bus.subscribe("/t", "json", received.append)
        pub = bus.advertise("/t", "json")
        for i in range(5):
            bus.publish(pub, i)

        bus.start()
        bus.stop()

        assert received == [0, 1, 2, 3, 4]

    def test_concurrent_publish_counts_every_message(self) -> None:
        bus = MessageBus()
        handles = [bus.advertise(f"/t{i}", "json") for i in range(8)]
        barrier = threading.Barrier(len(handles))

        def publish_many(handle: str) -> None:
            barrier.wait()
            for i in range(2000):
                bus.publish(handle, i)

        threads = [threading.Thread(target=publish_many, args=(h,)) for h in handles]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert bus.stats.total_messages_published == 16000
        assert bus.pending == 16000

    def test_clear(self) -> None:
        bus = MessageBus()
        bus.subscribe("/a", "json", lambda m: None)
        bus.advertise("/b", "json")
        bus.clear()
        assert bus.get_subscriptions() == []
        assert bus.get_publications() == []
        bus.advertise("/a", "string")


class TestCodecs:
    def test_json(self) -> None:
        codec = JsonCodec()
        data = codec.encode({"x": 1, "y": [1, 2]})
        assert data == b'{"x":1,"y":[1,2]}'
        assert codec.decode(data) == {"x": 1, "y": [1, 2]}

    def test_json_errors(self) -> None:
        codec = JsonCodec()
        with pytest.raises(EncodeError):
            codec.encode({"x": object()})
        with pytest.raises(DecodeError):
            codec.decode(b"{not json")

    def test_string(self) -> None:
        codec = StringCodec()
        assert codec.decode(codec.encode("héllo")) == "héllo"
        with pytest.raises(EncodeError):
            codec.encode(5)
        with pytest.raises(DecodeError):
            codec.decode(b"\xff\xfe")

    def test_bytes(self) -> None:
        codec = BytesCodec()
        assert codec.encode(bytearray(b"\x00\x01")) == b"\x00\x01"
        with pytest.raises(EncodeError):
            codec.encode("text")

    def test_model(self) -> None:
        codec = ModelCodec(Twist)
        data = codec.encode(Twist(linear=1.0, angular=0.5))
        assert codec.decode(data) == Twist(linear=1.0, angular=0.5)
        assert codec.decode(codec.encode({"linear": 2, "angular": 0})) == Twist(linear=2.0, angular=0.0)

    def test_model_errors(self) -> None:
        codec = ModelCodec(Twist)
        with pytest.raises(EncodeError):
            codec.encode({"linear": "fast"})
        with pytest.raises(DecodeError):
            codec.decode(b'{"linear": 1}')

    def test_registry_defaults(self) -> None:
        registry = CodecRegistry.with_defaults()
        assert set(registry.list_tags()) == {"bytes", "raw", "string", "json"}
        assert isinstance(registry.resolve("json"), JsonCodec)

    def test_registry_unknown_tag(self) -> None:
        registry = CodecRegistry.with_defaults()
        with pytest.raises(ConfigError) as exc_info:
            registry.resolve("geometry/Twist")
        assert exc_info.value.exit_code == ExitCode.INVALID_CONFIG
        assert "json" in str(exc_info.value)

    def test_register_model(self) -> None:
        registry = CodecRegistry()
        registry.register_model("geometry/Twist", Twist)
        assert "geometry/Twist" in registry
        assert isinstance(registry.resolve("geometry/Twist"), Codec)

    def test_register_rejects_non_codec(self) -> None:
        with pytest.raises(TypeError):
            CodecRegistry().register("x", object())  # type: ignore[arg-type]
