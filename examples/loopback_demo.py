#!/usr/bin/env python3
"""
Example: Loopback Bridge

Demonstrates:
- Building a topic registry from an in-memory configuration
- A send topic bound on localhost and a receive topic connected to it
- Rate limiting on the send side
- Link established notification on the receive side

Messages flow:
/chatter (local bus) -> ZeroMQ PUB :5601 -> ZeroMQ SUB -> /chatter_echo (local bus)
"""

import time

from topicbridge.bus.message_bus import MessageBus
from topicbridge.config.loader import parse_config
from topicbridge.runtime.bridge import Bridge
from topicbridge.transport.zmq_transport import ZmqTransport


def main():
    print("=" * 60)
    print("Loopback Bridge Example")
    print("=" * 60)
    print()

    config = parse_config(
        {
            "hosts": {"local": "127.0.0.1"},
            "send_topics": [
                {"name": "/chatter", "type": "json", "max_rate_hz": 20, "host": "local", "port": 5601},
            ],
            "recv_topics": [
                {"name": "/chatter_echo", "type": "json", "host": "local", "port": 5601},
            ],
        }
    )

    bus = MessageBus()
    received = []
    bus.subscribe("/chatter_echo", "json", received.append)
    bus.start()

    bridge = Bridge.from_config(
        config,
        bus,
        ZmqTransport(),
        on_link_established=lambda d: print(f"  Link established: {d.name} <- {d.url}"),
    )

    with bridge.run_context():
        publisher = bus.advertise("/chatter", "json")

        # =====================================================================
        # Publish 100 messages over one second; 20 Hz lets about 20 through
        # =====================================================================
        print("Publishing 100 messages at 100 Hz...")
        for seq in range(100):
            bus.publish(publisher, {"seq": seq, "text": "hello"})
            time.sleep(0.01)

        time.sleep(0.5)
        bus.unadvertise(publisher)

        health = bridge.get_health()

    bus.stop()

    print()
    print(f"  Received on /chatter_echo: {len(received)} messages")
    if received:
        print(f"  First: {received[0]}")
        print(f"  Last:  {received[-1]}")
    for topic in health["send"]:
        print(
            f"  {topic['topic']}: forwarded={topic['forwarded']} "
            f"rate_limited={topic['rate_limited']}"
        )
    print()
    print("Note: ZeroMQ drops messages sent before the subscriber finished")
    print("connecting, so the first few forwarded frames may not arrive.")


if __name__ == "__main__":
    main()
