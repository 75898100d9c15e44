"""
Entry point for running the topic bridge.

Usage:
    python -m topicbridge.runtime --config bridge.yaml
"""

import argparse
import logging
import signal
import sys
from collections.abc import Sequence
from typing import NoReturn

import anyio
import structlog

from topicbridge.bus.message_bus import MessageBus
from topicbridge.config.loader import load_config
from topicbridge.core.errors import BridgeError, ExitCode
from topicbridge.runtime.bridge import Bridge
from topicbridge.transport.zmq_transport import ZmqTransport

logger = structlog.get_logger()


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Configure structured logging for the process."""
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level.upper())

    processors: list[structlog.typing.Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_logs:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors += [
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


async def run_bridge(bridge: Bridge, bus: MessageBus) -> None:
    """Run the bridge until SIGINT or SIGTERM."""
    with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
        bus.start()
        try:
            await anyio.to_thread.run_sync(bridge.start)
            logger.info(
                "bridge_running",
                send=[d.name for d in bridge.registry.send_topics],
                receive=[d.name for d in bridge.registry.recv_topics],
            )

            async for signum in signals:
                logger.info("shutdown_signal_received", signal=signal.Signals(signum).name)
                break
        finally:
            await anyio.to_thread.run_sync(bridge.stop)
            bus.stop()


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="topic-bridge",
        description="Forward local bus topics to and from remote peers over ZeroMQ",
    )
    parser.add_argument("-c", "--config", required=True, help="YAML configuration file")
    parser.add_argument("--log-level", default="INFO", help="logging level")
    parser.add_argument("--json-logs", action="store_true", help="emit JSON log lines")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> NoReturn:
    """Main entry point."""
    args = parse_args(argv)
    configure_logging(args.log_level, args.json_logs)

    try:
        config = load_config(args.config)
        bus = MessageBus()
        transport = ZmqTransport()
        try:
            bridge = Bridge.from_config(config, bus, transport)
        except BridgeError:
            transport.shutdown()
            raise
        anyio.run(run_bridge, bridge, bus)
        sys.exit(ExitCode.OK)
    except BridgeError as exc:
        logger.error("bridge_fatal", error=str(exc), exit_code=exc.exit_code.name)
        sys.exit(int(exc.exit_code))
    except KeyboardInterrupt:
        logger.info("interrupted")
        sys.exit(ExitCode.INTERRUPTED)
    except Exception:
        logger.exception("fatal_error")
        sys.exit(ExitCode.UNEXPECTED)


if __name__ == "__main__":
    main()
