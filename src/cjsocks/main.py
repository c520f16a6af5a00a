from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from typing import List, Optional

from .config.config_parser import AppConfig, parse_config
from .config.logging_config import init_logging
from .monitor import EventMonitor
from .registry import NameRegistry
from .resolver import IPAddress, ResolutionError, ResolutionService
from .runtime import RuntimeClient, RuntimeClientError, RuntimeUnavailableError

logger = logging.getLogger("cjsocks.main")


class CjSocksService:
    """Brief: The wired-up registry, monitor and resolver.

    Inputs:
      - config: AppConfig.
      - runtime: RuntimeClient.
      - registry: NameRegistry shared by monitor and resolver.
      - monitor: EventMonitor writing to the registry.
      - resolver: ResolutionService reading from the registry.

    Outputs:
      - CjSocksService; start() makes the resolver ready to serve, stop()
        releases every resource.

    Example (embedding in a proxy):
        >>> service = build_service(parse_config())  # doctest: +SKIP
        >>> service.start()  # doctest: +SKIP
        >>> service.resolve("web.shop.container")  # doctest: +SKIP
        IPv4Address('172.18.0.3')
    """

    def __init__(
        self,
        config: AppConfig,
        runtime: RuntimeClient,
        registry: NameRegistry,
        monitor: EventMonitor,
        resolver: ResolutionService,
    ) -> None:
        self.config = config
        self.runtime = runtime
        self.registry = registry
        self.monitor = monitor
        self.resolver = resolver

    def start(self) -> None:
        """Brief: Prepare the connectivity network and start monitoring.

        Inputs:
          - None.

        Outputs:
          - None. Raises RuntimeUnavailableError when the runtime is not
            reachable; network creation failures are only logged.
        """

        network = self.config.network
        if network.create:
            logger.info(
                "Creating network %s in case it does not already exist", network.name
            )
            try:
                self.runtime.ensure_network(network.name)
            except RuntimeClientError as exc:
                logger.warning("Could not create network %s: %s", network.name, exc)
        self.monitor.start()

    def resolve(self, name: str, timeout: Optional[float] = None) -> IPAddress:
        return self.resolver.resolve(name, timeout=timeout)

    def stop(self) -> None:
        self.monitor.stop()
        self.resolver.close()
        self.runtime.close()


def build_service(
    config: AppConfig, runtime: Optional[RuntimeClient] = None
) -> CjSocksService:
    """Brief: Construct all components from configuration.

    Inputs:
      - config: AppConfig.
      - runtime: Optional RuntimeClient; created from config.docker when None.

    Outputs:
      - CjSocksService (not started).
    """

    if runtime is None:
        runtime = RuntimeClient(config.docker.url, timeout=config.docker.timeout_s)
    registry = NameRegistry()
    monitor = EventMonitor(
        runtime,
        registry,
        base_domain=config.base_domain,
        network_name=config.network.name,
        auto_attach=config.network.auto_attach,
        backoff_initial=config.monitor.backoff_initial_s,
        backoff_max=config.monitor.backoff_max_s,
    )
    resolver = ResolutionService(
        registry,
        timeout_ms=config.resolver.timeout_ms,
        cache_ttl=config.resolver.cache_ttl,
        workers=config.resolver.workers,
    )
    return CjSocksService(config, runtime, registry, monitor, resolver)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Resolve container names for a SOCKS5 proxy from Docker events"
    )
    parser.add_argument("--config", default=None, help="Path to YAML config")
    parser.add_argument(
        "--basedomain",
        default=None,
        help="Default base domain for containers (env CJ_BASE_DOMAIN)",
    )
    parser.add_argument(
        "--autoadd",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Attach new containers to the connectivity network (env CJ_AUTO_ADD)",
    )
    parser.add_argument(
        "--network",
        default=None,
        help="Name of the connectivity network (env CJ_NETWORK)",
    )
    parser.add_argument(
        "--docker-url",
        default=None,
        help="Docker endpoint URL (env CJ_DOCKER_URL, else DOCKER_HOST)",
    )
    parser.add_argument(
        "--resolve",
        action="append",
        metavar="NAME",
        default=None,
        help="Resolve NAME once after startup, print the result and exit",
    )
    return parser


def _resolve_once(service: CjSocksService, names: List[str]) -> int:
    exit_code = 0
    for name in names:
        try:
            addr = service.resolve(name)
        except ResolutionError as exc:
            logger.error("Could not resolve %s: %s", name, exc)
            exit_code = 1
            continue
        print(f"{name} {addr}")
    return exit_code


def main(argv: List[str] | None = None) -> int:
    """
    Main entry point.
    Parses arguments, loads configuration, starts monitoring Docker events and
    keeps the name registry current until a termination signal arrives.

    Args:
        argv: Command-line arguments.

    Returns:
        An exit code.

    Example use:
        CLI:
            PYTHONPATH=src python -m cjsocks.main --config config.yaml
            PYTHONPATH=src python -m cjsocks.main --resolve web.shop.container
    """
    args = _build_parser().parse_args(argv)

    try:
        cfg = parse_config(
            args.config,
            base_domain=args.basedomain,
            auto_attach=args.autoadd,
            network=args.network,
            docker_url=args.docker_url,
        )
    except (OSError, ValueError) as exc:
        print(str(exc), file=sys.stderr)
        return 1

    init_logging(cfg.logging)
    logger.info(
        "Base domain %s, network %s, auto-attach %s",
        cfg.base_domain,
        cfg.network.name,
        cfg.network.auto_attach,
    )

    try:
        service = build_service(cfg)
    except RuntimeUnavailableError as exc:
        logger.error("Fatal: %s", exc)
        return 1

    try:
        service.start()
    except RuntimeUnavailableError as exc:
        logger.error("Fatal: cannot reach the container runtime: %s", exc)
        service.stop()
        return 1

    if args.resolve:
        try:
            return _resolve_once(service, args.resolve)
        finally:
            service.stop()

    # --- Coordinated shutdown state ---
    shutdown_event = threading.Event()
    resync_requested = threading.Event()
    exit_code = 0

    def _request_shutdown(reason: str, code: int) -> None:
        nonlocal exit_code
        if shutdown_event.is_set():
            return
        exit_code = code
        shutdown_event.set()
        logger.info("Received %s, initiating shutdown (exit code=%d)", reason, code)

    def _sighup_handler(_signum, _frame):
        _request_shutdown("SIGHUP", 0)

    def _sigterm_handler(_signum, _frame):
        _request_shutdown("SIGTERM", 2)

    def _sigint_handler(_signum, _frame):
        _request_shutdown("SIGINT", 2)

    def _sigusr1_handler(_signum, _frame):
        # Resync runs on the main loop, never inside the handler.
        resync_requested.set()

    for signame, handler in (
        ("SIGHUP", _sighup_handler),
        ("SIGTERM", _sigterm_handler),
        ("SIGINT", _sigint_handler),
        ("SIGUSR1", _sigusr1_handler),
    ):
        signum = getattr(signal, signame, None)
        if signum is None:
            logger.warning("Could not install %s handler on this platform", signame)
            continue
        try:
            signal.signal(signum, handler)
        except (OSError, ValueError):
            logger.warning("Could not install %s handler on this platform", signame)

    logger.info("Startup Completed")

    try:
        while not shutdown_event.wait(1.0):
            if resync_requested.is_set():
                resync_requested.clear()
                logger.info("SIGUSR1: resyncing running containers")
                try:
                    service.monitor.sync(prune=True)
                except RuntimeClientError as exc:
                    logger.warning("SIGUSR1: resync failed: %s", exc)
    except KeyboardInterrupt:
        logger.info("Received interrupt, shutting down")
        shutdown_event.set()
        exit_code = 0
    finally:
        logger.info("Stopping event monitor")
        service.stop()

    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())  # pragma: no cover
