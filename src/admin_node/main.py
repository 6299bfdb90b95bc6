from __future__ import annotations

import argparse
import asyncio
import logging

from events.errors import AuthError, TransportError
from hub_client import TransportSession
from hub_client.logging import configure_logging

from .config import AdminSettings
from .node import AdminNode

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Guard-X - Admin Node")
    parser.add_argument("--print-config", action="store_true", help="Print resolved configuration and exit.")
    parser.add_argument("--http-serve", action="store_true", help="Also serve the dashboard API (/stats, /cameras).")
    return parser


async def serve(cfg: AdminSettings, http_serve: bool = False) -> None:
    """
    Connect to the hub and keep the camera registry current until cancelled.

    Raises TransportError once automatic reconnection gives up.
    """
    transport = TransportSession.from_settings(cfg)
    node = AdminNode(cfg, transport)
    unreachable: asyncio.Future | None = None
    try:
        await node.connect()
        unreachable = asyncio.ensure_future(transport.wait_unreachable())

        if http_serve:
            import uvicorn
            from .admin_api import create_app

            logger.info("Starting admin API at http://%s:%s", cfg.http_host, cfg.http_port)
            server = uvicorn.Server(
                uvicorn.Config(
                    create_app(node),
                    host=cfg.http_host,
                    port=cfg.http_port,
                    log_level=cfg.log_level.lower(),
                )
            )
            serving = asyncio.ensure_future(server.serve())
            await asyncio.wait({unreachable, serving}, return_when=asyncio.FIRST_COMPLETED)
            if unreachable.done():
                server.should_exit = True
            else:
                unreachable.cancel()
            await serving
        else:
            await unreachable

        if unreachable.done() and not unreachable.cancelled():
            raise TransportError(f"Hub {cfg.hub_url} unreachable; reconnect attempts exhausted")
    finally:
        if unreachable is not None:
            unreachable.cancel()
        await node.close()


def run(argv: list[str] | None = None, cfg: AdminSettings | None = None) -> int:
    """
    Admin node entrypoint.
    """
    # Load settings from environment / .env
    cfg = cfg or AdminSettings()

    try:
        args = build_parser().parse_args(argv)

        configure_logging(cfg.log_level)

        logger.info("Admin node starting")
        logger.info("Resolved config: user=%s role=%s hub=%s", cfg.username, cfg.role, cfg.hub_url)

        if args.print_config:
            print(cfg.model_dump(exclude={"token"}))
            return 0

        asyncio.run(serve(cfg, http_serve=args.http_serve))
        return 0

    except KeyboardInterrupt:
        logger.info("Admin node interrupted; shutting down")
        return 0

    except (AuthError, TransportError) as e:
        logger.error("Admin node cannot run: %s", e)
        return 1

    except Exception:
        # Log unexpected exceptions so the admin node is diagnosable.
        logger.exception("Admin node crashed due to an unexpected error")
        if cfg.debug or cfg.log_level.upper() == "DEBUG":
            raise
        return 1


def main() -> None:
    raise SystemExit(run())


if __name__ == "__main__":
    main()
