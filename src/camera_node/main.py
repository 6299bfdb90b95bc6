from __future__ import annotations

import argparse
import asyncio
import logging

from events.errors import AuthError, TransportError
from hub_client import TransportSession
from hub_client.logging import configure_logging

from .config import CameraSettings
from .node import CameraNode

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Guard-X - Camera Node")
    parser.add_argument("--print-config", action="store_true", help="Print resolved configuration and exit.")
    parser.add_argument("--http-serve", action="store_true", help="Also serve the local status API (/health, /status).")
    return parser


async def serve(cfg: CameraSettings, http_serve: bool = False) -> None:
    """
    Connect to the hub and wait for deploy/stop commands until cancelled.

    Raises TransportError once automatic reconnection gives up.
    """
    transport = TransportSession.from_settings(cfg)
    node = CameraNode(cfg, transport)
    unreachable: asyncio.Future | None = None
    try:
        await node.connect()
        unreachable = asyncio.ensure_future(transport.wait_unreachable())

        if http_serve:
            import uvicorn
            from .status_api import create_app

            logger.info("Starting camera status API at http://%s:%s", cfg.http_host, cfg.http_port)
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


def run(argv: list[str] | None = None, cfg: CameraSettings | None = None) -> int:
    """
    Camera node entrypoint.
    """
    # Load settings from environment / .env
    cfg = cfg or CameraSettings()

    try:
        args = build_parser().parse_args(argv)

        configure_logging(cfg.log_level)

        logger.info("Camera node starting")
        logger.info(
            "Resolved config: camera_id=%s hub=%s device=%s interval=%sms",
            cfg.resolved_camera_id, cfg.hub_url, cfg.device_source, cfg.frame_interval_ms,
        )

        if args.print_config:
            print(cfg.model_dump(exclude={"token"}))
            return 0

        asyncio.run(serve(cfg, http_serve=args.http_serve))
        return 0

    except KeyboardInterrupt:
        logger.info("Camera node interrupted; shutting down")
        return 0

    except (AuthError, TransportError) as e:
        logger.error("Camera node cannot run: %s", e)
        return 1

    except Exception:
        # Log unexpected exceptions so the camera node is diagnosable.
        logger.exception("Camera node crashed due to an unexpected error")
        if cfg.debug or cfg.log_level.upper() == "DEBUG":
            raise
        return 1


def main() -> None:
    raise SystemExit(run())


if __name__ == "__main__":
    main()
