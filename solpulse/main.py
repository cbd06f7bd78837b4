"""Solana Narrative Pulse — CLI entrypoint.

Run a single detection pass or serve the API::

    solpulse --once            # collect, detect, record, print a summary
    solpulse --once --mock     # same, against mock collectors
    solpulse --server          # FastAPI server (default)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from solpulse import __version__
from solpulse.config import Settings, get_settings
from solpulse.services import build_services
from solpulse.utils import setup_logging

logger = logging.getLogger("solpulse")

BANNER = rf"""
  ___      _ ___      _
 / __| ___| | _ \_  _| |___ ___
 \__ \/ _ \ |  _/ || | (_-</ -_)
 |___/\___/_|_|  \_,_|_/__/\___|  v{__version__}
  Emerging Solana narratives from live signals
"""


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="solpulse",
        description="Solana Narrative Pulse — signal collection, narrative detection, build ideas",
    )
    group = parser.add_argument_group("modes")
    group.add_argument("--server", action="store_true", help="Run the FastAPI server (default)")
    group.add_argument("--once", action="store_true", help="Run a single detection pass then exit")

    parser.add_argument("--mock", action="store_true", help="Use mock collectors (no data-source API calls)")
    parser.add_argument("--refresh", action="store_true", help="Bypass cached signals for --once")
    parser.add_argument("--json", action="store_true", help="Print the full --once result as JSON")
    return parser


async def _run_once(settings: Settings, args: argparse.Namespace) -> None:
    services = build_services(settings, mock=args.mock or settings.mock_mode)
    try:
        data = await services.pipeline.run(force_refresh=args.refresh)
    finally:
        await services.aclose()

    if args.json:
        print(json.dumps(data, indent=2))
        return

    statuses = {s["slug"]: s for s in data["edition"]["narrativeStatuses"]}
    print(f"Edition {data['edition']['id']} — {data['signalCount']} signals, mode={data['mode']}")
    for n in data["narratives"]:
        st = statuses.get(n["slug"], {})
        print(
            f"  [{n['confidence']:>3.0f}] {n['name']} ({n['category']}) "
            f"{st.get('status', '?')} {st.get('confidenceDelta', 0):+.0f}"
        )
        for idea in n.get("ideas", []):
            print(f"        - {idea['title']}")


async def _serve(settings: Settings, args: argparse.Namespace) -> None:
    import uvicorn

    from solpulse.api.app import create_app

    services = build_services(settings, mock=args.mock or settings.mock_mode)
    app = create_app(services)
    config = uvicorn.Config(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
    server = uvicorn.Server(config)
    await server.serve()


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()

    settings = get_settings()
    setup_logging(settings.log_level)

    print(BANNER, file=sys.stderr)

    try:
        if args.once:
            asyncio.run(_run_once(settings, args))
        else:
            asyncio.run(_serve(settings, args))
    except KeyboardInterrupt:
        logger.info("Interrupted — shutting down")


if __name__ == "__main__":
    main()
