#!/usr/bin/env python3
"""Run the cluster update controller with explicit args."""
from __future__ import annotations

import argparse
from dataclasses import replace

import uvicorn

from cluster_updater import UpdaterSettings, create_app
from cluster_updater.observability import configure_logging


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser()
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8080)
    parser.add_argument("--log-level", default=None)
    parser.add_argument("--run-driver", action=argparse.BooleanOptionalAction, default=None)
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    configure_logging(level=args.log_level)

    settings = UpdaterSettings.from_env()
    if args.run_driver is not None:
        settings = replace(settings, run_driver=args.run_driver)

    app = create_app(settings)
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
