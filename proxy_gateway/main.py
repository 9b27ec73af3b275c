"""
Run the gateway.

Usage:
    proxy-gateway [--config config.toml]
    python -m proxy_gateway --config /etc/proxy-gateway/config.toml
"""

import argparse
import sys

import uvicorn

from proxy_gateway.config import load_config
from proxy_gateway.errors import ConfigError
from proxy_gateway.server import create_app


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Forward requests under a path prefix to a single upstream"
    )
    parser.add_argument(
        "-c",
        "--config",
        help="Path to the TOML config file (default: $APP_CONFIG_PATH or config.toml)",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Startup failed: {e.message}", file=sys.stderr)
        return 1

    # Upstream headers pass through as received, uvicorn must not add its own
    uvicorn.run(
        create_app(config),
        host=config.server.host,
        port=config.server.port,
        log_level=config.log.level,
        access_log=True,
        server_header=False,
        date_header=False,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
