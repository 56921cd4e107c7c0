#!/usr/bin/env python3
"""
Command line entry point

    python -m lending_engine run-once [--tenant TENANT_ID]
    python -m lending_engine serve [--host HOST] [--port PORT]

run-once is what a cron-style scheduler invokes; every run is idempotent,
so a failed run is simply retried on the next tick.
"""

import argparse
import json
import sys

import uvicorn

from .config import get_config
from .logging_config import setup_logging


def run_once(tenant_id=None) -> int:
    from .api.system import LendingSystem
    
    system = LendingSystem()
    if tenant_id:
        result = system.engine.process_tenant_portfolio(tenant_id).to_dict()
        failed = result["loans_failed"] > 0
    else:
        result = system.engine.process_all_tenants()
        failed = bool(result["tenants_failed"])
    print(json.dumps(result, indent=2))
    return 1 if failed else 0


def serve(host: str, port: int) -> None:
    from .api import create_app
    
    uvicorn.run(create_app(), host=host, port=port, reload=False)


def main(argv=None) -> int:
    config = get_config()
    parser = argparse.ArgumentParser(description="Loan lifecycle automation engine")
    subparsers = parser.add_subparsers(dest="command", required=True)
    
    run_parser = subparsers.add_parser("run-once", help="Process portfolios once and exit")
    run_parser.add_argument("--tenant", type=str, default=None,
                            help="Only process this tenant (default: all active tenants)")
    
    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", type=str, default=config.api_host)
    serve_parser.add_argument("--port", type=int, default=config.api_port)
    
    args = parser.parse_args(argv)
    setup_logging(config.log_level, log_format=config.log_format)
    
    if args.command == "run-once":
        return run_once(args.tenant)
    serve(args.host, args.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
