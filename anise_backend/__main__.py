"""
Command line entry point.

    python -m anise_backend serve [--host HOST] [--port PORT]
    python -m anise_backend recount-members [DAO_ADDRESS]
"""
import argparse
import json
import logging
import sys

from .services import build_services

logger = logging.getLogger("anise_backend")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="anise_backend")
    parser.add_argument("--log-level", default="INFO")
    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=3001)

    recount = commands.add_parser("recount-members", help="Recompute DAO member counts")
    recount.add_argument("dao", nargs="?", help="Only this DAO")

    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(name)s %(levelname)s %(message)s")

    services = build_services()
    if args.command == "serve":
        from .api import create_app

        create_app(services).run(host=args.host, port=args.port)
        return 0

    if args.dao:
        counts = {args.dao: services.members.recount_members(args.dao)}
    else:
        counts = services.members.recount_all_members()
    print(json.dumps(counts, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
