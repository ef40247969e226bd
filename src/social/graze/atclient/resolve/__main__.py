"""``python -m social.graze.atclient.resolve alice.example.com did:plc:...``"""

import argparse
import asyncio

from social.graze.atclient.app.cli import configure_logging, resolve_subjects
from social.graze.atclient.app.config import Settings


def main() -> int:
    settings = Settings()
    configure_logging(settings)

    parser = argparse.ArgumentParser(
        prog="resolve", description="Resolve handles or DIDs to their PDS"
    )
    parser.add_argument("subject", nargs="+", help="The subject(s) to resolve.")
    parser.add_argument(
        "--plc-hostname",
        default=settings.plc_hostname,
        help="The PLC hostname to use for resolving did-method-plc DIDs.",
    )
    parser.add_argument(
        "--public-api-hostname",
        default=settings.public_api_hostname,
        help="The public API hostname used when well-known handle lookup fails.",
    )
    args = parser.parse_args()

    settings = settings.model_copy(
        update={
            "plc_hostname": args.plc_hostname,
            "public_api_hostname": args.public_api_hostname,
        }
    )
    return asyncio.run(resolve_subjects(settings, args.subject))


if __name__ == "__main__":
    raise SystemExit(main())
