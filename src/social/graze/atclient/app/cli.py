import argparse
import asyncio
import json
import logging
from logging.config import dictConfig
import os
from typing import List, Optional

import sentry_sdk

from social.graze.atclient.app.config import (
    Settings,
    client_metadata,
    create_http_session,
)
from social.graze.atclient.errors import AtClientError
from social.graze.atclient.model.tid import TidGenerator
from social.graze.atclient.resolve.handle import resolve_subject

logger = logging.getLogger(__name__)


def configure_logging(settings: Optional[Settings] = None) -> None:
    logging_config_file = os.getenv("LOGGING_CONFIG_FILE", "")

    if len(logging_config_file) > 0:
        with open(logging_config_file) as fl:
            dictConfig(json.load(fl))
        return

    logging.basicConfig()
    debug = settings.debug if settings is not None else False
    logging.getLogger().setLevel(logging.DEBUG if debug else logging.INFO)


def configure_sentry(settings: Settings) -> None:
    if settings.sentry_dsn:
        sentry_sdk.init(dsn=settings.sentry_dsn, send_default_pii=False)


async def resolve_subjects(settings: Settings, subjects: List[str]) -> int:
    failed = 0
    async with create_http_session(settings) as session:
        for subject in subjects:
            try:
                resolved_subject = await resolve_subject(
                    session,
                    subject,
                    plc_hostname=settings.plc_hostname,
                    public_api_hostname=settings.public_api_hostname,
                )
            except AtClientError:
                logger.exception("Exception resolving subject %s", subject)
                failed += 1
                continue
            print(resolved_subject.model_dump_json())
    return 1 if failed else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="atclient", description="AT Protocol client utilities"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    resolve = commands.add_parser("resolve", help="Resolve handles or DIDs.")
    resolve.add_argument("subject", nargs="+", help="The subject(s) to resolve.")

    commands.add_parser(
        "client-metadata", help="Print the OAuth client metadata document."
    )

    tid = commands.add_parser("tid", help="Generate record keys.")
    tid.add_argument(
        "-n", "--count", type=int, default=1, help="How many keys to generate."
    )
    return parser


def invoke(argv: Optional[List[str]] = None) -> int:
    settings = Settings()
    configure_logging(settings)
    configure_sentry(settings)

    args = build_parser().parse_args(argv)

    if args.command == "resolve":
        return asyncio.run(resolve_subjects(settings, args.subject))
    elif args.command == "client-metadata":
        print(client_metadata(settings).model_dump_json(indent=2))
    elif args.command == "tid":
        generator = TidGenerator()
        for _ in range(args.count):
            print(generator.next_rkey())
    return 0


if __name__ == "__main__":
    raise SystemExit(invoke())
