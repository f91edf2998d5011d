"""
Command-line entry point.

    # store credentials once for this project (.env)
    docanalysis init --key <key> --endpoint https://<resource>.cognitiveservices.azure.com/

    # submit, poll, or do both in one go
    docanalysis submit --model-id prebuilt-layout --path invoice.pdf
    docanalysis poll --model-id prebuilt-layout --result-id <id> --output file
    docanalysis analyze --model-id prebuilt-read --url https://example.com/doc.pdf
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from pprint import pformat
from typing import List, Optional

from dotenv import set_key

from docanalysis.analyzers.document_analyzer import DocumentAnalyzer
from docanalysis.clients.submission import build_file_request, build_url_request
from docanalysis.utils.cache import ResultCache
from docanalysis.utils.config import Settings, settings as default_settings
from docanalysis.utils.credentials import CredentialStore, init_credentials
from docanalysis.utils.errors import DocumentAnalysisError, WaitBudgetExhausted
from docanalysis.utils.export import OutputMode, export_result, summarize_result

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_BUDGET_EXHAUSTED = 2


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def build_parser(settings: Settings = default_settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docanalysis",
        description="Submit documents to the document analysis service and collect the results."
    )
    parser.add_argument("--log-level", default=settings.log_level, help="Logging level (default: %(default)s)")
    commands = parser.add_subparsers(dest="command", required=True)

    credentials = argparse.ArgumentParser(add_help=False)
    credentials.add_argument("--key", "-k", help="Service key (default: DOCUMENT_INTELLIGENCE_KEY)")
    credentials.add_argument("--endpoint", "-e", help="Service endpoint (default: DOCUMENT_INTELLIGENCE_ENDPOINT)")

    service = argparse.ArgumentParser(add_help=False)
    service.add_argument("--model-id", "-m", default=settings.default_model_id, help="Model id (default: %(default)s)")
    service.add_argument("--api-version", default=settings.api_version, help="API version (default: %(default)s)")

    source = argparse.ArgumentParser(add_help=False)
    group = source.add_mutually_exclusive_group(required=True)
    group.add_argument("--url", "-u", help="Public URL of the document")
    group.add_argument("--path", "-p", help="Path to a local document")

    waiting = argparse.ArgumentParser(add_help=False)
    waiting.add_argument("--wait", action=argparse.BooleanOptionalAction, default=True,
                         help="Poll until the analysis finishes (default: on)")
    waiting.add_argument("--poll-interval", type=float, default=settings.poll_interval,
                         help="Seconds between polls (default: %(default)s)")
    waiting.add_argument("--max-wait", type=float, default=settings.max_wait,
                         help="Give up waiting after this many seconds (default: %(default)s)")
    waiting.add_argument("--strict", action="store_true",
                         help="Fail when the wait budget runs out instead of returning the last status")

    output = argparse.ArgumentParser(add_help=False)
    output.add_argument("--output", "-o", choices=[m.value for m in OutputMode], default=OutputMode.VALUE.value,
                        help="Print the result as a value or JSON, or save it to a file (default: %(default)s)")
    output.add_argument("--output-path", help=f"File to write with --output file (default: under {settings.output_dir})")

    init = commands.add_parser("init", parents=[credentials], help="Validate and store credentials in a .env file")
    init.add_argument("--env-file", default=".env", help="File to write (default: %(default)s)")
    commands.add_parser("submit", parents=[credentials, service, source], help="Start an analysis")
    poll = commands.add_parser("poll", parents=[credentials, service, waiting, output], help="Fetch an analysis result")
    poll.add_argument("--result-id", "-r", required=True, help="Result id returned by submit")
    commands.add_parser("analyze", parents=[credentials, service, source, waiting, output],
                        help="Submit, wait and print a summary")
    return parser


async def _load_request(args, settings: Settings):
    if args.url:
        return build_url_request(args.model_id, args.url)
    return await build_file_request(args.model_id, args.path, settings)


async def _emit(result, args, settings: Settings):
    rendered = await export_result(result, args.output, args.output_path, settings.output_dir)
    if args.output == OutputMode.VALUE.value:
        print(pformat(rendered))
    elif args.output == OutputMode.JSON.value:
        print(rendered)
    else:
        print(f"Saved to {rendered}")


async def _init(args, settings: Settings, store: CredentialStore) -> int:
    credentials = init_credentials(store, args.key, args.endpoint)
    Path(args.env_file).touch(exist_ok=True)
    set_key(args.env_file, "DOCUMENT_INTELLIGENCE_KEY", credentials.key)
    set_key(args.env_file, "DOCUMENT_INTELLIGENCE_ENDPOINT", credentials.endpoint)
    print(f"✅ Credentials for {credentials.endpoint} written to {args.env_file}")
    return EXIT_OK


async def _submit(args, settings: Settings, analyzer: DocumentAnalyzer) -> int:
    request = await _load_request(args, settings)
    credentials = analyzer.resolve(args.key, args.endpoint)
    handle = await analyzer.submit(request, credentials, args.api_version)
    if not handle.is_usable:
        print("⚠️ The service accepted the document but returned no result id; submit again to retry.",
              file=sys.stderr)
        return EXIT_OK
    print(handle.result_id)
    return EXIT_OK


async def _poll(args, settings: Settings, analyzer: DocumentAnalyzer) -> int:
    credentials = analyzer.resolve(args.key, args.endpoint)
    policy = analyzer.wait_policy(args.wait, args.poll_interval, args.max_wait)
    result = await analyzer.wait_for_result(args.model_id, args.result_id, credentials, args.api_version, policy)
    await _emit(result, args, settings)
    if args.strict and result.budget_exhausted:
        raise WaitBudgetExhausted(result)
    return EXIT_OK


async def _analyze(args, settings: Settings, analyzer: DocumentAnalyzer) -> int:
    request = await _load_request(args, settings)
    credentials = analyzer.resolve(args.key, args.endpoint)
    policy = analyzer.wait_policy(args.wait, args.poll_interval, args.max_wait)
    result = await analyzer.analyze(request, credentials, args.api_version, policy)
    if result is None:
        print("⚠️ The service accepted the document but returned no result id; nothing to poll.",
              file=sys.stderr)
        return EXIT_OK
    print(summarize_result(result))
    if args.output != OutputMode.VALUE.value:
        await _emit(result, args, settings)
    if args.strict and result.budget_exhausted:
        raise WaitBudgetExhausted(result)
    return EXIT_OK


COMMANDS = {
    "submit": _submit,
    "poll": _poll,
    "analyze": _analyze,
}


async def run(args: argparse.Namespace, settings: Settings = default_settings) -> int:
    """Execute a parsed command and map failures to an exit status."""
    store = CredentialStore.from_settings(settings)
    try:
        if args.command == "init":
            return await _init(args, settings, store)
        async with DocumentAnalyzer(store, settings, cache=ResultCache.from_settings(settings)) as analyzer:
            try:
                return await COMMANDS[args.command](args, settings, analyzer)
            finally:
                if analyzer.cache:
                    await analyzer.cache.close()
    except WaitBudgetExhausted as e:
        print(f"⏱️ {e}", file=sys.stderr)
        return EXIT_BUDGET_EXHAUSTED
    except DocumentAnalysisError as e:
        print(f"❌ {args.command} failed: {e}", file=sys.stderr)
        logger.debug("Command failed", exc_info=True)
        return EXIT_FAILURE


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
