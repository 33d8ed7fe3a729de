"""CVMFS Scraper - Report backend, repositories and metadata of CVMFS servers."""

import argparse
import sys
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path

import httpx

from config import Config, make_server_entry
from errors import ConfigError
from logging_setup import get_logger, setup_logging, write_progress
from models import BackendKind, ServerRole
from servers import scrape_server


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Scrape CVMFS servers for their backend, repositories and metadata",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file (default: config.toml)",
    )
    parser.add_argument(
        "-s", "--server",
        type=str,
        default=None,
        help="Scrape this server instead of the servers in the config file",
    )
    parser.add_argument(
        "--type",
        type=str,
        default=ServerRole.MIRROR.value,
        choices=[role.value for role in ServerRole],
        help="Server type for --server (default: stratum1)",
    )
    parser.add_argument(
        "--backend",
        type=str,
        default=BackendKind.AUTO_DETECT.value,
        choices=[backend.value for backend in BackendKind],
        help="Backend for --server (default: autodetect)",
    )
    parser.add_argument(
        "-r", "--repository",
        action="append",
        default=[],
        help="Repository expected on --server (repeatable)",
    )
    parser.add_argument(
        "-t", "--timeout",
        type=float,
        default=None,
        help="HTTP timeout in seconds",
    )
    parser.add_argument(
        "-j", "--concurrency",
        type=int,
        default=None,
        help="Number of servers scraped in parallel",
    )

    # Logging verbosity (mutually exclusive)
    verbosity_group = parser.add_mutually_exclusive_group()
    verbosity_group.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output (DEBUG level)",
    )
    verbosity_group.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Quiet mode (only warnings and errors)",
    )

    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Write logs to file (always DEBUG level)",
    )

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    verbosity = 1 if args.verbose else (-1 if args.quiet else 0)
    setup_logging(verbosity=verbosity, log_file=args.log_file)
    logger = get_logger()

    logger.debug("Loading configuration...")
    try:
        servers_override = None
        if args.server:
            servers_override = [
                make_server_entry(args.server, args.type, args.backend, args.repository)
            ]
        config = Config.load(
            config_path=args.config,
            timeout_override=args.timeout,
            concurrency_override=args.concurrency,
            servers_override=servers_override,
        )
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return 2

    if not config.servers:
        logger.error("No servers to scrape, add [[servers]] to the config or use --server")
        return 2

    logger.info("Servers: %d", len(config.servers))
    logger.info("Timeout: %ss", config.timeout)
    logger.info("Concurrent servers: %d", config.concurrent_servers)

    results = []
    total = len(config.servers)
    with httpx.Client(timeout=config.timeout) as client:
        with ThreadPoolExecutor(max_workers=config.concurrent_servers) as executor:
            futures = [
                executor.submit(
                    scrape_server,
                    entry.server,
                    entry.repositories,
                    client,
                    config.concurrent_repositories,
                )
                for entry in config.servers
            ]
            for completed, future in enumerate(as_completed(futures), start=1):
                results.append(future.result())
                if verbosity >= 0:
                    write_progress(f"Scraping: {completed}/{total}")
    if verbosity >= 0:
        sys.stderr.write("\n")

    failed = 0
    for result in sorted(results, key=lambda r: r.hostname):
        print(result.render())
        print()
        if result.is_failed():
            failed += 1
            logger.warning("Failed to scrape %s: %s", result.hostname, result.error)

    logger.info("Scraped %d servers, %d failed", total, failed)
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
