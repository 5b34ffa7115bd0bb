#!/usr/bin/env python3
"""
Main entry point for the site search engine.
"""

import asyncio
import argparse
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from sitesearch import __version__
from sitesearch.api import start_server
from sitesearch.errors import SearchEngineError
from sitesearch.service import SearchService
from sitesearch.utils.config import load_config, Config
from sitesearch.utils.logger import setup_logging, log_system_info
from sitesearch.utils.monitoring import initialize_monitoring


class SearchEngineApp:
    """Main application class for the command line."""

    def __init__(self):
        self.service: Optional[SearchService] = None
        self.logger = logging.getLogger(__name__)
        self._shutdown_event = asyncio.Event()

    def setup_signal_handlers(self):
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def signal_handler(signum):
            self.logger.info(f"Received signal {signum}, initiating shutdown...")
            self._shutdown_event.set()

        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, signal_handler, signum)

    def _prepare(self, config: Config) -> SearchService:
        setup_logging(config.logging)
        metrics = initialize_monitoring(config.monitoring.metrics_enabled,
                                        config.monitoring.prometheus_port)
        metrics.start_server()
        self.service = SearchService(config, metrics=metrics)
        return self.service

    async def run(self, args: argparse.Namespace) -> int:
        config = load_config(args.config)
        service = self._prepare(config)

        try:
            await service.initialize()
            if args.dry_run:
                return await self._dry_run(config)
            return await getattr(self, f"_cmd_{args.command.replace('-', '_')}")(args)

        except SearchEngineError as e:
            self.logger.error(f"{args.command} failed: {e}")
            print(json.dumps({'result': False, 'error': str(e)}, ensure_ascii=False))
            return 1

        finally:
            await service.close()

    async def _cmd_serve(self, args: argparse.Namespace) -> int:
        self.setup_signal_handlers()
        log_system_info()
        config = self.service.config
        runner = await start_server(self.service, config.api.host, config.api.port)
        try:
            await self._shutdown_event.wait()
        finally:
            await runner.cleanup()
        return 0

    async def _cmd_crawl(self, args: argparse.Namespace) -> int:
        self.setup_signal_handlers()
        self.logger.info("=== INDEXING STARTING ===")
        await self.service.start_indexing()

        crawl_task = asyncio.create_task(self.service.wait_until_finished())
        shutdown_task = asyncio.create_task(self._shutdown_event.wait())
        done, pending = await asyncio.wait(
            [crawl_task, shutdown_task],
            return_when=asyncio.FIRST_COMPLETED
        )

        if shutdown_task in done and self.service.is_running():
            self.logger.info("Shutdown requested, stopping indexing...")
            await self.service.stop_indexing()

        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        stats = await self.service.get_statistics()
        print(json.dumps(stats.to_dict(), ensure_ascii=False, indent=2))
        self.logger.info("=== INDEXING FINISHED ===")
        return 0

    async def _cmd_index_page(self, args: argparse.Namespace) -> int:
        await self.service.index_page(args.url)
        print(json.dumps({'result': True}))
        return 0

    async def _cmd_search(self, args: argparse.Namespace) -> int:
        response = await self.service.search(args.query, args.site, args.offset, args.limit)
        print(json.dumps(response.to_dict(), ensure_ascii=False, indent=2))
        return 0

    async def _cmd_stats(self, args: argparse.Namespace) -> int:
        stats = await self.service.get_statistics()
        print(json.dumps(stats.to_dict(), ensure_ascii=False, indent=2))
        return 0

    async def _dry_run(self, config: Config) -> int:
        """Check configuration and storage without crawling."""
        self.logger.info(f"Sites: {[site.url for site in config.sites]}")
        self.logger.info(f"Storage type: {config.storage.type}")
        pages = await self.service.store.count_pages()
        self.logger.info(f"Storage reachable, {pages} pages indexed")
        self.logger.info("Dry run completed")
        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Site search engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve                       # Run the HTTP API
  python main.py crawl                       # Index all configured sites
  python main.py index-page https://example.com/about
  python main.py search "cats and dogs" --limit 5
  python main.py stats
        """
    )
    parser.add_argument('--config', default='config.yaml',
                        help='Path to configuration file (default: config.yaml)')
    parser.add_argument('--dry-run', action='store_true',
                        help='Test configuration and storage only')
    parser.add_argument('--version', action='version',
                        version=f'Site search engine {__version__}')

    commands = parser.add_subparsers(dest='command', required=True)
    commands.add_parser('serve', help='Run the HTTP API')
    commands.add_parser('crawl', help='Index every configured site and wait for completion')

    index_page = commands.add_parser('index-page', help='Re-index a single page')
    index_page.add_argument('url')

    search = commands.add_parser('search', help='Search the index')
    search.add_argument('query')
    search.add_argument('--site', help='Restrict to one site root URL')
    search.add_argument('--offset', type=int)
    search.add_argument('--limit', type=int)

    commands.add_parser('stats', help='Show indexing statistics')
    return parser


def main(argv=None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    if not Path(args.config).exists():
        print(f"Error: Configuration file '{args.config}' not found.")
        print("Please create a config.yaml file or specify a different path with --config")
        return 1

    app = SearchEngineApp()
    try:
        return asyncio.run(app.run(args))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 1


if __name__ == '__main__':
    sys.exit(main())
