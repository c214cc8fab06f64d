import argparse
import json
import sys

from sitesearch.config import load_settings
from sitesearch.coordinator import RunCoordinator
from sitesearch.search import SearchEngine
from sitesearch.util.logger import setup_logging


def parse_args():
    parser = argparse.ArgumentParser(description="Crawl and index the configured sites")

    parser.add_argument(
        "--config",
        help="Path to the YAML configuration (default: $SITESEARCH_CONFIG or config.yaml)",
    )
    parser.add_argument(
        "--query",
        help="After indexing, run this search and print the results as JSON",
    )
    parser.add_argument(
        "--site",
        help="Restrict --query to one site URL (default: every indexed site)",
    )
    parser.add_argument(
        "--limit", type=int, default=20, help="Results to print for --query (default: 20)"
    )
    parser.add_argument(
        "--skip-crawl",
        action="store_true",
        help="Search the existing index without crawling first",
    )

    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    settings = load_settings(args.config)
    setup_logging(settings.logging)

    coordinator = RunCoordinator(settings)
    try:
        if not args.skip_crawl:
            result = coordinator.start_run()
            if not result.result:
                print(result.error, file=sys.stderr)
                sys.exit(1)
            try:
                coordinator.wait()
            except KeyboardInterrupt:
                coordinator.stop_run()

        if args.query:
            engine = SearchEngine(settings.database, coordinator.extractor)
            response = engine.search(args.query, args.site, 0, args.limit)
            print(json.dumps(response.model_dump(), ensure_ascii=False, indent=2))
    finally:
        coordinator.close()
