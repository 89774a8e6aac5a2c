"""Command line entry point for the scheduled passes.

Meant to be invoked by an external scheduler (cron, a k8s CronJob...).
Prints the pass summary as JSON and exits non-zero when the pass could not
run at all.
"""

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional

from trendpulse.core.logging import get_logger, setup_logging
from trendpulse.trends.pipeline import run_all, run_embedding_pass, run_heat_scoring, run_trend_detection

logger = get_logger(__name__)

PASSES = ('heat', 'embed', 'trends', 'all')


async def run_pass(name: str) -> Dict[str, Any]:
    """Run a named pass and return its summary dictionary."""
    if name == 'heat':
        return (await run_heat_scoring()).to_dict()
    if name == 'embed':
        return (await run_embedding_pass()).to_dict()
    if name == 'trends':
        return (await run_trend_detection()).to_dict()
    if name == 'all':
        return await run_all()
    raise ValueError(f"Unknown pass: {name}")


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description='TrendPulse scheduled passes')
    parser.add_argument(
        'pass_name',
        choices=PASSES,
        help='Pass to run'
    )
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )

    args = parser.parse_args(argv)

    setup_logging(f"trendpulse-{args.pass_name}", level="DEBUG" if args.verbose else None)

    try:
        summary = asyncio.run(run_pass(args.pass_name))
    except Exception as e:
        logger.error(f"Pass '{args.pass_name}' crashed: {e}", exc_info=True)
        print(json.dumps({'pass': args.pass_name, 'fatal': True, 'errors': [str(e)]}))
        return 1

    print(json.dumps({'pass': args.pass_name, **summary}, default=str, indent=2))
    return 1 if summary.get('fatal') else 0


if __name__ == "__main__":
    sys.exit(main())
