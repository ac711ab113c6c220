#!/usr/bin/env python3
"""
Route one query through the router and print the result.

Usage:
    python scripts/route_query.py "Should I pivot to enterprise customers?"
    python scripts/route_query.py "Build a cash flow forecast" --persona investor
    python scripts/route_query.py "I feel stuck" --stream
    python scripts/route_query.py "Model our unit economics" --delegate-from co_founder --urgency high
    python scripts/route_query.py --recommend --persona partner
"""

import argparse
import asyncio
import json
import sys

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from loguru import logger
from infrastructure import config
from infrastructure.log import setup_logging
from infrastructure.observability import flush
from agent_router import HandlerId, Interaction, build_router


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Route a query through the agent router.")
    parser.add_argument("query", nargs="?", default="", help="User request text")
    parser.add_argument("--persona", default="entrepreneur",
                        help="entrepreneur | investor | lender | grantor | partner | admin")
    parser.add_argument("--user-id", default="cli-user")
    parser.add_argument("--stream", action="store_true", help="Stream the primary response")
    parser.add_argument("--delegate-from", choices=[h.value for h in HandlerId],
                        help="Delegate the query as a task from this handler")
    parser.add_argument("--urgency", default="medium", choices=["low", "medium", "high"])
    parser.add_argument("--recommend", action="store_true", help="List recommended handlers")
    parser.add_argument("--no-llm", action="store_true", help="Use templated handler content")
    parser.add_argument("--json", action="store_true", help="Print raw JSON instead of text")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--audit-log", help="Write delegation audit events to this JSON-lines file")
    parser.add_argument("--show-config", action="store_true")
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> int:
    router = build_router(use_llm=not args.no_llm)
    context = {"persona": args.persona, "user_id": args.user_id}

    if args.recommend:
        recs = router.get_agent_recommendations(context)
        print(json.dumps([r.to_dict() for r in recs], indent=2))
        return 0

    if not args.query:
        logger.error("A query is required unless --recommend is given.")
        return 2

    if args.delegate_from:
        response = await router.delegate_task(
            HandlerId(args.delegate_from), args.query, context, args.urgency
        )
        print(json.dumps(response.to_dict(), indent=2) if args.json else response.content)
        return 1 if "error" in response.metadata else 0

    interaction = Interaction(query=args.query, persona=args.persona, context=context)

    if args.stream:
        async for fragment in router.route_streaming(interaction):
            if args.json:
                print(json.dumps(fragment.to_dict(), default=str))
            elif fragment.content:
                print(fragment.content, end="", flush=True)
        print()
        return 0

    combined = await router.route(interaction)
    if args.json:
        print(json.dumps(combined.to_dict(), indent=2, default=str))
    else:
        meta = combined.collaboration_meta
        print(combined.primary.content)
        print()
        logger.info(
            "handler={} method={} confidence={}",
            combined.primary.handler.value,
            meta.get("synthesis_method"),
            meta.get("confidence_score"),
        )
    return 1 if combined.collaboration_meta.get("error") else 0


def main(argv=None) -> int:
    args = _parse_args(argv)
    setup_logging(args.log_level, audit_file=args.audit_log)
    if args.show_config:
        config.dump()
    try:
        return asyncio.run(_run(args))
    finally:
        flush()


if __name__ == '__main__':
    sys.exit(main())
