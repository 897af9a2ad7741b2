"""
Command-line entry point for the content autopilot.

CLI:
    content-autopilot sweep
    content-autopilot sweep-org --org-id ORG
    content-autopilot rechecks
    content-autopilot follow-up
    content-autopilot submit --draft-id ID
    content-autopilot approve --draft-id ID
    content-autopilot reject --draft-id ID
    content-autopilot archive --draft-id ID
    content-autopilot publish --draft-id ID --channel download --out page.html
    content-autopilot expire-occasions --org-id ORG
"""

from __future__ import annotations

import argparse
import asyncio
import base64
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from content_autopilot.approval import DraftWorkflow
from content_autopilot.autopilot_service import AutopilotService
from content_autopilot.brief_generator import AnthropicTextGenerator
from content_autopilot.config import AutopilotSettings, get_settings
from content_autopilot.correction_verifier import CorrectionVerifier
from content_autopilot.draft_creator import DraftCreator, archive_expired_occasion_drafts
from content_autopilot.engines import build_engine_router
from content_autopilot.errors import AutopilotError, PublishError
from content_autopilot.followup import run_correction_follow_up, run_sov_rechecks
from content_autopilot.http_client import ChannelHttpClient
from content_autopilot.publish_gbp import GBPPublisher
from content_autopilot.publish_wordpress import WordPressPublisher
from content_autopilot.recheck import RecheckScheduler, backend_from_url
from content_autopilot.store import JsonAutopilotStore


def _print_json(data: Dict[str, Any]) -> None:
    print(json.dumps(data, indent=2, default=str))


def _store(settings: AutopilotSettings) -> JsonAutopilotStore:
    return JsonAutopilotStore(settings.data_dir)


def _workflow(
    settings: AutopilotSettings,
    store: JsonAutopilotStore,
    http: ChannelHttpClient,
    scheduler: RecheckScheduler,
) -> DraftWorkflow:
    gbp = None
    if settings.google_client_id and settings.google_client_secret:
        gbp = GBPPublisher(store, http, settings.google_client_id, settings.google_client_secret)
    return DraftWorkflow(
        store,
        gbp=gbp,
        wordpress=WordPressPublisher(store, http),
        scheduler=scheduler,
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def _cmd_sweep(args: argparse.Namespace, settings: AutopilotSettings) -> int:
    store = _store(settings)
    generator = AnthropicTextGenerator(settings.anthropic_api_key) if settings.anthropic_api_key else None
    service = AutopilotService(store, DraftCreator(store, generator))
    try:
        if args.command == "sweep-org":
            summary = await service.run_for_org(args.org_id)
        else:
            summary = await service.run_for_all_orgs()
    finally:
        if generator is not None:
            await generator.close()
    _print_json(summary.to_dict())
    return 0


async def _cmd_rechecks(args: argparse.Namespace, settings: AutopilotSettings) -> int:
    router = build_engine_router(settings)
    backend = backend_from_url(settings.redis_url)
    try:
        summary = await run_sov_rechecks(RecheckScheduler(backend), _store(settings), router)
    finally:
        await router.close()
        await backend.close()
    _print_json(summary.to_dict())
    return 0


async def _cmd_follow_up(args: argparse.Namespace, settings: AutopilotSettings) -> int:
    router = build_engine_router(settings)
    try:
        summary = await run_correction_follow_up(_store(settings), CorrectionVerifier(router))
    finally:
        await router.close()
    _print_json(summary.to_dict())
    return 0


async def _cmd_transition(args: argparse.Namespace, settings: AutopilotSettings) -> int:
    store = _store(settings)
    backend = backend_from_url(settings.redis_url)
    try:
        async with ChannelHttpClient(settings.http_timeout) as http:
            workflow = _workflow(settings, store, http, RecheckScheduler(backend))
            draft = await workflow.transition(args.draft_id, args.command)
    finally:
        await backend.close()
    _print_json({"id": draft.id, "status": draft.status, "human_approved": draft.human_approved})
    return 0


async def _cmd_publish(args: argparse.Namespace, settings: AutopilotSettings) -> int:
    store = _store(settings)
    backend = backend_from_url(settings.redis_url)
    try:
        async with ChannelHttpClient(settings.http_timeout) as http:
            workflow = _workflow(settings, store, http, RecheckScheduler(backend))
            result = await workflow.publish(args.draft_id, args.channel)
    finally:
        await backend.close()
    if result.download_payload and args.out:
        Path(args.out).write_bytes(base64.b64decode(result.download_payload))
        print(f"Wrote {args.out}")
    _print_json({"status": result.status, "published_url": result.published_url})
    return 0


async def _cmd_expire_occasions(args: argparse.Namespace, settings: AutopilotSettings) -> int:
    count = await archive_expired_occasion_drafts(_store(settings), args.org_id)
    _print_json({"archived": count})
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="content-autopilot",
        description="Autopilot content pipeline",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    sp = subparsers.add_parser("sweep", help="Run the autopilot for every eligible org")
    sp.set_defaults(func=_cmd_sweep)

    sp = subparsers.add_parser("sweep-org", help="Run the autopilot for one org")
    sp.add_argument("--org-id", required=True)
    sp.set_defaults(func=_cmd_sweep)

    sp = subparsers.add_parser("rechecks", help="Process due post-publish rechecks")
    sp.set_defaults(func=_cmd_rechecks)

    sp = subparsers.add_parser("follow-up", help="Re-verify hallucination alerts")
    sp.set_defaults(func=_cmd_follow_up)

    for action in ("approve", "reject", "archive", "submit"):
        sp = subparsers.add_parser(action, help=f"{action.capitalize()} a draft")
        sp.add_argument("--draft-id", required=True)
        sp.set_defaults(func=_cmd_transition)

    sp = subparsers.add_parser("publish", help="Publish an approved draft")
    sp.add_argument("--draft-id", required=True)
    sp.add_argument("--channel", choices=["download", "gbp", "wordpress"], default="download")
    sp.add_argument("--out", default=None, help="Where to write the download artifact")
    sp.set_defaults(func=_cmd_publish)

    sp = subparsers.add_parser("expire-occasions", help="Archive occasion drafts past their peak")
    sp.add_argument("--org-id", required=True)
    sp.set_defaults(func=_cmd_expire_occasions)

    return parser


def main(argv: Optional[list] = None) -> int:
    """CLI entry point for the content autopilot."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 1

    settings = get_settings()
    try:
        return asyncio.run(args.func(args, settings))
    except PublishError as exc:
        kind = "retry later" if exc.retryable else "action required"
        print(f"Publish failed ({kind}): {exc}", file=sys.stderr)
        return 2
    except AutopilotError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
