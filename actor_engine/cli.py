#!/usr/bin/env python3
"""
Admin CLI for the actor engine.

Operates on the JSON development store (ACTOR_DATA_DIR/actors.json) and
writes activity to ACTOR_DATA_DIR/activity/.

Usage:
    python -m actor_engine.cli register <policy_id> <kind> [options]
    python -m actor_engine.cli show <actor_id>
    python -m actor_engine.cli token generate <actor_id> [--days N]
    python -m actor_engine.cli ownership remove <landlord_id> <co_owner_id>
    python -m actor_engine.cli financials <landlord_id>
    python -m actor_engine.cli primary transfer <policy_id> <from_id> <to_id>

Examples:
    # Register the first landlord of a policy (becomes primary)
    python -m actor_engine.cli register POL-1 landlord --name "Ana Ruiz" --email ana@example.com

    # Issue a 14-day self-service link
    python -m actor_engine.cli token generate LLD-3F2A9C1B7D4E --days 14
"""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import dataclass

from actor_engine.activity import ActivityLog, FileActivitySink
from actor_engine.errors import ActorEngineError, OwnershipValidationError
from actor_engine.lifecycle import ActorLifecycle
from actor_engine.models import ActorKind, LandlordDetails
from actor_engine.ownership import OwnershipLedger
from actor_engine.primary import PrimaryDesignationManager
from actor_engine.repository import InMemoryActorRepository
from actor_engine.requirements import SubmissionRequirementsEvaluator
from actor_engine.tokens import TokenManager, remaining_time
from utils.config import Config
from utils.formatting import format_percent


STAFF = "admin-cli"


@dataclass
class Engine:
    """Components wired over one repository and activity log."""

    activity: ActivityLog
    lifecycle: ActorLifecycle
    ledger: OwnershipLedger
    primary: PrimaryDesignationManager
    tokens: TokenManager


def build_engine(config: Config) -> Engine:
    repository = InMemoryActorRepository(config.actors_path)
    activity = ActivityLog(FileActivitySink(config.activity_dir))
    tokens = TokenManager(
        repository,
        activity,
        app_url=config.app_url,
        default_expiry_days=config.token_default_expiry_days,
        bounds=config.token_bounds,
    )
    primary = PrimaryDesignationManager(repository, activity)
    lifecycle = ActorLifecycle(
        repository,
        SubmissionRequirementsEvaluator(),
        primary=primary,
        tokens=tokens,
        activity=activity,
    )
    ledger = OwnershipLedger(repository, activity, config.redistribution_strategy)
    return Engine(activity, lifecycle, ledger, primary, tokens)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


# =============================================================================
# Commands
# =============================================================================


async def cmd_register(engine: Engine, args) -> int:
    kind = ActorKind(args.kind)
    details = LandlordDetails(is_primary=args.primary) if kind is ActorKind.LANDLORD else None
    actor = await engine.lifecycle.register_actor(
        args.policy_id,
        kind,
        details=details,
        performed_by=STAFF,
        full_name=args.name,
        email=args.email,
        phone=args.phone,
    )
    print(f"Registered {actor.kind.value} {actor.id}" + (" (primary)" if actor.is_primary else ""))
    return 0


async def cmd_show(engine: Engine, args) -> int:
    actor = await engine.lifecycle.get_actor(args.actor_id)
    _print_json(actor.to_public_dict())
    return 0


async def cmd_list(engine: Engine, args) -> int:
    actors = await engine.lifecycle.list_policy_actors(args.policy_id)
    if not actors:
        print(f"No actors for policy {args.policy_id}")
        return 0
    for actor in actors:
        marker = "*" if actor.is_primary else " "
        print(f"{marker} {actor.id:<18} {actor.kind.value:<14} {actor.verification_status.value:<17} {actor.display_name}")
    return 0


async def cmd_requirements(engine: Engine, args) -> int:
    requirements = await engine.lifecycle.check_requirements(args.actor_id)
    if requirements.can_submit:
        print("All submission requirements met")
        return 0
    print("Missing:")
    for item in requirements.missing:
        print(f"  - {item}")
    return 1


async def cmd_submit(engine: Engine, args) -> int:
    actor = await engine.lifecycle.submit(args.actor_id, performed_by=STAFF)
    print(f"{actor.id}: {actor.verification_status.value}")
    return 0


async def cmd_approve(engine: Engine, args) -> int:
    actor = await engine.lifecycle.approve(args.actor_id, args.by)
    print(f"{actor.id}: {actor.verification_status.value}")
    return 0


async def cmd_reject(engine: Engine, args) -> int:
    actor = await engine.lifecycle.reject(args.actor_id, args.by, args.reason)
    print(f"{actor.id}: {actor.verification_status.value}")
    return 0


async def cmd_request_changes(engine: Engine, args) -> int:
    actor = await engine.lifecycle.request_changes(args.actor_id, args.by, args.change)
    print(f"{actor.id}: {actor.verification_status.value}")
    return 0


async def cmd_remove(engine: Engine, args) -> int:
    await engine.lifecycle.remove_actor(args.actor_id, performed_by=STAFF)
    print(f"Removed {args.actor_id}")
    return 0


async def cmd_token(engine: Engine, args) -> int:
    if args.action == "generate":
        issued = await engine.tokens.generate(args.target, args.days, performed_by=STAFF)
        if args.json:
            _print_json(issued.to_public_dict())
            return 0
        print(f"Token: {issued.token}")
        print(f"Expires: {issued.expires_at.isoformat()}")
        if issued.link:
            print(f"Link: {issued.link}")
    elif args.action == "validate":
        result = await engine.tokens.validate(args.target)
        if not result.is_valid:
            print(f"Invalid: {result.error}")
            return 1
        left = remaining_time(result.actor.token_expiry)
        print(f"Valid for {result.actor.id} ({left.days}d {left.hours}h {left.minutes}m left)")
    elif args.action == "revoke":
        await engine.tokens.revoke(args.target, performed_by=STAFF)
        print(f"Revoked token for {args.target}")
    elif args.action == "refresh":
        issued = await engine.tokens.refresh(args.target, args.days or 1, performed_by=STAFF)
        _print_json(issued.to_public_dict())
    return 0


async def cmd_ownership(engine: Engine, args) -> int:
    if args.action == "add":
        co_owner = await engine.ledger.add_co_owner(
            args.landlord_id, args.name, args.percentage, performed_by=STAFF
        )
        if not args.json:
            print(f"Added co-owner {co_owner.id} with {format_percent(co_owner.ownership_percentage)}")
    elif args.action == "remove":
        await engine.ledger.remove_co_owner(
            args.landlord_id, args.co_owner_id, args.strategy, performed_by=STAFF
        )
        if not args.json:
            print(f"Removed co-owner {args.co_owner_id}")

    summary = await engine.ledger.get_summary(args.landlord_id)
    if args.json:
        _print_json(summary.to_dict())
        return 0 if summary.is_valid else 1
    print(f"Landlord {summary.landlord_id}: {format_percent(summary.primary_percentage)}")
    for co_owner in summary.co_owners:
        print(f"  {co_owner.id} {co_owner.name}: {format_percent(co_owner.ownership_percentage)}")
    print(f"Total: {format_percent(summary.total)}" + ("" if summary.is_valid else " (INVALID)"))
    for error in summary.errors:
        print(f"  ! {error}")
    return 0 if summary.is_valid else 1


async def cmd_financials(engine: Engine, args) -> int:
    summary = await engine.lifecycle.get_financial_summary(args.landlord_id)
    _print_json(summary.to_dict())
    return 0


async def cmd_primary(engine: Engine, args) -> int:
    if args.action == "set":
        await engine.primary.set_primary(args.policy_id, args.landlord_ids[0], performed_by=STAFF)
    elif args.action == "transfer":
        if len(args.landlord_ids) != 2:
            print("Error: transfer needs <from_id> <to_id>", file=sys.stderr)
            return 1
        await engine.primary.transfer_primary(args.policy_id, *args.landlord_ids, performed_by=STAFF)

    primary = await engine.primary.get_primary(args.policy_id)
    if primary is None:
        print(f"Policy {args.policy_id} has no landlords")
        return 0
    print(f"Primary landlord of {args.policy_id}: {primary.id} ({primary.display_name})")
    return 0


async def run_command(engine: Engine, args) -> int:
    try:
        return await args.func(engine, args)
    except OwnershipValidationError as e:
        print("Error: ownership rules violated", file=sys.stderr)
        for error in e.errors:
            print(f"  - {error}", file=sys.stderr)
        return 1
    except (ActorEngineError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await engine.activity.drain()


# =============================================================================
# Parser
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Policy actor engine - admin CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m actor_engine.cli register POL-1 landlord --name "Ana Ruiz"
    python -m actor_engine.cli token generate LLD-3F2A9C1B7D4E --days 14
    python -m actor_engine.cli primary show POL-1

Data:
    Stored under $ACTOR_DATA_DIR (default ./data)
        """,
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    register = subparsers.add_parser("register", help="Register a new actor")
    register.add_argument("policy_id")
    register.add_argument("kind", choices=[k.value for k in ActorKind])
    register.add_argument("--name")
    register.add_argument("--email")
    register.add_argument("--phone")
    register.add_argument("--primary", action="store_true", help="Landlords only: take primary status")
    register.set_defaults(func=cmd_register)

    show = subparsers.add_parser("show", help="Show an actor")
    show.add_argument("actor_id")
    show.set_defaults(func=cmd_show)

    list_parser = subparsers.add_parser("list", help="List actors of a policy")
    list_parser.add_argument("policy_id")
    list_parser.set_defaults(func=cmd_list)

    requirements = subparsers.add_parser("requirements", help="Check submission requirements")
    requirements.add_argument("actor_id")
    requirements.set_defaults(func=cmd_requirements)

    submit = subparsers.add_parser("submit", help="Submit an actor for review")
    submit.add_argument("actor_id")
    submit.set_defaults(func=cmd_submit)

    approve = subparsers.add_parser("approve", help="Approve an actor")
    approve.add_argument("actor_id")
    approve.add_argument("--by", required=True)
    approve.set_defaults(func=cmd_approve)

    reject = subparsers.add_parser("reject", help="Reject an actor")
    reject.add_argument("actor_id")
    reject.add_argument("--by", required=True)
    reject.add_argument("--reason", required=True)
    reject.set_defaults(func=cmd_reject)

    changes = subparsers.add_parser("request-changes", help="Request changes from an actor")
    changes.add_argument("actor_id")
    changes.add_argument("--by", required=True)
    changes.add_argument("--change", action="append", required=True)
    changes.set_defaults(func=cmd_request_changes)

    remove = subparsers.add_parser("remove", help="Remove an actor")
    remove.add_argument("actor_id")
    remove.set_defaults(func=cmd_remove)

    token = subparsers.add_parser("token", help="Self-service tokens")
    token.add_argument("action", choices=["generate", "validate", "revoke", "refresh"])
    token.add_argument("target", help="Actor id, or the token for validate")
    token.add_argument("--days", type=int)
    token.add_argument("--json", action="store_true", help="Print the issued token as JSON (preview only)")
    token.set_defaults(func=cmd_token)

    ownership = subparsers.add_parser("ownership", help="Landlord co-ownership")
    ownership.add_argument("action", choices=["show", "add", "remove"])
    ownership.add_argument("landlord_id")
    ownership.add_argument("co_owner_id", nargs="?")
    ownership.add_argument("--name")
    ownership.add_argument("--percentage")
    ownership.add_argument("--strategy", choices=["equal", "proportional"])
    ownership.add_argument("--json", action="store_true", help="Print the ownership summary as JSON")
    ownership.set_defaults(func=cmd_ownership)

    financials = subparsers.add_parser("financials", help="Show a landlord's masked bank and CFDI setup")
    financials.add_argument("landlord_id")
    financials.set_defaults(func=cmd_financials)

    primary = subparsers.add_parser("primary", help="Primary landlord designation")
    primary.add_argument("action", choices=["show", "set", "transfer"])
    primary.add_argument("policy_id")
    primary.add_argument("landlord_ids", nargs="*")
    primary.set_defaults(func=cmd_primary)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "ownership":
        if args.action == "add" and (not args.name or args.percentage is None):
            parser.error("ownership add needs --name and --percentage")
        if args.action == "remove" and not args.co_owner_id:
            parser.error("ownership remove needs <co_owner_id>")
    if args.command == "primary" and args.action == "set" and len(args.landlord_ids) != 1:
        parser.error("primary set needs exactly one <landlord_id>")

    config = Config.load()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    engine = build_engine(config)
    return asyncio.run(run_command(engine, args))


if __name__ == "__main__":
    sys.exit(main())
