#!/usr/bin/env python3
"""Control utility for the torrent retention tool."""

import argparse
import sys
from typing import List, Optional

from .classifier import DeletionPolicySet
from .client import repository_for
from .config import ConfigError, Instance
from .policy import InvalidPolicyError
from .rules import load_instances
from .utils import truncate_name


def _load(path: str) -> Optional[List[Instance]]:
    """Load instances, printing the error on failure."""
    try:
        return load_instances(path)
    except (ConfigError, InvalidPolicyError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return None


def cmd_check(args) -> int:
    """Validate a rules file and print what it configures."""
    instances = _load(args.config)
    if instances is None:
        return 1

    print(f"{args.config}: {len(instances)} instance(s)")
    for instance in instances:
        print()
        print(f"Instance: {instance.label}")
        print(f"  Client: {instance.connection.kind.value} {instance.connection}")
        print(f"  Poll interval: {instance.poll_interval}")
        if not instance.policies:
            print("  (no policies)")
        for index, policy in enumerate(instance.policies):
            action = "delete with data" if policy.delete_data else "remove torrent only"
            print(f"  Policy {policy.name_or_index(index)}: {action}")
            print(f"    when: {policy.precondition}")
            print(f"    match: {policy.condition}")
    return 0


def cmd_evaluate(args) -> int:
    """Run one dry evaluation against live clients; never removes anything."""
    instances = _load(args.config)
    if instances is None:
        return 1

    if args.instance:
        instances = [i for i in instances if i.label == args.instance]
        if not instances:
            print(f"No instance named {args.instance!r}", file=sys.stderr)
            return 1

    exit_code = 0
    for instance in instances:
        print(f"\nInstance: {instance.label}")
        torrents = repository_for(instance.connection).list_torrents()
        if torrents is None:
            print("  Could not retrieve list of torrents", file=sys.stderr)
            exit_code = 1
            continue

        evaluation = DeletionPolicySet(instance.policies).evaluate(torrents)

        print(f"  {len(torrents)} torrents")
        print(f"  {'Policy':<20} {'Count':>6} {'Size (GB)':>10} {'Matched':>8}")
        print("  " + "=" * 47)
        for label, tally in evaluation.tallies.items():
            print(f"  {label:<20} {tally.count:>6} {tally.total_size / 1e9:>10.1f} {tally.matched:>8}")

        if evaluation.matches:
            print("\n  Would delete:")
            for match in evaluation.matches:
                data = "+data" if match.delete_data else "     "
                print(f"  {data} {match.policy:<20} {str(match.outcome):<24} "
                      f"{truncate_name(match.torrent.name)}")
        else:
            print("\n  Nothing to delete")

    return exit_code


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog='torrent-retention-ctl',
        description='Control utility for the torrent retention tool'
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    check_parser = subparsers.add_parser('check', help='Validate a rules file')
    check_parser.add_argument('config', help='Rules file')

    evaluate_parser = subparsers.add_parser(
        'evaluate', help='Show what each policy would delete right now (dry run)'
    )
    evaluate_parser.add_argument('config', help='Rules file')
    evaluate_parser.add_argument('--instance', help='Only evaluate the instance with this name or URL')

    args = parser.parse_args(argv)

    if args.command == 'check':
        return cmd_check(args)
    elif args.command == 'evaluate':
        return cmd_evaluate(args)

    parser.print_help()
    return 1


if __name__ == '__main__':
    sys.exit(main())
