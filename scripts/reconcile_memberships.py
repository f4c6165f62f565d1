#!/usr/bin/env python3
"""Re-derive project MEMBER rows from tool access grants.

Creates missing MEMBER rows, deletes MEMBER rows whose user holds no grant
in the project any more, and restores a missing OWNER row. Safe to re-run.

Usage::

    # Against the configured Supabase project:
    ENVIRONMENT=production SUPABASE_URL=... SUPABASE_SERVICE_ROLE_KEY=... \\
        python3 scripts/reconcile_memberships.py <project_id> [<project_id> ...]

    # Only list projects that changed:
    python3 scripts/reconcile_memberships.py --quiet <project_id>

Exit codes:
  0 = every project reconciled (changed or not)
  1 = one or more projects failed
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

# Allow running from project root.
_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, os.path.join(_PROJECT_ROOT, 'src'))

from access_plane.app import AccessPlaneSettings, create_app
from access_plane.app.access.registry import AccessRegistry
from access_plane.app.errors import SharingError


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument('project_ids', nargs='+', help='Projects to reconcile')
    parser.add_argument('--quiet', action='store_true', help='Only print projects that changed')
    return parser.parse_args(argv)


async def reconcile(registry: AccessRegistry, project_ids: list[str], *, quiet: bool) -> int:
    failures = 0
    for project_id in project_ids:
        try:
            report = await registry.reconcile_memberships(project_id)
        except SharingError as exc:
            print(f'  FAIL: {project_id}: {exc.code}')
            failures += 1
            continue
        if report.changed or not quiet:
            print(
                f'  OK:   {project_id}: created={report.members_created} '
                f'removed={report.members_removed} owner_created={report.owner_created}'
            )
    return failures


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    app = create_app(AccessPlaneSettings.from_env())
    failures = asyncio.run(reconcile(app.state.registry, args.project_ids, quiet=args.quiet))
    print(f'\n{len(args.project_ids) - failures} reconciled, {failures} failed')
    return 1 if failures else 0


if __name__ == '__main__':
    sys.exit(main())
