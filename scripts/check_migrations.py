#!/usr/bin/env python3
"""Lint the sharing SQL migrations.

Checks:
  1. Every migration file can be re-run (IF NOT EXISTS, CREATE OR REPLACE, ...).
  2. Sequence numbers have no gaps.
  3. Every function the Supabase stores call through RPC is defined.

Usage::

    python3 scripts/check_migrations.py

Exit codes:
  0 = all checks pass
  1 = one or more checks fail
"""

from __future__ import annotations

import os
import sys

# Allow running from project root.
_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, os.path.join(_PROJECT_ROOT, 'src'))

from access_plane.migrations import (
    check_sequence_gaps,
    discover_migrations,
    missing_functions,
    validate_all,
)


def main() -> int:
    all_pass = True
    migrations = discover_migrations()

    print('1. Idempotency:')
    for filename, result in validate_all().items():
        status = 'PASS' if result.ok else 'FAIL'
        print(f'   {status}: {filename}')
        for err in result.errors:
            print(f'      error: {err}')
        for warn in result.warnings:
            print(f'      warning: {warn}')
        all_pass = all_pass and result.ok

    print('\n2. Sequence:')
    gaps = check_sequence_gaps(migrations)
    for gap in gaps:
        print(f'   WARN: {gap}')
    if not gaps:
        print(f'   PASS: {len(migrations)} files, no gaps')

    print('\n3. RPC functions:')
    missing = missing_functions(migrations)
    for name in missing:
        print(f'   FAIL: {name} is not defined')
    if missing:
        all_pass = False
    else:
        print('   PASS: all required functions defined')

    return 0 if all_pass else 1


if __name__ == '__main__':
    sys.exit(main())
