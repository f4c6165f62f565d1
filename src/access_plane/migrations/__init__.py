"""Sharing schema migrations: discovery, ordering and idempotency linting.

Migrations are plain ``NNN_description.sql`` files in this package, applied
in sequence order by ``supabase db push``. This module does not execute
SQL; it checks that every file can be re-run safely:

  1. CREATE TABLE / INDEX / SCHEMA use IF NOT EXISTS.
  2. CREATE FUNCTION is CREATE OR REPLACE FUNCTION.
  3. CREATE TRIGGER / POLICY are preceded by DROP ... IF EXISTS of the
     same name.
  4. DROP TABLE / INDEX use IF EXISTS.
  5. ALTER TABLE ... ADD COLUMN uses IF NOT EXISTS (warning only).
  6. SECURITY DEFINER functions pin ``search_path``.

It also checks that the functions the Supabase stores call through RPC
are all defined somewhere in the migration set.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Sequence

_MIGRATION_RE = re.compile(r'^(\d{3})_.*\.sql$')

MIGRATIONS_DIR = Path(__file__).parent

# Functions invoked through SupabaseClient.rpc by the sharing stores.
REQUIRED_FUNCTIONS: frozenset[str] = frozenset({
    'create_project',
    'grant_tool_access',
    'revoke_tool_access',
    'edit_usage',
    'reconcile_memberships',
    'create_invite_guarded',
    'accept_invite',
})


@dataclass(frozen=True, slots=True)
class MigrationFile:
    sequence: int
    filename: str
    path: Path


@dataclass
class ValidationResult:
    path: Path
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


# ── Line rules ────────────────────────────────────────────────────────
# (pattern, message, severity); a match on a statement line is an issue.

_LINE_RULES: tuple[tuple[re.Pattern[str], str, str], ...] = (
    (re.compile(r'^create\s+table\s+(?!if\s+not\s+exists)', re.I),
     'CREATE TABLE without IF NOT EXISTS', 'error'),
    (re.compile(r'^create\s+(unique\s+)?index\s+(?!if\s+not\s+exists)', re.I),
     'CREATE INDEX without IF NOT EXISTS', 'error'),
    (re.compile(r'^create\s+schema\s+(?!if\s+not\s+exists)', re.I),
     'CREATE SCHEMA without IF NOT EXISTS', 'error'),
    (re.compile(r'^create\s+function\s+', re.I),
     'CREATE FUNCTION without OR REPLACE', 'error'),
    (re.compile(r'^drop\s+table\s+(?!if\s+exists)', re.I),
     'DROP TABLE without IF EXISTS', 'error'),
    (re.compile(r'^drop\s+index\s+(?!if\s+exists)', re.I),
     'DROP INDEX without IF EXISTS', 'error'),
    (re.compile(r'add\s+column\s+(?!if\s+not\s+exists)', re.I),
     'ADD COLUMN without IF NOT EXISTS', 'warning'),
)

# Objects that must be dropped (IF EXISTS) before being created.
_PAIRED_OBJECTS: tuple[tuple[str, re.Pattern[str], re.Pattern[str]], ...] = (
    (
        'POLICY',
        re.compile(r'^drop\s+policy\s+if\s+exists\s+(\S+)', re.I),
        re.compile(r'^create\s+policy\s+(\S+)', re.I),
    ),
    (
        'TRIGGER',
        re.compile(r'^drop\s+trigger\s+if\s+exists\s+(\S+)', re.I),
        re.compile(r'^create\s+(?:or\s+replace\s+)?trigger\s+(\S+)', re.I),
    ),
)

_FUNCTION_DEF_RE = re.compile(
    r'create\s+or\s+replace\s+function\s+(?:[\w"]+\.)?"?(\w+)"?\s*\(', re.I,
)
_SECURITY_DEFINER_RE = re.compile(r'security\s+definer', re.I)
_SEARCH_PATH_RE = re.compile(r'set\s+search_path', re.I)


def discover_migrations(directory: Path | None = None) -> list[MigrationFile]:
    """Return migration files sorted by sequence number.

    Raises:
        ValueError: If two files share a sequence number.
    """
    d = directory or MIGRATIONS_DIR
    found: dict[int, MigrationFile] = {}
    for p in sorted(d.iterdir()):
        m = _MIGRATION_RE.match(p.name)
        if not p.is_file() or not m:
            continue
        seq = int(m.group(1))
        if seq in found:
            raise ValueError(
                f'Duplicate migration sequence {seq:03d}: '
                f'{found[seq].filename} and {p.name}'
            )
        found[seq] = MigrationFile(sequence=seq, filename=p.name, path=p)
    return [found[s] for s in sorted(found)]


def _statement_lines(text: str) -> Iterable[tuple[int, str]]:
    for i, line in enumerate(text.splitlines(), start=1):
        stripped = line.strip()
        if stripped and not stripped.startswith('--'):
            yield i, stripped


def _function_blocks(text: str) -> list[tuple[str, str]]:
    """Split SQL into (function_name, body) chunks at each function header."""
    matches = list(_FUNCTION_DEF_RE.finditer(text))
    blocks = []
    for idx, m in enumerate(matches):
        end = matches[idx + 1].start() if idx + 1 < len(matches) else len(text)
        blocks.append((m.group(1).lower(), text[m.start():end]))
    return blocks


def validate_idempotency(sql_path: Path) -> ValidationResult:
    """Lint one migration file against the re-run rules above."""
    result = ValidationResult(path=sql_path)
    text = sql_path.read_text()
    dropped: dict[str, set[str]] = {kind: set() for kind, _, _ in _PAIRED_OBJECTS}

    for i, line in _statement_lines(text):
        paired = False
        for kind, drop_re, create_re in _PAIRED_OBJECTS:
            dm = drop_re.match(line)
            if dm:
                dropped[kind].add(dm.group(1).lower())
                paired = True
                break
            cm = create_re.match(line)
            if cm:
                if cm.group(1).lower() not in dropped[kind]:
                    result.errors.append(
                        f'Line {i}: CREATE {kind} {cm.group(1)} without '
                        f'preceding DROP {kind} IF EXISTS'
                    )
                paired = True
                break
        if paired:
            continue

        for pattern, message, severity in _LINE_RULES:
            if pattern.search(line):
                target = result.errors if severity == 'error' else result.warnings
                target.append(f'Line {i}: {message}')

    for name, body in _function_blocks(text):
        if _SECURITY_DEFINER_RE.search(body) and not _SEARCH_PATH_RE.search(body):
            result.errors.append(
                f'Function {name}: SECURITY DEFINER without SET search_path'
            )

    return result


def validate_all(directory: Path | None = None) -> dict[str, ValidationResult]:
    return {
        mf.filename: validate_idempotency(mf.path)
        for mf in discover_migrations(directory)
    }


def defined_functions(migrations: Sequence[MigrationFile]) -> set[str]:
    names: set[str] = set()
    for mf in migrations:
        names.update(m.group(1).lower() for m in _FUNCTION_DEF_RE.finditer(mf.path.read_text()))
    return names


def missing_functions(
    migrations: Sequence[MigrationFile],
    required: Iterable[str] = REQUIRED_FUNCTIONS,
) -> list[str]:
    """Required RPC functions that no migration defines."""
    return sorted(set(required) - defined_functions(migrations))


def check_sequence_gaps(migrations: Sequence[MigrationFile]) -> list[str]:
    warnings: list[str] = []
    for prev, curr in zip(migrations, migrations[1:]):
        if curr.sequence != prev.sequence + 1:
            warnings.append(
                f'Gap in sequence: {prev.sequence:03d} -> {curr.sequence:03d} '
                f'(expected {prev.sequence + 1:03d})'
            )
    return warnings
