"""Post-commit effects of invite creation.

Creating an invite commits first and then hands back a list of effects:

  - ``AllowlistRegistration``: let the invitee sign in later.
  - ``InviteNotification``: email the accept link.

``OutboxDispatcher`` runs each effect independently with its own bounded
retry. A failing effect is logged and reported; it never raises and never
touches the committed invite.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Union

from ..audit import redact_token
from ...observability.metrics import OUTBOX_EFFECTS_TOTAL
from ..protocols import InviteNotifier, SignInAllowlist

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AllowlistRegistration:
    email: str

    kind = 'allowlist'


@dataclass(frozen=True, slots=True)
class InviteNotification:
    """Everything the mailer needs; formatting and delivery are its job."""

    to_email: str
    token: str
    invite_link: str
    inviter_name: str
    tool_name: str
    project_name: str
    access_level: str

    kind = 'notification'

    def to_payload(self) -> dict[str, str]:
        return {
            'to_email': self.to_email,
            'invite_link': self.invite_link,
            'inviter_name': self.inviter_name,
            'tool_name': self.tool_name,
            'project_name': self.project_name,
            'access_level': self.access_level,
        }


Effect = Union[AllowlistRegistration, InviteNotification]


@dataclass(frozen=True, slots=True)
class EffectResult:
    kind: str
    ok: bool
    attempts: int
    error: str | None = None


@dataclass
class OutboxReport:
    results: list[EffectResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.results)

    @property
    def failed(self) -> list[EffectResult]:
        return [r for r in self.results if not r.ok]


class OutboxDispatcher:
    """Deliver invite side effects with bounded, linear-backoff retries."""

    def __init__(
        self,
        allowlist: SignInAllowlist,
        notifier: InviteNotifier,
        *,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
    ) -> None:
        if max_attempts < 1:
            raise ValueError('max_attempts must be >= 1')
        self._allowlist = allowlist
        self._notifier = notifier
        self._max_attempts = max_attempts
        self._backoff = max(float(backoff_seconds), 0.0)

    async def _apply(self, effect: Effect) -> None:
        if isinstance(effect, AllowlistRegistration):
            await self._allowlist.register(effect.email)
        elif isinstance(effect, InviteNotification):
            await self._notifier.send_invite(effect)
        else:
            raise TypeError(f'Unknown outbox effect {type(effect).__name__}')

    async def _run(self, effect: Effect) -> EffectResult:
        last_error: str | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                await self._apply(effect)
                OUTBOX_EFFECTS_TOTAL.labels(kind=effect.kind, outcome='ok').inc()
                return EffectResult(kind=effect.kind, ok=True, attempts=attempt)
            except Exception as exc:
                last_error = f'{type(exc).__name__}: {exc}'
                if attempt == self._max_attempts:
                    logger.exception(
                        'Outbox effect failed kind=%s attempts=%d',
                        effect.kind, attempt,
                    )
                    break
                logger.warning(
                    'Outbox effect attempt failed kind=%s attempt=%d error=%s',
                    effect.kind, attempt, last_error,
                )
                if self._backoff:
                    await asyncio.sleep(self._backoff * attempt)
        OUTBOX_EFFECTS_TOTAL.labels(kind=effect.kind, outcome='failed').inc()
        return EffectResult(
            kind=effect.kind,
            ok=False,
            attempts=self._max_attempts,
            error=last_error,
        )

    async def dispatch(self, effects: list[Effect]) -> OutboxReport:
        report = OutboxReport()
        for effect in effects:
            report.results.append(await self._run(effect))
        if not report.ok:
            tokens = [
                redact_token(e.token) for e in effects
                if isinstance(e, InviteNotification)
            ]
            logger.error(
                'Outbox dispatch incomplete failed=%s invite=%s',
                [r.kind for r in report.failed],
                tokens[0] if tokens else '-',
            )
        return report
