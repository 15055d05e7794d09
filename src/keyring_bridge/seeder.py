"""Idempotent seeding of sample credential entries.

Each sample entry is created through the command bridge and, if it carries
a secret, given that secret unless the credential already has one. Entries
are processed strictly one after another; the run stops at the first
failed create or set and reports how many entries succeeded before it.

Per-entry steps::

    CREATING -> CHECKING_EXISTING -> SETTING -> DONE
        |                               |
        +--------------> FAILED <-------+
"""

from __future__ import annotations

import dataclasses
import logging
from enum import Enum
from typing import Any, Protocol, Sequence

from keyring_bridge.models import Entry, hex_payload, utf8_payload
from keyring_bridge.result import Err, Result

logger = logging.getLogger(__name__)


class SeedCommands(Protocol):
    """The subset of bridge commands the seeder needs."""

    async def entry_new(self, service: str, user: str) -> Result[Entry]: ...

    async def entry_get_value(self, id: str) -> Result[str]: ...

    async def entry_set_value(self, id: str, value: str) -> Result[None]: ...


@dataclasses.dataclass(frozen=True)
class SampleEntry:
    """Specification of one sample credential.

    ``password`` and ``secret`` describe the same secret slot: a text
    password, or binary secret bytes written as hex. ``password`` wins when
    both are given.
    """

    service: str
    user: str
    password: str | None = None
    secret: str | None = None

    def payload(self) -> str | None:
        """Tagged secret payload for this entry, or ``None`` if it has no secret."""
        if self.password:
            return utf8_payload(self.password)
        if self.secret:
            return hex_payload(self.secret)
        return None


SAMPLE_ENTRIES: tuple[SampleEntry, ...] = (
    SampleEntry(service="dummy", user="dummy1", password="dummy1-password"),
    SampleEntry(service="dummy", user="dummy2"),
    SampleEntry(service="dummy", user="dummy3", secret="b5eb2d3dab2cc28add"),
)


@dataclasses.dataclass(frozen=True)
class SeedReport:
    """Outcome of a seeding run.

    ``count`` is the number of entries successfully created and, where
    needed, given their secret. ``error`` is set when the run stopped early.
    """

    count: int
    error: str | None = None

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {"count": self.count}
        if self.error is not None:
            wire["error"] = self.error
        return wire


class SeedStep(str, Enum):
    CREATING = "creating"
    CHECKING_EXISTING = "checking_existing"
    SETTING = "setting"
    DONE = "done"
    FAILED = "failed"


def _fail(sample: SampleEntry, step: SeedStep, error: str) -> str:
    logger.debug(
        "%s/%s: %s -> %s: %s",
        sample.service, sample.user, step.value, SeedStep.FAILED.value, error,
    )
    return error


async def _seed_one(commands: SeedCommands, sample: SampleEntry) -> str | None:
    """Run the per-entry steps. Returns an error message, or ``None`` on success."""
    step = SeedStep.CREATING
    created = await commands.entry_new(sample.service, sample.user)
    if isinstance(created, Err):
        return _fail(sample, step, created.error)

    entry = created.value
    payload = sample.payload()
    if payload is None:
        return None

    step = SeedStep.CHECKING_EXISTING
    while step is not SeedStep.DONE:
        if step is SeedStep.CHECKING_EXISTING:
            existing = await commands.entry_get_value(entry.id)
            if isinstance(existing, Err):
                # A failed lookup only means we could not see a value.
                logger.debug("No existing secret for %s: %s", entry.id, existing.error)
                step = SeedStep.SETTING
            elif existing.value:
                logger.debug("Entry %s already has a secret, leaving it", entry.id)
                step = SeedStep.DONE
            else:
                step = SeedStep.SETTING

        elif step is SeedStep.SETTING:
            written = await commands.entry_set_value(entry.id, payload)
            if isinstance(written, Err):
                return _fail(sample, step, written.error)
            step = SeedStep.DONE

    return None


async def seed_sample_entries(
    commands: SeedCommands,
    entries: Sequence[SampleEntry] = SAMPLE_ENTRIES,
) -> SeedReport:
    """Create the sample entries one at a time.

    Safe to re-run against an already seeded store: existing secrets are
    never overwritten.
    """
    succeeded = 0
    for sample in entries:
        error = await _seed_one(commands, sample)
        if error is not None:
            logger.warning(
                "Seeding stopped at %s/%s after %d entries: %s",
                sample.service, sample.user, succeeded, error,
            )
            return SeedReport(count=succeeded, error=error)
        succeeded += 1

    logger.info("Seeded %d sample entries", succeeded)
    return SeedReport(count=succeeded)
