"""Tests for the sample entry seeder against a scripted fake store."""

from __future__ import annotations

import logging
from typing import Any

import pytest

from keyring_bridge.models import Entry
from keyring_bridge.result import Err, Ok, Result
from keyring_bridge.seeder import (
    SAMPLE_ENTRIES,
    SampleEntry,
    SeedReport,
    seed_sample_entries,
)


class FakeStoreCommands:
    """In-memory stand-in for a store session that records every call.

    Secrets are keyed by (service, user) so a re-run sees earlier values,
    the way a real credential store does.
    """

    def __init__(
        self,
        fail_create_at: int | None = None,
        fail_set: bool = False,
        fail_lookup: bool = False,
    ) -> None:
        self.secrets: dict[tuple[str, str], str] = {}
        self.entries: dict[str, tuple[str, str]] = {}
        self.calls: list[tuple[str, Any]] = []
        self._creates = 0
        self._fail_create_at = fail_create_at
        self._fail_set = fail_set
        self._fail_lookup = fail_lookup

    async def entry_new(self, service: str, user: str) -> Result[Entry]:
        self.calls.append(("entry_new", (service, user)))
        index = self._creates
        self._creates += 1
        if index == self._fail_create_at:
            return Err("No default store has been set, so cannot search or create entries")
        entry_id = f"#{len(self.entries) + 1}"
        self.entries[entry_id] = (service, user)
        return Ok(Entry(id=entry_id, is_specifier=True, service=service, user=user))

    async def entry_get_value(self, id: str) -> Result[str]:
        self.calls.append(("entry_get_value", id))
        if self._fail_lookup:
            return Err("backend hiccup")
        value = self.secrets.get(self.entries[id])
        if value is None:
            return Err("No matching entry found in secure storage")
        return Ok(value)

    async def entry_set_value(self, id: str, value: str) -> Result[None]:
        self.calls.append(("entry_set_value", (id, value)))
        if self._fail_set:
            return Err("write rejected")
        self.secrets[self.entries[id]] = value
        return Ok(None)

    def count(self, command: str) -> int:
        return sum(1 for name, _ in self.calls if name == command)


class TestSampleEntry:

    def test_password_payload(self) -> None:
        assert SampleEntry("s", "u", password="dummy1-password").payload() == "UTF8:dummy1-password"

    def test_secret_payload(self) -> None:
        assert SampleEntry("s", "u", secret="b5eb2d3dab2cc28add").payload() == "HEX:b5eb2d3dab2cc28add"

    def test_password_wins_over_secret(self) -> None:
        assert SampleEntry("s", "u", password="p", secret="ab").payload() == "UTF8:p"

    def test_no_secret(self) -> None:
        assert SampleEntry("s", "u").payload() is None

    def test_fixed_sample_list(self) -> None:
        assert [(e.service, e.user) for e in SAMPLE_ENTRIES] == [
            ("dummy", "dummy1"),
            ("dummy", "dummy2"),
            ("dummy", "dummy3"),
        ]


class TestSeedReport:

    def test_wire_without_error(self) -> None:
        assert SeedReport(count=3).to_wire() == {"count": 3}

    def test_wire_with_error(self) -> None:
        assert SeedReport(count=1, error="down").to_wire() == {"count": 1, "error": "down"}


class TestSeeding:

    @pytest.mark.asyncio
    async def test_seeds_empty_store(self) -> None:
        store = FakeStoreCommands()
        report = await seed_sample_entries(store)

        assert report == SeedReport(count=3)
        assert store.secrets == {
            ("dummy", "dummy1"): "UTF8:dummy1-password",
            ("dummy", "dummy3"): "HEX:b5eb2d3dab2cc28add",
        }

    @pytest.mark.asyncio
    async def test_calls_are_strictly_sequential(self) -> None:
        store = FakeStoreCommands()
        await seed_sample_entries(store)

        assert [name for name, _ in store.calls] == [
            "entry_new", "entry_get_value", "entry_set_value",
            "entry_new",
            "entry_new", "entry_get_value", "entry_set_value",
        ]

    @pytest.mark.asyncio
    async def test_entry_without_secret_makes_no_secret_calls(self) -> None:
        store = FakeStoreCommands()
        report = await seed_sample_entries(store, [SampleEntry("dummy", "dummy2")])

        assert report == SeedReport(count=1)
        assert store.count("entry_get_value") == 0
        assert store.count("entry_set_value") == 0

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self) -> None:
        store = FakeStoreCommands()
        await seed_sample_entries(store)
        store.secrets[("dummy", "dummy1")] = "UTF8:changed-by-user"
        store.calls.clear()

        report = await seed_sample_entries(store)

        assert report == SeedReport(count=3)
        assert store.count("entry_set_value") == 0
        assert store.secrets[("dummy", "dummy1")] == "UTF8:changed-by-user"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("k", [0, 1, 2])
    async def test_create_failure_short_circuits(self, k: int) -> None:
        store = FakeStoreCommands(fail_create_at=k)
        report = await seed_sample_entries(store)

        assert report.count == k
        assert report.error == "No default store has been set, so cannot search or create entries"
        assert store.count("entry_new") == k + 1

    @pytest.mark.asyncio
    async def test_set_failure_short_circuits(self) -> None:
        store = FakeStoreCommands(fail_set=True)
        report = await seed_sample_entries(store)

        assert report == SeedReport(count=0, error="write rejected")
        assert store.count("entry_new") == 1

    @pytest.mark.asyncio
    async def test_lookup_failure_is_treated_as_absent(self) -> None:
        store = FakeStoreCommands(fail_lookup=True)
        report = await seed_sample_entries(store)

        assert report == SeedReport(count=3)
        assert store.count("entry_set_value") == 2

    @pytest.mark.asyncio
    async def test_empty_existing_value_is_overwritten(self) -> None:
        store = FakeStoreCommands()
        store.secrets[("svc", "u")] = ""
        report = await seed_sample_entries(store, [SampleEntry("svc", "u", password="p")])

        assert report == SeedReport(count=1)
        assert store.secrets[("svc", "u")] == "UTF8:p"

    @pytest.mark.asyncio
    async def test_small_scenario(self) -> None:
        store = FakeStoreCommands()
        samples = [
            SampleEntry("dummy", "dummy1", password="p"),
            SampleEntry("dummy", "dummy2"),
            SampleEntry("dummy", "dummy3", secret="ab"),
        ]
        report = await seed_sample_entries(store, samples)

        assert report.to_wire() == {"count": 3}
        assert store.secrets == {
            ("dummy", "dummy1"): "UTF8:p",
            ("dummy", "dummy3"): "HEX:ab",
        }

    @pytest.mark.asyncio
    async def test_empty_list(self) -> None:
        store = FakeStoreCommands()
        assert await seed_sample_entries(store, []) == SeedReport(count=0)
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_secret_calls_use_created_entry_id(self) -> None:
        store = FakeStoreCommands()
        await seed_sample_entries(store, [SampleEntry("svc", "a"), SampleEntry("svc", "b", password="p")])

        assert ("entry_get_value", "#2") in store.calls
        assert ("entry_set_value", ("#2", "UTF8:p")) in store.calls

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("store_kwargs", "failed_step"),
        [
            ({"fail_create_at": 0}, "creating"),
            ({"fail_set": True}, "setting"),
        ],
    )
    async def test_failed_step_is_logged(
        self, caplog: pytest.LogCaptureFixture, store_kwargs: dict, failed_step: str,
    ) -> None:
        store = FakeStoreCommands(**store_kwargs)
        with caplog.at_level(logging.DEBUG, logger="keyring_bridge.seeder"):
            await seed_sample_entries(store)

        assert f"dummy/dummy1: {failed_step} -> failed" in caplog.text
