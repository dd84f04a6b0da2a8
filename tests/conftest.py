# Shared pytest fixtures
from __future__ import annotations

import tempfile
from pathlib import Path

import pytest

from contact_importer.logging.init import reset_logging
from contact_importer.models.contact import DeviceContact
from contact_importer.services.bulk_import import ContactPayload, PermissionStatus


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture(autouse=True)
def _fresh_logging():
    # capsys は各テストで sys.stdout を差し替えるため毎回ハンドラを作り直す
    reset_logging()
    yield
    reset_logging()


class FakeContactStore:
    """In-memory ContactStore.

    ``fail_adds`` maps a display name to the number of add attempts that
    should raise before succeeding (a huge number = always fail).
    ``permission_sequence`` is consumed one value per check_permission()
    call; the last value repeats.
    """

    def __init__(
        self,
        contacts: list[DeviceContact] | None = None,
        *,
        granted: bool = True,
        permission_sequence: list[bool] | None = None,
        fail_adds: dict[str, int] | None = None,
        fail_removes: set[str] | None = None,
    ) -> None:
        self.contacts = list(contacts or [])
        self.granted = granted
        self.permission_sequence = list(permission_sequence or [])
        self.fail_adds = dict(fail_adds or {})
        self.fail_removes = set(fail_removes or ())
        self.added: list[tuple[str, ContactPayload]] = []
        self.updated: list[tuple[str, ContactPayload]] = []
        self.removed: list[str] = []
        self.permission_checks = 0
        self._next = 1

    def check_permission(self) -> PermissionStatus:
        self.permission_checks += 1
        if self.permission_sequence:
            value = self.permission_sequence[0]
            if len(self.permission_sequence) > 1:
                self.permission_sequence.pop(0)
            return PermissionStatus(granted=value)
        return PermissionStatus(granted=self.granted)

    def request_permission(self) -> PermissionStatus:
        return self.check_permission()

    def list_contacts(self) -> list[DeviceContact]:
        return list(self.contacts)

    def add_contact(self, payload: ContactPayload) -> str:
        remaining = self.fail_adds.get(payload.display_name, 0)
        if remaining > 0:
            self.fail_adds[payload.display_name] = remaining - 1
            raise RuntimeError(f"device rejected {payload.display_name}")
        contact_id = f"dev{self._next}"
        self._next += 1
        self.added.append((contact_id, payload))
        self.contacts.append(
            DeviceContact.create(contact_id, payload.display_name, [payload.phone])
        )
        return contact_id

    def update_contact(self, contact_id: str, payload: ContactPayload) -> None:
        self.updated.append((contact_id, payload))

    def remove_contact(self, contact_id: str) -> None:
        if contact_id in self.fail_removes:
            raise RuntimeError(f"cannot remove {contact_id}")
        self.removed.append(contact_id)


@pytest.fixture()
def fake_store() -> FakeContactStore:
    return FakeContactStore()


@pytest.fixture()
def store_factory() -> type[FakeContactStore]:
    return FakeContactStore
