import tempfile
import threading
import unittest
from datetime import datetime, timezone
from pathlib import Path

from storage_manager.controller import StorageManager
from storage_manager.errors import ProtocolError
from storage_manager.models import Credentials, EndpointConfig, ObjectRecord, ProviderType
from storage_manager.presenter import StorageManagerPresenter
from storage_manager.profiles import InMemoryCredentialProvider, SourceStorage, StorageSource
from storage_manager.services import TransferCancelledError
from storage_manager.settings import AppSettings, SettingsStorage

WAIT = 5
CREDENTIALS = Credentials(access_key="access", secret_key="secret")


class FakeClient:
    def __init__(self):
        self.keys = ["a.txt", "docs/b.txt"]
        self.connection_error = None
        self.closed = False

    async def test_connection(self, *, cancel_requested=None):
        if cancel_requested and cancel_requested():
            raise TransferCancelledError("Operation cancelled")
        if self.connection_error is not None:
            raise self.connection_error
        return True

    async def list_objects(self, prefix="", max_keys=1000, *, cancel_requested=None):
        when = datetime(2024, 1, 1, tzinfo=timezone.utc)
        return [ObjectRecord(key=key, size=1, last_modified=when) for key in self.keys if key.startswith(prefix)]

    async def upload_object(self, key, data, content_type, *, cancel_requested=None):
        self.keys.append(key)

    async def delete_object(self, key, *, cancel_requested=None):
        self.keys.remove(key)

    async def aclose(self):
        self.closed = True


class Outcome:
    """Collects callback results and signals when the operation is done."""

    def __init__(self):
        self.results = []
        self.errors = []
        self.done = threading.Event()

    def wait(self, test_case):
        test_case.assertTrue(self.done.wait(WAIT), "operation did not finish")


class StorageManagerPresenterTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        root = Path(self._tmp.name)
        self.credentials = InMemoryCredentialProvider()
        self.sources = SourceStorage(root / "sources.json", self.credentials)
        self.settings_storage = SettingsStorage(root / "settings.json")
        self.client = FakeClient()
        self.manager = StorageManager(self.credentials, client_factory=lambda config, creds: self.client)
        self.presenter = StorageManagerPresenter(
            manager=self.manager,
            source_storage=self.sources,
            settings_storage=self.settings_storage,
        )
        self.addCleanup(self.presenter.close)
        config = EndpointConfig(ProviderType.MINIO, "localhost:9000", "media", path_style=True, name="local")
        self.source = self.presenter.save_source(StorageSource.create(config, ["lab"]), CREDENTIALS)

    def run_operation(self, method, **kwargs):
        outcome = Outcome()
        method(
            on_success=outcome.results.append,
            on_error=outcome.errors.append,
            on_done=outcome.done.set,
            **kwargs,
        )
        outcome.wait(self)
        return outcome

    def test_connect_marks_source_used_and_lists_root(self):
        outcome = self.run_operation(self.presenter.connect, source_id=self.source.id)

        self.assertEqual([True], outcome.results)
        self.assertEqual([], outcome.errors)
        self.assertTrue(self.presenter.is_connected)
        self.assertEqual(["docs", "a.txt"], [node.name for node in self.presenter.snapshot().nodes])
        self.assertIsNotNone(self.sources.get(self.source.id).last_used_at)

    def test_connect_to_unknown_source_reports_error(self):
        outcome = self.run_operation(self.presenter.connect, source_id="missing")

        self.assertEqual([], outcome.results)
        self.assertEqual(["Source 'missing' does not exist"], outcome.errors)

    def test_failed_connection_resolves_false(self):
        self.client.connection_error = ProtocolError(403, "AccessDenied")

        outcome = self.run_operation(self.presenter.connect, source_id=self.source.id)

        self.assertEqual([False], outcome.results)
        self.assertEqual("API Error (403): AccessDenied", self.presenter.snapshot().error_message)
        self.assertIsNone(self.sources.get(self.source.id).last_used_at)

    def test_load_without_connection_reports_error(self):
        outcome = self.run_operation(self.presenter.load_files, prefix="docs")

        self.assertEqual(["Not connected to object storage"], outcome.errors)

    def test_upload_and_delete(self):
        self.run_operation(self.presenter.connect, source_id=self.source.id)
        path = Path(self._tmp.name) / "photo.png"
        path.write_bytes(b"png")

        uploaded = self.run_operation(self.presenter.upload_files, sources=[str(path)], destination_path="docs")
        deleted = self.run_operation(
            self.presenter.delete_file,
            record=ObjectRecord(key="a.txt", size=1, last_modified=datetime.now(timezone.utc)),
        )

        self.assertEqual("Uploaded 1 of 1 file(s)", uploaded.results[0].summary)
        self.assertEqual([True], deleted.results)
        self.assertEqual(["docs/b.txt", "docs/photo.png"], self.client.keys)

    def test_cancelled_connect_uses_cancel_callback(self):
        outcome = Outcome()
        cancelled = []

        self.presenter.connect(
            source_id=self.source.id,
            on_success=outcome.results.append,
            on_error=outcome.errors.append,
            on_cancelled=cancelled.append,
            on_done=outcome.done.set,
            cancel_requested=lambda: True,
        ).result(WAIT)
        outcome.wait(self)

        self.assertEqual([], outcome.results)
        self.assertEqual(["Operation cancelled"], cancelled)
        self.assertEqual([], outcome.errors)
        self.assertFalse(self.presenter.is_connected)

    def test_listeners_receive_snapshots_through_dispatch(self):
        dispatched = []
        received = []
        presenter = StorageManagerPresenter(
            manager=StorageManager(self.credentials, client_factory=lambda config, creds: FakeClient()),
            source_storage=self.sources,
            settings_storage=self.settings_storage,
            dispatch=lambda func: (dispatched.append(func), func()),
        )
        self.addCleanup(presenter.close)
        presenter.add_listener(received.append)

        presenter.connect(source_id=self.source.id, on_success=lambda _: None, on_error=lambda _: None).result(WAIT)

        self.assertTrue(received)
        self.assertTrue(received[-1].is_connected)
        self.assertGreaterEqual(len(dispatched), len(received))

        presenter.remove_listener(received.append)
        count = len(received)
        presenter.disconnect().result(WAIT)
        self.assertEqual(count, len(received))

    def test_sources_and_settings(self):
        self.assertEqual([self.source.id], [s.id for s in self.presenter.list_sources("LAB")])
        self.assertEqual([], self.presenter.list_sources("other"))

        self.presenter.save_settings(AppSettings(max_keys=10))

        self.assertEqual(10, self.settings_storage.load().max_keys)
        self.assertEqual(10, self.presenter.settings.max_keys)

        self.presenter.delete_source(self.source.id)
        self.assertEqual([], self.presenter.list_sources())
        self.assertNotIn(self.source.id, self.credentials)


if __name__ == "__main__":
    unittest.main()
