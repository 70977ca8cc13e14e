from __future__ import annotations
"""View-agnostic presenter that runs storage operations off the UI thread."""
import asyncio
from concurrent.futures import Future
from dataclasses import replace
import logging
import threading
from typing import Awaitable, Callable, Iterable

from .controller import NotConnectedError, StorageManager
from .errors import StorageError
from .models import Credentials, ObjectRecord, SessionSnapshot, UploadBatchResult
from .profiles import SourceStorage, StorageSource
from .services import CancelFn, TransferCancelledError
from .settings import AppSettings, SettingsStorage


DispatchFn = Callable[[Callable[[], None]], None]
SuccessFn = Callable[[object], None]
ErrorFn = Callable[[str], None]
DoneFn = Callable[[], None]

LOGGER = logging.getLogger(__name__)


def _format_error(exc: Exception) -> str:
    return str(exc) or exc.__class__.__name__


class StorageManagerPresenter:
    """Runs :class:`StorageManager` coroutines on a private event loop.

    Results come back through callbacks passed to ``dispatch`` so a UI
    toolkit can marshal them onto its own thread.
    """

    def __init__(
        self,
        *,
        manager: StorageManager | None = None,
        source_storage: SourceStorage | None = None,
        settings_storage: SettingsStorage | None = None,
        dispatch: DispatchFn | None = None,
    ) -> None:
        self._settings_storage = settings_storage or SettingsStorage()
        self._settings = self._settings_storage.load()
        self._sources = source_storage or SourceStorage()
        self._manager = manager or StorageManager(self._sources.credentials, settings=self._settings)
        self._dispatch = dispatch or (lambda func: func())
        self._listeners: dict[Callable[[SessionSnapshot], None], Callable[[SessionSnapshot], None]] = {}
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, name="storage-manager", daemon=True)
        self._thread.start()

    @property
    def settings(self) -> AppSettings:
        return replace(self._settings)

    @property
    def is_connected(self) -> bool:
        return self._manager.is_connected

    def snapshot(self) -> SessionSnapshot:
        return self._manager.snapshot()

    def save_settings(self, settings: AppSettings) -> None:
        self._settings = settings
        self._settings_storage.save(settings)

    def add_listener(self, listener: Callable[[SessionSnapshot], None]) -> None:
        def forward(snapshot: SessionSnapshot) -> None:
            self._dispatch(lambda: listener(snapshot))

        self._listeners[listener] = forward
        self._manager.add_listener(forward)

    def remove_listener(self, listener: Callable[[SessionSnapshot], None]) -> None:
        forward = self._listeners.pop(listener, None)
        if forward is not None:
            self._manager.remove_listener(forward)

    def list_sources(self, tag: str | None = None) -> list[StorageSource]:
        if tag:
            return self._sources.sources_with_tag(tag)
        return self._sources.load()

    def save_source(self, source: StorageSource, credentials: Credentials | None = None) -> StorageSource:
        return self._sources.upsert(source, credentials)

    def delete_source(self, source_id: str) -> None:
        self._sources.delete(source_id)

    def connect(
        self,
        *,
        source_id: str,
        on_success: Callable[[bool], None],
        on_error: ErrorFn,
        on_cancelled: ErrorFn | None = None,
        on_done: DoneFn | None = None,
        cancel_requested: CancelFn | None = None,
    ) -> Future:
        LOGGER.debug("Connecting using source '%s'", source_id)

        async def run() -> bool:
            source = self._sources.get(source_id)
            connected = await self._manager.connect(source.config, cancel_requested=cancel_requested)
            if connected:
                self._sources.mark_used(source.id)
            return connected

        return self._submit(run, "connect", on_success, on_error, on_done, on_cancelled=on_cancelled)

    def test_connection(
        self,
        *,
        source: StorageSource,
        credentials: Credentials,
        on_success: Callable[[bool], None],
        on_error: ErrorFn,
        on_done: DoneFn | None = None,
    ) -> Future:
        return self._submit(
            lambda: self._manager.test_config(source.config, credentials),
            "test connection",
            on_success,
            on_error,
            on_done,
        )

    def disconnect(self, *, on_done: DoneFn | None = None) -> Future:
        return self._submit(self._manager.disconnect, "disconnect", lambda _: None, lambda _: None, on_done)

    def load_files(
        self,
        *,
        prefix: str = "",
        on_success: Callable[[bool], None],
        on_error: ErrorFn,
        on_done: DoneFn | None = None,
    ) -> Future:
        return self._submit(
            lambda: self._manager.load_files(prefix),
            f"list '{prefix}'",
            on_success,
            on_error,
            on_done,
        )

    def upload_files(
        self,
        *,
        sources: Iterable[str],
        destination_path: str = "",
        on_success: Callable[[UploadBatchResult], None],
        on_error: ErrorFn,
        on_done: DoneFn | None = None,
        cancel_requested: CancelFn | None = None,
    ) -> Future:
        paths = list(sources)
        return self._submit(
            lambda: self._manager.upload_batch(paths, destination_path, cancel_requested=cancel_requested),
            "upload",
            on_success,
            on_error,
            on_done,
        )

    def delete_file(
        self,
        *,
        record: ObjectRecord,
        on_success: Callable[[bool], None],
        on_error: ErrorFn,
        on_done: DoneFn | None = None,
    ) -> Future:
        return self._submit(
            lambda: self._manager.delete_file(record),
            f"delete '{record.key}'",
            on_success,
            on_error,
            on_done,
        )

    def close(self) -> None:
        """Disconnect and stop the background loop."""
        asyncio.run_coroutine_threadsafe(self._manager.disconnect(), self._loop).result()
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join()
        self._loop.close()

    def _submit(
        self,
        operation: Callable[[], Awaitable[object]],
        description: str,
        on_success: SuccessFn,
        on_error: ErrorFn,
        on_done: DoneFn | None,
        *,
        on_cancelled: ErrorFn | None = None,
    ) -> Future:
        async def task() -> None:
            try:
                result = await operation()
            except TransferCancelledError as exc:
                LOGGER.debug("%s cancelled", description)
                message = _format_error(exc)
                if on_cancelled:
                    self._dispatch(lambda: on_cancelled(message))
            except (NotConnectedError, StorageError, ValueError) as exc:
                LOGGER.warning("%s failed: %s", description, exc)
                message = _format_error(exc)
                self._dispatch(lambda: on_error(message))
            except Exception as exc:
                LOGGER.exception("Unexpected error during %s", description)
                message = _format_error(exc)
                self._dispatch(lambda: on_error(message))
            else:
                self._dispatch(lambda: on_success(result))
            finally:
                if on_done:
                    self._dispatch(on_done)

        return asyncio.run_coroutine_threadsafe(task(), self._loop)
