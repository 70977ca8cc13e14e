from __future__ import annotations
"""Connection lifecycle, listing refreshes and transfer batches."""
import asyncio
from dataclasses import dataclass
import logging
import os
from typing import Callable, Iterable, Optional, Union

from .errors import ConfigurationError, StorageError
from .listing import guess_content_type
from .models import (
    ConnectionState,
    Credentials,
    EndpointConfig,
    NamespaceNode,
    ObjectRecord,
    SessionSnapshot,
    TransferStatus,
    TransferTask,
    UploadBatchResult,
    UploadSource,
)
from .namespace import build, normalize_path, parent_path
from .profiles import CredentialProvider, KeyringCredentialProvider
from .services import CancelFn, ObjectStoreClient, TransferCancelledError
from .settings import AppSettings
from .ui_utils import build_object_key

LOGGER = logging.getLogger(__name__)

MISSING_CREDENTIALS_MESSAGE = "Missing credentials for this source. Please edit and save again."

ClientFactory = Callable[[EndpointConfig, Credentials], ObjectStoreClient]
Listener = Callable[[SessionSnapshot], None]
SourceLike = Union[str, "os.PathLike[str]", UploadSource]


class NotConnectedError(RuntimeError):
    """Raised when a storage operation is attempted before connecting."""


@dataclass
class Session:
    """Mutable state of one connection attempt, replaced wholesale on (re)connect."""

    state: ConnectionState = ConnectionState.DISCONNECTED
    config: Optional[EndpointConfig] = None
    client: Optional[ObjectStoreClient] = None
    current_path: str = ""
    files: tuple[ObjectRecord, ...] = ()
    nodes: tuple[NamespaceNode, ...] = ()
    is_loading: bool = False
    is_uploading: bool = False
    upload_progress: float = 0.0
    error_message: Optional[str] = None
    status_message: Optional[str] = None
    last_upload: Optional[UploadBatchResult] = None
    # connect, listing and delete calls still running; is_loading mirrors it
    loads_in_flight: int = 0

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            state=self.state,
            config=self.config,
            current_path=self.current_path,
            files=self.files,
            nodes=self.nodes,
            is_loading=self.is_loading,
            is_uploading=self.is_uploading,
            upload_progress=self.upload_progress,
            error_message=self.error_message,
            status_message=self.status_message,
            last_upload=self.last_upload,
        )


def _as_source(source: SourceLike) -> UploadSource:
    if isinstance(source, UploadSource):
        return source
    return UploadSource.from_path(source)


class StorageManager:
    """Owns the active session and coordinates the object store client.

    Every public coroutine mutates only the session it started with. When a
    new ``connect`` or ``disconnect`` replaces that session, late results land
    on the orphaned session and observers never see them.
    """

    def __init__(
        self,
        credentials: CredentialProvider | None = None,
        *,
        settings: AppSettings | None = None,
        client_factory: ClientFactory | None = None,
    ):
        self._credentials = credentials or KeyringCredentialProvider()
        self._settings = settings or AppSettings()
        self._client_factory = client_factory or self._default_client_factory
        self._session = Session()
        self._listeners: list[Listener] = []

    @property
    def state(self) -> ConnectionState:
        return self._session.state

    @property
    def is_connected(self) -> bool:
        return self._session.state is ConnectionState.CONNECTED

    def snapshot(self) -> SessionSnapshot:
        return self._session.snapshot()

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def connect(self, config: EndpointConfig, *, cancel_requested: Optional[CancelFn] = None) -> bool:
        """Open a new session for ``config``; returns whether it is connected."""
        await self._close(self._session)
        session = Session(state=ConnectionState.CONNECTING, config=config.normalized())
        self._replace_session(session)
        LOGGER.debug("Connecting to bucket '%s' on %s", config.bucket, session.config.endpoint)

        try:
            credentials = self._credentials.load(config.credentials_ref)
        except ConfigurationError as exc:
            LOGGER.info("Credentials unavailable for '%s': %s", config.name or config.bucket, exc)
            self._update(session, state=ConnectionState.ERROR, error_message=MISSING_CREDENTIALS_MESSAGE)
            return False

        client = self._client_factory(session.config, credentials)
        self._start_loading(session)
        try:
            await client.test_connection(cancel_requested=cancel_requested)
        except StorageError as exc:
            await client.aclose()
            LOGGER.info("Connection test failed for bucket '%s': %s", config.bucket, exc)
            self._finish_loading(session, state=ConnectionState.ERROR, error_message=str(exc))
            return False
        except TransferCancelledError:
            await client.aclose()
            self._finish_loading(session, state=ConnectionState.DISCONNECTED)
            raise

        if session is not self._session:
            await client.aclose()
            return False

        self._finish_loading(session, state=ConnectionState.CONNECTED, client=client)
        LOGGER.info("Connected to bucket '%s'", config.bucket)
        try:
            await self._load(session, "", cancel_requested)
        except TransferCancelledError:
            # The session is live; only the first listing was skipped.
            LOGGER.debug("Initial listing of bucket '%s' cancelled", config.bucket)
        return True

    async def disconnect(self) -> None:
        """Drop the client and reset every session field. Never fails."""
        previous = self._session
        self._replace_session(Session())
        await self._close(previous)
        if previous.state is not ConnectionState.DISCONNECTED:
            LOGGER.info("Disconnected")

    async def test_config(
        self,
        config: EndpointConfig,
        credentials: Credentials,
        *,
        cancel_requested: Optional[CancelFn] = None,
    ) -> bool:
        """Check an unsaved configuration without touching the session."""
        client = self._client_factory(config.normalized(), credentials)
        try:
            return await client.test_connection(cancel_requested=cancel_requested)
        finally:
            await client.aclose()

    async def load_files(self, prefix: str = "", *, cancel_requested: Optional[CancelFn] = None) -> bool:
        session = self._require_connection()
        return await self._load(session, prefix, cancel_requested)

    async def navigate_to_folder(self, path: str, *, cancel_requested: Optional[CancelFn] = None) -> bool:
        return await self.load_files(path, cancel_requested=cancel_requested)

    async def navigate_up(self, *, cancel_requested: Optional[CancelFn] = None) -> bool:
        session = self._require_connection()
        return await self._load(session, parent_path(session.current_path), cancel_requested)

    async def upload_batch(
        self,
        sources: Iterable[SourceLike],
        destination_path: str = "",
        *,
        cancel_requested: Optional[CancelFn] = None,
    ) -> UploadBatchResult:
        """Upload ``sources`` one after another into ``destination_path``.

        A failing file is recorded and the batch moves on. Progress advances
        after every attempt, and the listing is refreshed once at the end.
        """
        session = self._require_connection()
        client = session.client
        tasks = [TransferTask(source=_as_source(source)) for source in sources]
        total = len(tasks)
        self._update(
            session,
            is_uploading=True,
            upload_progress=0.0,
            error_message=None,
            status_message=None,
        )
        cancelled = False
        try:
            for index, task in enumerate(tasks, start=1):
                if session is not self._session or (cancel_requested and cancel_requested()):
                    cancelled = True
                    break
                try:
                    task.key = build_object_key(task.filename, destination_path)
                    data = await asyncio.to_thread(task.source.read)
                    await client.upload_object(
                        task.key,
                        data,
                        guess_content_type(task.filename),
                        cancel_requested=cancel_requested,
                    )
                except TransferCancelledError:
                    cancelled = True
                    break
                except (OSError, ValueError, StorageError) as exc:
                    task.status = TransferStatus.FAILED
                    task.error = str(exc) or exc.__class__.__name__
                    LOGGER.warning("Failed to upload %s: %s", task.filename, task.error)
                else:
                    task.status = TransferStatus.SUCCEEDED
                    LOGGER.debug("Uploaded %s as '%s'", task.filename, task.key)
                self._update(session, upload_progress=index / total)

            result = UploadBatchResult(tasks=tuple(tasks), cancelled=cancelled)
            if not cancelled:
                self._update(session, upload_progress=1.0)
            LOGGER.info(result.summary)

            if session is self._session:
                await self._load(session, session.current_path, None)
            errors = [f"Failed to upload {name}: {reason}" for name, reason in result.failures]
            if errors and session.error_message:
                errors.append(session.error_message)
            self._update(
                session,
                last_upload=result,
                status_message=result.summary,
                error_message="; ".join(errors) if errors else session.error_message,
            )
            return result
        finally:
            self._update(session, is_uploading=False)

    async def upload_data(
        self,
        data: bytes,
        filename: str,
        destination_path: str = "",
        *,
        cancel_requested: Optional[CancelFn] = None,
    ) -> UploadBatchResult:
        source = UploadSource(filename=filename, data=data)
        return await self.upload_batch([source], destination_path, cancel_requested=cancel_requested)

    async def delete_file(self, record: ObjectRecord, *, cancel_requested: Optional[CancelFn] = None) -> bool:
        session = self._require_connection()
        self._start_loading(session, error_message=None)
        try:
            await session.client.delete_object(record.key, cancel_requested=cancel_requested)
        except StorageError as exc:
            self._update(session, error_message=str(exc))
            return False
        finally:
            self._finish_loading(session)
        LOGGER.info("Deleted '%s'", record.key)
        if session is not self._session:
            return True
        return await self._load(session, session.current_path, cancel_requested)

    def _default_client_factory(self, config: EndpointConfig, credentials: Credentials) -> ObjectStoreClient:
        return ObjectStoreClient(config, credentials, timeout=self._settings.request_timeout)

    def _require_connection(self) -> Session:
        session = self._session
        if session.state is not ConnectionState.CONNECTED or session.client is None:
            raise NotConnectedError("Not connected to object storage")
        return session

    async def _load(self, session: Session, prefix: str, cancel_requested: Optional[CancelFn]) -> bool:
        path = normalize_path(prefix)
        client = session.client
        if client is None:
            return False
        self._start_loading(session, error_message=None)
        try:
            records = await client.list_objects(
                path,
                self._settings.max_keys,
                cancel_requested=cancel_requested,
            )
        except StorageError as exc:
            LOGGER.info("Listing '%s' failed: %s", path, exc)
            self._update(session, error_message=str(exc))
            return False
        finally:
            self._finish_loading(session)
        self._update(
            session,
            files=tuple(records),
            nodes=tuple(build(records, path)),
            current_path=path,
        )
        return True

    async def _close(self, session: Session) -> None:
        client, session.client = session.client, None
        if client is not None:
            await client.aclose()

    def _start_loading(self, session: Session, **changes) -> None:
        session.loads_in_flight += 1
        self._update(session, is_loading=True, **changes)

    def _finish_loading(self, session: Session, **changes) -> None:
        session.loads_in_flight = max(session.loads_in_flight - 1, 0)
        self._update(session, is_loading=session.loads_in_flight > 0, **changes)

    def _replace_session(self, session: Session) -> None:
        self._session = session
        self._notify(session)

    def _update(self, session: Session, **changes) -> None:
        for name, value in changes.items():
            setattr(session, name, value)
        if session is self._session:
            self._notify(session)

    def _notify(self, session: Session) -> None:
        snapshot = session.snapshot()
        for listener in tuple(self._listeners):
            listener(snapshot)
