from __future__ import annotations
"""Storage source records, their persistence and credential storage."""
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
import json
import logging
from pathlib import Path
from typing import Optional
import uuid

import keyring
from keyring.errors import KeyringError

from .errors import ConfigurationError, CredentialsNotFoundError, CredentialStoreError
from .models import Credentials, EndpointConfig, ProviderType

LOGGER = logging.getLogger(__name__)

KEYRING_SERVICE = "object-storage-manager.credentials"


class CredentialProvider:
    """Loads and stores access key pairs by opaque reference."""

    def load(self, ref: str) -> Credentials:
        raise NotImplementedError

    def save(self, credentials: Credentials, ref: str) -> None:
        raise NotImplementedError

    def delete(self, ref: str) -> None:
        raise NotImplementedError


def _decode_credentials(raw: str) -> Credentials:
    try:
        payload = json.loads(raw)
        return Credentials(access_key=payload["accessKey"], secret_key=payload["secretKey"])
    except (json.JSONDecodeError, KeyError, TypeError) as exc:
        raise ConfigurationError("Malformed credentials payload") from exc


def _encode_credentials(credentials: Credentials) -> str:
    return json.dumps({"accessKey": credentials.access_key, "secretKey": credentials.secret_key})


class KeyringCredentialProvider(CredentialProvider):
    """Keeps credentials in the OS keychain through :mod:`keyring`."""

    def __init__(self, service_name: str = KEYRING_SERVICE):
        self._service_name = service_name

    def load(self, ref: str) -> Credentials:
        if not ref:
            raise CredentialsNotFoundError("No credentials reference configured")
        try:
            raw = keyring.get_password(self._service_name, ref)
        except KeyringError as exc:
            raise ConfigurationError(f"Unable to read credentials: {exc}") from exc
        if raw is None:
            raise CredentialsNotFoundError(f"No credentials stored for '{ref}'")
        return _decode_credentials(raw)

    def save(self, credentials: Credentials, ref: str) -> None:
        try:
            keyring.set_password(self._service_name, ref, _encode_credentials(credentials))
        except KeyringError as exc:
            raise CredentialStoreError(f"Unable to store credentials: {exc}") from exc

    def delete(self, ref: str) -> None:
        if not ref:
            return
        try:
            keyring.delete_password(self._service_name, ref)
        except KeyringError:
            return


class InMemoryCredentialProvider(CredentialProvider):
    """Dictionary-backed provider used by tests and scripts."""

    def __init__(self, initial: dict[str, Credentials] | None = None):
        self._entries: dict[str, str] = {
            ref: _encode_credentials(credentials) for ref, credentials in (initial or {}).items()
        }

    def load(self, ref: str) -> Credentials:
        raw = self._entries.get(ref)
        if raw is None:
            raise CredentialsNotFoundError(f"No credentials stored for '{ref}'")
        return _decode_credentials(raw)

    def save(self, credentials: Credentials, ref: str) -> None:
        self._entries[ref] = _encode_credentials(credentials)

    def save_raw(self, ref: str, raw: str) -> None:
        self._entries[ref] = raw

    def delete(self, ref: str) -> None:
        self._entries.pop(ref, None)

    def __contains__(self, ref: str) -> bool:
        return ref in self._entries


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class StorageSource:
    """A saved connection: endpoint configuration plus catalogue metadata."""

    id: str
    config: EndpointConfig
    tags: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=_now)
    last_used_at: Optional[datetime] = None

    @property
    def name(self) -> str:
        return self.config.name

    @classmethod
    def create(cls, config: EndpointConfig, tags: list[str] | None = None) -> "StorageSource":
        source_id = str(uuid.uuid4())
        if not config.credentials_ref:
            config = replace(config, credentials_ref=source_id)
        return cls(id=source_id, config=config, tags=_clean_tags(tags or []))


def _clean_tags(tags: list[str]) -> list[str]:
    cleaned: list[str] = []
    for tag in tags:
        value = tag.strip()
        if value and value.lower() not in {existing.lower() for existing in cleaned}:
            cleaned.append(value)
    return cleaned


def _source_to_dict(source: StorageSource) -> dict[str, object]:
    config = source.config
    return {
        "id": source.id,
        "name": config.name,
        "provider": config.provider.value,
        "endpoint": config.endpoint,
        "bucket": config.bucket,
        "region": config.region,
        "use_ssl": config.use_ssl,
        "path_style": config.path_style,
        "note": config.note,
        "cdn_url": config.cdn_url,
        "credentials_ref": config.credentials_ref,
        "tags": list(source.tags),
        "created_at": source.created_at.isoformat(),
        "last_used_at": source.last_used_at.isoformat() if source.last_used_at else None,
    }


def _parse_datetime(value: object) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def _source_from_dict(entry: dict) -> StorageSource:
    config = EndpointConfig(
        provider=ProviderType.from_value(entry.get("provider")),
        endpoint=entry["endpoint"],
        bucket=entry["bucket"],
        region=entry.get("region") or "",
        use_ssl=bool(entry.get("use_ssl", True)),
        path_style=bool(entry.get("path_style", False)),
        note=entry.get("note") or None,
        cdn_url=entry.get("cdn_url") or None,
        credentials_ref=entry.get("credentials_ref") or entry["id"],
        name=entry.get("name") or "",
    )
    tags = entry.get("tags") or []
    return StorageSource(
        id=entry["id"],
        config=config,
        tags=_clean_tags([tag for tag in tags if isinstance(tag, str)]),
        created_at=_parse_datetime(entry.get("created_at")) or _now(),
        last_used_at=_parse_datetime(entry.get("last_used_at")),
    )


class SourceStorage:
    """JSON-backed catalogue of :class:`StorageSource` records.

    Secrets never touch the JSON file; they live in the credential provider
    under each source's ``credentials_ref``.
    """

    def __init__(
        self,
        storage_path: str | Path | None = None,
        credentials: CredentialProvider | None = None,
    ):
        if storage_path is None:
            storage_path = Path.home() / ".object_storage_manager_sources.json"
        self._path = Path(storage_path)
        self._credentials = credentials or KeyringCredentialProvider()

    @property
    def credentials(self) -> CredentialProvider:
        return self._credentials

    def load(self) -> list[StorageSource]:
        if not self._path.exists():
            return []
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            LOGGER.warning("Ignoring unreadable source catalogue %s", self._path)
            return []
        sources: list[StorageSource] = []
        for entry in data if isinstance(data, list) else []:
            try:
                sources.append(_source_from_dict(entry))
            except (KeyError, TypeError, AttributeError):
                continue
        return sources

    def save(self, sources: list[StorageSource]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = [_source_to_dict(source) for source in sources]
        self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def get(self, key: str) -> StorageSource:
        """Find a source by id or by case-insensitive name."""
        for source in self.load():
            if source.id == key or source.name.lower() == key.lower():
                return source
        raise ValueError(f"Source '{key}' does not exist")

    def upsert(self, source: StorageSource, credentials: Credentials | None = None) -> StorageSource:
        source = replace(
            source,
            config=source.config.normalized(),
            tags=_clean_tags(source.tags),
        )
        sources = self.load()
        for idx, existing in enumerate(sources):
            if existing.id == source.id:
                sources[idx] = source
                break
        else:
            sources.append(source)
        if credentials is not None:
            self._credentials.save(credentials, source.config.credentials_ref)
        self.save(sources)
        return source

    def delete(self, source_id: str) -> None:
        sources = self.load()
        remaining = [source for source in sources if source.id != source_id]
        if len(remaining) == len(sources):
            raise ValueError(f"Source '{source_id}' does not exist")
        for source in sources:
            if source.id == source_id:
                self._credentials.delete(source.config.credentials_ref)
        self.save(remaining)

    def mark_used(self, source_id: str, when: datetime | None = None) -> None:
        sources = self.load()
        for source in sources:
            if source.id == source_id:
                source.last_used_at = when or _now()
        self.save(sources)

    def all_tags(self) -> list[str]:
        seen: dict[str, str] = {}
        for source in self.load():
            for tag in source.tags:
                seen.setdefault(tag.lower(), tag)
        return sorted(seen.values(), key=str.lower)

    def sources_with_tag(self, tag: str) -> list[StorageSource]:
        wanted = tag.lower()
        return [
            source
            for source in self.load()
            if any(existing.lower() == wanted for existing in source.tags)
        ]

    def rename_tag(self, old: str, new: str) -> None:
        new = new.strip()
        if not new:
            raise ValueError("Tag name cannot be empty")
        sources = self.load()
        for source in sources:
            source.tags = _clean_tags(
                [new if tag.lower() == old.lower() else tag for tag in source.tags]
            )
        self.save(sources)

    def remove_tag(self, tag: str) -> None:
        sources = self.load()
        for source in sources:
            source.tags = [existing for existing in source.tags if existing.lower() != tag.lower()]
        self.save(sources)
