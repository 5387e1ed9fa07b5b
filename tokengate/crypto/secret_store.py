"""Signing secrets keyed by key id, with a default key for new tokens."""

from collections.abc import Mapping
from types import MappingProxyType

from tokengate.core.errors import ConfigurationError

PAIR_SEPARATOR = "|"
KEY_SEPARATOR = "="


def parse_jwt_secrets(secrets_string: str) -> dict[str, str]:
    """Parse ``"kid1=secret1|kid2=secret2"`` into a key id to secret map.

    Blank pairs from leading or trailing separators are skipped. Raises
    ConfigurationError on empty input, a pair without ``=``, an empty key id
    or secret, or a duplicate key id.
    """
    if not secrets_string or not secrets_string.strip():
        raise ConfigurationError("JWT secrets string cannot be empty")

    secrets: dict[str, str] = {}
    for pair in secrets_string.split(PAIR_SEPARATOR):
        trimmed = pair.strip()
        if not trimmed:
            continue
        key_id, sep, secret = trimmed.partition(KEY_SEPARATOR)
        if not sep:
            raise ConfigurationError(
                f'Invalid JWT secret format: "{pair}". Expected format: key=secret'
            )
        key_id = key_id.strip()
        secret = secret.strip()
        if not key_id:
            raise ConfigurationError(f'Empty key ID in JWT secret pair: "{pair}"')
        if not secret:
            raise ConfigurationError(f'Empty secret for key ID "{key_id}"')
        if key_id in secrets:
            raise ConfigurationError(f'Duplicate key ID "{key_id}" in JWT secrets')
        secrets[key_id] = secret

    if not secrets:
        raise ConfigurationError(
            "JWT secrets string must contain at least one valid key=secret pair"
        )
    return secrets


class SecretStore:
    """Immutable key id to secret mapping shared by all sign/verify calls."""

    __slots__ = ("_secrets", "_default_key_id")

    def __init__(self, secrets: Mapping[str, str], default_key_id: str) -> None:
        if not secrets:
            raise ConfigurationError("At least one JWT secret must be configured")
        for key_id, secret in secrets.items():
            if not key_id or not secret:
                raise ConfigurationError(
                    f'JWT secret for key ID "{key_id}" must be non-empty'
                )
        if default_key_id not in secrets:
            raise ConfigurationError(
                f'Default key ID "{default_key_id}" not found in JWT secrets'
            )
        self._secrets = MappingProxyType(dict(secrets))
        self._default_key_id = default_key_id

    @classmethod
    def from_string(cls, secrets_string: str, default_key_id: str) -> "SecretStore":
        """Build a store from the ``kid=secret|...`` configuration format."""
        return cls(parse_jwt_secrets(secrets_string), default_key_id)

    @property
    def default_key_id(self) -> str:
        return self._default_key_id

    @property
    def secrets(self) -> Mapping[str, str]:
        return self._secrets

    def get(self, key_id: str) -> str | None:
        return self._secrets.get(key_id)

    def key_ids(self) -> list[str]:
        return list(self._secrets)

    def __contains__(self, key_id: object) -> bool:
        return key_id in self._secrets

    def __repr__(self) -> str:
        return (
            f"SecretStore(key_ids={self.key_ids()!r}, "
            f"default_key_id={self._default_key_id!r})"
        )
