"""Token generation, verification and extraction keyed by token type."""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import PydanticSchemaGenerationError, TypeAdapter, ValidationError

from tokengate.auth.registry import TokenTypeRegistry
from tokengate.core.errors import (
    ConfigurationError,
    InvalidPayloadShapeError,
    MissingDefaultSecretError,
    UnknownTokenTypeError,
)
from tokengate.core.settings import JWTSettings
from tokengate.crypto.codec import extract_bearer_token, sign_token, verify_token
from tokengate.crypto.secret_store import SecretStore
from tokengate.crypto.types import SignOptions, TokenTypeConfig, VerifyConstraints

logger = logging.getLogger(__name__)


class JWTService:
    """Signs and verifies tokens according to their registered type.

    Holds only immutable configuration, so one instance is shared by all
    concurrent requests.
    """

    def __init__(
        self,
        secret_store: SecretStore,
        registry: TokenTypeRegistry,
        debug: bool = False,
    ) -> None:
        self._secret_store = secret_store
        self._registry = registry
        self._debug = debug
        self._payload_adapters: dict[str, TypeAdapter[Any]] = {}
        for type_name, config in registry.items():
            if config.payload_schema is None:
                continue
            try:
                self._payload_adapters[type_name] = TypeAdapter(config.payload_schema)
            except PydanticSchemaGenerationError as exc:
                raise ConfigurationError(
                    f'Token type "{type_name}" has an unusable payload schema'
                ) from exc

    @classmethod
    def from_settings(
        cls,
        settings: JWTSettings,
        token_types: Mapping[str, TokenTypeConfig | Mapping[str, Any]] | None = None,
    ) -> "JWTService":
        """Build a service from settings; ``token_types`` overrides the env ones."""
        store = SecretStore(settings.get_secrets(), settings.default_key_id)
        registry = TokenTypeRegistry(
            token_types if token_types is not None else settings.token_types
        )
        return cls(store, registry, debug=settings.debug)

    @property
    def debug(self) -> bool:
        return self._debug

    @property
    def registry(self) -> TokenTypeRegistry:
        return self._registry

    def generate_token(self, type_name: str, payload: Mapping[str, Any]) -> str:
        """Sign ``payload`` as a token of ``type_name`` with the default key."""
        config = self._require_config(type_name)
        key_id = self._secret_store.default_key_id
        secret = self._secret_store.get(key_id)
        if secret is None:
            raise MissingDefaultSecretError(
                f'Default key ID "{key_id}" not found in secrets'
            )
        options = SignOptions(
            algorithm=config.algorithm,
            issuer=config.issuer,
            audience=config.audience,
            header_claims=config.header_claims,
        )
        token = sign_token(payload, secret, key_id, config.expires_in, options)
        logger.debug("Issued %s token signed with kid %s", type_name, key_id)
        return token

    def verify_token(self, type_name: str, token: str) -> Any:
        """Verify ``token`` as ``type_name`` and return its payload.

        The payload is the decoded claim dict, or the validated
        ``payload_schema`` value when the type declares one.
        """
        config = self._require_config(type_name)
        constraints = VerifyConstraints(
            algorithms=(config.algorithm,),
            allowed_issuers=config.allowed_issuers,
            header_claims=config.header_claims,
        )
        claims = verify_token(token, self._secret_store, constraints)

        adapter = self._payload_adapters.get(type_name)
        if adapter is None:
            return claims
        try:
            return adapter.validate_python(claims)
        except ValidationError as exc:
            raise InvalidPayloadShapeError(
                "Invalid token payload",
                detail=f"Token payload validation failed: {exc}",
            ) from exc

    def extract_token(
        self, header_value: str | Sequence[str] | None, type_name: str
    ) -> str | None:
        """Return the bearer token from a header value for ``type_name``."""
        config = self._require_config(type_name)
        return extract_bearer_token(header_value, config.header_name, self._debug)

    def get_token_type_config(self, type_name: str) -> TokenTypeConfig | None:
        return self._registry.get(type_name)

    def list_token_type_names(self) -> list[str]:
        return self._registry.names()

    def _require_config(self, type_name: str) -> TokenTypeConfig:
        config = self._registry.get(type_name)
        if config is None:
            raise UnknownTokenTypeError(type_name, self._registry.names())
        return config
