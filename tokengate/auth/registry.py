"""Registry of named token types."""

from collections.abc import Iterator, Mapping
from types import MappingProxyType
from typing import Any

from pydantic import ValidationError

from tokengate.core.errors import ConfigurationError
from tokengate.crypto.types import TokenTypeConfig


def _describe_validation_error(type_name: str, exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"]) or "config"
        if error["type"] == "missing":
            problems.append(f"missing required field: {field}")
        else:
            problems.append(f"{field}: {error['msg']}")
    return f'Token type "{type_name}" is invalid: {"; ".join(problems)}'


class TokenTypeRegistry(Mapping[str, TokenTypeConfig]):
    """Read-only map of type name to TokenTypeConfig, validated on creation.

    Values may be TokenTypeConfig instances or plain mappings using either
    snake_case or camelCase keys. Raises ConfigurationError when empty or
    when any entry is missing ``header_name``/``expires_in`` or is otherwise
    invalid.
    """

    def __init__(
        self, token_types: Mapping[str, TokenTypeConfig | Mapping[str, Any]]
    ) -> None:
        if not token_types:
            raise ConfigurationError("At least one token type must be configured")
        configs: dict[str, TokenTypeConfig] = {}
        for type_name, raw in token_types.items():
            if not type_name:
                raise ConfigurationError("Token type names must be non-empty")
            configs[type_name] = self._build(type_name, raw)
        self._types = MappingProxyType(configs)

    @staticmethod
    def _build(
        type_name: str, raw: TokenTypeConfig | Mapping[str, Any]
    ) -> TokenTypeConfig:
        if isinstance(raw, TokenTypeConfig):
            return raw
        try:
            return TokenTypeConfig.model_validate(dict(raw))
        except ValidationError as exc:
            raise ConfigurationError(
                _describe_validation_error(type_name, exc)
            ) from exc

    def __getitem__(self, type_name: str) -> TokenTypeConfig:
        return self._types[type_name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._types)

    def __len__(self) -> int:
        return len(self._types)

    def names(self) -> list[str]:
        return list(self._types)

    def __repr__(self) -> str:
        return f"TokenTypeRegistry({self.names()!r})"
