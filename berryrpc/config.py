from __future__ import annotations
import dataclasses
import os
from dataclasses import dataclass
from typing import Any, Optional

_ENV_PREFIX = 'BERRYRPC_'


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(_ENV_PREFIX + name)
    if raw is None or raw.strip() == '':
        return default
    return raw.strip().lower() not in ('0', 'false', 'no', 'off')


@dataclass(frozen=True)
class HandlerConfig:
    """Switches of the request pipeline.

    Attributes:
        validate_input: Validate the payload input against the method's input type.
        coerce_input: Let pydantic convert input values (lax mode); strict otherwise.
        validate_output: Validate the final result against the output type.
        mask_output: Drop result keys the output type does not declare
            (resolved relations are kept).
        session_key: Context key holding the ``AsyncSession`` (or
            ``async_sessionmaker``) used by SQL-backed default loaders.
        expose_internal_errors: Put messages of unexpected exceptions into error
            envelopes instead of a generic "Internal server error".
    """

    validate_input: bool = True
    coerce_input: bool = True
    validate_output: bool = True
    mask_output: bool = True
    session_key: str = 'db_session'
    expose_internal_errors: bool = False

    @classmethod
    def from_env(cls) -> 'HandlerConfig':
        """Read ``BERRYRPC_*`` environment variables ("0" disables a switch)."""
        return cls(
            validate_input=_env_flag('VALIDATE_INPUT', True),
            coerce_input=_env_flag('COERCE_INPUT', True),
            validate_output=_env_flag('VALIDATE_OUTPUT', True),
            mask_output=_env_flag('MASK_OUTPUT', True),
            session_key=os.getenv(_ENV_PREFIX + 'SESSION_KEY') or 'db_session',
            expose_internal_errors=_env_flag('EXPOSE_INTERNAL_ERRORS', False),
        )

    def with_overrides(self, **overrides: Optional[Any]) -> 'HandlerConfig':
        """Copy with the given non-None options replaced; unknown names raise TypeError."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return dataclasses.replace(self, **changes) if changes else self


__all__ = ['HandlerConfig']
