"""
Pair Factory SDK - Configuration

Defaults below, overridable from PAIRFACTORY_* environment variables and
then from CLI flags.
"""

import os
from dataclasses import dataclass, fields

ENV_PREFIX = "PAIRFACTORY_"


@dataclass
class FactoryConfig:
    # HTTP service
    http_host: str = "127.0.0.1"
    http_port: int = 8080

    # Ledger
    chain_id: int = 1

    # Initial protocol fee (1e18 scale), 0.5%
    fee_multiplier: int = 5 * 10 ** 15

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ=None) -> "FactoryConfig":
        """
        Build config from environment variables.

        PAIRFACTORY_HTTP_PORT=9000 sets http_port, and so on. Unset
        variables keep their defaults.

        Raises:
            ValueError: If a numeric variable does not parse
        """
        environ = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            if f.type in (int, "int"):
                try:
                    values[f.name] = int(raw, 0)
                except ValueError:
                    raise ValueError(f"{ENV_PREFIX}{f.name.upper()} must be an integer, got {raw!r}")
            else:
                values[f.name] = raw
        config = cls(**values)
        config.log_level = config.log_level.upper()
        return config
