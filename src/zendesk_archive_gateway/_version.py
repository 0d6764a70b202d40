from __future__ import annotations

from importlib import metadata

DISTRIBUTION_NAME = "zendesk-archive-gateway"


def _read_version() -> str:
    try:
        return metadata.version(DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        return "0.0.0"


__version__ = _read_version()
