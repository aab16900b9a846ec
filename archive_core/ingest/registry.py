"""
Adapter registry.

Maps adapter names to factories. Callers pick an ingestion strategy by name
(from config, a CLI flag or an API request) instead of importing a class.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from archive_core.config import IngestConfig
from archive_core.ingest.base import IngestionAdapter
from archive_core.ingest.errors import UnknownAdapterError
from archive_core.ingest.filesystem import FilesystemAdapter
from archive_core.ingest.upload import UploadAdapter
from archive_core.ingest.url import UrlAdapter
from shared.schema import IngestOptions, TargetEntity

logger = logging.getLogger(__name__)

AdapterFactory = Callable[..., IngestionAdapter]

# Named adapters registry
ADAPTERS: Dict[str, AdapterFactory] = {
    "Filesystem": FilesystemAdapter,
    "LocalPath": FilesystemAdapter,
    "Url": UrlAdapter,
    "Upload": UploadAdapter,
}


def register_adapter(name: str, factory: AdapterFactory, replace: bool = False) -> None:
    """Make *factory* available under *name*.

    The factory is called as ``factory(target, options, config=config)``.
    """
    if not name:
        raise ValueError("Adapter name must not be empty")
    if name in ADAPTERS and not replace:
        raise ValueError(f"Adapter '{name}' is already registered")
    ADAPTERS[name] = factory
    logger.info("Registered ingest adapter '%s'", name)


def available_adapters() -> List[str]:
    return sorted(ADAPTERS)


def create_adapter(
    adapter_name: str,
    target: TargetEntity,
    options: Union[IngestOptions, Mapping[str, Any], None] = None,
    config: Optional[IngestConfig] = None,
    **kwargs: Any,
) -> IngestionAdapter:
    """Build the adapter registered under *adapter_name*, bound to *target* and *options*.

    Raises
    ------
    UnknownAdapterError
        If nothing is registered under that name.
    """
    factory = ADAPTERS.get(adapter_name)
    if factory is None:
        raise UnknownAdapterError(
            f"Could not load adapter '{adapter_name}'; available: {', '.join(available_adapters())}"
        )
    return factory(target, options, config=config, **kwargs)
