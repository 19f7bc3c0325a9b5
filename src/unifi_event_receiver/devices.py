import json
import logging
import os
from collections.abc import Mapping

import pydantic

from .schemas import DeviceMetadataCollection

logger = logging.getLogger(__name__)


class DeviceRegistry:
    """
    Maps device MAC addresses to the display names configured for them.

    Lookup order: the `DEVICE_METADATA` JSON document (case-insensitive), then
    an environment variable named ``{prefix}{mac}``, then the MAC itself.
    """

    def __init__(
        self,
        metadata: DeviceMetadataCollection | None = None,
        name_prefix: str | None = None,
        environ: Mapping[str, str] | None = None,
    ):
        self._metadata = metadata or DeviceMetadataCollection()
        self._name_prefix = name_prefix
        self._environ = environ if environ is not None else os.environ
        self._by_mac = {d.device_mac.lower(): d.device_name for d in self._metadata.devices}

    @classmethod
    def from_json(
        cls, document: str | None, name_prefix: str | None = None
    ) -> "DeviceRegistry":
        """Builds a registry; a malformed document yields an empty registry."""
        if not document:
            return cls(name_prefix=name_prefix)
        try:
            metadata = DeviceMetadataCollection.model_validate(json.loads(document))
        except (json.JSONDecodeError, pydantic.ValidationError) as e:
            logger.warning(
                "DEVICE_METADATA could not be parsed; device names fall back to MACs.",
                extra={"error": str(e)},
            )
            return cls(name_prefix=name_prefix)
        registry = cls(metadata, name_prefix=name_prefix)
        logger.info("Device registry loaded", extra={"device_count": len(registry)})
        return registry

    def device_name(self, device_mac: str) -> str:
        if not device_mac:
            return device_mac

        name = self._by_mac.get(device_mac.lower())
        if name:
            return name

        if self._name_prefix:
            name = self._environ.get(f"{self._name_prefix}{device_mac}")
            if name:
                return name

        return device_mac

    def __len__(self) -> int:
        return len(self._by_mac)
