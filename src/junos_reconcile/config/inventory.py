"""Device inventory loaded from YAML."""
import dataclasses
import logging
import os
from pathlib import Path
from typing import Optional

import yaml

from ..config_engine import ConfigEngine, ReadGuard
from ..devices import LINK_TYPES, DeviceConfig, JunosSession

logger = logging.getLogger(__name__)

INVENTORY_ENV = "JUNOS_RECONCILE_INVENTORY"

# keys accepted in a device entry besides the DeviceConfig fields
_EXTRA_KEYS = {"transport"}


class DeviceInventory:
    """Junos targets and their engines.

    ```yaml
    defaults:
      username: netconf
      retries: 3
      commit_confirmed: 10

    devices:
      srx-edge:
        host: 192.0.2.10
      mx-core:
        host: 192.0.2.20
        port: 22

    groups:
      edge:
        - srx-edge
    ```

    Device entries inherit every ``defaults`` key they do not set. Engines
    are cached per device and all engines of a device share one read guard.
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or self._find_config()
        self._devices: dict[str, dict] = {}
        self._groups: dict[str, list[str]] = {}
        self._guards: dict[str, ReadGuard] = {}
        self._engines: dict[str, ConfigEngine] = {}
        self._load_config()

    def _find_config(self) -> str:
        """Find the inventory file, ``$JUNOS_RECONCILE_INVENTORY`` first."""
        env_path = os.environ.get(INVENTORY_ENV)
        if env_path:
            return env_path

        search_paths = [
            Path.cwd() / "configs" / "devices.yaml",
            Path.cwd() / "devices.yaml",
            Path.home() / ".config" / "junos-reconcile" / "devices.yaml",
            Path("/etc/junos-reconcile/devices.yaml"),
        ]
        for path in search_paths:
            if path.exists():
                return str(path)

        raise FileNotFoundError(
            f"Could not find devices.yaml. Create one in ./configs/devices.yaml "
            f"or point {INVENTORY_ENV} at it"
        )

    def _load_config(self) -> None:
        with open(self.config_path) as f:
            raw = yaml.safe_load(f) or {}

        defaults = raw.get("defaults") or {}
        for device_id, entry in (raw.get("devices") or {}).items():
            self._devices[device_id] = {**defaults, **(entry or {})}

        self._groups = raw.get("groups") or {}
        self._validate_groups()
        logger.debug(
            f"Loaded {len(self._devices)} device(s) and {len(self._groups)} group(s) "
            f"from {self.config_path}"
        )

    def get_device_ids(self) -> list[str]:
        return list(self._devices)

    def get_raw_config(self, device_id: str) -> dict:
        """Device entry with defaults merged."""
        if device_id not in self._devices:
            raise KeyError(f"Unknown device: {device_id}")
        return self._devices[device_id]

    def get_device_config(self, device_id: str) -> DeviceConfig:
        """Validated config of a device.

        Raises:
            KeyError: Unknown device
            ValueError: Unknown keys or invalid values in the entry
        """
        entry = dict(self.get_raw_config(device_id))
        entry.pop("transport", None)
        known = {f.name for f in dataclasses.fields(DeviceConfig)}
        unknown = sorted(set(entry) - known - _EXTRA_KEYS)
        if unknown:
            raise ValueError(f"Device '{device_id}' has unknown keys: {', '.join(unknown)}")
        entry.setdefault("name", device_id)
        return DeviceConfig(**entry)

    def get_link_factory(self, device_id: str):
        """Transport class of a device (``transport:`` key, NETCONF by default)."""
        transport = str(self.get_raw_config(device_id).get("transport", "netconf")).lower()
        if transport not in LINK_TYPES:
            raise ValueError(f"Unknown transport for '{device_id}': {transport}")
        return LINK_TYPES[transport]

    def get_guard(self, device_id: str) -> ReadGuard:
        """Read guard shared by every engine of a device."""
        if device_id not in self._guards:
            self.get_raw_config(device_id)
            self._guards[device_id] = ReadGuard(device_id)
        return self._guards[device_id]

    def get_engine(self, device_id: str) -> ConfigEngine:
        """Get or create the engine of a device."""
        if device_id not in self._engines:
            self._engines[device_id] = ConfigEngine(
                self.get_device_config(device_id),
                device_id=device_id,
                guard=self.get_guard(device_id),
                link_factory=self.get_link_factory(device_id),
            )
        return self._engines[device_id]

    def get_session(self, device_id: str) -> JunosSession:
        """New, unconnected session to a device."""
        return JunosSession(
            device_id,
            self.get_device_config(device_id),
            self.get_link_factory(device_id),
        )

    # === Groups ===

    def _validate_groups(self) -> None:
        """Warn about malformed groups and members without a device entry."""
        for group_name, members in self._groups.items():
            if not isinstance(members, list):
                logger.warning(f"Group '{group_name}' should be a list of device IDs")
                continue
            for device_id in members:
                if device_id not in self._devices:
                    logger.warning(
                        f"Group '{group_name}' references unknown device: {device_id}"
                    )

    def get_group_names(self) -> list[str]:
        return list(self._groups)

    def get_group_members(self, group_name: str) -> list[str]:
        """Device IDs of a group.

        Raises:
            KeyError: If group doesn't exist
        """
        if group_name not in self._groups:
            raise KeyError(f"Unknown group: {group_name}")
        return list(self._groups[group_name])

    def get_device_groups(self, device_id: str) -> list[str]:
        """Groups a device belongs to."""
        return [
            name for name, members in self._groups.items()
            if isinstance(members, list) and device_id in members
        ]

    def get_engines_in_group(self, group_name: str) -> list[ConfigEngine]:
        """Engines of every member of a group."""
        return [self.get_engine(device_id) for device_id in self.get_group_members(group_name)]
