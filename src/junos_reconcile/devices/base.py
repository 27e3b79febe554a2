"""Base device abstraction for Junos targets."""
import os
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Mapping, Optional

from lxml import etree

from ..exceptions import ParseError
from ..utils.connection import clamp_retries

logger = logging.getLogger(__name__)

CONFIRMED_TIMEOUT_RANGE = (1, 65535)
VERIFY_WAIT_PERCENT_RANGE = (0, 99)


@dataclass(frozen=True)
class CommitDescriptor:
    """Parameters of a commit: plain, or confirmed with a rollback timer."""
    confirmed_timeout: Optional[int] = None  # minutes
    verify_wait_percent: int = 90

    def __post_init__(self):
        if self.confirmed_timeout is not None:
            low, high = CONFIRMED_TIMEOUT_RANGE
            if not low <= self.confirmed_timeout <= high:
                raise ValueError(
                    f"confirmed commit timeout must be in [{low},{high}] minutes, "
                    f"got {self.confirmed_timeout}"
                )
        low, high = VERIFY_WAIT_PERCENT_RANGE
        if not low <= self.verify_wait_percent <= high:
            raise ValueError(
                f"verify wait percent must be in [{low},{high}], "
                f"got {self.verify_wait_percent}"
            )

    @property
    def confirmed(self) -> bool:
        return self.confirmed_timeout is not None

    @property
    def confirm_wait(self) -> float:
        """Seconds to wait before sending the confirmation."""
        if self.confirmed_timeout is None:
            return 0.0
        return self.confirmed_timeout * 60 * self.verify_wait_percent / 100


PLAIN_COMMIT = CommitDescriptor()


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "t", "true", "y", "yes")


@dataclass
class DeviceConfig:
    """Configuration for a Junos device."""
    host: str
    port: int = 830
    username: str = "netconf"
    name: str = ""
    password: Optional[str] = None
    password_env: str = "JUNOS_PASSWORD"
    ssh_key_pem: str = ""
    ssh_key_file: str = ""
    key_passphrase: str = ""
    timeout: int = 60
    retries: int = 1
    retry_delay: float = 1
    # Commit options
    commit_confirmed: int = 0  # minutes, 0 for a plain commit
    confirmed_wait_percent: int = 90
    # Dry-run options
    set_file: str = ""
    file_permission: str = "644"
    fake_update_also: bool = False
    fake_delete_also: bool = False

    def __post_init__(self):
        self.retries = clamp_retries(self.retries)
        if (self.fake_update_also or self.fake_delete_also) and not self.set_file:
            raise ValueError("fake_update_also and fake_delete_also need set_file")
        # validates ranges
        self.commit_descriptor()

    def get_password(self) -> str:
        """Get password from config or environment variable."""
        if self.password:
            return self.password
        return os.environ.get(self.password_env, "")

    def commit_descriptor(self) -> CommitDescriptor:
        """Commit descriptor derived from the commit options."""
        return CommitDescriptor(
            confirmed_timeout=self.commit_confirmed or None,
            verify_wait_percent=self.confirmed_wait_percent,
        )

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        **overrides,
    ) -> "DeviceConfig":
        """Build a config from ``JUNOS_*`` environment variables.

        Keyword arguments take precedence over the environment.
        """
        env = os.environ if environ is None else environ
        values: dict = {}
        if env.get("JUNOS_HOST"):
            values["host"] = env["JUNOS_HOST"]
        if env.get("JUNOS_PORT"):
            values["port"] = int(env["JUNOS_PORT"])
        if env.get("JUNOS_USERNAME"):
            values["username"] = env["JUNOS_USERNAME"]
        if env.get("JUNOS_PASSWORD"):
            values["password"] = env["JUNOS_PASSWORD"]
        if env.get("JUNOS_KEYPEM"):
            values["ssh_key_pem"] = env["JUNOS_KEYPEM"]
        if env.get("JUNOS_KEYFILE"):
            values["ssh_key_file"] = env["JUNOS_KEYFILE"]
        if env.get("JUNOS_KEYPASS"):
            values["key_passphrase"] = env["JUNOS_KEYPASS"]
        if env.get("JUNOS_FILE_PERMISSION"):
            values["file_permission"] = env["JUNOS_FILE_PERMISSION"]
        if env.get("JUNOS_FAKECREATE_SETFILE"):
            values["set_file"] = env["JUNOS_FAKECREATE_SETFILE"]
        if env.get("JUNOS_FAKEUPDATE_ALSO"):
            values["fake_update_also"] = _env_bool(env["JUNOS_FAKEUPDATE_ALSO"])
        if env.get("JUNOS_FAKEDELETE_ALSO"):
            values["fake_delete_also"] = _env_bool(env["JUNOS_FAKEDELETE_ALSO"])
        values.update(overrides)
        if "host" not in values:
            raise ValueError("JUNOS_HOST is not set")
        return cls(**values)


def local_name(element) -> str:
    """Tag of an lxml element without its namespace ('' for comments)."""
    if not isinstance(element.tag, str):
        return ""
    return etree.QName(element).localname


@dataclass
class SystemInformation:
    """Identity snapshot gathered right after connecting."""
    hardware_model: str = ""
    os_name: str = ""
    os_version: str = ""
    serial_number: str = ""
    host_name: str = ""
    cluster_node: bool = False

    @classmethod
    def from_xml(cls, data: str) -> "SystemInformation":
        """Parse a ``<system-information>`` reply payload.

        Raises:
            ParseError: If the payload is not XML
        """
        try:
            root = etree.fromstring(data.strip().encode())
        except etree.XMLSyntaxError as e:
            raise ParseError(f"invalid system-information reply ({e})", line=data) from e

        values = {}
        cluster_node = False
        for element in root.iter():
            name = local_name(element)
            if name == "cluster-node":
                # present (even empty) means the device is a cluster member
                cluster_node = True
            elif name:
                values[name] = (element.text or "").strip()

        return cls(
            hardware_model=values.get("hardware-model", ""),
            os_name=values.get("os-name", ""),
            os_version=values.get("os-version", ""),
            serial_number=values.get("serial-number", ""),
            host_name=values.get("host-name", ""),
            cluster_node=cluster_node,
        )


@dataclass
class RpcError:
    """One ``<rpc-error>`` of a reply."""
    severity: str = "error"
    message: str = ""
    path: str = ""
    bad_element: str = ""

    @property
    def is_error(self) -> bool:
        return self.severity != "warning"

    def __str__(self) -> str:
        text = self.message
        if self.bad_element:
            text += f" (bad element: {self.bad_element})"
        if self.path:
            text = f"{self.path}: {text}"
        return text


@dataclass
class RpcReply:
    """Payload and errors of one RPC reply."""
    data: str = ""
    errors: list[RpcError] = field(default_factory=list)

    @property
    def failures(self) -> list[RpcError]:
        return [e for e in self.errors if e.is_error]

    @property
    def warnings(self) -> list[RpcError]:
        return [e for e in self.errors if not e.is_error]

    @property
    def ok(self) -> bool:
        return not self.failures


class DeviceLink(ABC):
    """Abstract transport carrying RPCs to a device.

    One link is one device session; a link is opened once and closed once.
    """

    def __init__(self, config: DeviceConfig):
        self.config = config

    @property
    def host(self) -> str:
        return self.config.host

    @abstractmethod
    async def open(self) -> None:
        """Open the session. Transport failures raise OSError or EOFError."""
        pass

    @abstractmethod
    async def exec(self, rpc: str) -> RpcReply:
        """Send one RPC and wait for its reply."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the transport. Must not raise."""
        pass
