"""Device sessions and transports for Junos targets."""
from .base import (
    CommitDescriptor,
    DeviceConfig,
    DeviceLink,
    PLAIN_COMMIT,
    RpcError,
    RpcReply,
    SystemInformation,
)
from .netconf import NetconfLink
from .session import JunosSession, open_session

__all__ = [
    "CommitDescriptor",
    "DeviceConfig",
    "DeviceLink",
    "PLAIN_COMMIT",
    "RpcError",
    "RpcReply",
    "SystemInformation",
    "NetconfLink",
    "JunosSession",
    "open_session",
    "create_session",
    "LINK_TYPES",
]

# Transport registry
LINK_TYPES = {
    "netconf": NetconfLink,
}


def create_session(device_id: str, config: dict) -> JunosSession:
    """Factory function to create an unconnected session from a config dict."""
    config = dict(config)
    transport = config.pop("transport", "netconf").lower()
    if transport not in LINK_TYPES:
        raise ValueError(f"Unknown transport: {transport}")

    return JunosSession(device_id, DeviceConfig(**config), LINK_TYPES[transport])
