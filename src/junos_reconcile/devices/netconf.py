"""NETCONF transport over SSH.

Sessions are opened with ncclient using the Junos device handler. ncclient
calls are blocking and run in the default executor.
"""
import asyncio
import io
import logging
import os
import tempfile
from contextlib import contextmanager
from typing import Iterator, Optional

import paramiko
from lxml import etree
from ncclient import NCClientError, manager
from ncclient.operations import RaiseMode
from ncclient.operations.errors import TimeoutExpiredError
from ncclient.xml_ import to_ele

from .base import DeviceConfig, DeviceLink, RpcError, RpcReply, local_name
from ..exceptions import ConnectError
from ..utils.logging_config import netconf_logger

logger = logging.getLogger(__name__)

JUNOS_DEVICE_PARAMS = {"name": "junos"}

# Reply children that are status, not payload
_NON_DATA_TAGS = ("rpc-error", "ok")

_KEY_CLASSES = (paramiko.RSAKey, paramiko.ECDSAKey, paramiko.Ed25519Key)


def reply_xml(reply) -> str:
    """XML text of an ncclient reply.

    The Junos handler returns an ``NCElement`` with the namespaces stripped,
    other handlers a plain ``RPCReply``.
    """
    if hasattr(reply, "data_xml"):
        return reply.data_xml
    if hasattr(reply, "xml"):
        return reply.xml
    return str(reply)


def parse_rpc_reply(raw: str) -> RpcReply:
    """Split an ``<rpc-reply>`` document into payload and errors.

    A reply that is not well-formed XML becomes a single error so the caller
    reports it the same way as a device-side failure.
    """
    try:
        root = etree.fromstring(raw.strip().encode())
    except etree.XMLSyntaxError as e:
        return RpcReply(errors=[RpcError(message=f"malformed netconf reply: {e}")])

    errors = [
        _rpc_error(element)
        for element in root.iter()
        if local_name(element) == "rpc-error"
    ]

    children = [child for child in root if local_name(child) not in ("", *_NON_DATA_TAGS)]
    if children:
        data = "".join(
            etree.tostring(child, encoding="unicode", with_tail=False)
            for child in children
        )
    else:
        data = (root.text or "").strip()
    return RpcReply(data=data, errors=errors)


def _rpc_error(element) -> RpcError:
    fields = {}
    for child in element.iter():
        name = local_name(child)
        if name in ("error-severity", "error-message", "error-path", "bad-element"):
            fields[name] = (child.text or "").strip()
    return RpcError(
        severity=fields.get("error-severity") or "error",
        message=fields.get("error-message", ""),
        path=fields.get("error-path", ""),
        bad_element=fields.get("bad-element", ""),
    )


def load_private_key(
    pem: str,
    passphrase: Optional[str] = None,
    device: Optional[str] = None,
) -> paramiko.PKey:
    """Parse an inline PEM key (RSA, ECDSA or Ed25519).

    Raises:
        ConnectError: If no key type accepts the PEM
    """
    for key_class in _KEY_CLASSES:
        try:
            return key_class.from_private_key(io.StringIO(pem), password=passphrase)
        except paramiko.SSHException:
            continue
    raise ConnectError(
        "failed to parse SSH private key (RSA, ECDSA and Ed25519 tried)", device=device
    )


@contextmanager
def _key_file(pem: str) -> Iterator[str]:
    """Inline key written to a private temporary file for ncclient."""
    fd, path = tempfile.mkstemp(prefix="junos-reconcile-", suffix=".key")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(pem)
        yield path
    finally:
        os.unlink(path)


class NetconfLink(DeviceLink):
    """One NETCONF session, backed by an ncclient manager."""

    def __init__(self, config: DeviceConfig):
        super().__init__(config)
        self._manager: Optional[manager.Manager] = None
        self._lock = asyncio.Lock()

    @property
    def session_id(self) -> Optional[str]:
        return self._manager.session_id if self._manager else None

    def _connect_params(self) -> dict:
        config = self.config
        return {
            "host": config.host,
            "port": config.port,
            "username": config.username,
            # ncclient unlocks key files with the password
            "password": config.get_password() or config.key_passphrase or None,
            "hostkey_verify": False,
            "allow_agent": bool(os.environ.get("SSH_AUTH_SOCK")),
            "look_for_keys": False,
            "timeout": config.timeout,
            "device_params": JUNOS_DEVICE_PARAMS,
        }

    def _connect(self) -> manager.Manager:
        params = self._connect_params()
        try:
            if self.config.ssh_key_pem:
                with _key_file(self.config.ssh_key_pem) as path:
                    return manager.connect(key_filename=path, **params)
            return manager.connect(key_filename=self.config.ssh_key_file or None, **params)
        except NCClientError as e:
            raise ConnectionError(
                f"initializing netconf session to {self.config.host}:{self.config.port}: {e}"
            ) from e

    async def open(self) -> None:
        """Establish the SSH session and exchange hellos."""
        if self.config.ssh_key_pem:
            # ConnectError is not in the retryable set
            load_private_key(
                self.config.ssh_key_pem, self.config.key_passphrase or None, device=self.host
            )
        loop = asyncio.get_event_loop()
        self._manager = await loop.run_in_executor(None, self._connect)
        # rpc-errors come back in the reply, warnings included
        self._manager.raise_mode = RaiseMode.NONE
        logger.debug(f"NETCONF session {self.session_id} open on {self.host}")

    async def exec(self, rpc: str) -> RpcReply:
        """Send one RPC and wait for its reply."""
        if self._manager is None:
            raise ConnectionError(f"netconf session to {self.host} is not open")

        loop = asyncio.get_event_loop()
        async with self._lock:
            netconf_logger.debug(f"{self.host} >>> {rpc}")
            try:
                reply = await loop.run_in_executor(None, self._manager.rpc, to_ele(rpc))
            except TimeoutExpiredError as e:
                raise TimeoutError(f"timeout waiting for netconf reply from {self.host}") from e
            except NCClientError as e:
                raise ConnectionError(f"netconf session to {self.host} failed: {e}") from e
            raw = reply_xml(reply)
            netconf_logger.debug(f"{self.host} <<< {raw}")
        return parse_rpc_reply(raw)

    async def close(self) -> None:
        """Close the ncclient session."""
        mgr, self._manager = self._manager, None
        if mgr is None or not mgr.connected:
            return
        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(None, mgr.close_session)
        except NCClientError as e:
            logger.debug(f"Error closing netconf session to {self.host}: {e}")
