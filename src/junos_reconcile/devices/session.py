"""Junos session manager.

Wraps one device session and exposes the operations the engine composes:
connect, lock, load of set lines, commit (plain or confirmed), clear of the
candidate, close and read-only commands.

The exclusive candidate lock is tracked locally. A successful commit
releases it, a failed commit keeps it so the caller can clear the candidate
first, and close releases it if it is still held.
"""
import logging
from typing import Callable, Optional
from xml.sax.saxutils import escape

from lxml import etree

from .base import (
    PLAIN_COMMIT,
    CommitDescriptor,
    DeviceConfig,
    DeviceLink,
    RpcReply,
    SystemInformation,
    local_name,
)
from .netconf import NetconfLink
from ..exceptions import (
    ApplyError,
    CommitError,
    ConnectError,
    LockError,
    ParseError,
    QueryError,
    ReconcileError,
)
from ..utils.connection import RETRYABLE_EXCEPTIONS, connect_retrying
from ..utils.logging_config import timed

logger = logging.getLogger(__name__)

RPC_COMMAND = '<command format="text">{}</command>'
RPC_LOAD_CONFIG_SET = (
    '<load-configuration action="set" format="text">'
    "<configuration-set>{}</configuration-set>"
    "</load-configuration>"
)
RPC_SYSTEM_INFORMATION = "<get-system-information/>"
RPC_COMMIT = "<commit-configuration><log>{}</log></commit-configuration>"
RPC_COMMIT_CONFIRMED = (
    "<commit-configuration><confirmed/>"
    "<confirm-timeout>{timeout}</confirm-timeout>"
    "<log>{log}</log></commit-configuration>"
)
RPC_COMMIT_CHECK = "<commit-configuration><check/></commit-configuration>"
RPC_LOCK_CANDIDATE = "<lock><target><candidate/></target></lock>"
RPC_UNLOCK_CANDIDATE = "<unlock><target><candidate/></target></unlock>"
RPC_CLEAR_CANDIDATE = "<delete-config><target><candidate/></target></delete-config>"
RPC_CLOSE_SESSION = "<close-session/>"

# Transport failures raised by a link once the session is up
LINK_EXCEPTIONS = (OSError, EOFError)

LinkFactory = Callable[[DeviceConfig], DeviceLink]


def _messages(errors) -> str:
    return "\n".join(str(e) for e in errors)


def command_output(data: str) -> str:
    """Text of a ``<configuration-output>`` / ``<output>`` reply payload."""
    if not data:
        return ""
    try:
        root = etree.fromstring(data.encode())
    except etree.XMLSyntaxError:
        # plain-text payload
        return data
    if local_name(root) in ("configuration-output", "output"):
        return root.text or ""
    return data


def _offending_lines(lines: list[str], errors) -> list[str]:
    """Submitted lines naming a rejected element."""
    bad = {e.bad_element for e in errors if e.bad_element}
    if not bad:
        return list(lines)
    offending = [line for line in lines if bad & set(line.split())]
    return offending or list(lines)


class JunosSession:
    """One NETCONF session to a Junos device."""

    def __init__(
        self,
        device_id: str,
        config: DeviceConfig,
        link_factory: Optional[LinkFactory] = None,
    ):
        self.device_id = device_id
        self.config = config
        self._link_factory = link_factory or NetconfLink
        self._link: Optional[DeviceLink] = None
        self._locked = False
        self.system_information: Optional[SystemInformation] = None

    @property
    def is_connected(self) -> bool:
        return self._link is not None

    @property
    def is_locked(self) -> bool:
        return self._locked

    async def __aenter__(self) -> "JunosSession":
        if not self.is_connected:
            await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        await self.close()
        return False

    # Connection management

    @timed("connect")
    async def connect(self) -> SystemInformation:
        """Open the session, retrying transport failures with linear backoff.

        Returns:
            Identity snapshot of the device

        Raises:
            ConnectError: When every attempt failed or identity query failed
        """
        if self._link is not None:
            raise ConnectError("session is already connected", device=self.device_id)

        try:
            async for attempt in connect_retrying(self.config.retries, self.config.retry_delay):
                with attempt:
                    link = self._link_factory(self.config)
                    try:
                        await link.open()
                    except BaseException:
                        await link.close()
                        raise
                    self._link = link
        except RETRYABLE_EXCEPTIONS as e:
            raise ConnectError(
                f"error connecting to {self.config.host}:{self.config.port} "
                f"after {self.config.retries} attempt(s): {e}",
                device=self.device_id,
            ) from e

        try:
            self.system_information = await self._gather_facts()
        except BaseException:
            await self._drop_link()
            raise

        info = self.system_information
        logger.info(
            f"Connected to {self.device_id}: {info.host_name} "
            f"{info.hardware_model} {info.os_name} {info.os_version}"
        )
        return info

    async def close(self) -> None:
        """Release the lock if held and close the session. Idempotent."""
        if self._link is None:
            return
        try:
            if self._locked:
                warnings = await self._unlock()
                for warning in warnings:
                    logger.warning(f"{self.device_id}: {warning}")
            await self._link.exec(RPC_CLOSE_SESSION)
        except (ReconcileError, *LINK_EXCEPTIONS) as e:
            logger.warning(f"Error closing session to {self.device_id}: {e}")
        finally:
            await self._drop_link()

    async def _drop_link(self) -> None:
        link, self._link = self._link, None
        self._locked = False
        if link is not None:
            await link.close()

    async def _gather_facts(self) -> SystemInformation:
        reply = await self._rpc(RPC_SYSTEM_INFORMATION, ConnectError, "get-system-information")
        if not reply.ok:
            raise ConnectError(
                f"netconf get-system-information failed: {_messages(reply.failures)}",
                device=self.device_id,
            )
        try:
            return SystemInformation.from_xml(reply.data)
        except ParseError as e:
            raise ConnectError(str(e), device=self.device_id) from e

    async def _rpc(self, rpc: str, error_class: type, what: str) -> RpcReply:
        """Execute an RPC, turning transport failures into ``error_class``."""
        if self._link is None:
            raise error_class(f"netconf {what}: session is not connected", device=self.device_id)
        try:
            return await self._link.exec(rpc)
        except LINK_EXCEPTIONS as e:
            raise error_class(f"executing netconf {what}: {e}", device=self.device_id) from e

    # Candidate configuration

    async def lock(self) -> None:
        """Take the exclusive candidate lock.

        Raises:
            LockError: If another session holds the lock
        """
        reply = await self._rpc(RPC_LOCK_CANDIDATE, LockError, "lock")
        if not reply.ok:
            raise LockError(
                f"candidate configuration lock failed: {_messages(reply.failures)}",
                device=self.device_id,
            )
        self._locked = True
        logger.debug(f"Candidate configuration locked on {self.device_id}")

    async def _unlock(self) -> list[str]:
        """Release the candidate lock. Failures are returned as warnings."""
        reply = await self._rpc(RPC_UNLOCK_CANDIDATE, LockError, "unlock")
        if not reply.ok:
            return [f"config unlock: {_messages(reply.failures)}"]
        self._locked = False
        logger.debug(f"Candidate configuration unlocked on {self.device_id}")
        return [str(w) for w in reply.warnings]

    async def config_set(self, lines: list[str]) -> list[str]:
        """Load set/delete lines into the locked candidate.

        Args:
            lines: Ordered command lines; an empty list is a no-op

        Returns:
            Warnings reported by the device

        Raises:
            LockError: If the candidate is not locked by this session
            ApplyError: If the device rejects a line
        """
        if not lines:
            return []
        if not self._locked:
            raise LockError("candidate configuration is not locked", device=self.device_id)

        rpc = RPC_LOAD_CONFIG_SET.format(escape("\n".join(lines)))
        reply = await self._rpc(rpc, ApplyError, "load-configuration")
        if not reply.ok:
            raise ApplyError(
                f"failed to load configuration: {_messages(reply.failures)}",
                lines=lines,
                offending=_offending_lines(lines, reply.failures),
                device=self.device_id,
            )
        return [str(w) for w in reply.warnings]

    @timed("commit")
    async def commit(
        self,
        log_message: str,
        descriptor: CommitDescriptor = PLAIN_COMMIT,
    ) -> list[str]:
        """Commit the candidate.

        A plain commit releases the lock on success. A confirmed commit keeps
        it until :meth:`confirm_commit`. A failed commit keeps the lock; the
        caller must :meth:`clear`.

        Returns:
            Warnings reported by the device

        Raises:
            CommitError: With the device diagnostic when the commit fails
        """
        if not self._locked:
            raise LockError("candidate configuration is not locked", device=self.device_id)

        if descriptor.confirmed:
            rpc = RPC_COMMIT_CONFIRMED.format(
                timeout=descriptor.confirmed_timeout, log=escape(log_message)
            )
        else:
            rpc = RPC_COMMIT.format(escape(log_message))
        reply = await self._rpc(rpc, CommitError, "commit")

        warnings = [str(w) for w in reply.warnings]
        if not reply.ok:
            raise CommitError(_messages(reply.failures), warnings=warnings, device=self.device_id)
        for warning in warnings:
            logger.warning(f"{self.device_id}: commit warning: {warning}")

        if descriptor.confirmed:
            logger.info(
                f"Confirmed commit on {self.device_id}, rollback in "
                f"{descriptor.confirmed_timeout} minute(s) unless confirmed"
            )
        else:
            warnings.extend(await self._unlock())
        return warnings

    async def confirm_commit(self) -> list[str]:
        """Confirm a pending confirmed commit, then release the lock."""
        reply = await self._rpc(RPC_COMMIT_CHECK, CommitError, "commit check")
        warnings = [str(w) for w in reply.warnings]
        if not reply.ok:
            raise CommitError(_messages(reply.failures), warnings=warnings, device=self.device_id)
        logger.info(f"Commit confirmed on {self.device_id}")
        warnings.extend(await self._unlock())
        return warnings

    async def clear(self) -> None:
        """Discard the pending candidate edit and release the lock.

        No-op when this session does not hold the lock.

        Raises:
            ApplyError: If the candidate could not be discarded
            LockError: If the lock could not be released
        """
        if not self._locked:
            return
        reply = await self._rpc(RPC_CLEAR_CANDIDATE, ApplyError, "delete-config")
        unlock_warnings = await self._unlock()
        if not reply.ok:
            raise ApplyError(
                f"config clear: {_messages(reply.failures)}", device=self.device_id
            )
        if self._locked:
            raise LockError("; ".join(unlock_warnings), device=self.device_id)
        logger.debug(f"Candidate configuration cleared on {self.device_id}")

    # Read-only

    async def command(self, query: str) -> str:
        """Run a read-only command and return its text output.

        Raises:
            QueryError: If the command fails
        """
        reply = await self._rpc(RPC_COMMAND.format(escape(query)), QueryError, "command")
        if not reply.ok:
            raise QueryError(
                f"command {query!r} failed: {_messages(reply.failures)}",
                device=self.device_id,
            )
        return command_output(reply.data)


async def open_session(
    device_id: str,
    config: DeviceConfig,
    link_factory: Optional[LinkFactory] = None,
) -> JunosSession:
    """Connect a new session. The caller owns it and must close it."""
    session = JunosSession(device_id, config, link_factory)
    await session.connect()
    return session
