"""Main Config Engine - reconciles resources against one Junos device.

Each operation runs in its own session:

1. Connect (with retries) and lock the candidate
2. Load the set/delete lines
3. Commit (plain, or confirmed then confirmed again after a wait)
4. Verify the result under the read guard
5. Close

Any failure or cancellation between the lock and a successful commit
clears the candidate before the session is closed, so the device is never
left locked with a half-applied edit.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Optional

from ..devices.base import DeviceConfig
from ..devices.session import JunosSession, LinkFactory
from ..exceptions import ExistenceMismatchError, ParseError, QueryError
from ..utils.audit_log import ChangeTracker
from ..utils.logging_config import timed_section
from .codec import config_lines
from .fake_apply import SetFile
from .guard import ReadGuard
from .parser import ConfigParser
from .resource import Resource, exists_command
from .schema import ApplyResult

logger = logging.getLogger(__name__)

DEFAULT_CLEAR_GRACE = 5.0


class ConfigEngine:
    """
    Create, update, delete and read resources on one device.

    Usage:
        engine = ConfigEngine(DeviceConfig(host="192.0.2.10"))
        result = await engine.create(bgp_group("UPLINKS"), group)
    """

    def __init__(
        self,
        config: DeviceConfig,
        device_id: Optional[str] = None,
        guard: Optional[ReadGuard] = None,
        link_factory: Optional[LinkFactory] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clear_grace: float = DEFAULT_CLEAR_GRACE,
    ):
        """
        Initialize the Config Engine.

        Args:
            config: Device connection and commit options
            device_id: Name used in logs and audit records (defaults to host)
            guard: Read guard shared by every engine of this device
            link_factory: Transport factory (NETCONF over SSH by default)
            sleep: Coroutine used for the confirmed-commit wait
            clear_grace: Seconds allowed for clearing the candidate on failure
        """
        self.config = config
        self.device_id = device_id or config.name or config.host
        self.guard = guard or ReadGuard(self.device_id)
        self.link_factory = link_factory
        self.descriptor = config.commit_descriptor()
        self.parser = ConfigParser()
        self.tracker = ChangeTracker(self.device_id)
        self.set_file = SetFile(config.set_file, config.file_permission) if config.set_file else None
        self.clear_grace = clear_grace
        self._sleep = sleep

    def session(self) -> JunosSession:
        """New, unconnected session to the device."""
        return JunosSession(self.device_id, self.config, self.link_factory)

    # Write operations

    async def create(self, resource: Resource, record: Any) -> ApplyResult:
        """
        Create a resource that must not exist yet.

        Returns:
            ApplyResult with the record read back after commit

        Raises:
            ExistenceMismatchError: If the resource already exists or a
                path it depends on is missing
            ConnectError, LockError, ApplyError, CommitError: From the session
        """
        lines = resource.set_lines(record)
        result = ApplyResult(lines=lines)

        async with self._operation("create", resource, result):
            if self.set_file is not None:
                return self._fake_apply(result)

            async with self.session() as session:
                await session.lock()
                try:
                    await self._check_create(session, resource)
                    result.warnings.extend(await session.config_set(lines))
                    result.warnings.extend(
                        await self._commit(session, resource.commit_message("create"))
                    )
                except BaseException:
                    await self._clear(session)
                    raise
                await self._verify(session, resource, result)

        return result

    async def update(self, resource: Resource, record: Any) -> ApplyResult:
        """
        Replace every managed field of a resource with ``record``.

        Managed fields are deleted first, then set again, in one commit.
        """
        lines = resource.field_delete_lines() + resource.set_lines(record)
        result = ApplyResult(lines=lines)

        async with self._operation("update", resource, result):
            if self.set_file is not None and self.config.fake_update_also:
                return self._fake_apply(result)

            async with self.session() as session:
                await session.lock()
                try:
                    result.warnings.extend(await session.config_set(lines))
                    result.warnings.extend(
                        await self._commit(session, resource.commit_message("update"))
                    )
                except BaseException:
                    await self._clear(session)
                    raise
                await self._verify(session, resource, result)

        return result

    async def delete(self, resource: Resource) -> ApplyResult:
        """
        Delete a resource.

        Deleting an absent resource succeeds with a warning and without a
        commit.
        """
        lines = resource.delete_lines()
        result = ApplyResult(lines=lines)

        async with self._operation("delete", resource, result):
            if self.set_file is not None and self.config.fake_delete_also:
                return self._fake_apply(result)

            async with self.session() as session:
                await session.lock()
                try:
                    async with self.guard:
                        present = await self._exists(session, resource)
                    if not present:
                        logger.warning(f"{resource.path} does not exist on {self.device_id}")
                        result.warnings.append(f"{resource.path} does not exist, nothing to delete")
                        await session.clear()
                    else:
                        result.warnings.extend(await session.config_set(lines))
                        result.warnings.extend(
                            await self._commit(session, resource.commit_message("delete"))
                        )
                except BaseException:
                    await self._clear(session)
                    raise

        result.success = True
        return result

    # Read operations

    async def read(self, resource: Resource) -> Optional[Any]:
        """
        Read a resource back from the running configuration.

        Returns:
            Reconstructed record, or None if the resource does not exist

        Raises:
            ParseError: If a line cannot be reconstructed
        """
        async with self.session() as session:
            async with self.guard:
                return await self._read(session, resource)

    async def exists(self, resource: Resource) -> bool:
        async with self.session() as session:
            async with self.guard:
                return await self._exists(session, resource)

    # Internals

    @asynccontextmanager
    async def _operation(self, operation: str, resource: Resource, result: ApplyResult):
        """Time the operation and write its audit record."""
        error = None
        try:
            async with timed_section(operation, device_id=self.device_id, path=resource.path):
                yield
        except BaseException as e:
            error = str(e) or type(e).__name__
            raise
        finally:
            self.tracker.log_change(
                operation,
                resource.path,
                success=error is None and result.success,
                lines=result.lines,
                warnings=result.warnings,
                error=error,
                dry_run=result.dry_run,
            )

    def _fake_apply(self, result: ApplyResult) -> ApplyResult:
        self.set_file.append(result.lines)
        result.dry_run = True
        result.success = True
        logger.info(f"Dry-run: {len(result.lines)} line(s) written to {self.set_file.path}")
        return result

    async def _commit(self, session: JunosSession, log_message: str) -> list[str]:
        warnings = await session.commit(log_message, self.descriptor)
        if self.descriptor.confirmed:
            wait = self.descriptor.confirm_wait
            logger.info(f"Waiting {wait:.0f}s before confirming commit on {self.device_id}")
            await self._sleep(wait)
            warnings.extend(await session.confirm_commit())
        return warnings

    async def _clear(self, session: JunosSession) -> None:
        """Clear the candidate, shielded from cancellation and bounded in time."""
        try:
            await asyncio.wait_for(asyncio.shield(session.clear()), timeout=self.clear_grace)
        except asyncio.TimeoutError:
            logger.warning(
                f"Clearing candidate configuration on {self.device_id} "
                f"did not finish within {self.clear_grace}s"
            )
        except Exception as e:
            logger.warning(f"Failed to clear candidate configuration on {self.device_id}: {e}")

    async def _verify(self, session: JunosSession, resource: Resource, result: ApplyResult) -> None:
        """Check the committed resource exists and read it back."""
        async with self.guard:
            try:
                present = await self._exists(session, resource)
            except QueryError as e:
                logger.warning(f"Post-commit existence check failed: {e}")
                result.warnings.append(str(e))
                result.success = True
                return

            if present:
                try:
                    result.record = await self._read(session, resource)
                except (QueryError, ParseError) as e:
                    logger.warning(f"Post-commit read of {resource.path} failed: {e}")
                    result.warnings.append(str(e))
            else:
                mismatch = ExistenceMismatchError(
                    resource.path, expected_present=True, device=self.device_id
                )
                logger.warning(str(mismatch))
                result.warnings.append(str(mismatch))
        result.success = True

    async def _check_create(self, session: JunosSession, resource: Resource) -> None:
        """The resource must be absent and every path it depends on present."""
        async with self.guard:
            if await self._exists(session, resource):
                raise ExistenceMismatchError(
                    resource.path, expected_present=False, device=self.device_id
                )
            for path, name in resource.preconditions:
                if not await self._path_exists(session, path):
                    raise ExistenceMismatchError(
                        path,
                        expected_present=True,
                        device=self.device_id,
                        message=f"{name} doesn't exist",
                    )

    async def _exists(self, session: JunosSession, resource: Resource) -> bool:
        return await self._path_exists(session, resource.path)

    async def _path_exists(self, session: JunosSession, path: str) -> bool:
        output = await session.command(exists_command(path))
        return bool(config_lines(output))

    async def _read(self, session: JunosSession, resource: Resource) -> Optional[Any]:
        output = await session.command(resource.show_command)
        lines = config_lines(output)
        if not lines:
            return None
        return self.parser.parse(lines, "", resource.catalog)
