"""
Client-side permission context.

Caches the last CompanyPermissions snapshot of one company and answers
synchronous gating questions from it. Unknown state is treated as denied.
Snapshots are replaced wholesale; a failed refresh keeps the previous one.
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Iterable, Optional, Union

import httpx
from pydantic import ValidationError

from ...config import (
    PERMISSIONS_API_BASE_URL,
    PERMISSIONS_FETCH_BACKOFF,
    PERMISSIONS_FETCH_RETRIES,
    PERMISSIONS_FETCH_TIMEOUT,
)
from .catalog import ModuleName, get_upgrade_message, to_module
from .exceptions import PermissionsUnavailableError
from .schemas import CompanyPermissions

logger = logging.getLogger(__name__)

PermissionsLoader = Callable[[str], Awaitable[CompanyPermissions]]
PermissionsListener = Callable[[CompanyPermissions], None]


class ContextState(str, Enum):
    LOADING = "loading"  # no snapshot yet
    READY = "ready"  # snapshot present, nothing in flight
    REFRESHING = "refreshing"  # snapshot present, fetch in flight


class HttpPermissionsLoader:
    """Fetch a snapshot from GET /api/permissions/{company_id}.

    Each attempt is bounded by `timeout`. Transport errors and 5xx responses
    are retried with exponential backoff; other statuses fail immediately.
    Every failure surfaces as PermissionsUnavailableError.
    """

    def __init__(
        self,
        base_url: str = PERMISSIONS_API_BASE_URL,
        access_token: Optional[str] = None,
        timeout: float = PERMISSIONS_FETCH_TIMEOUT,
        retries: int = PERMISSIONS_FETCH_RETRIES,
        backoff: float = PERMISSIONS_FETCH_BACKOFF,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.access_token = access_token
        self.timeout = timeout
        self.retries = max(0, retries)
        self.backoff = backoff
        self.transport = transport

    def _headers(self) -> dict:
        if not self.access_token:
            return {}
        return {"Authorization": f"Bearer {self.access_token}"}

    async def __call__(self, company_id: str) -> CompanyPermissions:
        last_error = None
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self.transport
        ) as client:
            for attempt in range(self.retries + 1):
                if attempt:
                    await asyncio.sleep(self.backoff * 2 ** (attempt - 1))
                try:
                    response = await client.get(f"/api/permissions/{company_id}", headers=self._headers())
                except httpx.TransportError as e:
                    last_error = f"{type(e).__name__}: {e}"
                    logger.warning(f"⚠️ Permissions fetch attempt {attempt + 1} failed: {last_error}")
                    continue

                if response.status_code >= 500:
                    last_error = f"HTTP {response.status_code}"
                    logger.warning(f"⚠️ Permissions fetch attempt {attempt + 1} failed: {last_error}")
                    continue
                if response.status_code != 200:
                    raise PermissionsUnavailableError(company_id, f"HTTP {response.status_code}")

                try:
                    return CompanyPermissions.model_validate(response.json())
                except (ValueError, ValidationError) as e:
                    raise PermissionsUnavailableError(company_id, "malformed permissions payload") from e

        raise PermissionsUnavailableError(company_id, last_error)


class PermissionContext:
    """Permission cache for one company, owned by whoever composes the UI"""

    def __init__(
        self,
        company_id: str,
        loader: Optional[PermissionsLoader] = None,
        initial_permissions: Optional[CompanyPermissions] = None,
    ):
        self.company_id = company_id
        self._loader = loader or HttpPermissionsLoader()
        self._permissions = initial_permissions
        self._listeners: list[PermissionsListener] = []
        self._issued = 0  # sequence number of the latest started fetch
        self._inflight: Optional[asyncio.Future] = None

    # ========================================================================
    # STATE
    # ========================================================================

    @property
    def state(self) -> ContextState:
        if self._permissions is None:
            return ContextState.LOADING
        if self._inflight is not None and not self._inflight.done():
            return ContextState.REFRESHING
        return ContextState.READY

    @property
    def loading(self) -> bool:
        return self.state == ContextState.LOADING

    @property
    def permissions(self) -> Optional[CompanyPermissions]:
        return self._permissions

    def get(self) -> Optional[CompanyPermissions]:
        return self._permissions

    def subscribe(self, listener: PermissionsListener) -> Callable[[], None]:
        """Call `listener` with every new snapshot; returns an unsubscribe function"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ========================================================================
    # FETCHING
    # ========================================================================

    async def ensure_loaded(self) -> Optional[CompanyPermissions]:
        """Fetch once when no snapshot was supplied up front"""
        if self._permissions is not None:
            return self._permissions
        return await self.refresh_permissions()

    async def refresh_permissions(self, force: bool = False) -> Optional[CompanyPermissions]:
        """Fetch a new snapshot and return the current one afterwards.

        While a fetch is in flight further calls join it instead of starting
        another. With `force` a new fetch starts anyway; only the response of
        the latest started fetch may replace the snapshot.
        """
        if self._inflight is not None and not self._inflight.done() and not force:
            return await asyncio.shield(self._inflight)

        self._issued += 1
        self._inflight = asyncio.ensure_future(self._fetch(self._issued))
        return await asyncio.shield(self._inflight)

    async def _fetch(self, sequence: int) -> Optional[CompanyPermissions]:
        try:
            permissions = await self._loader(self.company_id)
        except (PermissionsUnavailableError, httpx.HTTPError) as e:
            logger.warning(f"⚠️ Failed to refresh permissions for company {self.company_id}, keeping last snapshot: {e}")
            return self._permissions

        if sequence != self._issued:
            logger.debug(
                f"Discarding permissions response #{sequence} for company {self.company_id} "
                f"(latest is #{self._issued})"
            )
            return self._permissions

        self._replace(permissions)
        return permissions

    def _replace(self, permissions: CompanyPermissions) -> None:
        previous = self._permissions
        self._permissions = permissions
        if permissions == previous:
            return
        for listener in list(self._listeners):
            try:
                listener(permissions)
            except Exception as e:
                logger.error(f"❌ Permissions listener failed: {e}", exc_info=True)

    # ========================================================================
    # QUERIES
    # ========================================================================

    def is_subscription_active(self) -> bool:
        return self._permissions is not None and self._permissions.is_active

    def has_module(self, module: Union[str, ModuleName]) -> bool:
        """Same answer as the server guard for the same snapshot; False until loaded"""
        if self._permissions is None:
            return False
        return self._permissions.module_enabled(to_module(module))

    def can_access_feature(self, modules: Union[str, ModuleName, Iterable[Union[str, ModuleName]]]) -> bool:
        """True when every listed module is enabled"""
        if isinstance(modules, (str, ModuleName)):
            modules = [modules]
        return all(self.has_module(module) for module in modules)

    def is_within_limits(self, limit_type: str, current_count: int) -> bool:
        """Check a count against the plan limit ("employees" or "locations")"""
        if limit_type not in ("employees", "locations"):
            raise ValueError(f"Unknown limit type: {limit_type}")
        if self._permissions is None:
            return False
        limits = self._permissions.limits
        limit = limits.max_employees if limit_type == "employees" else limits.max_locations
        return limit is None or current_count < limit

    def get_upgrade_message(self, module: Union[str, ModuleName]) -> str:
        return get_upgrade_message(module)
