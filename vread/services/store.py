import logging
from collections.abc import Awaitable, Callable, Hashable
from typing import Any

from vread.services.cache import ProgressCache
from vread.services.refresh import RefreshController, RetryPolicy

logger = logging.getLogger(__name__)

# Stale entries kept for failure fallback, in multiples of the TTL
STALE_RETENTION = 10


class ProgressStore:
    """TTL-cached view over a loader, one refresh controller per key.

    ``get`` never raises a fetch error: after retries are exhausted it serves
    the last cached value, or the empty default when there is none.

    Invalidating a key retires its controller. A fetch already in flight
    still answers the callers that joined it, but its result is not cached
    and later reads start a new fetch.
    """

    def __init__(
        self,
        loader: Callable[[Hashable], Awaitable[Any]],
        cache: ProgressCache,
        default: Callable[[], Any] = list,
        policy: RetryPolicy | None = None,
        min_interval: float | None = None,
        debounce: float | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        name: str = "progress",
    ) -> None:
        self._loader = loader
        self.cache = cache
        self._default = default
        self._controller_options: dict[str, Any] = {"policy": policy}
        if min_interval is not None:
            self._controller_options["min_interval"] = min_interval
        if debounce is not None:
            self._controller_options["debounce"] = debounce
        if sleep is not None:
            self._controller_options["sleep"] = sleep
        self.name = name
        self._controllers: dict[Hashable, RefreshController] = {}

    @property
    def tracked_keys(self) -> set[Hashable]:
        return set(self._controllers)

    def controller(self, key: Hashable) -> RefreshController:
        controller = self._controllers.get(key)
        if controller is None:
            controller = RefreshController(
                fetch=lambda: self._loader(key),
                on_success=lambda data: self._store(key, controller, data),
                name=f"{self.name}:{key}",
                **self._controller_options,
            )
            self._controllers[key] = controller
        return controller

    def _store(self, key: Hashable, controller: RefreshController, data: Any) -> None:
        if self._controllers.get(key) is not controller:
            logger.debug("%s: dropping result for %s fetched before invalidation", self.name, key)
            return
        self.cache.set(key, data)

    async def get(self, key: Hashable, force_refresh: bool = False) -> Any:
        if not force_refresh and self.cache.is_fresh(key):
            return self.cache.get(key)
        self.evict_idle(keep=key)
        return await self._load(key, force=True)

    async def revalidate(self, key: Hashable) -> Any:
        """Refetch unless the last fetch is within the controller's min interval."""
        return await self._load(key, force=False)

    async def _load(self, key: Hashable, force: bool) -> Any:
        try:
            return await self.controller(key).refresh(force=force)
        except Exception as exc:
            stale = self.cache.peek(key)
            logger.error(
                "%s: fetch failed for %s, serving %s: %s",
                self.name, key, "stale data" if stale is not None else "empty result", exc,
            )
            return stale if stale is not None else self._default()

    def request_refresh(self, key: Hashable) -> None:
        self.controller(key).request_refresh()

    def _retire(self, key: Hashable) -> None:
        controller = self._controllers.pop(key, None)
        if controller is None:
            return
        if controller.busy:
            controller.cancel_pending()
        else:
            controller.close()

    def invalidate(self, key: Hashable | None = None) -> None:
        keys = list(self._controllers) if key is None else [key]
        for k in keys:
            self._retire(k)
        self.cache.invalidate(key)

    def evict_idle(self, keep: Hashable | None = None) -> None:
        """Forget controllers with nothing to do and entries too old to fall back on."""
        for key, controller in list(self._controllers.items()):
            if key == keep or controller.busy or controller.refresh_pending or self.cache.is_fresh(key):
                continue
            self._retire(key)
        self.cache.prune(self.cache.ttl * STALE_RETENTION)

    def close(self) -> None:
        for controller in self._controllers.values():
            controller.close()
        self._controllers.clear()
        self.cache.invalidate()
