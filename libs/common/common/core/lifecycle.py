import atexit
from abc import ABC, abstractmethod

from common.utils.utils import blocking_run_async, get_logger

logger = get_logger()


class Lifecycle(ABC):
    """A component started and stopped exactly once, through the ``_start``/``_stop`` hooks.

    A started component is also stopped at interpreter exit if its owner never stops it.
    """

    def __init__(self) -> None:
        self._is_running = False

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def _name_for_log(self) -> str:
        return type(self).__name__

    async def start(self) -> None:
        if self._is_running:
            return
        self._is_running = True
        atexit.register(self._stop_at_exit)
        log = logger.bind(component=self._name_for_log)
        try:
            await self._start()
        except Exception:
            log.exception("Component failed to start")
            await self.stop()
            raise
        log.info("Component started")

    async def stop(self) -> None:
        if not self._is_running:
            return
        self._is_running = False
        atexit.unregister(self._stop_at_exit)
        log = logger.bind(component=self._name_for_log)
        try:
            await self._stop()
        except Exception:
            self._is_running = True
            log.exception("Component failed to stop")
            raise
        log.info("Component stopped")

    @abstractmethod
    async def _start(self) -> None: ...

    @abstractmethod
    async def _stop(self) -> None: ...

    def _stop_at_exit(self) -> None:
        blocking_run_async(self.stop())
