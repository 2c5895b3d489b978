"""
Common ground for the score, ranking and broadcast services.

A service is built from the config manager, the event bus and a logger;
repositories and caches come in as extra constructor arguments. Services do
not open transactions themselves outside ``DatabaseService`` scopes and do
not know about HTTP or sockets.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict

from rankstream.modules.shared.exceptions import ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from rankstream.core.config.manager import ConfigManager
    from rankstream.core.event.bus import EventBus


class BaseService:
    def __init__(
        self,
        config_manager: type[ConfigManager],
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        self._config = config_manager
        self._events = event_bus
        self.log = logger

    def get_config(self, key: str, default: Any = None) -> Any:
        return self._config.get(key, default)

    def _typed_config(self, key: str, default: Any, cast: type) -> Any:
        raw = self._config.get(key, default)
        try:
            return cast(raw)
        except (TypeError, ValueError):
            self.log.warning(
                "Config value has the wrong type, using default",
                extra={"config_key": key, "value": raw, "default": default},
            )
            return default

    def get_int_config(self, key: str, default: int) -> int:
        return self._typed_config(key, default, int)

    def get_float_config(self, key: str, default: float) -> float:
        return self._typed_config(key, default, float)

    async def emit_event(self, event_type: str, data: Dict[str, Any]) -> None:
        await self._events.publish(event_type, data)

    def log_operation(self, operation: str, **context: Any) -> None:
        self.log.info(operation, extra={"operation": operation, **context})

    def log_error(self, operation: str, error: Exception, **context: Any) -> None:
        self.log.error(
            f"{operation} failed: {error}",
            extra={"operation": operation, "error_type": type(error).__name__, **context},
        )

    @staticmethod
    def validate_range(value: Any, name: str, min_val: int, max_val: int) -> None:
        """
        Require an int (bools excluded) within ``[min_val, max_val]``.

        Raises:
            ValidationError: with ``field=name``.
        """
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(name, f"{name} must be an integer", value=value)
        if not min_val <= value <= max_val:
            raise ValidationError(
                name, f"{name} must be between {min_val} and {max_val}", value=value
            )
