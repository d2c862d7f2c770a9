"""Circuit breaker para proteger llamadas a servicios externos"""
from enum import Enum
from datetime import datetime, timezone
from typing import Callable, Any, Optional
import inspect
import logging

logger = logging.getLogger(__name__)


class CircuitOpenError(Exception):
    """El circuito está abierto: no se intenta la llamada"""

    def __init__(self, name: str):
        super().__init__(f"Circuit breaker '{name}' is OPEN")
        self.name = name


class CircuitState(Enum):
    CLOSED = "closed"  # Operación normal
    OPEN = "open"  # Falla rápido
    HALF_OPEN = "half_open"  # Probando si el servicio volvió


class CircuitBreaker:
    """
    Circuit breaker simple para un único servicio remoto.

    Tras `failure_threshold` fallos consecutivos se abre y rechaza llamadas
    con CircuitOpenError durante `recovery_timeout` segundos; luego deja pasar
    una llamada de prueba (half-open).

    `is_failure` decide si una excepción de `expected_exception` cuenta como
    caída; las que no cuentan demuestran que el servicio respondió.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        expected_exception: type = Exception,
        is_failure: Optional[Callable[[Exception], bool]] = None
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception
        self.is_failure = is_failure or (lambda exc: True)

        self.failure_count = 0
        self.last_failure_time: Optional[datetime] = None
        self.state = CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN and not self._should_attempt_reset()

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        """Ejecutar función con circuit breaker"""
        if self.state == CircuitState.OPEN:
            if self._should_attempt_reset():
                self.state = CircuitState.HALF_OPEN
                logger.info(f"Circuit breaker '{self.name}' en HALF_OPEN, probando servicio")
            else:
                raise CircuitOpenError(self.name)

        try:
            if inspect.iscoroutinefunction(func):
                result = await func(*args, **kwargs)
            else:
                result = func(*args, **kwargs)
        except self.expected_exception as e:
            if self.is_failure(e):
                self.record_failure()
            else:
                self.record_success()
            raise

        self.record_success()
        return result

    def _should_attempt_reset(self) -> bool:
        if self.last_failure_time:
            elapsed = datetime.now(timezone.utc) - self.last_failure_time
            return elapsed.total_seconds() >= self.recovery_timeout
        return True

    def record_success(self):
        self.failure_count = 0
        if self.state != CircuitState.CLOSED:
            logger.info(f"Circuit breaker '{self.name}' cerrado")
        self.state = CircuitState.CLOSED

    def record_failure(self):
        self.failure_count += 1
        self.last_failure_time = datetime.now(timezone.utc)

        if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            if self.state != CircuitState.OPEN:
                logger.warning(
                    f"Circuit breaker '{self.name}' abierto tras {self.failure_count} fallos"
                )
            self.state = CircuitState.OPEN
