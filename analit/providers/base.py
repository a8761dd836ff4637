"""
Tool backend base class for analit providers.

Uses the Template Method pattern: ``measure()`` adds timing, logging and
error wrapping around a capability implementation, so every failure a
backend produces reaches the engine as a ``MeasurementError``.
"""

import time
from typing import Any, Callable, TypeVar

from analit.providers.runner import CommandRunner
from analit.utils.errors import MeasurementError
from analit.utils.logging import get_logger

T = TypeVar('T')


class ToolBackend:
    """
    Shared functionality for backends that wrap one external tool family.

    Subclasses call ``self.measure(probe_name, impl, *args)`` from each
    public capability method and keep the actual work in ``impl``.
    """

    def __init__(self, name: str, runner: CommandRunner):
        """
        Initialize backend.

        Args:
            name: Backend name used in logs and error messages
            runner: Subprocess runner shared by all capabilities
        """
        self._name = name
        self.runner = runner
        self.logger = get_logger(f"providers.{name}")

    @property
    def name(self) -> str:
        """Return backend name."""
        return self._name

    def measure(self, probe_name: str, impl: Callable[..., T], *args: Any) -> T:
        """
        Template method with timing and error handling.

        Args:
            probe_name: Capability name (e.g. 'loudness')
            impl: Callable doing the tool invocation and parsing
            *args: Arguments for ``impl``

        Returns:
            Whatever ``impl`` returns

        Raises:
            MeasurementError: If the measurement fails for any reason
        """
        start_time = time.time()

        try:
            self.logger.debug(f"Starting {probe_name}")

            result = impl(*args)

            elapsed = time.time() - start_time
            self.logger.debug(f"{probe_name} complete in {elapsed:.3f}s")

            return result

        except MeasurementError:
            # Re-raise MeasurementError as-is
            raise

        except Exception as e:
            raise MeasurementError(
                f"{self.name} {probe_name} failed: {e}",
                probe_name=probe_name,
                original_error=e
            ) from e
