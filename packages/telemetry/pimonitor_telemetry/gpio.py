"""Optional GPIO capability plugged into the snapshot assembler."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from .errors import GpioError
from .models import GpioStatus, PinFunction, PinState

logger = logging.getLogger("pimonitor.telemetry")

BCM_PINS: tuple[int, ...] = tuple(range(28))


class GpioProvider(ABC):
    @abstractmethod
    def read_status(self) -> GpioStatus: ...

    @abstractmethod
    def is_pin_available(self, pin: int) -> bool: ...

    @abstractmethod
    def read_pin(self, pin: int) -> PinState: ...

    def close(self) -> None:
        pass


class UnavailableGpio(GpioProvider):
    """Stand-in used when the capability is enabled but no GPIO library is usable."""

    def read_status(self) -> GpioStatus:
        return GpioStatus(gpio_available=False)

    def is_pin_available(self, pin: int) -> bool:
        return False

    def read_pin(self, pin: int) -> PinState:
        raise GpioError(f"GPIO not available on this system (attempted to read pin {pin})")


class RpiGpioProvider(GpioProvider):
    """Reads pin modes and levels through RPi.GPIO without claiming pins."""

    def __init__(self, pins: tuple[int, ...] = BCM_PINS) -> None:
        import RPi.GPIO as GPIO  # type: ignore

        self._gpio = GPIO
        GPIO.setwarnings(False)
        GPIO.setmode(GPIO.BCM)
        self._pins = pins
        self._functions = {
            GPIO.IN: PinFunction.INPUT,
            GPIO.OUT: PinFunction.OUTPUT,
            GPIO.HARD_PWM: PinFunction.PWM,
            GPIO.SPI: PinFunction.SPI,
            GPIO.I2C: PinFunction.I2C,
            GPIO.SERIAL: PinFunction.UART,
        }

    def _function(self, pin: int) -> PinFunction:
        return self._functions.get(self._gpio.gpio_function(pin), PinFunction.UNKNOWN)

    def _state(self, pin: int, function: PinFunction) -> PinState:
        if function is PinFunction.INPUT:
            return PinState.INPUT
        if function is PinFunction.OUTPUT:
            return PinState.HIGH if self._gpio.input(pin) else PinState.LOW
        return PinState.UNKNOWN

    def read_status(self) -> GpioStatus:
        states: dict[int, PinState] = {}
        functions: dict[int, PinFunction] = {}
        for pin in self._pins:
            try:
                fn = self._function(pin)
                state = self._state(pin, fn)
            except Exception:
                # Pin busy or not readable without setup().
                fn, state = PinFunction.UNKNOWN, PinState.UNKNOWN
            functions[pin] = fn
            states[pin] = state
        return GpioStatus(
            available_pins=self._pins,
            pin_states=states,
            pin_functions=functions,
            gpio_available=True,
        )

    def is_pin_available(self, pin: int) -> bool:
        return pin in self._pins

    def read_pin(self, pin: int) -> PinState:
        if not self.is_pin_available(pin):
            raise GpioError(f"Pin {pin} is not available")
        try:
            return self._state(pin, self._function(pin))
        except Exception as exc:
            raise GpioError(f"Failed to access pin {pin}: {exc}") from exc


def build_gpio_provider(enabled: bool) -> GpioProvider | None:
    """Select the GPIO capability once, at construction time.

    Returns ``None`` when the capability is switched off so snapshots carry no
    ``gpio`` field at all.
    """
    if not enabled:
        return None
    try:
        return RpiGpioProvider()
    except Exception as exc:
        logger.warning("GPIO support unavailable, continuing without it: %s", exc)
        return UnavailableGpio()
