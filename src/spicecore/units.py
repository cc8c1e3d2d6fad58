# --- src/spicecore/units.py ---
import logging
import numbers
from typing import Union

import pint

logger = logging.getLogger(__name__)
ureg = pint.UnitRegistry()
Quantity = ureg.Quantity
logger.info("Pint Unit Registry initialized.")

ParameterValue = Union[float, int, str, Quantity]


class UnitConversionError(ValueError):
    """Raised when a parameter value cannot be expressed in the requested SI unit."""
    pass


def to_si(value: ParameterValue, unit: str) -> float:
    """
    Converts a parameter value to a plain float in the given SI unit.

    Plain numbers are taken to already be in SI units. Strings are parsed by the
    pint registry (e.g. '1 kohm', '10 nF', '2.5 V'), and Quantity objects are
    converted. A bare numeric string ('100') carries no unit and is taken as-is,
    matching the convention for plain numbers.

    Raises:
        UnitConversionError: If the value is not a real scalar or has the wrong
                             physical dimension.
    """
    if isinstance(value, bool):
        raise UnitConversionError(f"Boolean value {value!r} is not a valid '{unit}' quantity.")
    if isinstance(value, numbers.Real):
        return float(value)

    try:
        qty = ureg.Quantity(value) if isinstance(value, str) else value
        if not isinstance(qty, pint.Quantity):
            raise UnitConversionError(f"Unsupported parameter value type '{type(value).__name__}'.")
        magnitude = qty.magnitude if qty.unitless else qty.to(unit).magnitude
    except (pint.DimensionalityError, pint.UndefinedUnitError) as e:
        raise UnitConversionError(f"Cannot convert {value!r} to '{unit}': {e}") from e
    except (AttributeError, TypeError, ValueError) as e:
        if isinstance(e, UnitConversionError):
            raise
        raise UnitConversionError(f"Cannot interpret {value!r} as a '{unit}' quantity: {e}") from e

    if isinstance(magnitude, complex) or not isinstance(magnitude, numbers.Real):
        raise UnitConversionError(f"Value {value!r} must be a real scalar, got {magnitude!r}.")
    return float(magnitude)
