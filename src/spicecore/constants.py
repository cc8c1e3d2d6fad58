# --- src/spicecore/constants.py ---
import logging
import math

logger = logging.getLogger(__name__)

# --- Physical Constants ---

BOLTZMANN: float = 1.380649e-23  # J/K
ELEMENTARY_CHARGE: float = 1.602176634e-19  # C

#: Nominal device temperature (27 degC), the SPICE default.
NOMINAL_TEMPERATURE_K: float = 300.15

#: Thermal voltage kT/q at the nominal temperature (~25.86 mV).
THERMAL_VOLTAGE: float = BOLTZMANN * NOMINAL_TEMPERATURE_K / ELEMENTARY_CHARGE

# --- Numerical Constants for Simulation ---

#: Largest exponent argument evaluated exactly in junction models. Beyond this the
#: exponential is continued linearly so currents stay finite in early iterations.
MAX_EXP_ARG: float = 80.0

#: Systems at or below this dimension are factorized densely.
DENSE_FALLBACK_SIZE: int = 4

#: Largest shunt conductance gmin stepping will try before giving up on finding
#: a first converged point.
GMIN_STEPPING_MAX: float = 1.0

#: Shunt conductance below which gmin stepping hands over to a solve with the
#: configured gmin alone.
GMIN_STEPPING_MIN: float = 1.0e-12

#: Smallest gmin-stepping factor; once the factor decays below this the strategy stops.
GMIN_FACTOR_MIN: float = 1.1

#: Source-stepping increments below this are treated as a stalled ramp.
MIN_SOURCE_STEP: float = 1.0e-3

#: Initial source-stepping increment.
INITIAL_SOURCE_STEP: float = 0.1

#: Default minimum transient timestep as a fraction of the stop time.
TRAN_MIN_STEP_RATIO: float = 1.0e-11

#: SPICE default number of points used to derive the maximum transient step.
TRAN_MAX_STEP_DIVISOR: int = 50

#: Fraction of the gap to the next breakpoint used for the first step after one.
BREAKPOINT_STEP_FRACTION: float = 0.1

#: Relative closeness under which two timepoints are considered identical.
TIME_EPSILON_RATIO: float = 1.0e-9

SQRT2: float = math.sqrt(2.0)

logger.debug(f"Defined core constants: THERMAL_VOLTAGE={THERMAL_VOLTAGE:.6e} V")
