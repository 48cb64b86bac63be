from primspec.analytic import InitialCondition, Mode
from primspec.ms_solver import InflationSolver
from primspec.params import PrecisionParams, PrimordialParams
from primspec.primordial import PrimordialSpectrum
from primspec.utils import PrimordialError

__version__ = "0.1"
