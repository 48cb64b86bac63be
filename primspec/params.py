"""Parameter containers for primspec.

PrimordialParams: physical input (analytic amplitudes/tilts or the
inflaton potential).
PrecisionParams: numerical settings. Frozen and hashable, so it can be
passed as a static argument to ``jax.jit``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace as _replace

from primspec.ode import SolverOptions


SPECTRUM_TYPES = ("analytic", "inflation_V")


@dataclass(frozen=True)
class PrimordialParams:
    """Physical parameters of the primordial spectrum.

    Units:
        - k_pivot: 1/Mpc
        - V0..V4, phi_pivot: Planck units with G = 1 (the Hubble rate is
          H^2 = 8 pi V / 3 in slow roll)

    ``isocurvature`` maps an isocurvature kind ("bi", "cdi", "nid", "niv") to
    its (f, n, alpha): amplitude ratio to the adiabatic mode, tilt and
    running. ``correlations`` maps a pair of kinds, e.g. ("ad", "bi"), to
    (c, n, alpha): correlation coefficient in [-1, 1], extra tilt and extra
    running of the cross spectrum. Pairs not listed are uncorrelated.
    """

    spectrum_type: str = "analytic"
    k_pivot: float = 0.05

    # Which modes and initial conditions are requested
    initial_conditions: tuple = ("ad",)
    has_tensors: bool = False

    # Analytic spectrum
    A_s: float = 2.1e-9
    n_s: float = 0.9649
    alpha_s: float = 0.0
    r: float = 1.0
    n_t: float = 0.0
    alpha_t: float = 0.0
    isocurvature: dict = field(default_factory=dict)
    correlations: dict = field(default_factory=dict)

    # Inflaton potential: Taylor coefficients around phi_pivot. The defaults
    # are m^2 (phi - phi_min)^2 / 2 with the pivot ~55 e-folds before the end
    # of inflation and A_s close to 2.1e-9
    V0: float = 7.1538e-12
    V1: float = -4.8337e-12
    V2: float = 1.633e-12
    V3: float = 0.0
    V4: float = 0.0
    phi_pivot: float = 0.0

    def replace(self, **kwargs) -> PrimordialParams:
        """Return a new PrimordialParams with specified fields replaced."""
        return _replace(self, **kwargs)


@dataclass(frozen=True)
class PrecisionParams:
    """Numerical precision parameters, never traced by JAX.

    The integrator tolerance is tight because each stepping-loop stretch is
    usually covered by a single explicit Runge-Kutta step.
    """

    # k-sampling of the tabulated spectrum
    k_per_decade_primordial: float = 10.0

    # Stepping
    inflation_bg_stepsize: float = 0.005
    inflation_pt_stepsize: float = 0.01

    # Attractor search
    inflation_attractor_precision_pivot: float = 0.001
    inflation_attractor_precision_initial: float = 0.1
    inflation_attractor_maxit: int = 10

    # Search of the initial field value
    inflation_phi_ini_maxit: int = 10000
    inflation_jump_initial: float = 1.2

    # Horizon-crossing margins: modes start at k/aH = ratio_min and are
    # followed at least until k/aH = ratio_max
    inflation_ratio_min: float = 100.0
    inflation_ratio_max: float = 1.0 / 50.0

    # Freezing of the curvature spectrum (max |d ln P / dN|)
    inflation_tol_curvature: float = 0.001

    # Integrator
    inflation_tol_integration: float = 1e-6
    inflation_atol_integration: float = 1e-30
    smallest_allowed_step: float = 1e-12
    inflation_integrator_max_steps: int = 4096

    # Cap on the number of stretches of a single stepping loop
    inflation_max_steps: int = 1000000

    # Solve all wavenumbers at once with jax.vmap
    inflation_vectorize_k: bool = True

    @property
    def solver_options(self) -> SolverOptions:
        """Options handed to the black-box integrator."""
        return SolverOptions(
            rtol=self.inflation_tol_integration,
            atol=self.inflation_atol_integration,
            dtmin=self.smallest_allowed_step,
            max_steps=self.inflation_integrator_max_steps,
        )

    def replace(self, **kwargs) -> PrecisionParams:
        """Return a new PrecisionParams with specified fields replaced."""
        invalid = set(kwargs) - {f.name for f in fields(self)}
        if invalid:
            raise ValueError(
                "Invalid options found in PrecisionParams:"
                f" {', '.join(sorted(invalid))}"
            )
        return _replace(self, **kwargs)
