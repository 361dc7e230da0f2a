"""jaxcls: angular power spectra of number counts and cosmic shear in JAX.

Usage:
    import jaxcls

    cosmo = jaxcls.compute(jaxcls.CosmoParams(Omega_c=0.25, h=0.7, sigma8=0.8))

    z = np.linspace(0.5, 1.5, 256)
    nz = np.exp(-0.5 * ((z - 1.0) / 0.15) ** 2)
    gals = jaxcls.number_counts_tracer_simple(cosmo, z, nz, z, np.ones_like(z))
    shear = jaxcls.lensing_tracer_simple(cosmo, z, nz)

    cl = jaxcls.angular_cl(cosmo, 100, gals, shear)
"""

import jax
jax.config.update("jax_enable_x64", True)

from jaxcls.errors import (  # noqa: F401,E402
    AllocationError,
    ClError,
    ErrorKind,
    GridSpacingError,
    InconsistentInputError,
    IntegrationError,
    InterpolantError,
)
from jaxcls.params import Configuration, CosmoParams, PrecisionParams  # noqa: F401,E402
from jaxcls.interpolation import BoundedSpline, CubicSpline, flat_spline  # noqa: F401,E402
from jaxcls.quadrature import QuadResult, integrate_qag  # noqa: F401,E402
from jaxcls.background import background_solve, BackgroundResult  # noqa: F401,E402
from jaxcls.power import power_solve, PowerResult  # noqa: F401,E402
from jaxcls.cosmology import Cosmology, compute  # noqa: F401,E402
from jaxcls.kernels import (  # noqa: F401,E402
    check_grid_endpoints,
    kernel_chi_grid,
    lensing_kernel,
    lensing_window,
    linear_spacing,
    log_spacing,
    magnification_kernel,
    magnification_window,
)
from jaxcls.tracers import (  # noqa: F401,E402
    Tracer,
    TracerKind,
    build_tracer,
    lensing_tracer,
    lensing_tracer_simple,
    number_counts_tracer,
    number_counts_tracer_simple,
)
from jaxcls.transfer import transfer  # noqa: F401,E402
from jaxcls.harmonic import angular_cl, angular_cls, k_interval  # noqa: F401,E402

__version__ = "0.1.0"
