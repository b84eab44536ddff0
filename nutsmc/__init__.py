"""Single-chain Hamiltonian Monte Carlo with NUTS and Stan-style warm-up adaptation."""

from .config import HMC, HMCDA, NUTS, AdaptationConfig, OracleConfig
from .error_handling import ConfigurationError, GradientOracleError, diagnose_run
from .hamiltonian import GradientOracle, HamiltonianState, Transition
from .samplers.hamiltonian_sampler import HamiltonianSampler
from .sampling import SampleResult, hmc_run, hmcda_run, nuts_run, sample

__version__ = "0.1.0"

__all__ = [
    'HMC',
    'HMCDA',
    'NUTS',
    'AdaptationConfig',
    'OracleConfig',
    'ConfigurationError',
    'GradientOracleError',
    'diagnose_run',
    'GradientOracle',
    'HamiltonianState',
    'Transition',
    'HamiltonianSampler',
    'SampleResult',
    'sample',
    'nuts_run',
    'hmc_run',
    'hmcda_run',
]
