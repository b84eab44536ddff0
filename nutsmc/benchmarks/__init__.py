"""Benchmark target distributions."""

from .targets import (
    TargetDistribution,
    standard_normal,
    harmonic_oscillator,
    correlated_gaussian,
    ill_conditioned_gaussian,
    neals_funnel,
    get_target,
    list_targets,
)

__all__ = [
    'TargetDistribution',
    'standard_normal',
    'harmonic_oscillator',
    'correlated_gaussian',
    'ill_conditioned_gaussian',
    'neals_funnel',
    'get_target',
    'list_targets',
]
