"""Leapfrog integrator, HMC and NUTS kernels, and the sampler that dispatches between them."""
