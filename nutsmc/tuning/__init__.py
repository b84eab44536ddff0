"""Warm-up adaptation: dual averaging, Welford variance and the window schedule."""
