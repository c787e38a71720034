"""
Single point of JAX initialization for jaxmarg.

Marginal covariances are read off inverted information matrices, so the
whole package runs in double precision. Every module imports JAX from here
so that x64 is switched on before the first array is created:

    from jaxmarg.core.jax_init import jax, jnp
"""

from __future__ import annotations

import jax
import jax.numpy as jnp

jax.config.update("jax_enable_x64", True)

__all__ = ["jax", "jnp"]
