"""
Core typed data structures for jaxmarg.

This module defines the lightweight containers used by the nonlinear side of
the library, before anything is linearized:

Classes
-------
Variable
    A node in the nonlinear factor graph:
    - id: Unique identifier (``NodeId``)
    - type: Variable type string, used to select a manifold
      (e.g. ``"pose_se3"`` or ``"landmark3d"``)
    - value: Current value, a 1-D JAX array

Factor
    A constraint between one or more variables:
    - id: Unique identifier (``FactorId``)
    - type: String key selecting a registered residual function
    - var_ids: Ordered tuple of variable ids consumed by the residual
    - params: Measurements, weights and optional ``"sigmas"`` for the
      diagonal noise model attached at linearization time

Keys
----
Every linear-algebra structure in :mod:`jaxmarg.linear` is keyed by an
opaque hashable ``Key``. A ``NodeId`` is the usual choice, but any hashable
works; keys are only ordered when printing.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, NewType

NodeId = NewType("NodeId", int)
FactorId = NewType("FactorId", int)

Key = Hashable
KeyFormatter = Callable[[Key], str]


def default_key_formatter(key: Key) -> str:
    return str(key)


def symbol_key_formatter(prefixes: Dict[Key, str]) -> KeyFormatter:
    """
    Build a formatter that prints keys through a lookup table, falling back
    to ``str(key)`` for keys it does not know, e.g.::

        fmt = symbol_key_formatter({NodeId(0): "x0", NodeId(1): "l0"})
    """
    def fmt(key: Key) -> str:
        return prefixes.get(key, str(key))

    return fmt


@dataclass
class Variable:
    """Generic optimization variable node in the factor graph."""
    id: NodeId
    type: str          # e.g. "pose_se3", "landmark3d", "place1d"
    value: Any         # 1-D JAX array


@dataclass
class Factor:
    """Nonlinear factor connecting variables."""
    id: FactorId
    type: str          # e.g. "prior", "odom_se3", "pose_landmark_relative"
    var_ids: tuple[NodeId, ...]
    params: Dict[str, Any]  # measurement, weight, sigmas, ...
