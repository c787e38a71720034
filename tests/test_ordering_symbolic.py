from __future__ import annotations

import pytest

from jaxmarg.linear.errors import KeyNotFoundError
from jaxmarg.linear.ordering import compute_ordering, min_degree_ordering, natural_ordering
from jaxmarg.linear.symbolic import eliminate_symbolic, post_order

CHAIN = [(0,), (0, 1), (1, 2), (2, 3)]


def test_natural_ordering_is_first_seen():
    assert natural_ordering([(2, 0), (1,), (0, 3)]) == [2, 0, 1, 3]


def test_min_degree_on_chain_eliminates_from_the_end():
    """
    Degrees on the chain 0-1-2-3 are [1, 2, 2, 1]; ties go to the key seen
    first, so the chain is peeled from 0 upward.
    """
    assert min_degree_ordering(CHAIN) == [0, 1, 2, 3]


def test_min_degree_star_eliminates_leaves_first():
    star = [("c", "a"), ("c", "b"), ("c", "d")]
    order = min_degree_ordering(star)
    assert order[-1] in ("c", "d")
    assert set(order) == {"a", "b", "c", "d"}


def test_constrain_last_keeps_requested_order():
    order = compute_ordering(CHAIN, "min_degree", constrain_last=[3, 0])
    assert order[-2:] == [3, 0]
    assert sorted(order) == [0, 1, 2, 3]

    order = compute_ordering(CHAIN, "natural", constrain_last=[1])
    assert order == [0, 2, 3, 1]


def test_constrain_last_validation():
    with pytest.raises(KeyNotFoundError):
        compute_ordering(CHAIN, constrain_last=[7])
    with pytest.raises(ValueError):
        compute_ordering(CHAIN, constrain_last=[1, 1])
    with pytest.raises(ValueError):
        compute_ordering(CHAIN, method="amd")


def test_symbolic_chain_cliques():
    """
    Ordering [0, 1, 2, 3] on the chain gives separators
        0 | 1,  1 | 2,  2 | 3,  3 | -
    2 joins the root clique {3}; 1 and 0 hang below as single-frontal cliques.
    """
    roots, clique_of = eliminate_symbolic(CHAIN, [0, 1, 2, 3])

    assert len(roots) == 1
    root = roots[0]
    assert root.frontals == [2, 3]
    assert root.separator == []
    assert clique_of[2] is root and clique_of[3] is root

    c1 = clique_of[1]
    assert c1.frontals == [1] and c1.separator == [2]
    assert c1.parent is root

    c0 = clique_of[0]
    assert c0.frontals == [0] and c0.separator == [1]
    assert c0.parent is c1

    # each factor lives in the clique of its earliest-eliminated key
    assert c0.factor_indices == [0, 1]
    assert c1.factor_indices == [2]
    assert root.factor_indices == [3]

    assert list(post_order(roots)) == [c0, c1, root]


def test_symbolic_disconnected_gives_forest():
    roots, clique_of = eliminate_symbolic([(0,), (1,)], [0, 1])
    assert len(roots) == 2
    assert clique_of[0] is not clique_of[1]


def test_symbolic_validation():
    with pytest.raises(ValueError):
        eliminate_symbolic(CHAIN, [0, 1, 2])
    with pytest.raises(ValueError):
        eliminate_symbolic(CHAIN, [0, 1, 2, 3, 3])
    with pytest.raises(KeyNotFoundError):
        eliminate_symbolic(CHAIN, [0, 1, 2, 3, 4])
