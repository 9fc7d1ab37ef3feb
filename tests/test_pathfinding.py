import itertools
import random

import pytest

from edgetag.core import Edge, GraphBoard, bfs_distances, path_distance, shortest_path


def all_pairs_distances(board):
    """Floyd-Warshall over active edges, independent of the BFS under test."""
    cells = board.cells()
    inf = float('inf')
    dist = {(a, b): (0 if a == b else inf) for a in cells for b in cells}
    for edge in board.active_edges():
        dist[(edge.a, edge.b)] = 1
        dist[(edge.b, edge.a)] = 1

    for k, i, j in itertools.product(cells, repeat=3):
        if dist[(i, k)] + dist[(k, j)] < dist[(i, j)]:
            dist[(i, j)] = dist[(i, k)] + dist[(k, j)]
    return dist


def assert_valid_path(board, path, start, goal):
    assert path[0] == start
    assert path[-1] == goal
    for a, b in zip(path, path[1:]):
        assert board.is_connected(a, b)


def test_path_to_self_is_single_cell():
    board = GraphBoard(3)

    assert shortest_path(board, (1, 1), (1, 1)) == [(1, 1)]
    assert path_distance(board, (1, 1), (1, 1)) == 0


def test_path_to_self_on_isolated_cell():
    board = GraphBoard(3)
    board.deactivate(Edge((0, 0), (1, 0)))
    board.deactivate(Edge((0, 0), (0, 1)))

    assert shortest_path(board, (0, 0), (0, 0)) == [(0, 0)]


def test_ties_break_by_exploration_order():
    board = GraphBoard(3)

    # Right is explored before down
    assert shortest_path(board, (0, 0), (1, 1)) == [(0, 0), (1, 0), (1, 1)]
    assert shortest_path(board, (2, 2), (0, 0)) == [(2, 2), (1, 2), (0, 2), (0, 1), (0, 0)]


def test_path_detours_around_removed_edges():
    board = GraphBoard(3)
    board.deactivate(Edge((0, 0), (1, 0)))
    board.deactivate(Edge((0, 1), (1, 1)))

    path = shortest_path(board, (0, 0), (1, 0))

    assert path == [(0, 0), (0, 1), (0, 2), (1, 2), (1, 1), (1, 0)]


def test_unreachable_goal_has_no_path():
    board = GraphBoard(3)
    board.deactivate(Edge((2, 2), (1, 2)))
    board.deactivate(Edge((2, 2), (2, 1)))

    assert shortest_path(board, (0, 0), (2, 2)) is None
    assert shortest_path(board, (2, 2), (0, 0)) is None
    assert path_distance(board, (0, 0), (2, 2)) is None


def test_off_board_endpoints_have_no_path():
    board = GraphBoard(3)

    assert shortest_path(board, (0, 0), (3, 3)) is None
    assert shortest_path(board, (-1, 0), (0, 0)) is None


@pytest.mark.parametrize("seed", range(6))
@pytest.mark.parametrize("removals", [0, 3, 6, 9])
def test_bfs_matches_all_pairs_distances(seed, removals):
    rng = random.Random(seed)
    board = GraphBoard(3)
    for edge in rng.sample(board.active_edges(), removals):
        board.deactivate(edge)
    expected = all_pairs_distances(board)

    for start in board.cells():
        for goal in board.cells():
            path = shortest_path(board, start, goal)
            if expected[(start, goal)] == float('inf'):
                assert path is None
            else:
                assert_valid_path(board, path, start, goal)
                assert len(path) - 1 == expected[(start, goal)]


def test_bfs_distances_cover_reachable_component():
    board = GraphBoard(3)
    board.deactivate(Edge((2, 2), (1, 2)))
    board.deactivate(Edge((2, 2), (2, 1)))

    distances = bfs_distances(board, (0, 0))

    assert (2, 2) not in distances
    assert len(distances) == 8
    assert distances[(0, 0)] == 0
    assert distances[(2, 1)] == 3
    assert bfs_distances(board, (2, 2)) == {(2, 2): 0}
