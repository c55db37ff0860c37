import math
import random

import pytest


def _import_required(name: str):
    try:
        return __import__(name)
    except ModuleNotFoundError as e:
        pytest.fail(
            f"Required module '{name}.py' could not be imported. "
            f"Original error: {e}"
        )


def _build_engine(repo=None, **overrides):
    main = _import_required("main")
    config = _import_required("config")
    cfg = config.GameConfig(**{"width": 11, "height": 11, "turn_coef": 2.0, "move_coef": 2.0, **overrides})
    engine = main.GameEngine(config=cfg, repo=repo, rng=random.Random(0))
    return main, engine


def _face_open_side(engine):
    """Rotate the committed facing until the cell ahead is open."""
    player = engine.level.player
    maze = engine.level.maze
    while not maze.is_open(player.position + player.direction):
        player.direction = player.direction.turn_right()


def test_start_level_places_player_on_start(maze_module):
    main, engine = _build_engine(seed=17)
    view = engine.start_level()
    maze = engine.level.maze

    assert view.pos == {"x": maze.start.x, "y": maze.start.y}
    assert view.seed == 17
    assert view.action == "idle"
    assert view.camera == "first_person"
    assert view.facing in view.open_sides
    assert view.level_id is None


def test_same_seed_levels_are_identical():
    _, engine_a = _build_engine()
    _, engine_b = _build_engine()
    engine_a.start_level(seed=5)
    engine_b.start_level(seed=5)
    assert engine_a.level.maze.grid_bytes() == engine_b.level.maze.grid_bytes()


def test_debug_mode_uses_fixed_seed():
    _, engine = _build_engine(debug=True)
    view = engine.start_level()
    assert view.seed == 1234567890


def test_tick_commits_input_before_animating(maze_module):
    main, engine = _build_engine(seed=3)
    engine.start_level()
    before = engine.level.player.direction

    view = engine.tick(0.0, [main.InputEdge.TURN_RIGHT])
    assert view.facing == before.turn_right().name
    assert view.action == "turning_right"

    # turn_coef 2.0: a quarter turn takes half a second.
    view = engine.tick(0.25)
    assert view.action == "turning_right"
    assert view.progress == pytest.approx(math.pi / 4)
    view = engine.tick(0.25)
    assert view.action == "idle"
    assert view.progress == 0.0
    assert view.heading == pytest.approx(before.turn_right().heading)
    assert view.metrics["turns"] == 1


def test_handle_queues_edge_for_next_tick(maze_module):
    main, engine = _build_engine(seed=3)
    engine.start_level()
    _face_open_side(engine)
    start = engine.level.maze.start

    out = engine.handle(main.Command(verb="up"))
    assert out.view.pos == {"x": start.x, "y": start.y}, "edges are applied on tick, not on handle"

    view = engine.tick(0.0)
    assert view.pos != {"x": start.x, "y": start.y}
    assert view.action == "moving_forward"

    # Edge consumed once: holding does not repeat.
    engine.tick(0.5)
    view = engine.tick(0.0)
    assert view.action == "idle"
    assert view.metrics["moves"] == 1


def test_bump_into_wall_leaves_state_unchanged(maze_module):
    main, engine = _build_engine()
    for seed in range(50):
        engine.start_level(seed=seed)
        maze = engine.level.maze
        if maze.open_sides(maze.start) != list(maze_module.SIDES):
            break
    player = engine.level.player
    while maze.is_open(player.position + player.direction):
        player.direction = player.direction.turn_right()
    facing = player.direction

    view = engine.tick(0.1, [main.InputEdge.FORWARD])
    assert view.pos == {"x": maze.start.x, "y": maze.start.y}
    assert view.facing == facing.name
    assert view.action == "idle"
    assert view.metrics["bumps"] == 1


def test_bump_counted_when_later_edge_is_accepted(maze_module):
    main, engine = _build_engine()
    for seed in range(50):
        engine.start_level(seed=seed)
        maze = engine.level.maze
        if maze.open_sides(maze.start) != list(maze_module.SIDES):
            break
    player = engine.level.player
    while maze.is_open(player.position + player.direction):
        player.direction = player.direction.turn_right()
    facing = player.direction

    view = engine.tick(0.0, [main.InputEdge.FORWARD, main.InputEdge.TURN_LEFT])
    assert view.facing == facing.turn_left().name
    assert view.action == "turning_left"
    assert view.metrics["bumps"] == 1
    assert view.metrics["turns"] == 1
    assert view.metrics["moves"] == 0


def test_overview_camera_blocks_movement(maze_module):
    main, engine = _build_engine(seed=3)
    engine.start_level()
    facing = engine.level.player.direction

    out = engine.handle(main.Command(verb="overview"))
    assert out.view.camera == "overview"
    view = engine.tick(0.0, [main.InputEdge.TURN_LEFT])
    assert view.facing == facing.name
    assert view.action == "idle"

    engine.handle(main.Command(verb="overview"))
    view = engine.tick(0.0, [main.InputEdge.TURN_LEFT])
    assert view.facing == facing.turn_left().name


def test_edges_dropped_while_animating(maze_module):
    main, engine = _build_engine(seed=3)
    engine.start_level()
    first = engine.level.player.direction
    engine.tick(0.0, [main.InputEdge.TURN_RIGHT])
    engine.tick(0.1, [main.InputEdge.TURN_RIGHT])
    engine.tick(1.0)
    assert engine.view().facing == first.turn_right().name


def test_tick_before_level_raises_in_debug():
    main, engine = _build_engine(debug=True)
    with pytest.raises(main.LevelNotStartedError):
        engine.tick(0.1, [main.InputEdge.FORWARD])
    with pytest.raises(main.LevelNotStartedError):
        engine.handle(main.Command(verb="up"))


def test_tick_before_level_is_noop_in_release(caplog):
    main, engine = _build_engine()
    with caplog.at_level("WARNING"):
        assert engine.tick(0.1, [main.InputEdge.FORWARD]) is None
    assert engine.level is None
    assert "no level has been started" in caplog.text

    out = engine.handle(main.Command(verb="left"))
    assert out.view is None
    assert out.messages == ["No level started."]


def test_unknown_command_returns_message():
    main, engine = _build_engine(seed=2)
    engine.start_level()
    before = engine.view()
    out = engine.handle(main.Command(verb="warp", args=["now"]))
    assert out.messages == ["Unknown command."]
    assert engine.view().pos == before.pos


def test_reset_replaces_level_wholesale():
    main, engine = _build_engine()
    engine.start_level(seed=1)
    engine.tick(0.0, [main.InputEdge.TURN_RIGHT])
    old = engine.level

    out = engine.handle(main.Command(verb="reset"))
    assert engine.level is not old
    assert out.view.action == "idle"
    assert out.view.metrics == {"moves": 0, "turns": 0, "bumps": 0, "elapsed_seconds": 0.0}


def test_save_without_repository():
    main, engine = _build_engine(seed=2)
    engine.start_level()
    out = engine.handle(main.Command(verb="save"))
    assert out.did_persist is False
    assert out.messages == ["No repository configured."]


def test_command_aliases_map_to_edges():
    main, engine = _build_engine(seed=2)
    engine.start_level()
    facing = engine.level.player.direction
    engine.handle(main.Command(verb=" Turn-Left "))
    view = engine.tick(0.0)
    assert view.facing == facing.turn_left().name
