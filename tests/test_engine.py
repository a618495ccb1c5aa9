from __future__ import annotations

import logging
from typing import Any, Callable

import pytest

from storygraph.content import paragraph
from storygraph.engine import EnginePhase, SceneEngine
from storygraph.errors import (
    CallableFault,
    ChoiceIndexError,
    EngineStateError,
    NoProgressError,
    UnknownSceneError,
)
from storygraph.game import (
    Content,
    Game,
    GoToClause,
    Insert,
    Option,
    QualityDefinition,
    Scene,
    StateDependency,
)
from storygraph.game_state import Choice, GameState
from storygraph.settings import EngineSettings
from storygraph.testing_toolkit import RecordingDisplay

EngineFactory = Callable[..., SceneEngine]


def _set(quality_id: str, value: Any) -> Callable[[GameState, Any], None]:
    def _action(state: GameState, Q: Any) -> None:
        Q[quality_id] = value

    return _action


def test_begin_game_displays_the_first_scene(
    simple_game: Game, make_engine: EngineFactory, recording_display: RecordingDisplay
) -> None:
    engine = make_engine(simple_game).begin_game()

    assert engine.phase is EnginePhase.AWAITING_CHOICE
    assert engine.state.scene_id == "root"
    assert engine.state.visits == {"root": 1}
    assert recording_display.content == [[paragraph("Root content")]]
    assert recording_display.choices == [[Choice(id="foo", title=["Foo Link"])]]
    assert engine.get_current_choices() == [Choice(id="foo", title=["Foo Link"])]


def test_choose_moves_to_the_target_scene(
    simple_game: Game, make_engine: EngineFactory, recording_display: RecordingDisplay
) -> None:
    engine = make_engine(simple_game).begin_game()

    engine.choose(0)

    assert engine.get_current_scene().id == "foo"
    assert engine.state.turn == 1
    assert recording_display.content[-1] == [paragraph("Foo content")]
    assert engine.get_current_choices() == [Choice(id="bar", title=["Bar Title"])]
    assert recording_display.removals == 2


def test_game_over_scene_ends_the_game(
    simple_game: Game, make_engine: EngineFactory, recording_display: RecordingDisplay
) -> None:
    engine = make_engine(simple_game).begin_game()

    engine.choose(0).choose(0)

    assert engine.is_game_over()
    assert engine.phase is EnginePhase.GAME_OVER
    assert engine.get_current_choices() is None
    assert recording_display.content[-2:] == [
        [paragraph("Bar content")],
        [paragraph("Game Over")],
    ]
    with pytest.raises(EngineStateError):
        engine.choose(0)


def test_game_over_text_is_configurable(
    simple_game: Game, make_engine: EngineFactory, recording_display: RecordingDisplay
) -> None:
    engine = make_engine(simple_game, settings=EngineSettings(game_over_text="The End"))

    engine.begin_game().choose(0).choose(0)

    assert recording_display.content[-1] == [paragraph("The End")]


def test_invalid_choice_index_leaves_state_untouched(
    simple_game: Game, make_engine: EngineFactory
) -> None:
    engine = make_engine(simple_game).begin_game()
    before = engine.get_exportable_state()

    with pytest.raises(ChoiceIndexError) as excinfo:
        engine.choose(1)
    with pytest.raises(ChoiceIndexError):
        engine.choose(-1)

    assert str(excinfo.value) == "No choice at index 1, only 1 choices are available."
    assert isinstance(excinfo.value, IndexError)
    assert engine.get_exportable_state() == before


def test_choosing_an_unknown_scene_leaves_state_untouched(
    simple_game: Game, make_engine: EngineFactory
) -> None:
    engine = make_engine(simple_game).begin_game()
    engine.state.choices = [Choice(id="ghost", title=["Ghost"])]
    before = engine.get_exportable_state()

    with pytest.raises(UnknownSceneError):
        engine.choose(0)

    assert engine.get_exportable_state() == before
    assert engine.state.turn == 0
    assert engine.phase is EnginePhase.AWAITING_CHOICE


def test_operations_before_begin_are_rejected(
    simple_game: Game, make_engine: EngineFactory
) -> None:
    engine = make_engine(simple_game)

    assert engine.phase is EnginePhase.UNINITIALIZED
    with pytest.raises(EngineStateError):
        engine.choose(0)
    with pytest.raises(EngineStateError):
        engine.go_to_scene("foo")
    with pytest.raises(EngineStateError):
        engine.get_current_scene()


def test_signal_order_for_a_transition(make_engine: EngineFactory, recording_display: RecordingDisplay) -> None:
    game = Game.from_scenes(
        [
            Scene(id="root", signal="root-signal", options=(Option.parse("@foo", title="Foo"),)),
            Scene(id="foo", signal="foo-signal", options=(Option.parse("@root", title="Back"),)),
        ]
    )
    engine = make_engine(game)

    engine.begin_game().choose(0)

    assert recording_display.signal_payloads() == [
        {"signal": "root-signal", "event": "scene-arrival", "id": "root"},
        {"signal": "root-signal", "event": "scene-display", "id": "root"},
        {"signal": "root-signal", "event": "scene-departure", "id": "root", "to": "foo"},
        {"signal": "foo-signal", "event": "scene-arrival", "id": "foo", "from": "root"},
        {"signal": "foo-signal", "event": "scene-display", "id": "foo"},
    ]


def test_quality_changes_signal_between_arrival_and_display(
    make_engine: EngineFactory, recording_display: RecordingDisplay
) -> None:
    game = Game.from_scenes(
        [Scene(id="root", on_arrival=(_set("gold", 3),), game_over=True)],
        scene_signal="scenes",
        quality_signal="qualities",
    )

    make_engine(game).begin_game()

    assert [(event.signal, event.event) for event in recording_display.signals] == [
        ("scenes", "scene-arrival"),
        ("qualities", "quality-change"),
        ("scenes", "scene-display"),
    ]


def test_actions_run_on_arrival_display_and_departure(make_engine: EngineFactory) -> None:
    log: list[str] = []

    def _record(label: str) -> Callable[[GameState, Any], None]:
        return lambda state, Q: log.append(label)

    game = Game.from_scenes(
        [
            Scene(
                id="root",
                options=(Option.parse("@foo", title="Foo"),),
                on_arrival=(_record("root:arrival"),),
                on_display=(_record("root:display"),),
                on_departure=(_record("root:departure"),),
            ),
            Scene(id="foo", on_arrival=(_record("foo:arrival"),), game_over=True),
        ]
    )

    make_engine(game).begin_game().choose(0)

    assert log == ["root:arrival", "root:display", "root:departure", "foo:arrival"]


def test_independent_qualities_clamp_in_the_same_transition(make_engine: EngineFactory) -> None:
    game = Game.from_scenes(
        [Scene(id="root", on_arrival=(_set("strength", 20), _set("health", -10)), game_over=True)],
        qualities={
            "strength": QualityDefinition(maximum=15),
            "health": QualityDefinition(minimum=0),
        },
    )

    engine = make_engine(game).begin_game()

    assert engine.state.qualities == {"strength": 15, "health": 0}


def test_is_valid_gating_through_actions(make_engine: EngineFactory) -> None:
    game = Game.from_scenes(
        [Scene(id="root", on_arrival=(_set("bad", 10), _set("good", 10)), game_over=True)],
        qualities={
            "bad": QualityDefinition(is_valid=lambda state, Q: False),
            "good": QualityDefinition(is_valid=lambda state, Q: True),
        },
    )

    engine = make_engine(game).begin_game()

    assert engine.state.qualities == {"good": 10}


def test_initial_quality_values_are_applied_at_begin(make_engine: EngineFactory) -> None:
    game = Game.from_scenes(
        [Scene(id="root", game_over=True)],
        qualities={"gold": QualityDefinition(initial=10), "luck": QualityDefinition()},
    )

    engine = make_engine(game).begin_game()

    assert engine.qualities["gold"] == 10
    assert "luck" not in engine.qualities


def test_content_sees_qualities_set_on_arrival(
    make_engine: EngineFactory, recording_display: RecordingDisplay
) -> None:
    content = Content(
        nodes=("Gold: ", Insert(0)),
        state_dependencies=(StateDependency("insert", lambda state, Q: Q["gold"]),),
    )
    game = Game.from_scenes(
        [Scene(id="root", content=content, on_arrival=(_set("gold", 7),), game_over=True)]
    )

    make_engine(game).begin_game()

    assert recording_display.content[0] == ["Gold: ", "7"]


def test_visit_exhaustion_ends_the_game(make_engine: EngineFactory) -> None:
    game = Game.from_scenes(
        [
            Scene(id="root", options=(Option.parse("@once", title="Once"),)),
            Scene(id="once", max_visits=2, options=(Option.parse("@root", title="Back"),)),
        ]
    )
    engine = make_engine(game).begin_game()

    engine.choose(0).choose(0).choose(0)
    assert engine.state.scene_id == "once"
    assert engine.state.visit_count("once") == 2

    engine.choose(0)

    assert engine.state.scene_id == "root"
    assert engine.is_game_over()


def test_non_root_dead_end_offers_way_back(make_engine: EngineFactory) -> None:
    game = Game.from_scenes(
        [
            Scene(id="root", options=(Option.parse("@side", title="Side"),)),
            Scene(id="side", content="A dead end."),
        ]
    )

    engine = make_engine(game).begin_game().choose(0)

    assert engine.get_current_choices() == [Choice(id="root", title=["Scene Complete"])]
    assert engine.choose(0).state.scene_id == "root"


def test_set_root_is_sticky(make_engine: EngineFactory) -> None:
    game = Game.from_scenes(
        [
            Scene(id="root", options=(Option.parse("@hub", title="Hub"),)),
            Scene(id="hub", set_root=True, options=(Option.parse("@room", title="Room"),)),
            Scene(id="room"),
        ]
    )

    engine = make_engine(game).begin_game().choose(0).choose(0)

    assert engine.get_root_scene_id() == "hub"
    assert engine.get_current_choices() == [Choice(id="hub", title=["Scene Complete"])]


def test_first_and_root_scene_resolution(make_engine: EngineFactory) -> None:
    game = Game.from_scenes(
        [
            Scene(id="intro", options=(Option.parse("@menu", title="Menu"),)),
            Scene(id="menu", options=(Option.parse("@intro", title="Intro"),)),
        ],
        first_scene="intro",
        root_scene="menu",
    )

    engine = make_engine(game).begin_game()

    assert engine.state.scene_id == "intro"
    assert engine.get_root_scene_id() == "menu"


def test_default_root_scene_comes_from_settings(make_engine: EngineFactory) -> None:
    game = Game.from_scenes([Scene(id="start", game_over=True)])
    engine = make_engine(game, settings=EngineSettings(default_root_scene="start"))

    engine.begin_game()

    assert engine.state.scene_id == "start"
    assert engine.get_root_scene_id() == "start"


def test_go_to_follows_first_matching_clause(
    make_engine: EngineFactory, recording_display: RecordingDisplay
) -> None:
    game = Game.from_scenes(
        [
            Scene(
                id="root",
                content="Passing through",
                go_to=(
                    GoToClause("never", predicate=lambda state, Q: False),
                    GoToClause("landing"),
                ),
            ),
            Scene(id="never", game_over=True),
            Scene(id="landing", content="Landed", game_over=True),
        ],
        scene_signal="scenes",
    )

    engine = make_engine(game).begin_game()

    assert engine.state.scene_id == "landing"
    assert engine.state.visits == {"root": 1, "landing": 1}
    assert recording_display.content[:2] == [[paragraph("Passing through")], [paragraph("Landed")]]
    assert {"signal": "scenes", "event": "scene-departure", "id": "root", "to": "landing"} in (
        recording_display.signal_payloads()
    )


def test_go_to_without_match_falls_back_to_choices(make_engine: EngineFactory) -> None:
    game = Game.from_scenes(
        [
            Scene(
                id="root",
                go_to=(GoToClause("elsewhere", predicate=lambda state, Q: Q.get("key", 0) > 0),),
                options=(Option.parse("@elsewhere", title="Walk"),),
            ),
            Scene(id="elsewhere", game_over=True),
        ]
    )

    engine = make_engine(game).begin_game()

    assert engine.state.scene_id == "root"
    assert engine.get_current_choices() == [Choice(id="elsewhere", title=["Walk"])]


def test_go_to_cycle_raises_no_progress(make_engine: EngineFactory) -> None:
    game = Game.from_scenes(
        [
            Scene(id="root", go_to=(GoToClause("loop"),)),
            Scene(id="loop", go_to=(GoToClause("root"),)),
        ]
    )
    engine = make_engine(game, settings=EngineSettings(max_go_to_hops=5))

    with pytest.raises(NoProgressError) as excinfo:
        engine.begin_game()

    assert excinfo.value.hops == 5


def test_go_to_scene_restarts_a_finished_game(
    simple_game: Game, make_engine: EngineFactory
) -> None:
    engine = make_engine(simple_game).begin_game().choose(0).choose(0)
    assert engine.is_game_over()

    engine.go_to_scene("foo")

    assert not engine.is_game_over()
    assert engine.phase is EnginePhase.AWAITING_CHOICE
    assert engine.state.visit_count("foo") == 2


def test_go_to_unknown_scene_raises(simple_game: Game, make_engine: EngineFactory) -> None:
    engine = make_engine(simple_game).begin_game()

    with pytest.raises(UnknownSceneError):
        engine.go_to_scene("nowhere")


def test_new_page_clears_the_display(
    make_engine: EngineFactory, recording_display: RecordingDisplay
) -> None:
    game = Game.from_scenes(
        [
            Scene(id="root", content="Old page", options=(Option.parse("@fresh", title="Turn"),)),
            Scene(id="fresh", content="New page", new_page=True, game_over=True),
        ]
    )

    make_engine(game).begin_game().choose(0)

    assert recording_display.pages == 1
    assert recording_display.content == [[paragraph("New page")], [paragraph("Game Over")]]


def test_count_visits_max_does_not_stop_counting(make_engine: EngineFactory) -> None:
    game = Game.from_scenes(
        [
            Scene(id="root", count_visits_max=1, options=(Option.parse("@root", title="Again"),)),
        ]
    )

    engine = make_engine(game).begin_game().choose(0).choose(0)

    assert engine.state.visit_count("root") == 3


def test_save_and_restore_reproduces_scene_qualities_and_choices(
    make_engine: EngineFactory, recording_display: RecordingDisplay
) -> None:
    game = Game.from_scenes(
        [
            Scene(
                id="root",
                options=tuple(Option.parse(f"@{name}") for name in ("a", "b", "c", "d")),
                max_choices=2,
            ),
            *[
                Scene(
                    id=name,
                    title=name.upper(),
                    on_arrival=(_set("gold", index + 5),),
                    options=tuple(Option.parse(f"@{other}") for other in ("a", "b", "c", "d")),
                    max_choices=2,
                )
                for index, name in enumerate(("a", "b", "c", "d"))
            ],
        ],
        qualities={"gold": QualityDefinition(initial=1)},
    )
    engine = make_engine(game, seed=5)
    engine.begin_game().choose(0)
    scene_id = engine.state.scene_id
    qualities = dict(engine.state.qualities)
    choices = list(engine.get_current_choices() or [])
    exported = engine.get_exportable_state()

    engine.begin_game()
    assert engine.state.scene_id == "root"
    assert engine.state.qualities == {"gold": 1}

    displayed = len(recording_display.content)
    engine.set_state(exported)

    assert engine.state.scene_id == scene_id
    assert engine.state.qualities == qualities
    assert engine.get_current_choices() == choices
    assert engine.phase is EnginePhase.AWAITING_CHOICE
    assert len(recording_display.content) == displayed


def test_restored_state_is_independent_of_the_payload(
    simple_game: Game, make_engine: EngineFactory
) -> None:
    engine = make_engine(simple_game).begin_game()
    saved = engine.state.copy()

    engine.set_state(saved)
    saved.qualities["gold"] = 1

    assert engine.state.qualities == {}


def test_restore_game_over_state(simple_game: Game, make_engine: EngineFactory) -> None:
    engine = make_engine(simple_game)

    engine.set_state({"scene_id": "bar", "root_scene_id": "root", "game_over": True})

    assert engine.phase is EnginePhase.GAME_OVER
    assert engine.is_game_over()


def test_restore_rejects_bad_payloads(simple_game: Game, make_engine: EngineFactory) -> None:
    engine = make_engine(simple_game)

    with pytest.raises(UnknownSceneError):
        engine.set_state({"scene_id": "nowhere"})
    with pytest.raises(ValueError):
        engine.set_state({"scene_id": "root", "turn": -3})
    with pytest.raises(ValueError):
        engine.set_state({})
    with pytest.raises(UnknownSceneError):
        engine.set_state(
            {
                "scene_id": "root",
                "root_scene_id": "root",
                "choices": [{"id": "ghost", "title": ["Ghost"]}],
            }
        )
    with pytest.raises(ValueError):
        engine.set_state({"scene_id": "root", "qualities": {"gold": float("nan")}})
    assert engine.phase is EnginePhase.UNINITIALIZED
    assert engine.state.scene_id is None


def test_faulty_actions_are_recorded_and_play_continues(
    make_engine: EngineFactory,
    recording_display: RecordingDisplay,
    caplog: pytest.LogCaptureFixture,
) -> None:
    def _broken(state: GameState, Q: Any) -> None:
        raise ZeroDivisionError("bad maths")

    game = Game.from_scenes(
        [
            Scene(
                id="root",
                content="Still shown",
                on_arrival=(_broken,),
                options=(Option.parse("@foo", title="Foo"),),
            ),
            Scene(id="foo", game_over=True),
        ]
    )
    caplog.set_level(logging.WARNING, logger="storygraph.callables")

    engine = make_engine(game).begin_game()

    assert recording_display.content == [[paragraph("Still shown")]]
    assert engine.phase is EnginePhase.AWAITING_CHOICE
    assert len(engine.faults) == 1
    fault = engine.faults.latest
    assert fault is not None
    assert "on-arrival of scene 'root'" in fault.context
    assert isinstance(fault.__cause__, ZeroDivisionError)
    assert "bad maths" in caplog.text


def test_non_finite_quality_from_an_action_is_not_stored(make_engine: EngineFactory) -> None:
    game = Game.from_scenes(
        [Scene(id="root", on_arrival=(_set("foo", float("nan")),), game_over=True)],
        qualities={"foo": QualityDefinition(minimum=0, maximum=15)},
    )

    engine = make_engine(game).begin_game()

    assert "foo" not in engine.state.qualities
    assert len(engine.faults) == 1
    assert engine.get_exportable_state()["qualities"] == {}


def test_faults_propagate_when_configured(make_engine: EngineFactory) -> None:
    def _broken(state: GameState, Q: Any) -> None:
        raise ZeroDivisionError("bad maths")

    game = Game.from_scenes([Scene(id="root", on_arrival=(_broken,), game_over=True)])
    engine = make_engine(game, settings=EngineSettings(raise_on_fault=True))

    with pytest.raises(CallableFault):
        engine.begin_game()


def test_engine_works_without_a_display() -> None:
    game = Game.from_scenes([Scene(id="root", content="Quiet", game_over=True)])

    engine = SceneEngine(game).begin_game()

    assert engine.is_game_over()


def test_partial_display_receives_only_what_it_implements(make_engine: EngineFactory) -> None:
    class SignalOnly:
        def __init__(self) -> None:
            self.events: list[str] = []

        def signal(self, event: Any) -> None:
            self.events.append(event.event)

    display = SignalOnly()
    game = Game.from_scenes([Scene(id="root", signal="s", content="Hi", game_over=True)])

    make_engine(game, display=display).begin_game()

    assert display.events == ["scene-arrival", "scene-display"]


def test_qualities_accessor_applies_rules(make_engine: EngineFactory) -> None:
    game = Game.from_scenes(
        [Scene(id="root", game_over=True)],
        qualities={"gold": QualityDefinition(maximum=3)},
    )
    engine = make_engine(game).begin_game()

    engine.qualities["gold"] = 10

    assert engine.state.qualities["gold"] == 3
