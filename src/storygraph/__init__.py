"""Deterministic scene-graph narrative engine."""

from .callables import FaultLog, run_actions, run_expression, run_predicate
from .choices import ChoiceSelector
from .content import ContentCompiler, paragraph, stringify
from .display import CAPABILITIES, DisplayHooks, DisplaySurface
from .engine import EnginePhase, SceneEngine
from .errors import (
    CallableFault,
    ChoiceIndexError,
    EngineStateError,
    InternalConsistencyFault,
    MalformedDefinitionError,
    NoProgressError,
    StoryGraphError,
    UnknownSceneError,
)
from .game import (
    UNSET,
    Block,
    Conditional,
    Content,
    Game,
    GoToClause,
    Insert,
    Option,
    QualityDefinition,
    Scene,
    StateDependency,
    build_tag_lookup,
)
from .game_state import Choice, GameState
from .loader import (
    compile_code,
    load_game_from_file,
    load_game_from_json,
    load_game_from_mapping,
)
from .qualities import QualityAccessor, QualityStore, clamp
from .random_source import RandomSource
from .settings import EngineSettings
from .signals import (
    QUALITY_CHANGE,
    SCENE_ARRIVAL,
    SCENE_DEPARTURE,
    SCENE_DISPLAY,
    SignalEmitter,
    SignalEvent,
)

__all__ = [
    "Block",
    "CAPABILITIES",
    "CallableFault",
    "Choice",
    "ChoiceIndexError",
    "ChoiceSelector",
    "Conditional",
    "Content",
    "ContentCompiler",
    "DisplayHooks",
    "DisplaySurface",
    "EnginePhase",
    "EngineSettings",
    "EngineStateError",
    "FaultLog",
    "Game",
    "GameState",
    "GoToClause",
    "Insert",
    "InternalConsistencyFault",
    "MalformedDefinitionError",
    "NoProgressError",
    "Option",
    "QUALITY_CHANGE",
    "QualityAccessor",
    "QualityDefinition",
    "QualityStore",
    "RandomSource",
    "SCENE_ARRIVAL",
    "SCENE_DEPARTURE",
    "SCENE_DISPLAY",
    "Scene",
    "SceneEngine",
    "SignalEmitter",
    "SignalEvent",
    "StateDependency",
    "StoryGraphError",
    "UNSET",
    "UnknownSceneError",
    "build_tag_lookup",
    "clamp",
    "compile_code",
    "load_game_from_file",
    "load_game_from_json",
    "load_game_from_mapping",
    "paragraph",
    "run_actions",
    "run_expression",
    "run_predicate",
    "stringify",
]
