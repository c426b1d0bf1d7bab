"""Runtime: the Scheduler graph, step processor, suspension, delegation and synthesis."""

from .engine import PESEngine
from .models import EngineDeps, Observer, RunContext
from .step_processor import StepOutcome, StepPhase, StepProcessor
from .suspension import SuspensionManager
from .synthesizer import Synthesizer

__all__ = [
    "EngineDeps",
    "Observer",
    "PESEngine",
    "RunContext",
    "StepOutcome",
    "StepPhase",
    "StepProcessor",
    "SuspensionManager",
    "Synthesizer",
]
