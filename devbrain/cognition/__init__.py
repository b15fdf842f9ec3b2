from .emotion_analyzer import EmotionalAnalyzer
from .mental_state import MentalStateInferencer
from .tone import EmotionalToneAdjuster
from .simulator import MentalSimulator

__all__ = [
    "EmotionalAnalyzer",
    "MentalStateInferencer",
    "EmotionalToneAdjuster",
    "MentalSimulator",
]
