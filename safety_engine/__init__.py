"""Safety Intelligence Engine.

Hexagonal safety scoring, AHP factor weighting, contributor trust propagation
and safety-weighted route planning.
"""

from safety_engine.engine import SafetyIntelligenceEngine, WeightResolution

__version__ = "0.1.0"

__all__ = ["SafetyIntelligenceEngine", "WeightResolution", "__version__"]
