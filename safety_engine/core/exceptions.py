"""Custom exception classes.

Every failure the engine reports is one of these. Nothing here is fatal to the
process: callers catch the family they care about (``ValidationError``,
``ConsistencyError``, ``GraphError`` or ``Cancelled``) and decide what to do.
"""


class SafetyEngineError(Exception):
    """Base exception for the Safety Intelligence Engine."""

    def __init__(self, message: str, code: str = "engine_error"):
        self.message = message
        self.code = code
        super().__init__(self.message)


class ValidationError(SafetyEngineError):
    """Malformed input, rejected before any mutation."""

    def __init__(self, message: str = "Validation failed", code: str = "validation_error"):
        super().__init__(message, code)


class InvalidCoordinate(ValidationError):
    """Latitude/longitude outside the valid range."""

    def __init__(self, message: str = "Invalid coordinate"):
        super().__init__(message, "invalid_coordinate")


class InvalidCellId(ValidationError):
    """Cell id does not decode to a supported resolution."""

    def __init__(self, message: str = "Invalid cell id"):
        super().__init__(message, "invalid_cell_id")


class IncomparableCells(ValidationError):
    """Cells whose grid distance H3 cannot measure."""

    def __init__(self, message: str = "Incomparable cells"):
        super().__init__(message, "incomparable_cells")


class InvalidFactorValue(ValidationError):
    """Factor name unknown or factor value not finite."""

    def __init__(self, message: str = "Invalid factor value"):
        super().__init__(message, "invalid_factor_value")


class InvalidWeightVector(ValidationError):
    """Factor weight vector incomplete, negative or not summing to 1."""

    def __init__(self, message: str = "Invalid weight vector"):
        super().__init__(message, "invalid_weight_vector")


class InvalidMatrixEntry(ValidationError):
    """Pairwise matrix is not square or has a non-positive/non-finite entry."""

    def __init__(self, message: str = "Invalid matrix entry"):
        super().__init__(message, "invalid_matrix_entry")


class UnsupportedCriteriaCount(ValidationError):
    """Pairwise matrix size outside the supported 3..7 range."""

    def __init__(self, message: str = "Unsupported criteria count"):
        super().__init__(message, "unsupported_criteria_count")


class InvalidTrustInput(ValidationError):
    """Trust matrix or pre-trust vector malformed."""

    def __init__(self, message: str = "Invalid trust input"):
        super().__init__(message, "invalid_trust_input")


class ObservationNotFound(ValidationError):
    """No queued observation with the given id."""

    def __init__(self, message: str = "Observation not found"):
        super().__init__(message, "observation_not_found")


class InvalidSafetyWeight(ValidationError):
    """Route safety weight outside [0, 1]."""

    def __init__(self, message: str = "Safety weight must be between 0 and 1"):
        super().__init__(message, "invalid_safety_weight")


class ConsistencyError(SafetyEngineError):
    """Input is well-formed but logically inconsistent."""

    def __init__(self, message: str = "Inconsistent input", code: str = "consistency_error"):
        super().__init__(message, code)


class InconsistentMatrix(ConsistencyError):
    """Pairwise matrix consistency ratio above the acceptance threshold."""

    def __init__(self, consistency_ratio: float):
        self.consistency_ratio = consistency_ratio
        super().__init__(
            f"Pairwise matrix is inconsistent (CR={consistency_ratio:.4f} > 0.1)",
            "inconsistent_matrix",
        )


class GraphError(SafetyEngineError):
    """Road network cannot serve the request."""

    def __init__(self, message: str = "Graph error", code: str = "graph_error"):
        super().__init__(message, code)


class NoReachableNode(GraphError):
    """No graph node within the maximum snap distance."""

    def __init__(self, message: str = "No reachable node near coordinate"):
        super().__init__(message, "no_reachable_node")


class NoPathExists(GraphError):
    """Origin and destination are not connected."""

    def __init__(self, message: str = "No path exists"):
        super().__init__(message, "no_path_exists")


class Cancelled(SafetyEngineError):
    """Search was cancelled by the caller or ran past its deadline."""

    def __init__(self, message: str = "Operation cancelled"):
        super().__init__(message, "cancelled")
