class CalibrationError(ValueError):
    """Base class for invalid inputs to the calibration components."""

    pass


class ShapeError(CalibrationError):
    """Raised when an array has the wrong dimensions or ragged rows."""

    pass


class DomainError(CalibrationError):
    """Raised when a p-value or correlation lies outside its valid range."""

    pass


class NumericalError(CalibrationError):
    """Raised when a matrix decomposition or formula is undefined."""

    pass


class EmptyInputError(CalibrationError):
    """Raised when a feature, unit or candidate collection is empty."""

    pass
