class ScExperimentError(Exception):
    """Base exception for all sc_experiment errors"""
    pass

class DimensionMismatch(ScExperimentError, ValueError):
    """
    A supplied matrix, table or vector disagrees with n_rows / n_cols
    """
    pass

class NotFound(ScExperimentError, KeyError):
    """Named lookup miss on an assay, reduced dim, alt exp or metadata key"""
    pass

class UnknownIdentifier(ScExperimentError, KeyError):
    """A selector references a row/column identifier that does not exist"""
    pass

class DuplicateName(ScExperimentError, ValueError):
    """Two entries of a named slot share a name"""
    pass

class DuplicateIdentifier(ScExperimentError, ValueError):
    """
    Row or column identifiers are not unique, or a selector picks the
    same row/column more than once
    """
    pass

class ColumnMisalignment(ScExperimentError, ValueError):
    """Alternative experiment column identifiers disagree with the parent"""
    pass

class CyclicReference(ScExperimentError, ValueError):
    """An alternative experiment would contain one of its ancestors"""
    pass

class SelectorError(ScExperimentError, IndexError):
    """A positional selector points outside the axis"""
    pass
