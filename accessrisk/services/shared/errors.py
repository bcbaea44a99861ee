"""
AccessRisk error taxonomy
--------------------------
Recoverable per-record conditions (bad timestamps, missing fields, too few
buckets) never raise: they are tallied in Diagnostics. Only conditions that
make a whole run meaningless propagate to the caller:

  ConfigurationError   - invalid AnalysisConfig, raised before any event is read
  InputStructureError  - the event source is not an iterable of LogEvent
"""


class AccessRiskError(Exception):
    """Base class for failures that terminate an analysis run."""


class ConfigurationError(AccessRiskError):
    """Raised when analysis settings are out of range or inconsistent."""


class InputStructureError(AccessRiskError):
    """Raised when the event window cannot be read as a collection of LogEvent."""
