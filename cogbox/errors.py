class CogboxError(Exception):
    """Base error for all cogbox failures."""


# ---- Configuration errors: fatal, raised while the pipeline is built ----
class ConfigurationError(CogboxError):
    """Raised when the pipeline cannot be constructed. Never raised per tick."""


class InputFileError(ConfigurationError):
    """Raised when the raw series file is missing, unreadable or lacks required columns."""


class FeatureConfigError(ConfigurationError):
    """Raised for invalid window configuration or a window longer than an owner's series."""


class ArtifactError(ConfigurationError):
    """Raised when the classifier artifact is malformed."""


class ArtifactNotFoundError(ArtifactError):
    """Raised when the classifier artifact file does not exist."""


class SchemaMismatchError(ConfigurationError):
    """Raised when the artifact's feature names/order differ from the feature configuration."""


class LabelMappingError(ConfigurationError):
    """Raised when the artifact's state name <-> ordinal mapping differs from CognitiveState."""


class RuleConfigError(ConfigurationError):
    """Raised when a rationale rule table is incomplete or cites unknown inputs."""


# ---- Data errors: recovered locally, never terminate a live session ----
class DataError(CogboxError):
    """Raised for a single malformed sample or an unusable row."""


class SnapshotError(DataError):
    """Raised when a snapshot cannot be produced for a cursor (undefined features, bad classifier output)."""


# ---- Lookup errors (also behave like KeyError for dict-like APIs) ----
class OwnerNotFound(CogboxError, KeyError):
    """Raised when a requested owner id is not present in the loaded series."""
