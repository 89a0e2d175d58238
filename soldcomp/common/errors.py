"""Pipeline failure types; each carries the error code written to logs."""


class PipelineError(Exception):
    error_code = "PIPELINE_ERROR"


class ConfigError(PipelineError):
    """Config file missing, unreadable, or failing its schema."""

    error_code = "CONFIG_ERROR"


class ContractError(PipelineError):
    """A stage could not find the input file or upstream intermediate it reads."""

    error_code = "CONTRACT_ERROR"


class StageError(PipelineError):
    """A collaborator failure inside a stage; fatal only under --strict."""

    error_code = "STAGE_ERROR"


class StructuralError(PipelineError):
    """The input sheet has no rows at all, so there is nothing to reconcile."""

    error_code = "STRUCTURAL_ERROR"
