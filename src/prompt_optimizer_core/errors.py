"""
Optimizer Errors

Exception hierarchy shared by the optimization pipeline.

Input validation errors abort the call that raised them. Upstream call
errors are raised inside a single unit of work (one extraction, one
comparison, one field) and are captured at that unit's boundary.
"""


class OptimizerError(Exception):
    """Base error for the prompt optimizer"""
    pass


class InputValidationError(OptimizerError, ValueError):
    """Raised when the caller supplies data no safe default can be built from"""
    pass


class UpstreamCallError(OptimizerError):
    """Raised when an extraction, judge, or generation call fails"""
    pass


class CallTimeoutError(UpstreamCallError, TimeoutError):
    """Raised when an external call exceeds its timeout"""
    pass


class ContextNotFoundError(UpstreamCallError):
    """Raised when the placeholder context item no longer exists upstream"""
    pass


class UpstreamOutageError(UpstreamCallError):
    """Raised when every extraction of an iteration failed"""
    pass


class SynthesisError(UpstreamCallError):
    """Raised when prompt synthesis failed on every attempt"""
    pass
