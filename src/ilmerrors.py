"""
Exceptions raised by the immersed-layer modules.

Construction and shape errors are programmer errors: they are raised
immediately and never retried.
"""

import numpy as np


class DimensionMismatchError(ValueError):
    """Data whose length or shape does not match the grid or the surface."""


class ILMConfigurationError(ValueError):
    """Unsupported scaling, unknown kernel, or a missing boundary-condition entry."""


class MissingProblemHookError(NotImplementedError):
    """A problem variant that does not define one of its hooks."""


class SingularSchurComplementError(np.linalg.LinAlgError):
    """A surface matrix that is exactly singular at factorization time."""
