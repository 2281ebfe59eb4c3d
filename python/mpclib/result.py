"""
mpclib Result Classes
=====================

Data classes for the outcome of a control step.
"""

from dataclasses import dataclass, field
from enum import IntEnum

import numpy as np


class ReturnCode(IntEnum):
    """
    Return codes of the nonlinear optimizer.

    The linear optimizer reports the QP solver status value instead,
    which shares the sign convention: negative means failure.

    Attributes:
        FAILURE: Solver failed, previous command held
        FTOL_REACHED: Stopped on the function tolerance
        XTOL_REACHED: Stopped on the step tolerance
        MAXEVAL_REACHED: Iteration limit hit, last iterate applied
    """
    FAILURE = -1
    FTOL_REACHED = 3
    XTOL_REACHED = 4
    MAXEVAL_REACHED = 5


@dataclass
class Result:
    """
    Result of one control step.

    Attributes:
        cmd: Optimal control input to apply now (n_u,)
        cost: Achieved cost (``inf`` when the solve failed)
        retcode: Solver return code, negative on failure

    Example:
        >>> result = controller.step(x0, u_prev)
        >>> if result.retcode > 0:
        ...     apply(result.cmd)
    """

    cmd: np.ndarray = field(default_factory=lambda: np.zeros(0))
    cost: float = float("inf")
    retcode: int = 0

    @classmethod
    def zeros(cls, n_u: int) -> "Result":
        """Result holding a zero command, used before the first solve."""
        return cls(cmd=np.zeros(n_u))

    def __repr__(self) -> str:
        return (
            f"Result(cmd={np.array2string(np.asarray(self.cmd), precision=4)}, "
            f"cost={self.cost:.6g}, "
            f"retcode={int(self.retcode)})"
        )
