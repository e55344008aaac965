# scanls/__init__.py
from .normal_equations import (
    NormalEquations,
    normal_equations,
    NNLSError,
    InvalidInputError,
    DimensionMismatchError,
)
from .stopping import StoppingPolicy, ObjectiveGap, KKTTolerance, SweepLimit
from .sca import (
    coordinate_sweep,
    solve_objective_gap,
    solve_kkt,
    solve_limit,
)
from .nnls import nonneg_lsq

__version__ = "0.1.0"
