from .simplex import CurveResidual, FunctionObjective, Objective, Simplex
