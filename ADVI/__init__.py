# =============================================================================
# Copyright 2025. Somjit Roy and Pritam Dey.
# This program implements required initializations for the ADVI algorithm as developed in:
# Kucukelbir, A., Tran, D., Ranganath, R., Gelman, A., and Blei, D.M.
# 'Automatic Differentiation Variational Inference',
# Journal of Machine Learning Research, 18(14):1-45, 2017.
#
# Authors:
#   Somjit Roy <sroy_123@tamu.edu> and Pritam Dey <pritam.dey@tamu.edu>
# =============================================================================

from .ADVI_classes import ADVI
from .advi import ADVI_fit, ADVIResult
from .config import ADVIConfig
from .elbo import ELBOEstimate, estimate_elbo
from .errors import ADVIError, DomainError, OptimizationFailure, RecoverableEvaluationError
from .families import FullRankGaussian, MeanFieldGaussian, make_family
from .models import FunctionModel, ModelEvaluator, TorchModel
from .optimizer import ConvergenceWindow, OptimizerState, ParameterDrift, Status, StochasticOptimizer
from .transforms import ParameterSpec, Transform
