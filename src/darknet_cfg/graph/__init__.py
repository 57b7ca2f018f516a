"""Reference resolution, shape propagation and weight layout."""

from darknet_cfg.graph.resolver import (
    ResolvedLayer,
    ResolvedNetwork,
    resolve,
    resolve_index,
)
from darknet_cfg.graph.weights import (
    BufferSpec,
    LayerWeights,
    WeightPlan,
    convolutional_num_weights,
    layer_weights,
    plan_weights,
)

__all__ = [
    # Resolver
    "ResolvedLayer",
    "ResolvedNetwork",
    "resolve",
    "resolve_index",
    # Weights
    "BufferSpec",
    "LayerWeights",
    "WeightPlan",
    "convolutional_num_weights",
    "layer_weights",
    "plan_weights",
]
