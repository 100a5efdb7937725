"""Neural Network Engine From Scratch

Dense 2D / 3D tensors, a feedforward network trained by hand-derived
backpropagation, and forward-only convolution stages.

Modules
-------

- `operators`: Scalar functions used as elementwise kernels.
- `tensor_data`: Storage, shapes, strides, index arithmetic and the error classes.
- `fast_ops`: numba kernels for map, zip, reduce, matrix multiply and windows (only CPU).
- `tensor`: `Tensor2D` and `Tensor3D` and their algebra.
- `tensor_functions`: Constructors, Laplace-expansion linear algebra and gradient checks.
- `activation`: Sigmoid and ReLU activations and their derivatives.
- `datasets`: The `Dataset` record and synthetic 2D datasets.
- `network`: Feedforward network, backpropagation and mini-batch training.
- `fast_conv`: Strided, zero-padded filter bank correlation using numba (only CPU).
- `nn`: Max and average pooling.
- `cnn`: Convolution stages and their composition.
"""

from .tensor_data import *  # noqa: F401,F403
from .tensor import *  # noqa: F401,F403
from .tensor_functions import *  # noqa: F401,F403
from .activation import *  # noqa: F401,F403
from .datasets import *  # noqa: F401,F403
from .network import *  # noqa: F401,F403
from .fast_conv import *  # noqa: F401,F403
from .nn import *  # noqa: F401,F403
from .cnn import *  # noqa: F401,F403
from . import operators, fast_ops  # noqa: F401,F403
