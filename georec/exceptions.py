"""
Errors raised and recorded while preparing and training models.
"""

from collections import namedtuple

class ConfigurationError(ValueError):
    """
    Fatal problem with the data or hyper-parameters supplied to a model,
    for example fewer geographic neighbours than latent dimensions or a
    missing mandatory model file.
    """
    pass

# a single sgd update that failed and was skipped during a training sweep
PairFault = namedtuple('PairFault',['iteration','index','user','item','candidate','error'])
