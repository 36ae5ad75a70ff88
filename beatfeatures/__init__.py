"""Beat map feature extraction package.

The pipeline lives in ``beatfeatures.pipeline``; ``beatfeatures.extract``
is the command line entry point.
"""

__version__ = "0.3.0"
