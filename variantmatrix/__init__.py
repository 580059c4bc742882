"""Selection-matrix extractor: discover variant dimensions, fetch every
combination under bounded concurrency, and append results per item."""

__version__ = "0.3.0"
