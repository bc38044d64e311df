"""varfed: federated variant query and annotation pipeline."""

__version__ = "0.3.0"
