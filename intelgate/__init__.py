"""intelgate — multi-source intelligence collection gated on data quality."""

__version__ = "0.1.0"
