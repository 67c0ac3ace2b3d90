"""
DataLab stack orchestration.

Translates declarative stack requests (notebooks, sites, storage, compute
clusters) into Kubernetes resources and drives their lifecycle.
"""

__version__ = "0.1.0"
