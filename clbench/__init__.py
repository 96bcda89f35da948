"""
clbench: an OpenCL kernel micro-benchmark harness
"""

__version__ = "0.1.0"
