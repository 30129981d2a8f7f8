"""Build, push, deploy and release applications on Fastly Compute."""

__version__ = "0.1.0"
