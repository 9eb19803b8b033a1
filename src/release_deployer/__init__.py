"""release-deployer: stage-based release deployment over SSH."""

__version__ = "0.3.0"
