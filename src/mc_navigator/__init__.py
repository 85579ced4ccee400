"""Navigation and recovery core for voxel-world agents."""

__version__ = "0.1.0"
