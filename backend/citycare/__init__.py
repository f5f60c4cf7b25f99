"""CityCare civic issue reporting backend."""

__version__ = "1.0.0"
