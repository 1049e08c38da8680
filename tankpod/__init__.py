"""Tank pod: water-tank monitoring and pump control for a Raspberry Pi."""

__version__ = "1.0.0"
