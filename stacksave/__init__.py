"""StackSave savings backend."""
__version__ = "1.0.0"
