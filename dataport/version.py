SDK_NAME = "python"
__version__ = "1.0.0"
