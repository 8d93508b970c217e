from .protocol import InstanceFactory
from .simple import SimpleServiceFactory

__all__ = ["InstanceFactory", "SimpleServiceFactory"]
