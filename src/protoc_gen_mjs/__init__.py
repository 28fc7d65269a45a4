"""protoc plugin generating ES module classes with JSON projection from .proto files."""

__version__ = "0.1.0"
