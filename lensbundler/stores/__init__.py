"""On-disk persistence for lens descriptors."""

from .descriptor_store import DescriptorParseError, load_descriptor, write_descriptor

__all__ = ["DescriptorParseError", "load_descriptor", "write_descriptor"]
