"""Shell adapters."""

from plugboot.adapters.shell.ldconfig import LdconfigIndex

__all__ = ["LdconfigIndex"]
