"""nodekit - executable workflow nodes that double as agent tools."""

__version__ = "0.1.0"
