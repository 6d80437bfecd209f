"""Phase activities that talk to external tools."""
