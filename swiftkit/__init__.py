"""
swiftkit - Swift toolchain version manager.

Installs Swift toolchains side by side, selects the active one per project
(``.swift-version``) or globally, and proxies tool invocations to it.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
