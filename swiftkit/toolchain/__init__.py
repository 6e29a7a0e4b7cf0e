"""Toolchain model, resolution, installation and proxying."""
