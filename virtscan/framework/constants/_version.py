# Semantic versioning of the framework interfaces (SemVer 2.0.0)
VERSION_MAJOR = 1  # Breaking changes to a component interface
VERSION_MINOR = 0  # Additions to a component interface
VERSION_PATCH = 0  # Fixes that leave the interfaces unchanged
VERSION_SUFFIX = ""

PACKAGE_VERSION = f"{VERSION_MAJOR}.{VERSION_MINOR}.{VERSION_PATCH}{VERSION_SUFFIX}"
"""The canonical version of the virtscan package"""
