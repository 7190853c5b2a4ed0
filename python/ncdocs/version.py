"""
An identification of the package version.  Note that this module file gets
(over-) written by the build process.
"""

__version__ = "dev"
