"""
An identification of the subsystem version.  Note that this module file gets
(over-) written by the build process.
"""

__version__ = "0.3.0"
