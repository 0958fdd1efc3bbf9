"""HTTP redirector that counts redirects per path."""

__version__ = "1.0.0"
