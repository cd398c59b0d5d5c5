"""Garden: keeps site logins alive by replaying recorded browser scripts."""

__version__ = "0.3.0"
