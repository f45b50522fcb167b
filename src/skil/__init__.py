"""skil: install, track and update agent skills from git, local paths and archives."""

__version__ = "0.3.0"
