"""storepub: release-submission orchestrator for app store distribution."""

__version__ = "0.3.0"
