"""continuous-opencode: run an opencode agent in a PR-per-iteration loop."""

__version__ = "0.2.0"
