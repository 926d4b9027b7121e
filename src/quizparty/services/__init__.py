"""Service modules for the CLI, terminal output, sound and headless play."""

from . import cli, narrator, simulation, sound

__all__ = ["cli", "narrator", "simulation", "sound"]
