"""Daily Homebrew upgrades gated on meetings, power, network and disk."""

__version__ = "1.0.0"
